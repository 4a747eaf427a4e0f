"""
NEAR error taxonomy — what went wrong, and whether trying again can help.

Every failure the core surfaces is a ``LedgerError`` carrying a coarse
``FailureKind``. The kind alone decides retryability:

    - TRANSPORT: connection refused, timeout, malformed response, node
      temporarily unable to serve. Retried by the backoff policy.
    - PENDING: the node answered but the transaction never reached a
      terminal status (NotStarted / Started). Retried.
    - STALE_NONCE: the envelope was built against a nonce or block
      reference that has since moved. Retried with a fresh envelope.
    - everything else: fatal, propagated immediately.

Subclasses add context (outcome, attempts, drain unit) but never change
the retry decision.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from oct_cli.near.outcome import ExecutionOutcome


class FailureKind(StrEnum):
    """Coarse failure categories, backend-agnostic."""

    TRANSPORT = "TRANSPORT"
    PENDING = "PENDING"
    STALE_NONCE = "STALE_NONCE"
    ACCESS_DENIED = "ACCESS_DENIED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    CONTRACT_EXECUTION = "CONTRACT_EXECUTION"
    REJECTED = "REJECTED"
    PROGRESS_FAILED = "PROGRESS_FAILED"
    UNKNOWN = "UNKNOWN"


RETRYABLE_KINDS: frozenset[FailureKind] = frozenset(
    {FailureKind.TRANSPORT, FailureKind.PENDING, FailureKind.STALE_NONCE}
)


class LedgerError(Exception):
    """Base error for everything the ledger core raises.

    Args:
        message: Human-readable description.
        kind: Failure category; decides ``retryable``.
        details: Structured diagnostics (account ids, limits, raw payloads).
            Never contains secrets.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: FailureKind = FailureKind.UNKNOWN,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.details = details or {}

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": str(self.kind),
            "message": self.message,
            "details": self.details,
        }


class TransportError(LedgerError):
    """The request never produced a usable JSON-RPC response."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, kind=FailureKind.TRANSPORT, details=details)


class RpcError(LedgerError):
    """The node answered with a JSON-RPC error object.

    ``name`` and ``cause`` mirror the node's structured error
    (e.g. ``HANDLER_ERROR`` / ``UNKNOWN_ACCESS_KEY``).
    """

    def __init__(
        self,
        message: str,
        *,
        kind: FailureKind,
        name: str | None = None,
        cause: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, kind=kind, details=details)
        self.name = name
        self.cause = cause


class TransactionFailed(LedgerError):
    """The transaction reached the ledger and ended in a failure status."""

    def __init__(
        self,
        message: str,
        *,
        kind: FailureKind,
        outcome: ExecutionOutcome | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, kind=kind, details=details)
        self.outcome = outcome


class RetryExhausted(LedgerError):
    """A retryable failure persisted through every attempt of the policy."""

    def __init__(self, operation: str, attempts: int, last_error: LedgerError) -> None:
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): {last_error.message}",
            kind=last_error.kind,
            details={"attempts": attempts, "last_error": last_error.to_dict()},
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error

    @property
    def retryable(self) -> bool:
        return False


class ProgressFailed(LedgerError):
    """A drained cleanup call reported ``Failed(reason)``."""

    def __init__(self, unit: object, reason: str) -> None:
        super().__init__(
            f"cleanup of {unit!r} reported failure: {reason}",
            kind=FailureKind.PROGRESS_FAILED,
            details={"unit": repr(unit), "reason": reason},
        )
        self.unit = unit
        self.reason = reason


class OperationError(LedgerError):
    """A fatal error wrapped with the operation and account it interrupted.

    Raised ``from`` the underlying error so the cause chain survives.
    """

    def __init__(self, operation: str, account_id: str, cause: LedgerError) -> None:
        super().__init__(
            f"Failed to {operation} on <{account_id}>. {cause.message}",
            kind=cause.kind,
            details={
                "operation": operation,
                "account_id": account_id,
                "cause": cause.to_dict(),
            },
        )
        self.operation = operation
        self.account_id = account_id
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return False
