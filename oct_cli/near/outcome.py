"""
Execution outcomes and the classifier that reads them.

A ``broadcast_tx_commit`` response carries a ``FinalExecutionOutcomeView``
whose ``status`` is one of:

    "NotStarted" / "Started"          not terminal; the submission is retried
    {"SuccessValue": "<base64>"}      success, empty string means no value
    {"Failure": <TxExecutionError>}   terminal failure

A ``TxExecutionError`` is ``{"InvalidTxError": ...}`` (rejected before
execution) or ``{"ActionError": {"index": n, "kind": ...}}`` (an action
failed while executing). The same payload also arrives inside JSON-RPC
``INVALID_TRANSACTION`` errors, so ``classify_failure`` serves both paths.

Classification is total. Any shape this module does not recognize maps
to ``FailureKind.UNKNOWN`` with the raw JSON text preserved; no input
makes ``classify`` or ``classify_failure`` raise.

Messages carry the account, key and numeric detail the node reports.
Balances are shown in raw yoctoNEAR.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from oct_cli.near.errors import FailureKind, RpcError, TransportError


class OutcomeStatus(StrEnum):
    NOT_STARTED = "NOT_STARTED"
    STARTED = "STARTED"
    SUCCESS_VALUE = "SUCCESS_VALUE"
    FAILURE = "FAILURE"


class Category(StrEnum):
    """What the caller should do with an outcome."""

    SUCCESS_VALUE = "SUCCESS_VALUE"
    SUCCESS_EMPTY = "SUCCESS_EMPTY"
    PENDING = "PENDING"
    FAILURE = "FAILURE"


# =========================================================================
# Outcome
# =========================================================================


@dataclass(frozen=True)
class ExecutionOutcome:
    """Parsed terminal (or not-yet-terminal) result of one transaction.

    Attributes:
        status: Status kind.
        value: Decoded ``SuccessValue`` bytes (``b""`` for an empty value),
            None unless ``status`` is SUCCESS_VALUE.
        failure: Raw ``Failure`` payload, None unless ``status`` is FAILURE.
        tx_hash: Transaction hash reported by the node, if present.
        raw: The full ``result`` object as received.
    """

    status: OutcomeStatus
    value: bytes | None = None
    failure: Any = None
    tx_hash: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_rpc(cls, result: dict[str, Any]) -> ExecutionOutcome:
        """Parse a ``FinalExecutionOutcomeView``.

        Raises:
            TransportError: If ``status`` is missing or ``SuccessValue`` is
                not valid base64 (the response itself is malformed).
        """
        if not isinstance(result, dict) or "status" not in result:
            raise TransportError(
                "execution outcome has no status",
                details={"result": _raw_text(result)},
            )
        status = result["status"]
        tx_hash = _tx_hash(result)

        if status == "NotStarted":
            return cls(OutcomeStatus.NOT_STARTED, tx_hash=tx_hash, raw=result)
        if status == "Started":
            return cls(OutcomeStatus.STARTED, tx_hash=tx_hash, raw=result)
        if isinstance(status, dict) and "SuccessValue" in status:
            try:
                value = base64.b64decode(status["SuccessValue"] or "", validate=True)
            except (binascii.Error, TypeError) as exc:
                raise TransportError(
                    "SuccessValue is not valid base64",
                    details={"status": _raw_text(status)},
                ) from exc
            return cls(OutcomeStatus.SUCCESS_VALUE, value=value, tx_hash=tx_hash, raw=result)
        if isinstance(status, dict) and "Failure" in status:
            return cls(
                OutcomeStatus.FAILURE, failure=status["Failure"], tx_hash=tx_hash, raw=result
            )
        # Unrecognized status: keep it as the failure payload so the
        # classifier reports it as UNKNOWN with the raw text.
        return cls(OutcomeStatus.FAILURE, failure=status, tx_hash=tx_hash, raw=result)

    def json(self) -> Any:
        """Decode the success value as JSON.

        Raises:
            ValueError: If there is no value or it is not JSON.
        """
        if not self.value:
            raise ValueError(f"outcome carries no value (status {self.status})")
        return json.loads(self.value)


def _tx_hash(result: dict[str, Any]) -> str | None:
    transaction = result.get("transaction")
    if isinstance(transaction, dict) and isinstance(transaction.get("hash"), str):
        return transaction["hash"]
    return None


def _raw_text(payload: Any) -> str:
    try:
        return json.dumps(payload, sort_keys=True)
    except (TypeError, ValueError):
        return repr(payload)


# =========================================================================
# Classification
# =========================================================================


@dataclass(frozen=True)
class Classification:
    """Result of classifying an outcome.

    Attributes:
        category: Success (with or without value), pending, or failure.
        value: Success payload (SUCCESS_VALUE only).
        kind: Failure kind (PENDING and FAILURE only).
        detail: Human-readable failure description.
    """

    category: Category
    value: bytes | None = None
    kind: FailureKind | None = None
    detail: str | None = None


@dataclass(frozen=True)
class FailureDetail:
    kind: FailureKind
    message: str


def classify(outcome: ExecutionOutcome) -> Classification:
    """Map an outcome to a category, and a failure kind where applicable."""
    if outcome.status is OutcomeStatus.SUCCESS_VALUE:
        if outcome.value:
            return Classification(Category.SUCCESS_VALUE, value=outcome.value)
        return Classification(Category.SUCCESS_EMPTY)
    if outcome.status in (OutcomeStatus.NOT_STARTED, OutcomeStatus.STARTED):
        return Classification(
            Category.PENDING,
            kind=FailureKind.PENDING,
            detail=f"transaction not final yet (status {outcome.status})",
        )
    failure = classify_failure(outcome.failure)
    return Classification(Category.FAILURE, kind=failure.kind, detail=failure.message)


def classify_failure(payload: Any) -> FailureDetail:
    """Classify a ``TxExecutionError`` payload. Never raises."""
    try:
        name, body = _variant(payload)
        if name == "InvalidTxError":
            return _classify_invalid_tx(body)
        if name == "ActionError":
            return _classify_action_error(body)
    except (KeyError, IndexError, TypeError, ValueError, AttributeError):
        pass
    return _unknown(payload)


def _unknown(payload: Any) -> FailureDetail:
    return FailureDetail(FailureKind.UNKNOWN, f"Unrecognized failure: {_raw_text(payload)}")


def _variant(payload: Any) -> tuple[str, Any]:
    """Split a serde-style enum value into (variant name, fields).

    Unit variants arrive as bare strings, data variants as one-key objects.
    """
    if isinstance(payload, str):
        return payload, {}
    if isinstance(payload, dict) and len(payload) == 1:
        ((name, body),) = payload.items()
        return name, body
    raise ValueError("not an enum value")


# -------------------------------------------------------------------------
# InvalidTxError
# -------------------------------------------------------------------------

_ACCESS_KEY_ERRORS: dict[str, str] = {
    "AccessKeyNotFound": "Public key {public_key} doesn't exist for the account <{account_id}>.",
    "ReceiverMismatch": (
        "Transaction for <{tx_receiver}> doesn't match the access key for <{ak_receiver}>."
    ),
    "MethodNameMismatch": (
        "Transaction method name <{method_name}> isn't allowed by the access key."
    ),
    "RequiresFullAccess": "Transaction requires a full permission access key.",
    "NotEnoughAllowance": (
        "Access Key <{public_key}> for account <{account_id}> does not have enough "
        "allowance ({allowance}) to cover transaction cost ({cost})."
    ),
    "DepositWithFunctionCall": (
        "Having a deposit with a function call action is not allowed with a "
        "function call access key."
    ),
}

_ACTIONS_VALIDATION_ERRORS: dict[str, tuple[FailureKind, str]] = {
    "DeleteActionMustBeFinal": (
        FailureKind.REJECTED,
        "The delete action must be the final action in transaction.",
    ),
    "TotalPrepaidGasExceeded": (
        FailureKind.LIMIT_EXCEEDED,
        "The total prepaid gas ({total_prepaid_gas}) for all given actions "
        "exceeded the limit ({limit}).",
    ),
    "TotalNumberOfActionsExceeded": (
        FailureKind.LIMIT_EXCEEDED,
        "The number of actions ({total_number_of_actions}) exceeded the given limit ({limit}).",
    ),
    "AddKeyMethodNamesNumberOfBytesExceeded": (
        FailureKind.LIMIT_EXCEEDED,
        "The total number of bytes ({total_number_of_bytes}) of the method names "
        "exceeded the limit ({limit}) in a Add Key action.",
    ),
    "AddKeyMethodNameLengthExceeded": (
        FailureKind.LIMIT_EXCEEDED,
        "The length ({length}) of some method name exceeded the limit ({limit}) "
        "in a Add Key action.",
    ),
    "IntegerOverflow": (FailureKind.REJECTED, "Integer overflow."),
    "InvalidAccountId": (FailureKind.REJECTED, "Invalid account ID <{account_id}>."),
    "ContractSizeExceeded": (
        FailureKind.LIMIT_EXCEEDED,
        "The size ({size}) of the contract code exceeded the limit ({limit}) "
        "in a DeployContract action.",
    ),
    "FunctionCallMethodNameLengthExceeded": (
        FailureKind.LIMIT_EXCEEDED,
        "The length ({length}) of the method name exceeded the limit ({limit}) "
        "in a Function Call action.",
    ),
    "FunctionCallArgumentsLengthExceeded": (
        FailureKind.LIMIT_EXCEEDED,
        "The length ({length}) of the arguments exceeded the limit ({limit}) "
        "in a Function Call action.",
    ),
    "UnsuitableStakingKey": (
        FailureKind.REJECTED,
        "An attempt to stake with a public key <{public_key}> that is not "
        "convertible to ristretto.",
    ),
    "FunctionCallZeroAttachedGas": (
        FailureKind.REJECTED,
        "The attached amount of gas in a FunctionCall action has to be a positive number.",
    ),
}

_INVALID_TX_ERRORS: dict[str, tuple[FailureKind, str]] = {
    "InvalidSignerId": (
        FailureKind.ACCESS_DENIED,
        "TX signer ID <{signer_id}> is not in a valid format or does not satisfy requirements.",
    ),
    "SignerDoesNotExist": (
        FailureKind.ACCESS_DENIED,
        "TX signer ID <{signer_id}> is not found in the storage.",
    ),
    "InvalidNonce": (
        FailureKind.STALE_NONCE,
        "Transaction nonce ({tx_nonce}) must be account[access_key].nonce ({ak_nonce}) + 1.",
    ),
    "NonceTooLarge": (
        FailureKind.REJECTED,
        "Transaction nonce ({tx_nonce}) is larger than the upper bound ({upper_bound}) "
        "given by the block height.",
    ),
    "InvalidReceiverId": (
        FailureKind.REJECTED,
        "TX receiver ID ({receiver_id}) is not in a valid format or does not satisfy "
        "requirements.",
    ),
    "InvalidSignature": (FailureKind.REJECTED, "TX signature is not valid."),
    "NotEnoughBalance": (
        FailureKind.INSUFFICIENT_BALANCE,
        "Account <{signer_id}> does not have enough balance ({balance}) to cover "
        "TX cost ({cost}).",
    ),
    "LackBalanceForState": (
        FailureKind.INSUFFICIENT_BALANCE,
        "Signer account <{signer_id}> doesn't have enough balance ({amount}) after transaction.",
    ),
    "CostOverflow": (
        FailureKind.REJECTED,
        "An integer overflow occurred during transaction cost estimation.",
    ),
    "InvalidChain": (
        FailureKind.REJECTED,
        "Transaction parent block hash doesn't belong to the current chain.",
    ),
    "Expired": (FailureKind.STALE_NONCE, "Transaction has expired."),
    "TransactionSizeExceeded": (
        FailureKind.LIMIT_EXCEEDED,
        "The size ({size}) of serialized transaction exceeded the limit ({limit}).",
    ),
}


def _classify_invalid_tx(payload: Any) -> FailureDetail:
    name, body = _variant(payload)
    if name == "InvalidAccessKeyError":
        key_error, fields = _variant(body)
        template = _ACCESS_KEY_ERRORS.get(key_error)
        if template is None:
            return _unknown(payload)
        return FailureDetail(FailureKind.ACCESS_DENIED, template.format(**fields))
    if name == "ActionsValidation":
        validation_error, fields = _variant(body)
        entry = _ACTIONS_VALIDATION_ERRORS.get(validation_error)
    else:
        fields = body
        entry = _INVALID_TX_ERRORS.get(name)
    if entry is None:
        return FailureDetail(FailureKind.REJECTED, f"Invalid transaction: {_raw_text(payload)}")
    kind, template = entry
    return FailureDetail(kind, template.format(**fields))


# -------------------------------------------------------------------------
# ActionError
# -------------------------------------------------------------------------

_ACTION_ERRORS: dict[str, tuple[FailureKind, str]] = {
    "AccountAlreadyExists": (
        FailureKind.REJECTED,
        "Create Account action tries to create an account with account ID "
        "<{account_id}> which already exists in the storage.",
    ),
    "AccountDoesNotExist": (
        FailureKind.REJECTED,
        'TX receiver ID <{account_id}> doesn\'t exist (but action is not "Create Account").',
    ),
    "CreateAccountOnlyByRegistrar": (
        FailureKind.ACCESS_DENIED,
        "A top-level account ID can only be created by registrar.",
    ),
    "CreateAccountNotAllowed": (
        FailureKind.ACCESS_DENIED,
        "A newly created account <{account_id}> must be under a namespace of the "
        "creator account <{predecessor_id}>.",
    ),
    "ActorNoPermission": (
        FailureKind.ACCESS_DENIED,
        "Administrative actions can be proceed only if sender=receiver or the first "
        'TX action is a "Create Account" action.',
    ),
    "DeleteKeyDoesNotExist": (
        FailureKind.REJECTED,
        "Account <{account_id}> tries to remove an access key <{public_key}> that doesn't exist.",
    ),
    "AddKeyAlreadyExists": (
        FailureKind.REJECTED,
        "Public key <{public_key}> is already used for an existing account ID <{account_id}>.",
    ),
    "DeleteAccountStaking": (
        FailureKind.REJECTED,
        "Account <{account_id}> is staking and can not be deleted.",
    ),
    "LackBalanceForState": (
        FailureKind.INSUFFICIENT_BALANCE,
        "Receipt action can't be completed, because the remaining balance will not be "
        "enough to cover storage. Account <{account_id}> needs balance {amount}.",
    ),
    "TriesToUnstake": (
        FailureKind.REJECTED,
        "Account <{account_id}> is not yet staked, but tries to unstake.",
    ),
    "TriesToStake": (
        FailureKind.INSUFFICIENT_BALANCE,
        "Account <{account_id}> doesn't have enough balance ({balance}) to increase "
        "the stake ({stake}).",
    ),
    "InsufficientStake": (
        FailureKind.INSUFFICIENT_BALANCE,
        "Insufficient stake {stake}. The minimum rate must be {minimum_stake}.",
    ),
    "OnlyImplicitAccountCreationAllowed": (
        FailureKind.REJECTED,
        "CreateAccount action is called on hex-characters account of length 64.",
    ),
    "DeleteAccountWithLargeState": (
        FailureKind.LIMIT_EXCEEDED,
        "Delete account <{account_id}> whose state is large is temporarily banned.",
    ),
}


def _classify_action_error(payload: dict[str, Any]) -> FailureDetail:
    index = payload.get("index")
    name, fields = _variant(payload["kind"])
    where = f"Action #{index}: " if index is not None else ""

    if name == "FunctionCallError":
        return _classify_function_call_error(fields, where)
    if name == "NewReceiptValidationError":
        return FailureDetail(
            FailureKind.REJECTED,
            f"{where}A new receipt created by a FunctionCall action is invalid: "
            f"{_raw_text(fields)}",
        )
    entry = _ACTION_ERRORS.get(name)
    if entry is None:
        return _unknown({"ActionError": payload})
    kind, template = entry
    return FailureDetail(kind, where + template.format(**fields))


def _classify_function_call_error(payload: Any, where: str) -> FailureDetail:
    """Gas exhaustion is a limit. Anything else is the contract's own failure."""
    detail = payload if isinstance(payload, str) else _raw_text(payload)
    if "GasExceeded" in detail or "GasLimitExceeded" in detail:
        return FailureDetail(FailureKind.LIMIT_EXCEEDED, f"{where}Exceeded the prepaid gas: {detail}")
    if isinstance(payload, dict) and isinstance(payload.get("ExecutionError"), str):
        detail = payload["ExecutionError"]
    return FailureDetail(FailureKind.CONTRACT_EXECUTION, f"{where}{detail}")


# =========================================================================
# JSON-RPC error objects
# =========================================================================

# Node-side conditions that clear up on their own.
_TRANSIENT_CAUSES = frozenset(
    {"TIMEOUT_ERROR", "INTERNAL_ERROR", "NO_SYNCED_BLOCKS", "UNAVAILABLE_SHARD", "NOT_SYNCED_YET"}
)

_ACCESS_CAUSES = frozenset({"UNKNOWN_ACCESS_KEY", "UNKNOWN_ACCOUNT"})


def classify_rpc_error(error: Any) -> RpcError:
    """Turn a JSON-RPC ``error`` object into an ``RpcError``. Never raises.

    Handles the structured form (``name`` / ``cause`` / ``data``) and the
    legacy form where only ``message`` and ``data`` are set.
    """
    if not isinstance(error, dict):
        return RpcError(
            f"Unrecognized RPC error: {_raw_text(error)}",
            kind=FailureKind.UNKNOWN,
            details={"error": _raw_text(error)},
        )

    name = error.get("name") if isinstance(error.get("name"), str) else None
    cause = error.get("cause") if isinstance(error.get("cause"), dict) else {}
    cause_name = cause.get("name") if isinstance(cause.get("name"), str) else None
    info = cause.get("info")
    data = error.get("data")
    details = {"error": _raw_text(error)}

    def make(message: str, kind: FailureKind) -> RpcError:
        return RpcError(message, kind=kind, name=name, cause=cause_name, details=details)

    tx_error = _find_tx_execution_error(data, info)
    if tx_error is not None:
        failure = classify_failure(tx_error)
        return make(failure.message, failure.kind)

    if cause_name in _TRANSIENT_CAUSES or data == "Timeout":
        return make(f"RPC node unavailable: {cause_name or data}", FailureKind.TRANSPORT)
    if cause_name in _ACCESS_CAUSES:
        return make(_describe_cause(cause_name, info), FailureKind.ACCESS_DENIED)
    if cause_name == "CONTRACT_EXECUTION_ERROR":
        vm_error = info.get("vm_error") if isinstance(info, dict) else None
        return make(f"Contract execution failed: {vm_error or _raw_text(info)}",
                    FailureKind.CONTRACT_EXECUTION)
    if name == "REQUEST_VALIDATION_ERROR":
        return make(f"RPC request rejected: {_raw_text(cause)}", FailureKind.REJECTED)

    message = error.get("message") if isinstance(error.get("message"), str) else None
    summary = cause_name or message or "unknown"
    return make(f"RPC error {summary}: {_raw_text(data if data is not None else error)}",
                FailureKind.UNKNOWN)


def _find_tx_execution_error(data: Any, info: Any) -> Any:
    for source in (data, info):
        if isinstance(source, dict) and "TxExecutionError" in source:
            return source["TxExecutionError"]
    return None


def _describe_cause(cause_name: str, info: Any) -> str:
    info = info if isinstance(info, dict) else {}
    if cause_name == "UNKNOWN_ACCESS_KEY":
        return f"Public key {info.get('public_key', '?')} doesn't exist for the queried account."
    return f"Account <{info.get('requested_account_id', '?')}> does not exist."
