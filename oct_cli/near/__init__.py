"""
NEAR transaction core.

Public API:

    Pure layer (no I/O):
        - ``assemble()`` — build and sign a ``SignedTransaction``.
        - Actions: ``CreateAccount``, ``DeployContract``, ``FunctionCall``,
          ``Transfer``, ``AddKey``, ``DeleteKey``, ``DeleteAccount``.
        - ``classify()`` / ``classify_failure()`` — outcome → category and
          ``FailureKind``.
        - Backoff policies: ``ExponentialBackoff``, ``FixedIntervalBackoff``.

    Impure layer (network I/O):
        - ``SubmissionEngine`` — resolve nonce, assemble, broadcast, retry.
        - ``NonceResolver`` — one access-key query per attempt.
        - ``Ledger`` — typed operations, retried views, readiness polling.

    Protocols (for dependency injection):
        - ``JsonRpcTransport`` — HTTP seam.
        - ``Signer`` — secrets boundary.

    Concrete client:
        - ``JsonRpcClient`` over ``HttpxTransport``.
"""

from oct_cli.near.actions import (
    AccessKey,
    Action,
    AddKey,
    CreateAccount,
    DeleteAccount,
    DeleteKey,
    DeployContract,
    FullAccess,
    FunctionCall,
    FunctionCallPermission,
    Transfer,
)
from oct_cli.near.backoff import (
    BackoffPolicy,
    ExponentialBackoff,
    FixedIntervalBackoff,
    retry,
)
from oct_cli.near.client import JsonRpcClient
from oct_cli.near.errors import (
    FailureKind,
    LedgerError,
    OperationError,
    ProgressFailed,
    RetryExhausted,
    RpcError,
    TransactionFailed,
    TransportError,
)
from oct_cli.near.keys import InMemorySigner, PublicKey, Signer
from oct_cli.near.ledger import Ledger, operation_context
from oct_cli.near.nonce import NonceResolver
from oct_cli.near.outcome import (
    Category,
    Classification,
    ExecutionOutcome,
    OutcomeStatus,
    classify,
    classify_failure,
)
from oct_cli.near.submission import SubmissionEngine
from oct_cli.near.transport import HttpxTransport, JsonRpcTransport
from oct_cli.near.tx import SignedTransaction, Transaction, assemble
from oct_cli.near.types import (
    HEAVY_CALL_GAS,
    ONE_NEAR,
    ONE_TERA_GAS,
    ONE_YOCTO,
    NonceState,
    validate_account_id,
)

__all__ = [
    # Actions
    "AccessKey",
    "Action",
    "AddKey",
    "CreateAccount",
    "DeleteAccount",
    "DeleteKey",
    "DeployContract",
    "FullAccess",
    "FunctionCall",
    "FunctionCallPermission",
    "Transfer",
    # Backoff
    "BackoffPolicy",
    "ExponentialBackoff",
    "FixedIntervalBackoff",
    "retry",
    # Client / transport
    "HttpxTransport",
    "JsonRpcClient",
    "JsonRpcTransport",
    # Errors
    "FailureKind",
    "LedgerError",
    "OperationError",
    "ProgressFailed",
    "RetryExhausted",
    "RpcError",
    "TransactionFailed",
    "TransportError",
    # Keys
    "InMemorySigner",
    "PublicKey",
    "Signer",
    # Submission
    "Ledger",
    "NonceResolver",
    "SubmissionEngine",
    "operation_context",
    # Outcomes
    "Category",
    "Classification",
    "ExecutionOutcome",
    "OutcomeStatus",
    "classify",
    "classify_failure",
    # Transactions
    "SignedTransaction",
    "Transaction",
    "assemble",
    # Types
    "HEAVY_CALL_GAS",
    "NonceState",
    "ONE_NEAR",
    "ONE_TERA_GAS",
    "ONE_YOCTO",
    "validate_account_id",
]
