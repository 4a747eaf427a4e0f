"""
Ledger facade — typed NEAR operations over one endpoint.

Mutating operations go through the ``SubmissionEngine`` (fresh nonce
per attempt, bounded retry). Read-only views are retried under the same
policy, since they carry no nonce. Readiness polling uses its own
fixed-interval policy bounded by a timeout.

Every fatal error leaving this facade is an ``OperationError`` naming
the operation and the account it targeted, raised ``from`` the cause.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from oct_cli.near.actions import (
    AccessKey,
    Action,
    AddKey,
    CreateAccount,
    DeleteAccount,
    DeleteKey,
    DeployContract,
    FunctionCall,
    Transfer,
)
from oct_cli.near.backoff import (
    BackoffPolicy,
    ExponentialBackoff,
    FixedIntervalBackoff,
    SleepFn,
    retry,
)
from oct_cli.near.client import JsonRpcClient
from oct_cli.near.codec import json_args
from oct_cli.near.errors import LedgerError, OperationError
from oct_cli.near.keys import PublicKey, Signer
from oct_cli.near.outcome import ExecutionOutcome
from oct_cli.near.submission import SubmissionEngine
from oct_cli.near.types import DEFAULT_CALL_DEPOSIT, DEFAULT_CALL_GAS, HEAVY_CALL_GAS

logger = logging.getLogger(__name__)

DEFAULT_READINESS_TIMEOUT = 10.0


@contextmanager
def operation_context(operation: str, account_id: str) -> Iterator[None]:
    """Wrap ledger errors raised inside the block with operation context."""
    try:
        yield
    except OperationError:
        raise
    except LedgerError as exc:
        raise OperationError(operation, account_id, exc) from exc


class Ledger:
    """High-level client for one NEAR JSON-RPC endpoint.

    Args:
        client: Shared JSON-RPC client.
        policy: Backoff for submissions and views.
        sleep: Awaitable sleep (inject in tests).
        readiness_timeout: Bound for ``wait_for_rpc`` in seconds.
    """

    def __init__(
        self,
        client: JsonRpcClient,
        policy: BackoffPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        readiness_timeout: float = DEFAULT_READINESS_TIMEOUT,
        engine: SubmissionEngine | None = None,
    ) -> None:
        self._client = client
        self._policy = policy or ExponentialBackoff()
        self._sleep = sleep
        self._readiness_timeout = readiness_timeout
        self._engine = engine or SubmissionEngine(client, self._policy, sleep=sleep)

    @property
    def client(self) -> JsonRpcClient:
        return self._client

    @property
    def engine(self) -> SubmissionEngine:
        return self._engine

    # -----------------------------------------------------------------
    # Readiness
    # -----------------------------------------------------------------

    async def wait_for_rpc(self) -> dict[str, Any]:
        """Poll ``status`` every 500ms until the node answers.

        Raises:
            RetryExhausted: The node did not answer within the timeout.
            RpcError: The node answered with a non-transient error.
        """
        policy = FixedIntervalBackoff.for_timeout(self._readiness_timeout)
        status = await retry(
            self._client.status,
            policy,
            operation=f"wait for RPC {self._client.url} (timeout {self._readiness_timeout}s)",
            sleep=self._sleep,
        )
        logger.info("RPC %s is ready", self._client.url)
        return status

    # -----------------------------------------------------------------
    # Transactions
    # -----------------------------------------------------------------

    async def submit(
        self,
        signer: Signer,
        receiver_id: str,
        actions: Sequence[Action],
        *,
        operation: str = "submit transaction",
    ) -> ExecutionOutcome:
        with operation_context(operation, receiver_id):
            return await self._engine.submit(signer, receiver_id, actions)

    async def call(
        self,
        signer: Signer,
        contract_id: str,
        method_name: str,
        args: Any = None,
        *,
        gas: int = DEFAULT_CALL_GAS,
        deposit: int = DEFAULT_CALL_DEPOSIT,
    ) -> ExecutionOutcome:
        """Call a contract method; ``args`` is JSON-serialized (None means ``{}``)."""
        action = FunctionCall(
            method_name=method_name,
            args=json_args({} if args is None else args),
            gas=gas,
            deposit=deposit,
        )
        return await self.submit(signer, contract_id, [action], operation=f"call {method_name}")

    async def call_and_parse(
        self,
        signer: Signer,
        contract_id: str,
        method_name: str,
        args: Any = None,
        *,
        gas: int = DEFAULT_CALL_GAS,
        deposit: int = DEFAULT_CALL_DEPOSIT,
    ) -> Any:
        """Like ``call`` but decode the returned value as JSON (None if empty)."""
        outcome = await self.call(
            signer, contract_id, method_name, args, gas=gas, deposit=deposit
        )
        if not outcome.value:
            return None
        try:
            return outcome.json()
        except ValueError as exc:
            raise OperationError(
                f"call {method_name}",
                contract_id,
                LedgerError(f"result is not JSON: {outcome.value[:200]!r}"),
            ) from exc

    async def deploy(self, signer: Signer, code: bytes) -> ExecutionOutcome:
        """Deploy ``code`` to the signer's own account."""
        return await self.submit(
            signer, signer.account_id, [DeployContract(code)], operation="deploy contract"
        )

    async def deploy_and_init(
        self,
        signer: Signer,
        code: bytes,
        init_method: str,
        args: Any = None,
        *,
        gas: int = HEAVY_CALL_GAS,
    ) -> ExecutionOutcome:
        """Deploy and run an init/migrate method in one atomic transaction."""
        actions: list[Action] = [
            DeployContract(code),
            FunctionCall(
                method_name=init_method,
                args=json_args({} if args is None else args),
                gas=gas,
                deposit=0,
            ),
        ]
        return await self.submit(
            signer, signer.account_id, actions, operation=f"deploy and {init_method}"
        )

    async def transfer(self, signer: Signer, receiver_id: str, amount: int) -> ExecutionOutcome:
        return await self.submit(
            signer, receiver_id, [Transfer(amount)], operation="transfer NEAR"
        )

    async def create_account(
        self,
        signer: Signer,
        new_account_id: str,
        public_key: PublicKey,
        initial_balance: int,
    ) -> ExecutionOutcome:
        """Create a sub-account with a full-access key and an initial balance."""
        actions: list[Action] = [
            CreateAccount(),
            AddKey(public_key, AccessKey()),
            Transfer(initial_balance),
        ]
        return await self.submit(signer, new_account_id, actions, operation="create account")

    async def create_account_and_deploy(
        self,
        signer: Signer,
        new_account_id: str,
        public_key: PublicKey,
        initial_balance: int,
        code: bytes,
    ) -> ExecutionOutcome:
        actions: list[Action] = [
            CreateAccount(),
            AddKey(public_key, AccessKey()),
            Transfer(initial_balance),
            DeployContract(code),
        ]
        return await self.submit(
            signer, new_account_id, actions, operation="create account and deploy"
        )

    async def delete_account(self, signer: Signer, beneficiary_id: str) -> ExecutionOutcome:
        """Delete the signer's account, sending the remaining balance to ``beneficiary_id``."""
        return await self.submit(
            signer,
            signer.account_id,
            [DeleteAccount(beneficiary_id)],
            operation="delete account",
        )

    async def add_key(
        self,
        signer: Signer,
        public_key: PublicKey,
        access_key: AccessKey | None = None,
    ) -> ExecutionOutcome:
        return await self.submit(
            signer,
            signer.account_id,
            [AddKey(public_key, access_key or AccessKey())],
            operation="add key",
        )

    async def delete_key(self, signer: Signer, public_key: PublicKey) -> ExecutionOutcome:
        return await self.submit(
            signer, signer.account_id, [DeleteKey(public_key)], operation="delete key"
        )

    # -----------------------------------------------------------------
    # Views (read-only, retried)
    # -----------------------------------------------------------------

    async def _view(self, operation: str, account_id: str, request: Any) -> Any:
        with operation_context(operation, account_id):
            return await retry(request, self._policy, operation=operation, sleep=self._sleep)

    async def view_function(self, contract_id: str, method_name: str, args: Any = None) -> Any:
        """Run a view method and decode its JSON result (None if empty)."""

        async def request() -> dict[str, Any]:
            return await self._client.call_function(
                contract_id, method_name, json_args({} if args is None else args)
            )

        result = await self._view(f"view {method_name}", contract_id, request)
        raw = bytes(result.get("result") or [])
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise OperationError(
                f"view {method_name}",
                contract_id,
                LedgerError(f"view result is not JSON: {raw[:200]!r}"),
            ) from exc

    async def view_state(self, account_id: str, prefix: bytes = b"") -> list[dict[str, str]]:
        """All storage items (base64 ``key`` / ``value``) of an account."""

        async def request() -> dict[str, Any]:
            return await self._client.view_state(account_id, prefix)

        result = await self._view("view state", account_id, request)
        return list(result.get("values", []))

    async def view_state_keys(self, account_id: str) -> list[str]:
        """Base64 storage keys of an account, as accepted by cleanup calls."""
        return [item["key"] for item in await self.view_state(account_id)]

    async def view_account(self, account_id: str) -> dict[str, Any]:
        async def request() -> dict[str, Any]:
            return await self._client.view_account(account_id)

        return await self._view("view account", account_id, request)

    async def view_code(self, account_id: str) -> bytes:
        """Deployed contract code (empty for accounts without a contract)."""

        async def request() -> dict[str, Any]:
            return await self._client.view_code(account_id)

        result = await self._view("view code", account_id, request)
        return base64.b64decode(result.get("code_base64") or "")
