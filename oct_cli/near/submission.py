"""
Submission engine — assemble, sign, send, and retry on transient failure.

Per attempt:
    1. resolve the key's nonce and a block reference (NonceResolver)
    2. assemble and sign a fresh envelope with nonce + 1 (tx.assemble)
    3. ``broadcast_tx_commit`` and wait for the outcome
    4. classify the outcome

Transport faults, node-side timeouts, pending outcomes and stale
nonce/expired envelopes are retried from step 1 under the backoff
policy. Every other failure propagates on first sight.

Delivery is at-least-once. A timed-out attempt may still land on chain;
the retry then goes out with a newer nonce and may execute the same
actions a second time. Callers must design submitted actions to be
idempotent (re-deploying the same code, re-clearing cleared state).

Submissions under one signer are serialized by a per-signer lock, so a
single engine never races itself on a nonce.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from oct_cli.near.actions import Action, describe_actions
from oct_cli.near.backoff import BackoffPolicy, ExponentialBackoff, SleepFn, retry
from oct_cli.near.client import JsonRpcClient
from oct_cli.near.errors import FailureKind, TransactionFailed
from oct_cli.near.keys import Signer
from oct_cli.near.nonce import NonceResolver
from oct_cli.near.outcome import Category, ExecutionOutcome, classify
from oct_cli.near.tx import assemble

logger = logging.getLogger(__name__)


class SubmissionEngine:
    """Reliable transaction submission over one JSON-RPC endpoint.

    Args:
        client: Shared JSON-RPC client.
        policy: Attempt bound and delays. Defaults to 4 attempts of
            jittered exponential backoff.
        nonce_resolver: Override for tests. Defaults to one built on
            ``client``.
        sleep: Awaitable sleep passed to the retry loop.
    """

    def __init__(
        self,
        client: JsonRpcClient,
        policy: BackoffPolicy | None = None,
        *,
        nonce_resolver: NonceResolver | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._client = client
        self._policy = policy or ExponentialBackoff()
        self._nonces = nonce_resolver or NonceResolver(client)
        self._sleep = sleep
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    def _lock_for(self, signer: Signer) -> asyncio.Lock:
        key = (signer.account_id, str(signer.public_key))
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def submit(
        self,
        signer: Signer,
        receiver_id: str,
        actions: Sequence[Action],
    ) -> ExecutionOutcome:
        """Submit ``actions`` against ``receiver_id`` until a terminal outcome.

        Args:
            signer: Key holder the transaction is signed with.
            receiver_id: Account the actions apply to.
            actions: Ordered, non-empty action list; executed atomically.

        Returns:
            The successful outcome (with or without a value).

        Raises:
            ValueError: Empty action list or malformed account id.
            TransactionFailed: The transaction executed, or was rejected, with
                a non-retryable failure.
            RpcError: The node refused the request with a non-retryable error.
            RetryExhausted: Retryable failures persisted through every attempt.
        """
        if not actions:
            raise ValueError("a transaction needs at least one action")
        actions = tuple(actions)
        summary = describe_actions(actions)
        operation = f"submit [{summary}] to {receiver_id}"

        async def attempt() -> ExecutionOutcome:
            nonce_state = await self._nonces.resolve(signer.account_id, signer.public_key)
            signed = assemble(signer, receiver_id, actions, nonce_state)
            logger.debug(
                "broadcasting %s nonce=%d hash=%s",
                operation,
                signed.transaction.nonce,
                signed.tx_hash,
            )
            outcome = await self._client.broadcast_tx_commit(signed.to_base64())
            return _check(outcome, signed.tx_hash)

        async with self._lock_for(signer):
            outcome = await retry(attempt, self._policy, operation=operation, sleep=self._sleep)
        logger.info(
            "%s -> %s [%s]: %s (%s)",
            signer.account_id,
            receiver_id,
            summary,
            outcome.status,
            outcome.tx_hash,
        )
        return outcome


def _check(outcome: ExecutionOutcome, tx_hash: str) -> ExecutionOutcome:
    """Pass successes through; raise pending and failed outcomes."""
    result = classify(outcome)
    if result.category in (Category.SUCCESS_VALUE, Category.SUCCESS_EMPTY):
        return outcome
    kind = result.kind or FailureKind.UNKNOWN
    raise TransactionFailed(
        result.detail or f"transaction {tx_hash} failed",
        kind=kind,
        outcome=outcome,
        details={"tx_hash": outcome.tx_hash or tx_hash},
    )
