"""
Tests for SubmissionEngine — full attempt cycle against a fake node.

Each attempt resolves a fresh nonce, signs a new envelope and broadcasts
it; the FakeNode decodes every envelope so nonces and actions can be
asserted directly.

Test plan:
- Success: one nonce query, one broadcast with nonce observed + 1
- Deploy+init where the first broadcast times out: exactly 2 nonce
  resolutions and 2 envelopes (distinct nonces when the first landed)
- Nonce freshness: nonce moved by someone else between attempts
- Retryable: RPC timeout, pending outcome, InvalidNonce, transient
  access-key query failure
- Exhaustion: K attempts, K-1 sleeps, RetryExhausted
- Fatal on first sight: NotEnoughBalance (outcome and RPC error),
  contract panic, unknown access key (no broadcast at all)
- Empty action list rejected before any request
- Same-signer submissions are serialized
"""

import asyncio
import random
from typing import Any

import pytest

from fake_node import URL, DecodedTx, FakeNode, failure, rpc_error, status_only, success
from oct_cli.near.actions import DeployContract, FunctionCall, Transfer
from oct_cli.near.backoff import ExponentialBackoff
from oct_cli.near.client import JsonRpcClient
from oct_cli.near.errors import (
    FailureKind,
    RetryExhausted,
    RpcError,
    TransactionFailed,
    TransportError,
)
from oct_cli.near.keys import InMemorySigner
from oct_cli.near.submission import SubmissionEngine

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def engine_for(node: FakeNode, max_attempts: int = 4) -> tuple[SubmissionEngine, SleepRecorder]:
    sleep = SleepRecorder()
    policy = ExponentialBackoff(max_attempts=max_attempts, rng=random.Random(0))
    return SubmissionEngine(JsonRpcClient(URL, node), policy, sleep=sleep), sleep


@pytest.fixture
def signer() -> InMemorySigner:
    return InMemorySigner.generate("anchor.testnet")


def not_enough_balance() -> dict[str, Any]:
    return {
        "InvalidTxError": {
            "NotEnoughBalance": {
                "signer_id": "anchor.testnet",
                "balance": "10",
                "cost": "2000",
            }
        }
    }


DEPLOY_AND_INIT = [
    DeployContract(b"\0asm-new"),
    FunctionCall("migrate_state", b"{}", gas=200 * 10**12),
]


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestSubmitSuccess:
    @pytest.mark.asyncio
    async def test_single_attempt(self, signer: InMemorySigner) -> None:
        node = FakeNode(nonce=100)
        engine, sleep = engine_for(node)

        outcome = await engine.submit(signer, "bob.testnet", [Transfer(5)])

        assert outcome.tx_hash == "TxHash111"
        assert node.nonce_queries == 1
        assert len(node.broadcasts) == 1
        tx = node.broadcasts[0]
        assert tx.nonce == 101
        assert tx.signer_id == "anchor.testnet"
        assert tx.receiver_id == "bob.testnet"
        assert [a.kind for a in tx.actions] == ["Transfer"]
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_value_returned(self, signer: InMemorySigner) -> None:
        node = FakeNode()
        node.broadcast_script = [success({"height": 3})]
        engine, _ = engine_for(node)
        outcome = await engine.submit(signer, "anchor.testnet", [FunctionCall("ping")])
        assert outcome.json() == {"height": 3}

    @pytest.mark.asyncio
    async def test_empty_actions_rejected_before_io(self, signer: InMemorySigner) -> None:
        node = FakeNode()
        engine, _ = engine_for(node)
        with pytest.raises(ValueError, match="at least one action"):
            await engine.submit(signer, "bob.testnet", [])
        assert node.requests == []


# ---------------------------------------------------------------------------
# Retry with fresh envelopes
# ---------------------------------------------------------------------------


class TestSubmitRetry:
    @pytest.mark.asyncio
    async def test_deploy_and_init_first_attempt_times_out_after_landing(
        self, signer: InMemorySigner
    ) -> None:
        node = FakeNode(nonce=100)

        def landed_then_timeout(tx: DecodedTx) -> dict[str, Any]:
            node.nonce = tx.nonce
            raise TransportError("RPC request timed out after 30.0s")

        node.broadcast_script = [landed_then_timeout]
        engine, sleep = engine_for(node)

        await engine.submit(signer, "anchor.testnet", DEPLOY_AND_INIT)

        assert node.nonce_queries == 2
        assert [tx.nonce for tx in node.broadcasts] == [101, 102]
        for tx in node.broadcasts:
            assert [a.kind for a in tx.actions] == ["DeployContract", "FunctionCall"]
            assert tx.actions[0].code == b"\0asm-new"
            assert tx.actions[1].method_name == "migrate_state"
        assert len(sleep.delays) == 1

    @pytest.mark.asyncio
    async def test_timeout_before_landing_rebuilds_same_nonce(
        self, signer: InMemorySigner
    ) -> None:
        node = FakeNode(nonce=100)
        node.broadcast_script = [TransportError("connection reset")]
        engine, _ = engine_for(node)

        await engine.submit(signer, "anchor.testnet", DEPLOY_AND_INIT)

        assert node.nonce_queries == 2
        assert [tx.nonce for tx in node.broadcasts] == [101, 101]

    @pytest.mark.asyncio
    async def test_nonce_moved_by_another_client(self, signer: InMemorySigner) -> None:
        node = FakeNode(nonce=100)

        def raced(tx: DecodedTx) -> dict[str, Any]:
            node.nonce = 150
            return rpc_error(
                "INVALID_TRANSACTION",
                data={
                    "TxExecutionError": {
                        "InvalidTxError": {"InvalidNonce": {"tx_nonce": tx.nonce, "ak_nonce": 150}}
                    }
                },
            )

        node.broadcast_script = [raced]
        engine, _ = engine_for(node)

        await engine.submit(signer, "bob.testnet", [Transfer(1)])

        assert [tx.nonce for tx in node.broadcasts] == [101, 151]

    @pytest.mark.asyncio
    async def test_rpc_timeout_retried(self, signer: InMemorySigner) -> None:
        node = FakeNode()
        node.broadcast_script = [rpc_error("TIMEOUT_ERROR", data="Timeout")]
        engine, _ = engine_for(node)
        await engine.submit(signer, "bob.testnet", [Transfer(1)])
        assert len(node.broadcasts) == 2

    @pytest.mark.asyncio
    async def test_pending_outcome_retried(self, signer: InMemorySigner) -> None:
        node = FakeNode()
        node.broadcast_script = [status_only("Started"), status_only("NotStarted")]
        engine, sleep = engine_for(node)
        await engine.submit(signer, "bob.testnet", [Transfer(1)])
        assert len(node.broadcasts) == 3
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_expired_envelope_retried(self, signer: InMemorySigner) -> None:
        node = FakeNode()
        node.broadcast_script = [failure({"InvalidTxError": "Expired"})]
        engine, _ = engine_for(node)
        await engine.submit(signer, "bob.testnet", [Transfer(1)])
        assert len(node.broadcasts) == 2

    @pytest.mark.asyncio
    async def test_transient_nonce_query_failure_retried(self, signer: InMemorySigner) -> None:
        node = FakeNode()
        node.access_key_script = [rpc_error("NO_SYNCED_BLOCKS")]
        engine, _ = engine_for(node)
        await engine.submit(signer, "bob.testnet", [Transfer(1)])
        assert node.nonce_queries == 2
        assert len(node.broadcasts) == 1

    @pytest.mark.asyncio
    async def test_exhaustion_after_k_attempts(self, signer: InMemorySigner) -> None:
        node = FakeNode()
        node.on_broadcast = lambda tx: rpc_error("TIMEOUT_ERROR")
        engine, sleep = engine_for(node, max_attempts=4)

        with pytest.raises(RetryExhausted) as info:
            await engine.submit(signer, "bob.testnet", [Transfer(1)])

        assert info.value.attempts == 4
        assert info.value.kind == FailureKind.TRANSPORT
        assert node.nonce_queries == 4
        assert len(node.broadcasts) == 4
        assert len(sleep.delays) == 3
        assert "Transfer(1)" in info.value.message


# ---------------------------------------------------------------------------
# Fatal failures
# ---------------------------------------------------------------------------


class TestSubmitFatal:
    @pytest.mark.asyncio
    async def test_insufficient_balance_outcome(self, signer: InMemorySigner) -> None:
        node = FakeNode()
        node.broadcast_script = [failure(not_enough_balance())]
        engine, sleep = engine_for(node)

        with pytest.raises(TransactionFailed) as info:
            await engine.submit(signer, "bob.testnet", [Transfer(10**30)])

        exc = info.value
        assert exc.kind == FailureKind.INSUFFICIENT_BALANCE
        assert "does not have enough balance (10)" in exc.message
        assert exc.outcome is not None
        assert exc.details["tx_hash"] == "TxHash222"
        assert len(node.broadcasts) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_insufficient_balance_rpc_error(self, signer: InMemorySigner) -> None:
        node = FakeNode()
        node.broadcast_script = [
            rpc_error("INVALID_TRANSACTION", data={"TxExecutionError": not_enough_balance()})
        ]
        engine, _ = engine_for(node)

        with pytest.raises(RpcError) as info:
            await engine.submit(signer, "bob.testnet", [Transfer(10**30)])

        assert info.value.kind == FailureKind.INSUFFICIENT_BALANCE
        assert len(node.broadcasts) == 1

    @pytest.mark.asyncio
    async def test_contract_panic(self, signer: InMemorySigner) -> None:
        node = FakeNode()
        node.broadcast_script = [
            failure(
                {
                    "ActionError": {
                        "index": 1,
                        "kind": {"FunctionCallError": {"ExecutionError": "Smart contract panicked: bad state"}},
                    }
                }
            )
        ]
        engine, _ = engine_for(node)

        with pytest.raises(TransactionFailed) as info:
            await engine.submit(signer, "anchor.testnet", DEPLOY_AND_INIT)

        assert info.value.kind == FailureKind.CONTRACT_EXECUTION
        assert info.value.message == "Action #1: Smart contract panicked: bad state"
        assert len(node.broadcasts) == 1

    @pytest.mark.asyncio
    async def test_unknown_access_key_never_broadcasts(self, signer: InMemorySigner) -> None:
        node = FakeNode()
        node.access_key_script = [
            rpc_error("UNKNOWN_ACCESS_KEY", info={"public_key": str(signer.public_key)})
        ]
        engine, _ = engine_for(node)

        with pytest.raises(RpcError) as info:
            await engine.submit(signer, "bob.testnet", [Transfer(1)])

        assert info.value.kind == FailureKind.ACCESS_DENIED
        assert node.nonce_queries == 1
        assert node.broadcasts == []


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class YieldingNode(FakeNode):
    """FakeNode that yields to the event loop on every request."""

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0)
        return await super().post_json(url, payload)


class TestSubmitConcurrency:
    @pytest.mark.asyncio
    async def test_same_signer_is_serialized(self, signer: InMemorySigner) -> None:
        node = YieldingNode(nonce=100)
        engine, _ = engine_for(node)

        await asyncio.gather(
            engine.submit(signer, "bob.testnet", [Transfer(1)]),
            engine.submit(signer, "carol.testnet", [Transfer(2)]),
        )

        methods = [request["method"] for request in node.requests]
        assert methods == ["query", "broadcast_tx_commit", "query", "broadcast_tx_commit"]
        assert sorted(tx.nonce for tx in node.broadcasts) == [101, 102]
