"""
Tests for the Octopus contract clients: fungible token, state cleanup
and the delegation airdrop.

Test plan:
- deposit_message: validator, existing delegator, new delegator to the
  least-staked delegatable validator, no candidate
- read_account_list: blank lines, duplicates, invalid ids
- DelegationAirdrop: message per recipient, ft_transfer_call shape
  (1 yocto, 200 Tgas, compact JSON msg), fund balance checked up front,
  duplicate list and non-positive amount rejected before any request
- FungibleTokenContract: balance parsing
- CleanStateContract: deploy, clean with every key at 300 Tgas,
  remaining state returned, empty code rejected
"""

import json
from pathlib import Path
from typing import Any

import pytest

from fake_node import URL, DecodedTx, FakeNode, success
from oct_cli.near.backoff import ExponentialBackoff
from oct_cli.near.client import JsonRpcClient
from oct_cli.near.errors import FailureKind, LedgerError, OperationError
from oct_cli.near.keys import InMemorySigner
from oct_cli.near.ledger import Ledger
from oct_cli.near.types import HEAVY_CALL_GAS, ONE_TERA_GAS, ONE_YOCTO
from oct_cli.oct.airdrop import DelegationAirdrop, deposit_message, read_account_list
from oct_cli.oct.anchor import AnchorContract
from oct_cli.oct.clean_state import CleanStateContract
from oct_cli.oct.fungible_token import FungibleTokenContract

ANCHOR = "anchor.testnet"
TOKEN = "oct.testnet"
FUND = "fund.testnet"

VALIDATORS = [
    {"validator_id": "v1.testnet", "total_stake": "500", "can_be_delegated_to": True},
    {"validator_id": "v2.testnet", "total_stake": "300", "can_be_delegated_to": True},
    {"validator_id": "v3.testnet", "total_stake": "100", "can_be_delegated_to": False},
]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class NoSleep:
    async def __call__(self, delay: float) -> None:
        return None


def ledger_for(node: FakeNode) -> Ledger:
    return Ledger(JsonRpcClient(URL, node), ExponentialBackoff(), sleep=NoSleep())


def airdrop_node(balance: str = "1000") -> FakeNode:
    node = FakeNode()
    node.views["ft_balance_of"] = lambda args: balance
    node.views["get_validator_list_of"] = VALIDATORS
    node.views["get_delegators_of_validator_in_era"] = lambda args: (
        [{"delegator_id": "d1.testnet"}] if args["validator_id"] == "v1.testnet" else []
    )
    return node


def airdrop_for(node: FakeNode) -> DelegationAirdrop:
    ledger = ledger_for(node)
    return DelegationAirdrop(
        AnchorContract(ANCHOR, ledger),
        FungibleTokenContract(TOKEN, ledger),
        InMemorySigner.generate(FUND),
    )


# ---------------------------------------------------------------------------
# deposit_message / read_account_list
# ---------------------------------------------------------------------------


class TestDepositMessage:
    def test_validator_increases_stake(self) -> None:
        assert deposit_message("v1.testnet", VALIDATORS, None) == {
            "IncreaseStake": {"validator_id": "v1.testnet"}
        }

    def test_existing_delegator(self) -> None:
        assert deposit_message("d1.testnet", VALIDATORS, "v1.testnet") == {
            "IncreaseDelegation": {"validator_id": "v1.testnet", "delegator_id": "d1.testnet"}
        }

    def test_new_delegator_goes_to_least_staked_delegatable(self) -> None:
        assert deposit_message("new.testnet", VALIDATORS, None) == {
            "RegisterDelegator": {"validator_id": "v2.testnet", "delegator_id": "new.testnet"}
        }

    def test_stake_compared_as_integers(self) -> None:
        validators = [
            {"validator_id": "a.testnet", "total_stake": "90", "can_be_delegated_to": True},
            {"validator_id": "b.testnet", "total_stake": "100", "can_be_delegated_to": True},
        ]
        message = deposit_message("new.testnet", validators, None)
        assert message["RegisterDelegator"]["validator_id"] == "a.testnet"

    def test_no_candidate(self) -> None:
        with pytest.raises(LedgerError) as info:
            deposit_message("new.testnet", VALIDATORS[2:], None)
        assert info.value.kind == FailureKind.REJECTED
        assert info.value.message == "There is no validator for 'new.testnet' to delegate to."


class TestReadAccountList:
    def test_reads_and_skips_blanks(self, tmp_path: Path) -> None:
        path = tmp_path / "accounts.txt"
        path.write_text("a.testnet\n\n  b.testnet  \n", encoding="utf-8")
        assert read_account_list(path) == ["a.testnet", "b.testnet"]

    def test_duplicates(self, tmp_path: Path) -> None:
        path = tmp_path / "accounts.txt"
        path.write_text("a.testnet\nb.testnet\na.testnet\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Duplicated account\\(s\\).*a.testnet"):
            read_account_list(path)

    def test_invalid_account(self, tmp_path: Path) -> None:
        path = tmp_path / "accounts.txt"
        path.write_text("a.testnet\nNot Valid\n", encoding="utf-8")
        with pytest.raises(ValueError, match="invalid account id"):
            read_account_list(path)


# ---------------------------------------------------------------------------
# DelegationAirdrop
# ---------------------------------------------------------------------------


class TestDelegationAirdrop:
    @pytest.mark.asyncio
    async def test_run(self) -> None:
        node = airdrop_node()
        results = await airdrop_for(node).run(["v2.testnet", "d1.testnet", "new.testnet"], 100)

        assert [next(iter(r.message)) for r in results] == [
            "IncreaseStake",
            "IncreaseDelegation",
            "RegisterDelegator",
        ]
        assert len(node.broadcasts) == 3
        for tx in node.broadcasts:
            assert tx.signer_id == FUND
            assert tx.receiver_id == TOKEN
            (action,) = tx.actions
            assert action.method_name == "ft_transfer_call"
            assert action.deposit == ONE_YOCTO
            assert action.gas == HEAVY_CALL_GAS
            assert action.args["receiver_id"] == ANCHOR
            assert action.args["amount"] == "100"

        first_msg = node.broadcasts[0].actions[0].args["msg"]
        assert first_msg == '{"IncreaseStake":{"validator_id":"v2.testnet"}}'
        last_msg = json.loads(node.broadcasts[2].actions[0].args["msg"])
        assert last_msg == {
            "RegisterDelegator": {"validator_id": "v2.testnet", "delegator_id": "new.testnet"}
        }

    @pytest.mark.asyncio
    async def test_insufficient_fund(self) -> None:
        node = airdrop_node(balance="250")

        with pytest.raises(OperationError) as info:
            await airdrop_for(node).run(["a.testnet", "b.testnet", "c.testnet"], 100)

        assert info.value.kind == FailureKind.INSUFFICIENT_BALANCE
        assert "(250)" in info.value.message and "(300)" in info.value.message
        assert node.broadcasts == []

    @pytest.mark.asyncio
    async def test_duplicates_rejected_before_io(self) -> None:
        node = airdrop_node()
        with pytest.raises(ValueError, match="duplicates"):
            await airdrop_for(node).run(["a.testnet", "a.testnet"], 100)
        assert node.requests == []

    @pytest.mark.asyncio
    async def test_non_positive_amount(self) -> None:
        node = airdrop_node()
        with pytest.raises(ValueError, match="amount must be > 0"):
            await airdrop_for(node).run(["a.testnet"], 0)
        assert node.requests == []

    @pytest.mark.asyncio
    async def test_no_delegation_target(self) -> None:
        node = airdrop_node()
        node.views["get_validator_list_of"] = VALIDATORS[2:]

        with pytest.raises(OperationError) as info:
            await airdrop_for(node).run(["new.testnet"], 100)

        assert info.value.message == (
            "Failed to airdrop on <new.testnet>. "
            "There is no validator for 'new.testnet' to delegate to."
        )
        assert node.broadcasts == []


# ---------------------------------------------------------------------------
# Token and cleanup
# ---------------------------------------------------------------------------


class TestFungibleToken:
    @pytest.mark.asyncio
    async def test_balance(self) -> None:
        node = FakeNode()
        node.views["ft_balance_of"] = lambda args: "12345" if args["account_id"] == FUND else "0"
        token = FungibleTokenContract(TOKEN, ledger_for(node))
        assert await token.ft_balance_of(FUND) == 12345

    @pytest.mark.asyncio
    async def test_bad_balance(self) -> None:
        node = FakeNode()
        node.views["ft_balance_of"] = {"not": "a number"}
        token = FungibleTokenContract(TOKEN, ledger_for(node))
        with pytest.raises(OperationError, match="ft_balance_of returned"):
            await token.ft_balance_of(FUND)


class TestCleanState:
    @pytest.mark.asyncio
    async def test_clean(self) -> None:
        node = FakeNode()
        node.state = [{"key": "azE=", "value": "dg=="}, {"key": "azI=", "value": "dg=="}]

        def on_broadcast(tx: DecodedTx) -> dict[str, Any]:
            if tx.method_names == ["clean"]:
                node.state = []
            return success()

        node.on_broadcast = on_broadcast
        signer = InMemorySigner.generate("old.testnet")

        remaining = await CleanStateContract(ledger_for(node), b"\0cleanup").clean(signer)

        assert remaining == []
        deploy, clean = node.broadcasts
        assert deploy.receiver_id == "old.testnet"
        assert deploy.actions[0].code == b"\0cleanup"
        assert clean.receiver_id == "old.testnet"
        (action,) = clean.actions
        assert action.method_name == "clean"
        assert action.args == {"keys": ["azE=", "azI="]}
        assert action.gas == 300 * ONE_TERA_GAS

    def test_empty_code(self) -> None:
        with pytest.raises(ValueError, match="empty"):
            CleanStateContract(ledger_for(FakeNode()), b"")
