"""
Tests for the operator commands and the command-line entry point.

Test plan:
- Parser: global flags, subcommands, account list and amount parsing
- resolve_settings: flags override the environment
- Commands over a fake node: status summary, deploy-upgrade per
  account, clean-state, signer selection, missing key
- main(): irreversible commands need --yes, invalid environment and
  missing credentials fail with exit code 1 before any network access,
  status end to end over mocked HTTP
"""

import json
from pathlib import Path
from typing import Any

import pytest
from pytest_httpx import HTTPXMock

from fake_node import URL, DecodedTx, FakeNode, success
from oct_cli import commands
from oct_cli.__main__ import build_parser, main, resolve_settings
from oct_cli.config import Network, RpcProvider
from oct_cli.credentials import CredentialsError
from oct_cli.near.backoff import ExponentialBackoff
from oct_cli.near.client import JsonRpcClient
from oct_cli.near.keys import InMemorySigner
from oct_cli.near.ledger import Ledger

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class NoSleep:
    async def __call__(self, delay: float) -> None:
        return None


def ledger_for(node: FakeNode) -> Ledger:
    return Ledger(JsonRpcClient(URL, node), ExponentialBackoff(), sleep=NoSleep())


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "OCT_NETWORK",
        "OCT_RPC_PROVIDER",
        "OCT_RPC_URL",
        "OCT_RPC_TIMEOUT_SECS",
        "OCT_HTTP_TIMEOUT_SECS",
        "OCT_MAX_ATTEMPTS",
        "OCT_CREDENTIALS_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Parser and settings
# ---------------------------------------------------------------------------


class TestParser:
    def test_global_flags(self) -> None:
        args = build_parser().parse_args(
            ["--network", "mainnet", "--rpc-provider", "blockpi", "--log-level", "DEBUG", "status"]
        )
        assert args.network == "mainnet"
        assert args.rpc_provider == "blockpi"
        assert args.log_level == "DEBUG"
        assert args.command == "status"

    def test_deploy_upgrade(self) -> None:
        args = build_parser().parse_args(
            ["deploy-upgrade", "anchor.wasm", "migrate_state", "--accounts", "a.testnet, b.testnet"]
        )
        assert args.wasm == Path("anchor.wasm")
        assert args.migrate_method == "migrate_state"
        assert args.args == "{}"
        assert args.accounts == ["a.testnet", "b.testnet"]

    def test_airdrop_amount_must_be_positive(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["airdrop", "anchor.testnet", "fund.testnet", "0", "list.txt"])

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestResolveSettings:
    def test_flags_override_environment(self) -> None:
        args = build_parser().parse_args(
            ["--network", "mainnet", "--rpc-url", "http://localhost:3030", "--credentials-dir", "/k", "status"]
        )
        settings = resolve_settings(args, {"OCT_NETWORK": "testnet", "OCT_RPC_PROVIDER": "blockpi"})
        assert settings.network is Network.MAINNET
        assert settings.rpc_provider is RpcProvider.BLOCKPI
        assert settings.endpoint_url == "http://localhost:3030"
        assert settings.credentials_path == Path("/k")

    def test_environment_without_flags(self) -> None:
        args = build_parser().parse_args(["status"])
        settings = resolve_settings(args, {"OCT_MAX_ATTEMPTS": "9"})
        assert settings.max_attempts == 9
        assert settings.network is Network.TESTNET


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestCommands:
    @pytest.mark.asyncio
    async def test_status(self) -> None:
        summary = await commands.status(ledger_for(FakeNode()))
        assert summary == {"chain_id": "testnet", "latest_block_height": 42, "syncing": False}

    @pytest.mark.asyncio
    async def test_deploy_upgrade_each_account(self) -> None:
        node = FakeNode()
        signers = {
            name: InMemorySigner.generate(name) for name in ("b.testnet", "a.testnet", "c.testnet")
        }

        results = await commands.deploy_upgrade(
            ledger_for(node), signers, None, b"\0asm", "migrate_state", {"v": 2}
        )

        assert [account for account, _ in results] == ["a.testnet", "b.testnet", "c.testnet"]
        for tx, account in zip(node.broadcasts, ["a.testnet", "b.testnet", "c.testnet"]):
            assert tx.signer_id == account
            assert tx.receiver_id == account
            assert [a.kind for a in tx.actions] == ["DeployContract", "FunctionCall"]
            assert tx.actions[1].args == {"v": 2}

    @pytest.mark.asyncio
    async def test_deploy_upgrade_selected_accounts(self) -> None:
        node = FakeNode()
        signers = {name: InMemorySigner.generate(name) for name in ("a.testnet", "b.testnet")}
        await commands.deploy_upgrade(ledger_for(node), signers, ["b.testnet"], b"x", "migrate")
        assert [tx.signer_id for tx in node.broadcasts] == ["b.testnet"]

    @pytest.mark.asyncio
    async def test_clean_state(self) -> None:
        node = FakeNode()
        node.state = [{"key": "azE=", "value": "dg=="}]

        def on_broadcast(tx: DecodedTx) -> dict[str, Any]:
            if tx.method_names == ["clean"]:
                node.state = []
            return success()

        node.on_broadcast = on_broadcast
        signers = {"old.testnet": InMemorySigner.generate("old.testnet")}

        remaining = await commands.clean_state(ledger_for(node), signers, None, b"\0cleanup")

        assert remaining == {"old.testnet": []}

    @pytest.mark.asyncio
    async def test_missing_key(self) -> None:
        node = FakeNode()
        with pytest.raises(CredentialsError, match="Missing key for account 'anchor.testnet'"):
            await commands.reset_anchor(ledger_for(node), {}, "anchor.testnet")
        assert node.requests == []

    def test_select_signers_unknown_account(self) -> None:
        with pytest.raises(CredentialsError):
            commands.select_signers({}, ["ghost.testnet"])


# ---------------------------------------------------------------------------
# main()
# ---------------------------------------------------------------------------


class TestMain:
    @pytest.mark.parametrize(
        "argv",
        [["reset-anchor", "anchor.testnet"], ["clean-state", "cleanup.wasm"]],
    )
    def test_irreversible_commands_need_yes(self, argv: list[str]) -> None:
        assert main(argv) == 1

    def test_invalid_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OCT_MAX_ATTEMPTS", "0")
        assert main(["status"]) == 1

    def test_missing_credentials_dir(self, tmp_path: Path) -> None:
        argv = ["--credentials-dir", str(tmp_path / "missing"), "reset-anchor", "anchor.testnet", "--yes"]
        assert main(argv) == 1

    def test_bad_migrate_args(self, tmp_path: Path) -> None:
        wasm = tmp_path / "c.wasm"
        wasm.write_bytes(b"\0asm")
        argv = ["--credentials-dir", str(tmp_path), "deploy-upgrade", str(wasm), "migrate", "--args", "{bad"]
        assert main(argv) == 1

    def test_status_over_http(
        self, httpx_mock: HTTPXMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        url = "https://rpc.local.test"
        status = {
            "jsonrpc": "2.0",
            "id": 1,
            "result": {"chain_id": "testnet", "sync_info": {"latest_block_height": 7, "syncing": False}},
        }
        httpx_mock.add_response(method="POST", url=url, json=status)
        httpx_mock.add_response(method="POST", url=url, json=status)

        assert main(["--rpc-url", url, "status"]) == 0

        printed = json.loads(capsys.readouterr().out)
        assert printed == {"chain_id": "testnet", "latest_block_height": 7, "syncing": False}
