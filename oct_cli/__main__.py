"""Entry point for `python -m oct_cli` and the `oct-cli` script."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from oct_cli import commands
from oct_cli.config import Network, RpcProvider, Settings
from oct_cli.credentials import load_signers
from oct_cli.near.errors import LedgerError
from oct_cli.oct.airdrop import read_account_list

logger = logging.getLogger("oct_cli")


def _account_list(value: str) -> list[str]:
    accounts = [part.strip() for part in value.split(",") if part.strip()]
    if not accounts:
        raise argparse.ArgumentTypeError("expected a comma-separated list of account ids")
    return accounts


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0: {value!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oct-cli",
        description="Maintenance operations for Octopus Network contracts on NEAR",
    )
    parser.add_argument(
        "--network",
        choices=[network.value for network in Network],
        default=None,
        help="Target network (default: OCT_NETWORK or testnet)",
    )
    parser.add_argument(
        "--rpc-provider",
        choices=[provider.value for provider in RpcProvider],
        default=None,
        help="Public RPC provider (default: OCT_RPC_PROVIDER or near-official)",
    )
    parser.add_argument("--rpc-url", default=None, help="Explicit RPC endpoint, overrides the provider")
    parser.add_argument(
        "--credentials-dir",
        type=Path,
        default=None,
        help="Directory of near-cli credential files (default: ~/.near-credentials/<network>)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Check that the RPC endpoint is reachable")

    reset = sub.add_parser("reset-anchor", help="Remove ALL data from an anchor contract")
    reset.add_argument("anchor_account", help="Anchor contract account (its key must be loaded)")
    reset.add_argument("--yes", action="store_true", help="Confirm the irreversible reset")

    clean = sub.add_parser("clean-state", help="Wipe contract storage of accounts")
    clean.add_argument("cleanup_wasm", type=Path, help="Compiled state-cleanup contract")
    clean.add_argument("--accounts", type=_account_list, default=None, help="Comma-separated; default all loaded")
    clean.add_argument("--yes", action="store_true", help="Confirm the irreversible clean up")

    upgrade = sub.add_parser("deploy-upgrade", help="Deploy new code and run a migrate method")
    upgrade.add_argument("wasm", type=Path, help="Compiled contract to deploy")
    upgrade.add_argument("migrate_method", help="Method called right after the deploy")
    upgrade.add_argument("--args", default="{}", help="JSON arguments of the migrate method")
    upgrade.add_argument("--accounts", type=_account_list, default=None, help="Comma-separated; default all loaded")

    drop = sub.add_parser("airdrop", help="Airdrop OCT as stake or delegation into an anchor")
    drop.add_argument("anchor_account")
    drop.add_argument("fund_account", help="OCT fund account (its key must be loaded)")
    drop.add_argument("amount", type=_positive_int, help="Amount per account, smallest unit")
    drop.add_argument("account_list", type=Path, help="File with one account id per line")
    return parser


def resolve_settings(args: argparse.Namespace, environ: dict[str, str] | None = None) -> Settings:
    """Environment settings with command-line flags applied on top."""
    settings = Settings.from_env(environ)
    overrides: dict[str, Any] = {}
    if args.network is not None:
        overrides["network"] = Network(args.network)
    if args.rpc_provider is not None:
        overrides["rpc_provider"] = RpcProvider(args.rpc_provider)
    if args.rpc_url is not None:
        overrides["rpc_url"] = args.rpc_url
    if args.credentials_dir is not None:
        overrides["credentials_dir"] = str(args.credentials_dir)
    return dataclasses.replace(settings, **overrides).normalized()


async def run(args: argparse.Namespace, settings: Settings) -> int:
    if args.command in ("reset-anchor", "clean-state") and not args.yes:
        logger.error("%s is irreversible; pass --yes to confirm", args.command)
        return 1

    # Read every local input before touching the network.
    signers = {} if args.command == "status" else load_signers(settings.credentials_path)
    if args.command == "clean-state":
        cleanup_code = args.cleanup_wasm.read_bytes()
    elif args.command == "deploy-upgrade":
        code = args.wasm.read_bytes()
        migrate_args = json.loads(args.args)
    elif args.command == "airdrop":
        accounts = read_account_list(args.account_list)

    async with commands.open_ledger(settings) as ledger:
        if args.command == "status":
            print(json.dumps(await commands.status(ledger), indent=2))

        elif args.command == "reset-anchor":
            report = await commands.reset_anchor(ledger, signers, args.anchor_account)
            print(
                f"anchor {args.anchor_account} reset from era {report.latest_era}: "
                f"{report.total_drain_calls} cleanup call(s), "
                f"{len(report.removed_keys)} storage key(s) removed"
            )

        elif args.command == "clean-state":
            remaining = await commands.clean_state(ledger, signers, args.accounts, cleanup_code)
            for account_id, items in remaining.items():
                print(f"{account_id}: {len(items)} storage item(s) left")

        elif args.command == "deploy-upgrade":
            results = await commands.deploy_upgrade(
                ledger, signers, args.accounts, code, args.migrate_method, migrate_args
            )
            for account_id, outcome in results:
                print(f"{account_id}: {settings.explorer_tx_url(outcome.tx_hash or '')}")

        elif args.command == "airdrop":
            drops = await commands.airdrop(
                ledger,
                signers,
                token_account=settings.oct_token_account,
                anchor_account=args.anchor_account,
                fund_account=args.fund_account,
                amount=args.amount,
                accounts=accounts,
            )
            for drop in drops:
                print(
                    f"{drop.account_id}: {next(iter(drop.message))} "
                    f"{settings.explorer_tx_url(drop.outcome.tx_hash or '')}"
                )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = resolve_settings(args)
        return asyncio.run(run(args, settings))
    except LedgerError as exc:
        logger.error("%s", exc.message)
        logger.debug("details: %s", exc.details)
        return 1
    except (OSError, ValueError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
