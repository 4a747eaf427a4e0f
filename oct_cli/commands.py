"""
Operator commands: each wires signers and a ledger into one operation.

Commands receive an already-connected ``Ledger`` and the loaded signers,
so they never read the environment or the filesystem for keys
themselves. ``open_ledger`` builds the ledger from ``Settings``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from oct_cli.config import Settings
from oct_cli.credentials import signer_for
from oct_cli.near.backoff import ExponentialBackoff
from oct_cli.near.client import JsonRpcClient
from oct_cli.near.keys import Signer
from oct_cli.near.ledger import Ledger
from oct_cli.near.outcome import ExecutionOutcome
from oct_cli.near.transport import HttpxTransport
from oct_cli.oct.airdrop import AirdropResult, DelegationAirdrop
from oct_cli.oct.anchor import AnchorContract, ResetReport
from oct_cli.oct.clean_state import CleanStateContract
from oct_cli.oct.fungible_token import FungibleTokenContract

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_ledger(settings: Settings) -> AsyncIterator[Ledger]:
    """Connect to the configured endpoint and wait until it answers."""
    async with HttpxTransport(timeout=settings.http_timeout_secs) as transport:
        client = JsonRpcClient(settings.endpoint_url, transport)
        ledger = Ledger(
            client,
            ExponentialBackoff(max_attempts=settings.max_attempts),
            readiness_timeout=settings.readiness_timeout_secs,
        )
        logger.info("using %s RPC %s", settings.network, settings.endpoint_url)
        await ledger.wait_for_rpc()
        yield ledger


def select_signers(
    signers: Mapping[str, Signer], accounts: Sequence[str] | None
) -> list[Signer]:
    """The signers for ``accounts``, or every loaded signer if None."""
    if accounts is None:
        return [signers[account_id] for account_id in sorted(signers)]
    return [signer_for(signers, account_id) for account_id in accounts]


async def status(ledger: Ledger) -> dict[str, Any]:
    """Node status summary: chain id and latest block height."""
    result = await ledger.wait_for_rpc()
    sync_info = result.get("sync_info", {})
    return {
        "chain_id": result.get("chain_id"),
        "latest_block_height": sync_info.get("latest_block_height"),
        "syncing": sync_info.get("syncing"),
    }


async def reset_anchor(
    ledger: Ledger, signers: Mapping[str, Signer], anchor_account: str
) -> ResetReport:
    """Remove all data from an anchor contract. Needs the anchor's own key."""
    anchor = AnchorContract(anchor_account, ledger)
    return await anchor.reset(signer_for(signers, anchor_account))


async def clean_state(
    ledger: Ledger,
    signers: Mapping[str, Signer],
    accounts: Sequence[str] | None,
    cleanup_code: bytes,
) -> dict[str, list[dict[str, str]]]:
    """Wipe the storage of each account. Returns what state remains per account."""
    contract = CleanStateContract(ledger, cleanup_code)
    remaining: dict[str, list[dict[str, str]]] = {}
    for signer in select_signers(signers, accounts):
        logger.info("cleaning state of %s", signer.account_id)
        remaining[signer.account_id] = await contract.clean(signer)
    return remaining


async def deploy_upgrade(
    ledger: Ledger,
    signers: Mapping[str, Signer],
    accounts: Sequence[str] | None,
    code: bytes,
    migrate_method: str,
    args: Any = None,
) -> list[tuple[str, ExecutionOutcome]]:
    """Deploy new code plus a migrate call to each account, one at a time."""
    results: list[tuple[str, ExecutionOutcome]] = []
    for signer in select_signers(signers, accounts):
        logger.info("upgrading %s (migrate: %s)", signer.account_id, migrate_method)
        outcome = await ledger.deploy_and_init(signer, code, migrate_method, args)
        results.append((signer.account_id, outcome))
    return results


async def airdrop(
    ledger: Ledger,
    signers: Mapping[str, Signer],
    *,
    token_account: str,
    anchor_account: str,
    fund_account: str,
    amount: int,
    accounts: Sequence[str],
) -> list[AirdropResult]:
    """Airdrop OCT as stake/delegation into the anchor for each account."""
    runner = DelegationAirdrop(
        AnchorContract(anchor_account, ledger),
        FungibleTokenContract(token_account, ledger),
        signer_for(signers, fund_account),
    )
    return await runner.run(accounts, amount)
