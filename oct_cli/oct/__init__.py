"""
Octopus Network contract clients built on the NEAR ledger facade.
"""

from oct_cli.oct.airdrop import DelegationAirdrop, deposit_message, read_account_list
from oct_cli.oct.anchor import (
    ERA_SCOPED_CLEANUP,
    GLOBAL_CLEANUP,
    ONE_SHOT_CLEANUP,
    AnchorContract,
    EraStep,
    ResetReport,
    era_steps,
)
from oct_cli.oct.clean_state import CleanStateContract
from oct_cli.oct.fungible_token import FungibleTokenContract

__all__ = [
    "AnchorContract",
    "CleanStateContract",
    "DelegationAirdrop",
    "ERA_SCOPED_CLEANUP",
    "EraStep",
    "FungibleTokenContract",
    "GLOBAL_CLEANUP",
    "ONE_SHOT_CLEANUP",
    "ResetReport",
    "deposit_message",
    "era_steps",
    "read_account_list",
]
