"""
oct-cli: maintenance tooling for Octopus Network appchain contracts on NEAR.

Every mutating call is:
- signed with a fresh nonce per attempt
- retried on transient failure, under a bounded backoff
- classified into a failure kind when it does not succeed

Bulk cleanups drain until the contract reports they are done.
"""

__version__ = "0.1.0"

from oct_cli.config import Network, RpcProvider, Settings
from oct_cli.drain import (
    DONE,
    NEEDS_MORE_WORK,
    Done,
    DrainReport,
    Failed,
    NeedsMoreWork,
    ProgressSignal,
    drain,
    parse_progress,
)

__all__ = [
    "DONE",
    "Done",
    "DrainReport",
    "Failed",
    "NEEDS_MORE_WORK",
    "NeedsMoreWork",
    "Network",
    "ProgressSignal",
    "RpcProvider",
    "Settings",
    "drain",
    "parse_progress",
]
