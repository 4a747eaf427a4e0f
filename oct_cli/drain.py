"""
Drain-until-complete loop for bulk server-side cleanup.

Cleanup methods on the anchor contract cannot clear everything within
one call's gas budget. Each call does a bounded batch and reports one of
three progress signals:

    "NeedMoreGas"        -> NeedsMoreWork   call again with the same unit
    "Ok"                 -> Done            advance to the next unit
    {"Error": "<text>"}  -> Failed(reason)  abort the whole drain

Any other value is rejected by ``parse_progress``; there is no default
arm. ``NeedsMoreWork`` has no call limit (the server's state bounds
it); transport faults within each call are bounded by the submission
engine's own retry policy.

No checkpoint is persisted. An interrupted drain is re-run from the
start, relying on cleanup calls being no-ops once their data is gone.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union, assert_never

from oct_cli.near.errors import ProgressFailed

logger = logging.getLogger(__name__)

U = TypeVar("U", bound=Hashable)


# =========================================================================
# Progress signal
# =========================================================================


@dataclass(frozen=True)
class NeedsMoreWork:
    """The unit is partially cleared; call again."""


@dataclass(frozen=True)
class Done:
    """The unit is fully cleared."""


@dataclass(frozen=True)
class Failed:
    """The server refused to continue; ``reason`` is its message."""

    reason: str


ProgressSignal = Union[NeedsMoreWork, Done, Failed]

NEEDS_MORE_WORK = NeedsMoreWork()
DONE = Done()


def parse_progress(value: Any) -> ProgressSignal:
    """Decode the anchor contract's processing result.

    Raises:
        ValueError: If ``value`` is not one of the three known forms.
    """
    if value == "NeedMoreGas":
        return NEEDS_MORE_WORK
    if value == "Ok":
        return DONE
    if isinstance(value, dict) and list(value) == ["Error"]:
        return Failed(str(value["Error"]))
    raise ValueError(f"unrecognized progress signal: {value!r}")


# =========================================================================
# Drain loop
# =========================================================================


@dataclass
class DrainReport(Generic[U]):
    """Units drained, in visiting order, with the number of calls each took."""

    calls: list[tuple[U, int]] = field(default_factory=list)

    @property
    def total_calls(self) -> int:
        return sum(count for _, count in self.calls)

    @property
    def units(self) -> list[U]:
        return [unit for unit, _ in self.calls]


async def drain(
    operation: Callable[[U], Awaitable[ProgressSignal]],
    units: Iterable[U],
) -> DrainReport[U]:
    """Call ``operation`` on each unit, in order, until it reports ``Done``.

    Args:
        operation: One remote cleanup call for a unit.
        units: Units in the order they must be cleared. Each is visited once.

    Returns:
        Per-unit call counts.

    Raises:
        ProgressFailed: A call reported ``Failed``. No further calls are made.
        LedgerError: A call failed outright (propagated unchanged).
    """
    report: DrainReport[U] = DrainReport()
    for unit in units:
        calls = 0
        while True:
            calls += 1
            signal = await operation(unit)
            if isinstance(signal, NeedsMoreWork):
                logger.debug("%r needs more work (call %d)", unit, calls)
                continue
            if isinstance(signal, Done):
                logger.info("%r cleared after %d call(s)", unit, calls)
                break
            if isinstance(signal, Failed):
                raise ProgressFailed(unit, signal.reason)
            assert_never(signal)
        report.calls.append((unit, calls))
    return report
