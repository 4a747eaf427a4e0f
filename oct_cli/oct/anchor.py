"""
Appchain anchor contract — views, upgrades and the full reset sequence.

Reset order (each step must finish before the next, because later
aggregate structures are referenced by earlier per-era records):

    1. Per era, latest down to 0, drain in order:
         clear_reward_distribution_records
         clear_unwithdrawn_rewards
         remove_validator_set_history_of
    2. Drain each global collection (GLOBAL_CLEANUP, in order).
    3. One-shot calls for contract-level values (ONE_SHOT_CLEANUP).
    4. Remove the few storage keys left (at most 10) by key.

All reset calls attach 200 Tgas and no deposit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from oct_cli.drain import DrainReport, ProgressSignal, drain, parse_progress
from oct_cli.near.errors import FailureKind, LedgerError, OperationError
from oct_cli.near.keys import Signer
from oct_cli.near.ledger import Ledger, operation_context
from oct_cli.near.outcome import ExecutionOutcome
from oct_cli.near.types import HEAVY_CALL_GAS, validate_account_id

logger = logging.getLogger(__name__)

ERA_SCOPED_CLEANUP = (
    "clear_reward_distribution_records",
    "clear_unwithdrawn_rewards",
    "remove_validator_set_history_of",
)

GLOBAL_CLEANUP = (
    "clear_validator_set_histories",
    "clear_next_validator_set",
    "clear_user_staking_histories",
    "clear_unbonded_stakes_and_staking_histories",
    "clear_validator_profiles",
    "clear_appchain_messages",
    "clear_appchain_notification_histories",
    "clear_appchain_challenges",
)

ONE_SHOT_CLEANUP = (
    "clear_external_assets_registration",
    "remove_staged_wasm",
    "clear_contract_level_lazy_option_values",
)

MAX_REMAINING_STORAGE_KEYS = 10


@dataclass(frozen=True)
class EraStep:
    """One era-scoped cleanup call: ``method`` applied to ``era``."""

    era: int
    method: str


def era_steps(latest_era: int) -> Iterator[EraStep]:
    """Era-scoped cleanup units, newest era first, methods in dependency order."""
    if latest_era < 0:
        raise ValueError(f"latest_era must be >= 0, got: {latest_era}")
    for era in range(latest_era, -1, -1):
        for method in ERA_SCOPED_CLEANUP:
            yield EraStep(era, method)


@dataclass(frozen=True)
class ResetReport:
    latest_era: int
    era_calls: DrainReport[EraStep]
    global_calls: DrainReport[str]
    removed_keys: tuple[str, ...]

    @property
    def total_drain_calls(self) -> int:
        return self.era_calls.total_calls + self.global_calls.total_calls


class AnchorContract:
    """Client for one appchain anchor contract.

    Args:
        account_id: Account the anchor is deployed on.
        ledger: Ledger facade used for every call.
    """

    def __init__(self, account_id: str, ledger: Ledger) -> None:
        self.account_id = validate_account_id(account_id)
        self._ledger = ledger

    # -----------------------------------------------------------------
    # Views
    # -----------------------------------------------------------------

    async def get_anchor_status(self) -> dict[str, Any]:
        return await self._ledger.view_function(self.account_id, "get_anchor_status")

    async def get_validator_list_of(self, era_number: int | None = None) -> list[dict[str, Any]]:
        """Validators of ``era_number``; None means the current set."""
        return await self._ledger.view_function(
            self.account_id,
            "get_validator_list_of",
            {"era_number": _u64(era_number)},
        )

    async def get_delegators_of_validator_in_era(
        self, validator_id: str, era_number: int | None = None
    ) -> list[dict[str, Any]]:
        return await self._ledger.view_function(
            self.account_id,
            "get_delegators_of_validator_in_era",
            {"era_number": _u64(era_number), "validator_id": validator_id},
        )

    async def latest_era(self) -> int:
        """End index of the validator set history (the newest era number)."""
        status = await self.get_anchor_status()
        with operation_context("read anchor status", self.account_id):
            try:
                return int(status["index_range_of_validator_set_history"]["end_index"])
            except (KeyError, TypeError, ValueError) as exc:
                raise LedgerError(
                    "anchor status has no validator set history range",
                    details={"status": status},
                ) from exc

    # -----------------------------------------------------------------
    # Deployment
    # -----------------------------------------------------------------

    async def deploy(self, signer: Signer, code: bytes) -> ExecutionOutcome:
        return await self._ledger.deploy(self._own(signer), code)

    async def deploy_and_init(
        self, signer: Signer, code: bytes, method_name: str, args: Any = None
    ) -> ExecutionOutcome:
        return await self._ledger.deploy_and_init(self._own(signer), code, method_name, args)

    # -----------------------------------------------------------------
    # Reset
    # -----------------------------------------------------------------

    async def call_progress(
        self, signer: Signer, method_name: str, args: Any = None
    ) -> ProgressSignal:
        """Make one cleanup call and decode its progress signal."""
        value = await self._ledger.call_and_parse(
            signer, self.account_id, method_name, args, gas=HEAVY_CALL_GAS, deposit=0
        )
        try:
            return parse_progress(value)
        except ValueError as exc:
            raise OperationError(
                f"call {method_name}",
                self.account_id,
                LedgerError(str(exc), details={"value": repr(value)}),
            ) from exc

    async def reset(self, signer: Signer) -> ResetReport:
        """Remove all data from the anchor contract.

        Irreversible. Safe to re-run after an interruption: cleanup calls on
        already-empty collections report ``Ok``.

        Raises:
            ValueError: ``signer`` is not the anchor account.
            OperationError: Any step failed; names the step and the anchor.
        """
        signer = self._own(signer)
        with operation_context("reset anchor", self.account_id):
            latest = await self.latest_era()
            logger.info("resetting anchor %s from era %d", self.account_id, latest)

            async def clear_era(step: EraStep) -> ProgressSignal:
                return await self.call_progress(
                    signer, step.method, {"era_number": str(step.era)}
                )

            era_calls = await drain(clear_era, era_steps(latest))

            async def clear_global(method: str) -> ProgressSignal:
                return await self.call_progress(signer, method)

            global_calls = await drain(clear_global, GLOBAL_CLEANUP)

            for method in ONE_SHOT_CLEANUP:
                await self._ledger.call_and_parse(
                    signer, self.account_id, method, gas=HEAVY_CALL_GAS, deposit=0
                )
                logger.info("%s done", method)

            keys = await self._ledger.view_state_keys(self.account_id)
            if len(keys) > MAX_REMAINING_STORAGE_KEYS:
                raise LedgerError(
                    f"Too many storage keys remained ({len(keys)} > "
                    f"{MAX_REMAINING_STORAGE_KEYS}). Processing stopped.",
                    kind=FailureKind.LIMIT_EXCEEDED,
                    details={"remaining_keys": len(keys)},
                )
            await self._ledger.call_and_parse(
                signer,
                self.account_id,
                "remove_storage_keys",
                {"keys": keys},
                gas=HEAVY_CALL_GAS,
                deposit=0,
            )

        logger.info(
            "anchor %s reset: %d drain call(s), %d storage key(s) removed",
            self.account_id,
            era_calls.total_calls + global_calls.total_calls,
            len(keys),
        )
        return ResetReport(
            latest_era=latest,
            era_calls=era_calls,
            global_calls=global_calls,
            removed_keys=tuple(keys),
        )

    def _own(self, signer: Signer) -> Signer:
        if signer.account_id != self.account_id:
            raise ValueError(
                f"signer {signer.account_id} is not the anchor account {self.account_id}"
            )
        return signer


def _u64(value: int | None) -> str | None:
    """JSON form of an optional U64 (decimal string)."""
    return None if value is None else str(value)
