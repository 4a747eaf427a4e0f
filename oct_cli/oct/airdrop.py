"""
Delegation airdrop: send OCT from a fund account into the anchor as stake.

Each recipient gets ``amount`` tokens via ``ft_transfer_call`` on the OCT
token, with the anchor as receiver and a deposit message chosen by the
recipient's current role:

    validator            -> {"IncreaseStake": {"validator_id": ...}}
    existing delegator   -> {"IncreaseDelegation": {"validator_id", "delegator_id"}}
    anyone else          -> {"RegisterDelegator": {"validator_id", "delegator_id"}}
                            (to the delegatable validator with the least stake)

The whole batch is checked up front: the list must be duplicate-free and
the fund account must hold ``amount * len(accounts)``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from oct_cli.near.errors import FailureKind, LedgerError
from oct_cli.near.keys import Signer
from oct_cli.near.ledger import operation_context
from oct_cli.near.outcome import ExecutionOutcome
from oct_cli.near.types import validate_account_id
from oct_cli.oct.anchor import AnchorContract
from oct_cli.oct.fungible_token import FungibleTokenContract

logger = logging.getLogger(__name__)


def read_account_list(path: Path) -> list[str]:
    """Read one account id per line (blank lines ignored).

    Raises:
        ValueError: An invalid account id, or any duplicate.
    """
    accounts: list[str] = []
    seen: set[str] = set()
    duplicates: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        account_id = line.strip()
        if not account_id:
            continue
        validate_account_id(account_id)
        if account_id in seen:
            duplicates.append(account_id)
            continue
        seen.add(account_id)
        accounts.append(account_id)
    if duplicates:
        raise ValueError(
            f"Duplicated account(s) in airdrop list {path}: {', '.join(duplicates)}. "
            "Processing stopped."
        )
    return accounts


def deposit_message(
    account_id: str,
    validators: Sequence[dict[str, Any]],
    delegated_to: str | None,
) -> dict[str, Any]:
    """Choose the anchor deposit message for one recipient.

    Args:
        account_id: Recipient.
        validators: Current validator list (``validator_id``, ``total_stake``,
            ``can_be_delegated_to``).
        delegated_to: Validator the recipient already delegates to, if any.

    Raises:
        LedgerError: The recipient needs a new delegation and no validator
            accepts delegations.
    """
    if any(v["validator_id"] == account_id for v in validators):
        return {"IncreaseStake": {"validator_id": account_id}}
    if delegated_to is not None:
        return {"IncreaseDelegation": {"validator_id": delegated_to, "delegator_id": account_id}}

    candidates = [v for v in validators if v.get("can_be_delegated_to")]
    if not candidates:
        raise LedgerError(
            f"There is no validator for '{account_id}' to delegate to.",
            kind=FailureKind.REJECTED,
        )
    target = min(candidates, key=lambda v: int(v["total_stake"]))
    return {
        "RegisterDelegator": {"validator_id": target["validator_id"], "delegator_id": account_id}
    }


@dataclass(frozen=True)
class AirdropResult:
    account_id: str
    message: dict[str, Any]
    outcome: ExecutionOutcome


class DelegationAirdrop:
    """Airdrop OCT into the anchor on behalf of a list of accounts.

    Args:
        anchor: Anchor contract receiving the stake.
        token: OCT token contract.
        fund_signer: Signer of the account holding the tokens.
    """

    def __init__(
        self,
        anchor: AnchorContract,
        token: FungibleTokenContract,
        fund_signer: Signer,
    ) -> None:
        self._anchor = anchor
        self._token = token
        self._fund = fund_signer

    async def check_fund_balance(self, amount: int, recipients: int) -> int:
        """Return the fund balance, or raise if it cannot cover the batch."""
        balance = await self._token.ft_balance_of(self._fund.account_id)
        needed = amount * recipients
        if balance < needed:
            raise LedgerError(
                f"OCT balance of fund account <{self._fund.account_id}> ({balance}) is not "
                f"enough for the airdrop ({needed}).",
                kind=FailureKind.INSUFFICIENT_BALANCE,
                details={"balance": balance, "needed": needed},
            )
        return balance

    async def _delegated_validator(
        self, account_id: str, validators: Sequence[dict[str, Any]]
    ) -> str | None:
        for validator in validators:
            delegators = await self._anchor.get_delegators_of_validator_in_era(
                validator["validator_id"]
            )
            if any(d["delegator_id"] == account_id for d in delegators):
                return validator["validator_id"]
        return None

    async def airdrop_to(self, account_id: str, amount: int) -> AirdropResult:
        with operation_context("airdrop", account_id):
            validators = await self._anchor.get_validator_list_of()
            delegated_to = None
            if not any(v["validator_id"] == account_id for v in validators):
                delegated_to = await self._delegated_validator(account_id, validators)
            message = deposit_message(account_id, validators, delegated_to)
            outcome = await self._token.ft_transfer_call(
                self._fund,
                self._anchor.account_id,
                amount,
                json.dumps(message, separators=(",", ":")),
            )
        logger.info("airdrop to %s: %s (%s)", account_id, next(iter(message)), outcome.tx_hash)
        return AirdropResult(account_id=account_id, message=message, outcome=outcome)

    async def run(self, accounts: Sequence[str], amount: int) -> list[AirdropResult]:
        """Airdrop ``amount`` to each account, in order. Stops at the first failure."""
        if amount <= 0:
            raise ValueError(f"airdrop amount must be > 0, got: {amount}")
        if len(set(accounts)) != len(accounts):
            raise ValueError("airdrop account list contains duplicates")
        with operation_context("check airdrop fund", self._fund.account_id):
            await self.check_fund_balance(amount, len(accounts))
        return [await self.airdrop_to(account_id, amount) for account_id in accounts]
