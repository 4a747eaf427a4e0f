"""
NEP-141 fungible token contract: balance view and ``ft_transfer_call``.
"""

from __future__ import annotations

from oct_cli.near.errors import LedgerError
from oct_cli.near.keys import Signer
from oct_cli.near.ledger import Ledger, operation_context
from oct_cli.near.outcome import ExecutionOutcome
from oct_cli.near.types import HEAVY_CALL_GAS, ONE_YOCTO, validate_account_id


class FungibleTokenContract:
    """Client for one fungible token contract.

    Args:
        account_id: Token contract account.
        ledger: Ledger facade used for every call.
    """

    def __init__(self, account_id: str, ledger: Ledger) -> None:
        self.account_id = validate_account_id(account_id)
        self._ledger = ledger

    async def ft_balance_of(self, account_id: str) -> int:
        """Token balance of ``account_id`` in the token's smallest unit."""
        value = await self._ledger.view_function(
            self.account_id, "ft_balance_of", {"account_id": account_id}
        )
        with operation_context("ft_balance_of", self.account_id):
            try:
                return int(value)
            except (TypeError, ValueError) as exc:
                raise LedgerError(f"ft_balance_of returned {value!r}") from exc

    async def ft_transfer_call(
        self,
        signer: Signer,
        receiver_id: str,
        amount: int,
        msg: str | None = None,
    ) -> ExecutionOutcome:
        """Transfer ``amount`` to ``receiver_id`` and invoke its ``ft_on_transfer``.

        Attaches exactly 1 yoctoNEAR, as NEP-141 requires for transfers.
        """
        return await self._ledger.call(
            signer,
            self.account_id,
            "ft_transfer_call",
            {"receiver_id": receiver_id, "amount": str(amount), "msg": msg},
            gas=HEAVY_CALL_GAS,
            deposit=ONE_YOCTO,
        )
