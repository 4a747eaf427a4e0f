"""
State cleanup: wipe all storage of an account by deploying a cleanup
contract and calling its ``clean`` method with every storage key.
"""

from __future__ import annotations

import logging

from oct_cli.near.keys import Signer
from oct_cli.near.ledger import Ledger
from oct_cli.near.outcome import ExecutionOutcome
from oct_cli.near.types import ONE_TERA_GAS

logger = logging.getLogger(__name__)

CLEAN_GAS = 300 * ONE_TERA_GAS


class CleanStateContract:
    """The state-cleanup contract, deployed onto the account being wiped.

    Args:
        ledger: Ledger facade.
        code: Compiled cleanup contract (wasm bytes).
    """

    def __init__(self, ledger: Ledger, code: bytes) -> None:
        if not code:
            raise ValueError("cleanup contract code is empty")
        self._ledger = ledger
        self._code = code

    async def deploy(self, signer: Signer) -> ExecutionOutcome:
        return await self._ledger.deploy(signer, self._code)

    async def clean_up_all(self, signer: Signer) -> ExecutionOutcome:
        """Remove every storage key the account currently holds."""
        keys = await self._ledger.view_state_keys(signer.account_id)
        logger.info("%s holds %d storage key(s) before clean up", signer.account_id, len(keys))
        logger.debug("keys: %s", keys)
        return await self._ledger.call(
            signer,
            signer.account_id,
            "clean",
            {"keys": keys},
            gas=CLEAN_GAS,
            deposit=0,
        )

    async def clean(self, signer: Signer) -> list[dict[str, str]]:
        """Deploy, clean up, and return whatever state is left."""
        await self.deploy(signer)
        await self.clean_up_all(signer)
        remaining = await self._ledger.view_state(signer.account_id)
        logger.info(
            "%s holds %d storage item(s) after clean up", signer.account_id, len(remaining)
        )
        return remaining
