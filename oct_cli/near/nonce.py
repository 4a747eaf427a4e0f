"""
Nonce resolution — one access-key query per transaction attempt.

The node tracks a nonce per (account, public key). A transaction must
carry exactly ``observed + 1``; anything else is rejected as
``InvalidNonce``. Because a previous attempt may have landed, or another
client may have used the key, the value is fetched fresh for every
attempt and never cached.
"""

from __future__ import annotations

import logging

from oct_cli.near.client import JsonRpcClient
from oct_cli.near.codec import b58decode
from oct_cli.near.errors import TransportError
from oct_cli.near.keys import PublicKey
from oct_cli.near.types import NonceState

logger = logging.getLogger(__name__)


class NonceResolver:
    """Reads the current nonce and a recent block reference for a key.

    Args:
        client: JSON-RPC client used for the ``view_access_key`` query.
    """

    def __init__(self, client: JsonRpcClient) -> None:
        self._client = client

    async def resolve(self, account_id: str, public_key: PublicKey) -> NonceState:
        """Query the access key at optimistic finality.

        Returns:
            The key's current nonce and the hash of the block it was read at.

        Raises:
            RpcError: Kind ACCESS_DENIED if the key or account is unknown
                (fatal). Node-side transient errors are kind TRANSPORT.
            TransportError: Network failure, or a response missing the
                nonce or block hash.
        """
        result = await self._client.view_access_key(account_id, str(public_key))
        try:
            nonce = int(result["nonce"])
            block_hash = b58decode(result["block_hash"])
        except (KeyError, TypeError, ValueError) as exc:
            raise TransportError(
                "view_access_key response lacks a usable nonce or block_hash",
                details={"account_id": account_id, "public_key": str(public_key)},
            ) from exc
        logger.debug("resolved nonce %d for %s (%s)", nonce, account_id, public_key)
        return NonceState(nonce=nonce, block_hash=block_hash)
