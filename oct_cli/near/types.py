"""
Small NEAR value types and units shared across the core.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# Gas and balance units.
ONE_GIGA_GAS = 10**9
ONE_TERA_GAS = 10**12
ONE_NEAR = 10**24
ONE_YOCTO = 1

# Default attachments for a plain function call.
DEFAULT_CALL_GAS = 10 * ONE_TERA_GAS
DEFAULT_CALL_DEPOSIT = 0

# Gas for an init/migrate call bundled with a deploy, and for contract
# calls that walk large collections.
HEAVY_CALL_GAS = 200 * ONE_TERA_GAS

_ACCOUNT_ID_RE = re.compile(r"^(([a-z\d]+[\-_])*[a-z\d]+\.)*([a-z\d]+[\-_])*[a-z\d]+$")
_ACCOUNT_ID_MIN_LEN = 2
_ACCOUNT_ID_MAX_LEN = 64


def validate_account_id(value: str) -> str:
    """Return ``value`` unchanged if it is a well-formed NEAR account id.

    Raises:
        ValueError: On bad length or characters.
    """
    if not _ACCOUNT_ID_MIN_LEN <= len(value) <= _ACCOUNT_ID_MAX_LEN:
        raise ValueError(
            f"account id must be {_ACCOUNT_ID_MIN_LEN}-{_ACCOUNT_ID_MAX_LEN} chars, "
            f"got: {value!r}"
        )
    if not _ACCOUNT_ID_RE.match(value):
        raise ValueError(f"invalid account id: {value!r}")
    return value


@dataclass(frozen=True)
class NonceState:
    """Access-key nonce as observed by the node, plus the block it was read at.

    Attributes:
        nonce: Last nonce used by the key. The next transaction must use
            ``nonce + 1``.
        block_hash: 32-byte hash of a recent block, used as the
            transaction's reference (and expiry anchor).
    """

    nonce: int
    block_hash: bytes

    @property
    def next_nonce(self) -> int:
        return self.nonce + 1
