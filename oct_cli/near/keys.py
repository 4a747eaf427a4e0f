"""
NEAR keys and the signer protocol — the secrets boundary.

The rest of the core never touches private key material. It hands the
signer a 32-byte transaction hash and gets a 64-byte Ed25519 signature
back, plus the public identifiers (account id, public key) needed to
assemble the envelope.

Key text format: ``ed25519:<base58>``.
    - public key: 32 bytes.
    - secret key: 64 bytes (32-byte seed followed by the public key), as
      written by near-cli credential files. A bare 32-byte seed is also
      accepted.

Concrete implementations:
    - InMemorySigner (Ed25519 via ``cryptography``)
    - FakeSigner (tests)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Protocol, runtime_checkable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from oct_cli.near.codec import BorshWriter, b58decode, b58encode
from oct_cli.near.types import validate_account_id

ED25519_PUBLIC_KEY_LEN = 32
ED25519_SIGNATURE_LEN = 64


class KeyType(IntEnum):
    """Borsh discriminant of the key curve."""

    ED25519 = 0


_PREFIXES = {"ed25519": KeyType.ED25519}


def _split_key_text(text: str) -> tuple[KeyType, bytes]:
    prefix, sep, body = text.partition(":")
    if not sep:
        # near-cli accepts bare base58 and assumes ed25519
        prefix, body = "ed25519", text
    key_type = _PREFIXES.get(prefix)
    if key_type is None:
        raise ValueError(f"unsupported key type {prefix!r} (only ed25519)")
    return key_type, b58decode(body)


# =========================================================================
# Public key
# =========================================================================


@dataclass(frozen=True)
class PublicKey:
    """A NEAR public key."""

    data: bytes
    key_type: KeyType = KeyType.ED25519

    def __post_init__(self) -> None:
        if len(self.data) != ED25519_PUBLIC_KEY_LEN:
            raise ValueError(
                f"ed25519 public key must be {ED25519_PUBLIC_KEY_LEN} bytes, "
                f"got {len(self.data)}"
            )

    @classmethod
    def from_str(cls, text: str) -> PublicKey:
        key_type, data = _split_key_text(text)
        return cls(data=data, key_type=key_type)

    def __str__(self) -> str:
        return f"{self.key_type.name.lower()}:{b58encode(self.data)}"

    def write(self, writer: BorshWriter) -> None:
        writer.u8(self.key_type).fixed(self.data, ED25519_PUBLIC_KEY_LEN)

    def verify(self, signature: bytes, message: bytes) -> bool:
        """Check an Ed25519 signature made over ``message``."""
        try:
            Ed25519PublicKey.from_public_bytes(self.data).verify(signature, message)
        except InvalidSignature:
            return False
        return True


# =========================================================================
# Signer protocol
# =========================================================================


@runtime_checkable
class Signer(Protocol):
    """Signs transaction hashes on behalf of one account/key pair.

    Properties:
        account_id: Account the key belongs to; becomes the transaction's
            signer id.
        public_key: Public half of the key (safe for logging).
    """

    @property
    def account_id(self) -> str: ...

    @property
    def public_key(self) -> PublicKey: ...

    def sign(self, message: bytes) -> bytes:
        """Return a 64-byte Ed25519 signature over ``message``."""
        ...


class InMemorySigner:
    """Ed25519 signer holding the private key in process memory.

    Args:
        account_id: Account the key is registered on.
        secret_key: ``ed25519:<base58>`` secret key text.

    Raises:
        ValueError: If the account id is malformed, the key text cannot be
            decoded, or the embedded public half does not match the seed.
    """

    def __init__(self, account_id: str, secret_key: str) -> None:
        self._account_id = validate_account_id(account_id)
        _, raw = _split_key_text(secret_key)
        if len(raw) not in (32, 64):
            raise ValueError(f"ed25519 secret key must be 32 or 64 bytes, got {len(raw)}")
        self._private_key = Ed25519PrivateKey.from_private_bytes(raw[:32])
        public_raw = self._private_key.public_key().public_bytes(
            Encoding.Raw, PublicFormat.Raw
        )
        if len(raw) == 64 and raw[32:] != public_raw:
            raise ValueError("secret key does not match its embedded public key")
        self._public_key = PublicKey(public_raw)

    @classmethod
    def generate(cls, account_id: str) -> InMemorySigner:
        """Create a signer with a fresh random key (tests, new accounts)."""
        private_key = Ed25519PrivateKey.generate()
        seed = private_key.private_bytes_raw()
        return cls(account_id, f"ed25519:{b58encode(seed)}")

    @property
    def account_id(self) -> str:
        return self._account_id

    @property
    def public_key(self) -> PublicKey:
        return self._public_key

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message)

    def __repr__(self) -> str:
        return f"InMemorySigner(account_id={self._account_id!r}, public_key='{self._public_key}')"
