"""
Transaction assembly — pure construction of signed NEAR envelopes.

Builds the Borsh ``Transaction`` from (signer, receiver, nonce, block
reference, actions), hashes it, and asks the signer for a signature.
No I/O, no nonce bookkeeping: the caller supplies a fresh ``NonceState``
every time, and a rejected envelope is never reused.

Layout:
    Transaction = signer_id: string
                  public_key: PublicKey
                  nonce: u64
                  receiver_id: string
                  block_hash: [u8; 32]
                  actions: Vec<Action>
    SignedTransaction = Transaction + Signature(u8 key type, [u8; 64])

Transaction hash:
    sha256(borsh(Transaction)), shown as base58. The signature is made
    over the raw 32-byte hash.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from typing import Sequence

from oct_cli.near.actions import Action
from oct_cli.near.codec import BorshWriter, b58encode
from oct_cli.near.keys import ED25519_SIGNATURE_LEN, KeyType, PublicKey, Signer
from oct_cli.near.types import NonceState, validate_account_id

BLOCK_HASH_LEN = 32


@dataclass(frozen=True)
class Transaction:
    """Unsigned transaction envelope."""

    signer_id: str
    public_key: PublicKey
    nonce: int
    receiver_id: str
    block_hash: bytes
    actions: tuple[Action, ...]

    def serialize(self) -> bytes:
        writer = BorshWriter()
        writer.string(self.signer_id)
        self.public_key.write(writer)
        writer.u64(self.nonce)
        writer.string(self.receiver_id)
        writer.fixed(self.block_hash, BLOCK_HASH_LEN)
        writer.u32(len(self.actions))
        for action in self.actions:
            action.write(writer)
        return writer.getvalue()

    def hash(self) -> bytes:
        return hashlib.sha256(self.serialize()).digest()


@dataclass(frozen=True)
class SignedTransaction:
    """A transaction plus the signer's signature over its hash.

    Attributes:
        transaction: The signed envelope.
        signature: 64-byte Ed25519 signature.
        tx_hash: Base58 transaction hash, the id used by ``tx`` status
            lookups and explorers.
    """

    transaction: Transaction
    signature: bytes
    tx_hash: str

    def serialize(self) -> bytes:
        writer = BorshWriter()
        writer.u8(KeyType.ED25519).fixed(self.signature, ED25519_SIGNATURE_LEN)
        return self.transaction.serialize() + writer.getvalue()

    def to_base64(self) -> str:
        """Encoding accepted by ``broadcast_tx_commit``."""
        return base64.b64encode(self.serialize()).decode("ascii")


def assemble(
    signer: Signer,
    receiver_id: str,
    actions: Sequence[Action],
    nonce_state: NonceState,
) -> SignedTransaction:
    """Build and sign an envelope using ``nonce_state.next_nonce``.

    Args:
        signer: Key holder; provides signer id and public key.
        receiver_id: Account the actions are applied to.
        actions: Ordered, non-empty action list.
        nonce_state: Fresh nonce and block reference for this attempt.

    Returns:
        The signed envelope and its hash.

    Raises:
        ValueError: If ``actions`` is empty, an account id is malformed, or
            the block reference is not 32 bytes.
    """
    if not actions:
        raise ValueError("a transaction needs at least one action")
    if len(nonce_state.block_hash) != BLOCK_HASH_LEN:
        raise ValueError(
            f"block hash must be {BLOCK_HASH_LEN} bytes, got {len(nonce_state.block_hash)}"
        )

    tx = Transaction(
        signer_id=validate_account_id(signer.account_id),
        public_key=signer.public_key,
        nonce=nonce_state.next_nonce,
        receiver_id=validate_account_id(receiver_id),
        block_hash=nonce_state.block_hash,
        actions=tuple(actions),
    )
    digest = tx.hash()
    signature = signer.sign(digest)
    if len(signature) != ED25519_SIGNATURE_LEN:
        raise ValueError(
            f"signer returned {len(signature)}-byte signature, expected {ED25519_SIGNATURE_LEN}"
        )
    return SignedTransaction(transaction=tx, signature=signature, tx_hash=b58encode(digest))
