"""
Wire encodings used by NEAR: base58 text, Borsh binary, JSON call args.

Base58 (Bitcoin alphabet) carries keys, hashes and block references in
JSON-RPC responses. Borsh is the binary layout the node expects for a
signed transaction. Function-call arguments travel as UTF-8 JSON bytes.

Borsh rules used here (all little-endian):
    - u8 / u32 / u64 / u128: fixed-width unsigned integers.
    - vec (Vec<u8>): u32 length prefix + raw bytes.
    - fixed bytes ([u8; N]): raw bytes, no prefix.
    - string: u32 byte length + UTF-8 bytes.
    - Option<T>: u8 0 (None) or u8 1 followed by T.
    - Vec<T>: u32 count + each element.
    - enum: u8 variant index followed by the variant's fields.
"""

from __future__ import annotations

import json
from typing import Any

_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {char: index for index, char in enumerate(_B58_ALPHABET)}


# =========================================================================
# Base58
# =========================================================================


def b58encode(data: bytes) -> str:
    """Encode bytes as base58 (leading zero bytes become '1')."""
    number = int.from_bytes(data, "big")
    encoded = ""
    while number:
        number, remainder = divmod(number, 58)
        encoded = _B58_ALPHABET[remainder] + encoded
    pad = len(data) - len(data.lstrip(b"\0"))
    return "1" * pad + encoded


def b58decode(text: str) -> bytes:
    """Decode base58 text.

    Raises:
        ValueError: If ``text`` contains a character outside the alphabet.
    """
    number = 0
    for char in text:
        try:
            number = number * 58 + _B58_INDEX[char]
        except KeyError:
            raise ValueError(f"invalid base58 character {char!r} in {text!r}") from None
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    pad = len(text) - len(text.lstrip("1"))
    return b"\0" * pad + body


# =========================================================================
# Borsh
# =========================================================================


class BorshWriter:
    """Append-only Borsh serializer."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def _uint(self, value: int, width: int) -> BorshWriter:
        if value < 0 or value >= 1 << (8 * width):
            raise ValueError(f"value {value} does not fit in u{8 * width}")
        self._buf += value.to_bytes(width, "little")
        return self

    def u8(self, value: int) -> BorshWriter:
        return self._uint(value, 1)

    def u32(self, value: int) -> BorshWriter:
        return self._uint(value, 4)

    def u64(self, value: int) -> BorshWriter:
        return self._uint(value, 8)

    def u128(self, value: int) -> BorshWriter:
        return self._uint(value, 16)

    def fixed(self, data: bytes, size: int) -> BorshWriter:
        if len(data) != size:
            raise ValueError(f"expected {size} bytes, got {len(data)}")
        self._buf += data
        return self

    def vec(self, data: bytes) -> BorshWriter:
        self.u32(len(data))
        self._buf += data
        return self

    def string(self, value: str) -> BorshWriter:
        return self.vec(value.encode("utf-8"))

    def option_u128(self, value: int | None) -> BorshWriter:
        if value is None:
            return self.u8(0)
        return self.u8(1).u128(value)

    def string_list(self, values: tuple[str, ...] | list[str]) -> BorshWriter:
        self.u32(len(values))
        for value in values:
            self.string(value)
        return self

    def getvalue(self) -> bytes:
        return bytes(self._buf)


# =========================================================================
# JSON call arguments
# =========================================================================


def json_args(obj: Any) -> bytes:
    """Serialize function-call arguments to compact, key-sorted JSON bytes.

    Sorted keys make identical argument dicts produce identical bytes,
    so re-assembled envelopes differ only in nonce and block reference.
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")
