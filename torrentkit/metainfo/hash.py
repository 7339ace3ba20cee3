"""The 20-byte SHA-1 hash used for info dictionaries and pieces."""

from __future__ import annotations

import binascii
import hashlib
from dataclasses import dataclass

HASH_SIZE = 20


class Hash(bytes):
    """A 20-byte SHA-1 digest."""

    def __new__(cls, data: bytes = bytes(HASH_SIZE)) -> "Hash":
        data = bytes(data)
        if len(data) != HASH_SIZE:
            raise ValueError(f"hash must be {HASH_SIZE} bytes, got {len(data)}")
        return super().__new__(cls, data)

    def hex_string(self) -> str:
        return self.hex()

    def __str__(self) -> str:
        return self.hex()

    def __repr__(self) -> str:
        return f"Hash({bytes(self)!r})"


def new_hash_from_hex(s: str) -> Hash:
    """Parse a 40 character hex string into a Hash."""
    if len(s) != 2 * HASH_SIZE:
        raise ValueError(f"hash hex string has bad length: {len(s)}")
    try:
        return Hash(binascii.unhexlify(s))
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid hash hex string: {exc}") from exc


def hash_bytes(b: bytes) -> Hash:
    """The SHA-1 digest of ``b``."""
    return Hash(hashlib.sha1(bytes(b)).digest())


@dataclass(frozen=True)
class PieceKey:
    """Uniquely identifies a piece."""

    info_hash: Hash
    index: int