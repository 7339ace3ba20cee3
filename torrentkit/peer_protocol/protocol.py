"""Peer wire protocol constants, extension bits, PEX flags and compact IPs."""

from __future__ import annotations

import enum
import ipaddress

PROTOCOL = b"\x13BitTorrent protocol"

HANDSHAKE_EXTENDED_ID = 0

REQUEST_METADATA_EXTENSION_MSG_TYPE = 0
DATA_METADATA_EXTENSION_MSG_TYPE = 1
REJECT_METADATA_EXTENSION_MSG_TYPE = 2

# Reserved-byte bit numbers (BEP 5, BEP 10 and BEP 6).
EXTENSION_BIT_DHT = 0
EXTENSION_BIT_EXTENDED = 20
EXTENSION_BIT_FAST = 2

# Extension names used in the extended handshake's "m" dictionary.
EXTENSION_NAME_PEX = "ut_pex"
EXTENSION_NAME_METADATA = "ut_metadata"


class MessageType(enum.IntEnum):
    """Peer wire message type byte."""

    # BEP 3
    CHOKE = 0
    UNCHOKE = 1
    INTERESTED = 2
    NOT_INTERESTED = 3
    HAVE = 4
    BITFIELD = 5
    REQUEST = 6
    PIECE = 7
    CANCEL = 8
    PORT = 9
    # BEP 6, fast extension
    SUGGEST = 0x0D
    HAVE_ALL = 0x0E
    HAVE_NONE = 0x0F
    REJECT = 0x10
    ALLOWED_FAST = 0x11
    # BEP 10
    EXTENDED = 20

    def fast_extension(self) -> bool:
        """Whether the message belongs to the fast extension."""
        return MessageType.SUGGEST <= self <= MessageType.ALLOWED_FAST

    def __str__(self) -> str:
        return "".join(part.capitalize() for part in self.name.split("_"))


class PexPeerFlags(enum.IntFlag):
    """Per-peer flags carried in PEX messages (BEP 11)."""

    PREFERS_ENCRYPTION = 0x01
    SEED_UPLOAD_ONLY = 0x02
    SUPPORTS_UTP = 0x04
    HOLEPUNCH_SUPPORT = 0x08
    OUTGOING_CONN = 0x10


class PeerExtensionBits:
    """The 8 reserved bytes of the peer handshake."""

    SIZE = 8

    def __init__(self, data: bytes = bytes(SIZE)) -> None:
        data = bytes(data)
        if len(data) != self.SIZE:
            raise ValueError(f"extension bits must be {self.SIZE} bytes, got {len(data)}")
        self._bytes = bytearray(data)

    @classmethod
    def _locate(cls, bit: int) -> tuple[int, int]:
        if not 0 <= bit < cls.SIZE * 8:
            raise IndexError(f"extension bit {bit} out of range")
        return cls.SIZE - 1 - bit // 8, 1 << (bit % 8)

    def set_bit(self, bit: int) -> None:
        index, mask = self._locate(bit)
        self._bytes[index] |= mask

    def get_bit(self, bit: int) -> bool:
        index, mask = self._locate(bit)
        return bool(self._bytes[index] & mask)

    def supports_extended(self) -> bool:
        return self.get_bit(EXTENSION_BIT_EXTENDED)

    def supports_dht(self) -> bool:
        return self.get_bit(EXTENSION_BIT_DHT)

    def supports_fast(self) -> bool:
        return self.get_bit(EXTENSION_BIT_FAST)

    def __bytes__(self) -> bytes:
        return bytes(self._bytes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PeerExtensionBits):
            return NotImplemented
        return self._bytes == other._bytes

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        return self._bytes.hex()

    def __repr__(self) -> str:
        return f"PeerExtensionBits({bytes(self._bytes)!r})"


def new_peer_extension_bytes(*args: int) -> PeerExtensionBits:
    """Reserved bytes with the given extension bits set."""
    ret = PeerExtensionBits()
    for bit in args:
        ret.set_bit(bit)
    return ret


def compact_ip(ip) -> bytes:
    """The smallest byte form of an IP: 4 bytes for IPv4 and mapped IPv4."""
    if isinstance(ip, (bytes, bytearray)):
        raw = bytes(ip)
        if len(raw) == 4:
            return raw
        if len(raw) != 16:
            return raw
        addr = ipaddress.IPv6Address(raw)
    elif isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        addr = ip
    else:
        addr = ipaddress.ip_address(ip)
    if isinstance(addr, ipaddress.IPv4Address):
        return addr.packed
    mapped = addr.ipv4_mapped
    return mapped.packed if mapped is not None else addr.packed