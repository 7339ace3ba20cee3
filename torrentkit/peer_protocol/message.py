"""Peer wire messages and their binary encoding."""

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass, field

from torrentkit.peer_protocol.protocol import MessageType, compact_ip

_NO_PAYLOAD = frozenset(
    {
        MessageType.CHOKE,
        MessageType.UNCHOKE,
        MessageType.INTERESTED,
        MessageType.NOT_INTERESTED,
        MessageType.HAVE_ALL,
        MessageType.HAVE_NONE,
    }
)
_REQUEST_LIKE = frozenset({MessageType.REQUEST, MessageType.CANCEL, MessageType.REJECT})


def _u32(*values: int) -> bytes:
    try:
        return struct.pack(f">{len(values)}I", *values)
    except struct.error as exc:
        raise ValueError(f"value out of range for a 32-bit integer: {values}") from exc


@dataclass(frozen=True)
class RequestSpec:
    """Piece index, begin offset and length of a block."""

    index: int
    begin: int
    length: int

    def __str__(self) -> str:
        return f"{{{self.index} {self.begin} {self.length}}}"


@dataclass
class Message:
    """One peer wire message."""

    type: int = MessageType.CHOKE
    keepalive: bool = False
    index: int = 0
    begin: int = 0
    length: int = 0
    piece: bytes = b""
    bitfield: list[bool] = field(default_factory=list)
    extended_id: int = 0
    extended_payload: bytes = b""
    port: int = 0

    def request_spec(self) -> RequestSpec:
        length = len(self.piece) if self.type == MessageType.PIECE else self.length
        return RequestSpec(self.index, self.begin, length)

    def _payload(self) -> bytes:
        t = self.type
        if t in _NO_PAYLOAD:
            return b""
        if t == MessageType.HAVE:
            return _u32(self.index)
        if t in _REQUEST_LIKE:
            return _u32(self.index, self.begin, self.length)
        if t == MessageType.BITFIELD:
            return marshal_bitfield(self.bitfield)
        if t == MessageType.PIECE:
            return _u32(self.index, self.begin) + bytes(self.piece)
        if t == MessageType.EXTENDED:
            return bytes([self.extended_id]) + bytes(self.extended_payload)
        if t == MessageType.PORT:
            return struct.pack(">H", self.port)
        raise ValueError(f"unknown message type: {t}")

    def marshal_binary(self) -> bytes:
        """The length-prefixed wire form of the message."""
        body = b"" if self.keepalive else bytes([self.type]) + self._payload()
        return struct.pack(">I", len(body)) + body


def make_cancel_message(piece: int, offset: int, length: int) -> Message:
    return Message(type=MessageType.CANCEL, index=piece, begin=offset, length=length)


def marshal_bitfield(bf) -> bytes:
    """Pack booleans high bit first, padding the last byte with zeros."""
    out = bytearray((len(bf) + 7) // 8)
    for i, have in enumerate(bf):
        if have:
            out[i // 8] |= 0x80 >> (i % 8)
    return bytes(out)


def unmarshal_bitfield(b: bytes) -> list[bool]:
    """Unpack bytes into booleans, high bit first."""
    return [bool((c >> shift) & 1) for c in b for shift in range(7, -1, -1)]


def _ip_bytes(ip) -> bytes:
    if isinstance(ip, (bytes, bytearray)):
        return bytes(ip)
    if isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ip.packed
    return ipaddress.ip_address(ip).packed


@dataclass
class ExtendedHandshakeMessage:
    """The BEP 10 extended handshake dictionary."""

    m: dict[str, int] = field(default_factory=dict)
    v: str = ""
    reqq: int = 0
    encryption: bool = False
    metadata_size: int = 0
    port: int = 0
    yourip: object = None
    ipv4: object = None
    ipv6: object = None

    def to_dict(self) -> dict:
        """The dictionary to bencode, with empty optional keys left out."""
        d: dict = {"m": dict(self.m)}
        if self.v:
            d["v"] = self.v
        if self.reqq:
            d["reqq"] = self.reqq
        if self.encryption:
            d["e"] = 1
        if self.metadata_size:
            d["metadata_size"] = self.metadata_size
        if self.port:
            d["p"] = self.port
        if self.yourip:
            d["yourip"] = compact_ip(self.yourip)
        if self.ipv4:
            d["ipv4"] = compact_ip(self.ipv4)
        if self.ipv6:
            d["ipv6"] = _ip_bytes(self.ipv6)
        return dict(sorted(d.items()))