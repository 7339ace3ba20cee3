"""Requests, chunk arithmetic, network kinds and other shared helpers."""

from __future__ import annotations

from dataclasses import dataclass

from torrentkit.metainfo.info import Info
from torrentkit.peer_protocol.message import Message
from torrentkit.peer_protocol.protocol import (
    EXTENSION_BIT_DHT,
    EXTENSION_BIT_EXTENDED,
    EXTENSION_BIT_FAST,
    MessageType,
    PeerExtensionBits,
    new_peer_extension_bytes,
)

# Maximum pending requests we allow peers to send us.
MAX_REQUESTS = 250
DEFAULT_CHUNK_SIZE = 0x4000  # 16KiB

# Our extended message IDs; 0 is reserved for the extended handshake.
METADATA_EXTENDED_ID = 1
PEX_EXTENDED_ID = 2

_METADATA_PIECE_SIZE = 1 << 14

_REQUEST_TYPES = (MessageType.REQUEST, MessageType.CANCEL, MessageType.REJECT)


@dataclass(frozen=True)
class ChunkSpec:
    """A region of a piece."""

    begin: int
    length: int


@dataclass(frozen=True)
class Request:
    """A chunk of a given piece."""

    index: int
    begin: int
    length: int

    @property
    def chunk_spec(self) -> ChunkSpec:
        return ChunkSpec(self.begin, self.length)

    def to_msg(self, message_type: MessageType) -> Message:
        """A message of ``message_type`` naming this request."""
        return Message(type=message_type, index=self.index, begin=self.begin, length=self.length)


def new_request(index: int, begin: int, length: int) -> Request:
    return Request(index, begin, length)


def new_request_from_message(msg: Message) -> Request:
    """The request a Request, Cancel, Reject or Piece message refers to."""
    if msg.type not in _REQUEST_TYPES and msg.type != MessageType.PIECE:
        raise ValueError(f"message type {msg.type} does not describe a request")
    spec = msg.request_spec()
    return new_request(spec.index, spec.begin, spec.length)


def metadata_piece_size(total_size: int, piece: int) -> int:
    """The size in bytes of a metadata extension piece."""
    return min(total_size - piece * _METADATA_PIECE_SIZE, _METADATA_PIECE_SIZE)


def torrent_offset_request(
    torrent_length: int, piece_size: int, chunk_size: int, offset: int
) -> Request | None:
    """The request that would include ``offset``, or None if it is out of range."""
    if offset < 0 or offset >= torrent_length:
        return None
    index = offset // piece_size
    begin = offset % piece_size // chunk_size * chunk_size
    length = min(chunk_size, piece_size - begin)
    torrent_left = torrent_length - index * piece_size - begin
    length = min(length, torrent_left)
    return Request(index, begin, length)


def torrent_request_offset(torrent_length: int, piece_size: int, r: Request) -> int:
    """The offset into the torrent data at which ``r`` begins."""
    off = r.index * piece_size + r.begin
    if off < 0 or off >= torrent_length:
        raise ValueError("invalid request")
    return off


def validate_info(info: Info) -> None:
    """Raise ValueError if the info's pieces and lengths don't agree."""
    if len(info.pieces) % 20 != 0:
        raise ValueError("pieces has invalid length")
    if info.piece_length == 0:
        if info.total_length() != 0:
            raise ValueError("zero piece length")
        return
    expected = (info.total_length() + info.piece_length - 1) // info.piece_length
    if expected != info.num_pieces():
        raise ValueError("piece count and file lengths are at odds")


def chunk_index_spec(index: int, piece_length: int, chunk_size: int) -> ChunkSpec:
    """The region of the ``index``th chunk in a piece."""
    begin = index * chunk_size
    return ChunkSpec(begin, min(chunk_size, piece_length - begin))


def clamp(lo: int, value: int, hi: int) -> int:
    if lo > hi:
        raise ValueError(f"clamp bounds reversed: {lo} > {hi}")
    return max(lo, min(value, hi))


def byte_region_exclusive_pieces(off: int, size: int, piece_size: int) -> tuple[int, int]:
    """The [begin, end) pieces lying wholly inside the byte region."""
    begin = (off + piece_size - 1) // piece_size
    end = (off + size) // piece_size
    return begin, end


def loopback_listen_host(network: str) -> str:
    return "127.0.0.1" if "4" in network else "::1"


@dataclass(frozen=True)
class Network:
    """The properties named by a network string such as "tcp4"."""

    ipv4: bool = False
    ipv6: bool = False
    udp: bool = False
    tcp: bool = False

    def __str__(self) -> str:
        parts = ((self.udp, "udp"), (self.tcp, "tcp"), (self.ipv4, "4"), (self.ipv6, "6"))
        return "".join(s for flag, s in parts if flag)


def parse_network_string(network: str) -> Network:
    return Network(
        ipv4="4" in network,
        ipv6="6" in network,
        udp="udp" in network,
        tcp="tcp" in network,
    )


ALL_PEER_NETWORKS = tuple(parse_network_string(s) for s in ("tcp4", "tcp6", "udp4", "udp6"))


def default_peer_extension_bytes() -> PeerExtensionBits:
    return new_peer_extension_bytes(EXTENSION_BIT_DHT, EXTENSION_BIT_EXTENDED, EXTENSION_BIT_FAST)