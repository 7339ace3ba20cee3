"""Reads peer wire messages from a byte stream."""

from __future__ import annotations

import struct
from typing import BinaryIO, Iterator

from torrentkit.peer_protocol.message import Message, unmarshal_bitfield
from torrentkit.peer_protocol.protocol import MessageType


class DecodeError(Exception):
    """A message could not be read from the stream."""


class _Cursor:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def take(self, n: int) -> bytes:
        if n > self.remaining:
            raise DecodeError("unexpected EOF")
        chunk = self._data[self._pos : self._pos + n]
        self._pos += n
        return chunk

    def u32(self) -> int:
        return struct.unpack(">I", self.take(4))[0]

    def rest(self) -> bytes:
        return self.take(self.remaining)


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


class Decoder:
    """Decodes length-prefixed messages from a readable binary stream.

    Messages longer than ``max_length`` are refused, as is piece data longer
    than ``max_piece_length`` when it is given.
    """

    def __init__(self, reader: BinaryIO, max_length: int, max_piece_length: int | None = None) -> None:
        self._reader = reader
        self.max_length = max_length
        self.max_piece_length = max_piece_length

    def _read_exact(self, n: int) -> bytes:
        buf = bytearray()
        while len(buf) < n:
            chunk = self._reader.read(n - len(buf))
            if not chunk:
                break
            buf += chunk
        return bytes(buf)

    def decode(self) -> Message:
        """Read the next message; EOFError if the stream ends between messages."""
        header = self._read_exact(4)
        if not header:
            raise EOFError("end of stream")
        if len(header) < 4:
            raise DecodeError("error reading message length: unexpected EOF")
        (length,) = struct.unpack(">I", header)
        if length > self.max_length:
            raise DecodeError("message too long")
        if length == 0:
            return Message(keepalive=True)
        body = self._read_exact(length)
        if len(body) < length:
            raise DecodeError("unexpected EOF")
        return self._parse(_Cursor(body))

    def _parse(self, cur: _Cursor) -> Message:
        code = cur.take(1)[0]
        try:
            mt = MessageType(code)
        except ValueError:
            raise DecodeError(f"unknown message type {code:#x}") from None
        msg = Message(type=mt)
        if mt in _NO_PAYLOAD:
            pass
        elif mt in (MessageType.HAVE, MessageType.ALLOWED_FAST, MessageType.SUGGEST):
            msg.index = cur.u32()
        elif mt in (MessageType.REQUEST, MessageType.CANCEL, MessageType.REJECT):
            msg.index = cur.u32()
            msg.begin = cur.u32()
            msg.length = cur.u32()
        elif mt == MessageType.BITFIELD:
            msg.bitfield = unmarshal_bitfield(cur.rest())
        elif mt == MessageType.PIECE:
            msg.index = cur.u32()
            msg.begin = cur.u32()
            if self.max_piece_length is not None and cur.remaining > self.max_piece_length:
                raise DecodeError("piece data longer than expected")
            msg.piece = cur.rest()
        elif mt == MessageType.EXTENDED:
            msg.extended_id = cur.take(1)[0]
            msg.extended_payload = cur.rest()
        elif mt == MessageType.PORT:
            msg.port = struct.unpack(">H", cur.take(2))[0]
        if cur.remaining:
            raise DecodeError(f"{cur.remaining} bytes unused in message type {int(mt)}")
        return msg

    def __iter__(self) -> Iterator[Message]:
        while True:
            try:
                yield self.decode()
            except EOFError:
                return