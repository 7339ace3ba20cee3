"""The initial peer wire handshake."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass

from torrentkit.peer_protocol.protocol import PROTOCOL, PeerExtensionBits

_HANDSHAKE_LEN = 68


class HandshakeError(Exception):
    """The peer handshake failed."""


@dataclass(frozen=True)
class HandshakeResult:
    """What the remote peer declared in its handshake."""

    peer_extension_bits: PeerExtensionBits
    peer_id: bytes
    info_hash: bytes


class _Writer(threading.Thread):
    """Writes posted chunks in order so that posting never blocks."""

    def __init__(self, sock) -> None:
        super().__init__(daemon=True)
        self._sock = sock
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self.error: Exception | None = None

    def post(self, data: bytes) -> None:
        self._queue.put(data)

    def close(self) -> None:
        self._queue.put(None)

    def _write_all(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            n = self._sock.write(view)
            if n is None:
                n = len(view)
            if n == 0:
                raise OSError("short write")
            view = view[n:]
        flush = getattr(self._sock, "flush", None)
        if flush is not None:
            flush()

    def run(self) -> None:
        while (data := self._queue.get()) is not None:
            try:
                self._write_all(data)
            except (OSError, ValueError) as exc:
                self.error = exc
                return


def _fixed(value: bytes, size: int, what: str) -> bytes:
    value = bytes(value)
    if len(value) != size:
        raise ValueError(f"{what} must be {size} bytes, got {len(value)}")
    return value


def _read_exact(sock, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        chunk = sock.read(n - len(buf))
        if not chunk:
            break
        buf += chunk
    return bytes(buf)


def handshake(sock, info_hash: bytes | None, peer_id: bytes, extensions: PeerExtensionBits) -> HandshakeResult:
    """Exchange handshakes over ``sock``, a stream with read and write.

    ``info_hash`` is None when the peer is expected to name the torrent, as
    when it opened the connection; ours is then sent after reading theirs.
    """
    peer_id = _fixed(peer_id, 20, "peer ID")
    if info_hash is not None:
        info_hash = _fixed(info_hash, 20, "info hash")
    writer = _Writer(sock)
    writer.start()
    try:
        writer.post(PROTOCOL)
        writer.post(bytes(extensions))
        if info_hash is not None:
            writer.post(info_hash)
            writer.post(peer_id)
        try:
            data = _read_exact(sock, _HANDSHAKE_LEN)
        except OSError as exc:
            raise HandshakeError(f"while reading: {exc}") from exc
        if len(data) < _HANDSHAKE_LEN:
            raise HandshakeError("while reading: unexpected EOF")
        if data[:20] != PROTOCOL:
            raise HandshakeError("unexpected protocol string")
        result = HandshakeResult(
            peer_extension_bits=PeerExtensionBits(data[20:28]),
            peer_id=data[48:68],
            info_hash=data[28:48],
        )
        if info_hash is None:
            writer.post(result.info_hash)
            writer.post(peer_id)
    except BaseException:
        writer.close()
        raise
    writer.close()
    writer.join()
    if writer.error is not None:
        raise HandshakeError(f"error writing: {writer.error}") from writer.error
    return result