"""Several writable buffers, such as memory maps, seen as one byte span."""

from __future__ import annotations

import logging
import threading
from typing import Iterator

logger = logging.getLogger(__name__)


class MMapSpan:
    """Reads and writes at offsets across a sequence of buffers."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._segments: list = []

    def append(self, segment) -> None:
        """Add a mutable buffer (an mmap or bytearray) to the end of the span."""
        with self._lock:
            self._segments.append(segment)

    def close(self) -> None:
        """Close every segment that can be closed; failures are logged."""
        with self._lock:
            for segment in self._segments:
                close = getattr(segment, "close", None)
                if close is None:
                    continue
                try:
                    close()
                except (OSError, ValueError, BufferError) as exc:
                    logger.error("error closing segment: %s", exc)

    def size(self) -> int:
        with self._lock:
            return sum(len(s) for s in self._segments)

    def _from(self, offset: int) -> Iterator[tuple[object, int]]:
        if offset < 0:
            raise ValueError(f"negative offset: {offset}")
        for segment in self._segments:
            length = len(segment)
            if offset >= length:
                offset -= length
                continue
            yield segment, offset
            offset = 0

    def read_at(self, n: int, offset: int) -> bytes:
        """Up to ``n`` bytes from ``offset``; fewer at the end of the span."""
        parts = []
        remaining = n
        with self._lock:
            for segment, off in self._from(offset):
                if remaining <= 0:
                    break
                chunk = bytes(segment[off : off + remaining])
                parts.append(chunk)
                remaining -= len(chunk)
        return b"".join(parts)

    def write_at(self, data, offset: int) -> int:
        """Write ``data`` at ``offset``; returns how many bytes fitted in the span."""
        view = memoryview(bytes(data))
        written = 0
        with self._lock:
            for segment, off in self._from(offset):
                if not view:
                    break
                take = min(len(view), len(segment) - off)
                segment[off : off + take] = view[:take]
                view = view[take:]
                written += take
        return written

    def __enter__(self) -> "MMapSpan":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()