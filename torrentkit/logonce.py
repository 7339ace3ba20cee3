"""A writer that passes on each distinct write only once.

Log handlers make one write per record, so wrapping their stream drops
repeated messages.
"""

from __future__ import annotations

import functools
import logging
import sys


class OnceWriter:
    """Wraps a stream and drops writes identical to earlier ones."""

    def __init__(self, stream) -> None:
        self._stream = stream
        self._seen: set = set()

    def write(self, data) -> int:
        """Write ``data`` unless it was written before; returns the count written."""
        if isinstance(data, (bytearray, memoryview)):
            data = bytes(data)
        if data in self._seen:
            return 0
        n = self._stream.write(data)
        if n is None:
            n = len(data)
        self._seen.add(data[:n])
        return n

    def flush(self) -> None:
        flush = getattr(self._stream, "flush", None)
        if flush is not None:
            flush()


class _StderrProxy:
    """Writes to whatever sys.stderr is at the time of the write."""

    def write(self, data) -> int:
        return sys.stderr.write(data)

    def flush(self) -> None:
        sys.stderr.flush()


@functools.lru_cache(maxsize=None)
def stderr_logger() -> logging.Logger:
    """A logger to stderr that prints each distinct message once."""
    log = logging.getLogger("logonce")
    handler = logging.StreamHandler(OnceWriter(_StderrProxy()))
    handler.setFormatter(logging.Formatter("logonce: %(filename)s:%(lineno)d: %(message)s"))
    log.addHandler(handler)
    log.setLevel(logging.DEBUG)
    log.propagate = False
    return log