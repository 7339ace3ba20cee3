"""A compact binary form of an IP list that can be searched in place.

The format is an 8 byte count of ranges, then 44 bytes per range: the first
and last addresses as 16 bytes each, an 8 byte offset of the description from
the end of the ranges and a 4 byte description length. The descriptions
follow, concatenated. Integers are little-endian.
"""

from __future__ import annotations

import mmap
import struct
from typing import BinaryIO, Callable

from torrentkit.iplist.iplist import IPList, Range, _ip_bytes, _search, _to16

_RANGES_OFFSET = 8
_RANGE_LEN = 44


def write_packed(ip_list: IPList, stream: BinaryIO) -> None:
    """Write ``ip_list`` to ``stream`` in the packed format."""
    desc_offsets: dict[bytes, int] = {}
    descs: list[bytes] = []
    next_offset = 0
    out = bytearray(struct.pack("<Q", len(ip_list.ranges)))
    for r in ip_list.ranges:
        desc = r.description.encode("utf-8", "surrogateescape")
        off = desc_offsets.get(desc)
        if off is None:
            off = desc_offsets[desc] = next_offset
            descs.append(desc)
            next_offset += len(desc)
        first, last = _to16(r.first), _to16(r.last)
        if first is None or last is None:
            raise ValueError(f"range has malformed address: {r}")
        out += first + last + struct.pack("<QI", off, len(desc))
    out += b"".join(descs)
    stream.write(bytes(out))


class PackedIPList:
    """An IP list searched directly in its packed bytes."""

    def __init__(self, data, closer: Callable[[], None] | None = None) -> None:
        if len(data) < _RANGES_OFFSET:
            raise ValueError(f"packed len {len(data)} < {_RANGES_OFFSET}")
        (count,) = struct.unpack_from("<Q", data, 0)
        min_len = _RANGES_OFFSET + count * _RANGE_LEN
        if len(data) < min_len:
            raise ValueError(f"packed len {len(data)} < {min_len}")
        self._data = data
        self._count = count
        self._closer = closer

    def num_ranges(self) -> int:
        return self._count

    def _first(self, i: int) -> bytes:
        off = _RANGES_OFFSET + _RANGE_LEN * i
        return bytes(self._data[off : off + 16])

    def _range(self, i: int) -> Range:
        off = _RANGES_OFFSET + _RANGE_LEN * i
        last = bytes(self._data[off + 16 : off + 32])
        desc_off, desc_len = struct.unpack_from("<QI", self._data, off + 32)
        desc_off += _RANGES_OFFSET + _RANGE_LEN * self._count
        desc = bytes(self._data[desc_off : desc_off + desc_len])
        return Range(self._first(i), last, desc.decode("utf-8", "surrogateescape"))

    def lookup(self, ip) -> Range | None:
        """The range holding ``ip``, or None; ValueError for a malformed address."""
        ip16 = _to16(_ip_bytes(ip))
        if ip16 is None:
            raise ValueError(f"malformed IP address: {ip!r}")
        return _search(self._first, self._range, self._count, ip16)

    def close(self) -> None:
        closer, self._closer = self._closer, None
        if closer is not None:
            closer()

    def __enter__(self) -> "PackedIPList":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def new_from_packed(b) -> PackedIPList:
    return PackedIPList(b)


def mmap_packed_file(filename) -> PackedIPList:
    """Map a packed file read-only; close the result to unmap it."""
    with open(filename, "rb") as f:
        mm = mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ)
    try:
        return PackedIPList(mm, mm.close)
    except BaseException:
        mm.close()
        raise