"""IP range lists in the PeerGuardian P2P plaintext format."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Callable, Iterable

_V4_IN_V6_PREFIX = bytes(10) + b"\xff\xff"


class BlocklistParseError(ValueError):
    """A blocklist line could not be parsed."""


def _to4(ip: bytes) -> bytes | None:
    if len(ip) == 4:
        return ip
    if len(ip) == 16 and ip[:12] == _V4_IN_V6_PREFIX:
        return ip[12:]
    return None


def _to16(ip: bytes) -> bytes | None:
    if len(ip) == 4:
        return _V4_IN_V6_PREFIX + ip
    if len(ip) == 16:
        return ip
    return None


def _ip_bytes(ip) -> bytes:
    """Raw address bytes from bytes, an ipaddress object or a string."""
    if ip is None:
        return b""
    if isinstance(ip, (bytes, bytearray, memoryview)):
        return bytes(ip)
    if isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ip.packed
    return ipaddress.ip_address(ip).packed


def _ip_str(ip: bytes) -> str:
    if not ip:
        return "<nil>"
    v4 = _to4(ip)
    if v4 is not None:
        return str(ipaddress.IPv4Address(v4))
    if len(ip) == 16:
        return str(ipaddress.IPv6Address(ip))
    return "?" + ip.hex()


@dataclass(frozen=True)
class Range:
    """An inclusive range of addresses with a description."""

    first: bytes = b""
    last: bytes = b""
    description: str = ""

    def __str__(self) -> str:
        return f"{_ip_str(self.first)}-{_ip_str(self.last)}: {self.description}"


def _search(
    first: Callable[[int], bytes], full: Callable[[int], Range], n: int, ip: bytes
) -> Range | None:
    """Find the range holding ``ip`` among ``n`` ranges sorted by first address."""
    # Smallest index whose following range starts beyond ip.
    lo, hi = 0, n
    while lo < hi:
        mid = (lo + hi) // 2
        if mid + 1 >= n or ip < first(mid + 1):
            hi = mid
        else:
            lo = mid + 1
    if lo == n:
        return None
    r = full(lo)
    if r.first <= ip <= r.last:
        return r
    return None


class IPList:
    """Ranges sorted by their first address; overlapping ranges are not supported."""

    def __init__(self, ranges: Iterable[Range] = ()) -> None:
        self.ranges: list[Range] = list(ranges)

    def num_ranges(self) -> int:
        return len(self.ranges)

    def _lookup(self, ip: bytes) -> Range | None:
        ranges = self.ranges
        return _search(lambda i: ranges[i].first, ranges.__getitem__, len(ranges), ip)

    def lookup(self, ip) -> Range | None:
        """The range holding ``ip``, or None. Malformed addresses match a "bad IP" range."""
        raw = _ip_bytes(ip)
        v4 = _to4(raw)
        if v4 is not None:
            r = self._lookup(v4)
            if r is not None:
                return r
        v6 = _to16(raw)
        if v6 is not None:
            return self._lookup(v6)
        if v4 is None:
            return Range(description="bad IP")
        return None


def _parse_ip(text: bytes) -> bytes | None:
    try:
        packed = ipaddress.ip_address(text.decode("ascii")).packed
    except (UnicodeDecodeError, ValueError):
        return None
    v4 = _to4(packed)
    return v4 if v4 is not None else packed


def parse_blocklist_p2p_line(line) -> Range | None:
    """Parse one line; None for blank and comment lines."""
    if isinstance(line, str):
        line = line.encode("utf-8", "surrogateescape")
    line = bytes(line).strip()
    if not line or line.startswith(b"#"):
        return None
    colon = line.rfind(b":")
    if colon == -1:
        raise BlocklistParseError("missing colon")
    hyphen = line.find(b"-", colon + 1)
    if hyphen == -1:
        raise BlocklistParseError("missing hyphen")
    first = _parse_ip(line[colon + 1 : hyphen])
    last = _parse_ip(line[hyphen + 1 :])
    if first is None or last is None or len(first) != len(last):
        raise BlocklistParseError("bad IP range")
    return Range(first, last, line[:colon].decode("utf-8", "surrogateescape"))


def new_from_reader(stream) -> IPList:
    """Build an IPList from a line-delimited P2P plaintext stream."""
    ranges = []
    # Many descriptions repeat, so equal ones share a single string.
    descriptions: dict[str, str] = {}
    for line_num, line in enumerate(stream, start=1):
        try:
            r = parse_blocklist_p2p_line(line)
        except BlocklistParseError as exc:
            raise BlocklistParseError(f"error parsing line {line_num}: {exc}") from exc
        if r is None:
            continue
        desc = descriptions.setdefault(r.description, r.description)
        ranges.append(Range(r.first, r.last, desc))
    return IPList(ranges)