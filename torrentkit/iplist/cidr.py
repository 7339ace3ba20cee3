"""Reading address ranges from lists of CIDR blocks."""

from __future__ import annotations

import ipaddress

from torrentkit.iplist.iplist import Range


def _parse_cidr(text: str):
    addr, sep, prefix = text.partition("/")
    if not sep or not prefix.isdigit():
        raise ValueError(f"invalid CIDR address: {text}")
    try:
        return ipaddress.ip_network(text, strict=False)
    except ValueError as exc:
        raise ValueError(f"invalid CIDR address: {text}") from exc


def parse_cidr_list_reader(stream) -> list[Range]:
    """One range per CIDR line of ``stream``; ValueError on the first bad line."""
    ranges = []
    for line in stream:
        if isinstance(line, (bytes, bytearray)):
            line = bytes(line).decode("ascii", "replace")
        network = _parse_cidr(line.rstrip("\r\n"))
        ranges.append(Range(first=network.network_address.packed, last=ip_net_last(network)))
    return ranges


def ip_net_last(network) -> bytes:
    """The last, inclusive address of a network."""
    if isinstance(network, str):
        network = ipaddress.ip_network(network, strict=False)
    ip = network.network_address.packed
    mask = network.netmask.packed
    return bytes(a | (~m & 0xFF) for a, m in zip(ip, mask))