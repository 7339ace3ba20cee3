"""Magnet link parsing and formatting."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from urllib.parse import parse_qs, quote_plus, urlsplit

from torrentkit.metainfo.hash import Hash

_XT_PREFIX = "urn:btih:"


@dataclass
class Magnet:
    """Magnet link components."""

    info_hash: Hash = field(default_factory=Hash)
    trackers: list[str] = field(default_factory=list)
    display_name: str = ""

    def __str__(self) -> str:
        ret = "magnet:?xt=" + _XT_PREFIX + bytes(self.info_hash).hex()
        if self.display_name:
            ret += "&dn=" + quote_plus(self.display_name, safe="")
        for tracker in self.trackers:
            ret += "&tr=" + quote_plus(tracker, safe="")
        return ret


def parse_magnet_uri(uri: str) -> Magnet:
    """Parse a magnet URI; ValueError if it is not a BTIH magnet link."""
    try:
        parts = urlsplit(uri)
    except ValueError as exc:
        raise ValueError(f"error parsing uri: {exc}") from exc
    if parts.scheme != "magnet":
        raise ValueError(f"unexpected scheme: {parts.scheme!r}")
    query = parse_qs(parts.query, keep_blank_values=True)
    xt = query.get("xt", [""])[0]
    if not xt.startswith(_XT_PREFIX):
        raise ValueError("bad xt parameter")
    encoded = xt[len(_XT_PREFIX) :]
    try:
        if len(encoded) == 40:
            raw = binascii.unhexlify(encoded)
        elif len(encoded) == 32:
            raw = base64.b32decode(encoded)
        else:
            raise ValueError(f"unhandled xt parameter encoding: encoded length {len(encoded)}")
    except binascii.Error as exc:
        raise ValueError(f"error decoding xt: {exc}") from exc
    return Magnet(
        info_hash=Hash(raw),
        trackers=list(query.get("tr", [])),
        display_name=query.get("dn", [""])[0],
    )