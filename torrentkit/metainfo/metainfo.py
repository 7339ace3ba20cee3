"""Bencoding and the top-level .torrent metainfo structure."""

from __future__ import annotations

import ipaddress
import re
import time
from dataclasses import dataclass, field
from typing import BinaryIO

from torrentkit.metainfo.hash import Hash, hash_bytes
from torrentkit.metainfo.info import Info, info_from_dict
from torrentkit.metainfo.magnet import Magnet

_INT_RE = re.compile(rb"-?[0-9]+")


class BencodeError(ValueError):
    """Data could not be bencoded or decoded."""


class _Raw:
    """Already bencoded bytes, inserted verbatim."""

    __slots__ = ("data",)

    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)


def _key_bytes(key) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8", "surrogateescape")
    if isinstance(key, (bytes, bytearray)):
        return bytes(key)
    raise BencodeError(f"dictionary key must be a string, got {type(key).__name__}")


def _encode(value, out: bytearray) -> None:
    if isinstance(value, _Raw):
        out += value.data
    elif isinstance(value, int):
        out += b"i%de" % value
    elif isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        out += b"%d:" % len(data) + data
    elif isinstance(value, str):
        _encode(value.encode("utf-8", "surrogateescape"), out)
    elif isinstance(value, (list, tuple)):
        out += b"l"
        for item in value:
            _encode(item, out)
        out += b"e"
    elif isinstance(value, dict):
        out += b"d"
        for key, item in sorted(((_key_bytes(k), v) for k, v in value.items()), key=lambda kv: kv[0]):
            _encode(key, out)
            _encode(item, out)
        out += b"e"
    else:
        raise BencodeError(f"cannot bencode value of type {type(value).__name__}")


def bencode(value) -> bytes:
    """Bencode ints, strings, bytes, lists and dictionaries."""
    out = bytearray()
    _encode(value, out)
    return bytes(out)


class _Parser:
    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)

    def _need(self, pos: int) -> int:
        if pos >= len(self.data):
            raise BencodeError("unexpected end of data")
        return self.data[pos]

    def string(self, pos: int) -> tuple[bytes, int]:
        colon = self.data.find(b":", pos)
        digits = self.data[pos:colon]
        if colon < 0 or not digits.isdigit():
            raise BencodeError(f"invalid string length at offset {pos}")
        end = colon + 1 + int(digits)
        if end > len(self.data):
            raise BencodeError("unexpected end of data in string")
        return self.data[colon + 1 : end], end

    def value(self, pos: int) -> tuple[object, int]:
        c = self._need(pos)
        if c == ord("i"):
            end = self.data.find(b"e", pos + 1)
            text = self.data[pos + 1 : end]
            if end < 0 or not _INT_RE.fullmatch(text):
                raise BencodeError(f"invalid integer at offset {pos}")
            return int(text), end + 1
        if c == ord("l"):
            pos += 1
            items = []
            while self._need(pos) != ord("e"):
                item, pos = self.value(pos)
                items.append(item)
            return items, pos + 1
        if c == ord("d"):
            pos += 1
            entries = {}
            while self._need(pos) != ord("e"):
                key, pos = self.string(pos)
                entries[key], pos = self.value(pos)
            return entries, pos + 1
        if ord("0") <= c <= ord("9"):
            return self.string(pos)
        raise BencodeError(f"unexpected byte {chr(c)!r} at offset {pos}")


def bdecode(data: bytes):
    """Decode one bencoded value; strings come back as bytes."""
    value, end = _Parser(data).value(0)
    if end != len(data):
        raise BencodeError("data contains trailing bytes")
    return value


def _text(value, what: str) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", "surrogateescape")
    if isinstance(value, str):
        return value
    raise BencodeError(f"{what}: expected a string, got {type(value).__name__}")


def _strings(value, what: str) -> list[str]:
    if not isinstance(value, list):
        raise BencodeError(f"{what}: expected a list, got {type(value).__name__}")
    return [_text(v, what) for v in value]


def overrides_announce(announce_list, announce: str) -> bool:
    """Whether the announce list should be preferred over a single announce URL."""
    return any(url != "" or announce == "" for tier in announce_list for url in tier)


def distinct_values(announce_list) -> list[str]:
    """Every URL in the announce list once, in order of first appearance."""
    return list(dict.fromkeys(url for tier in announce_list for url in tier))


def parse_node(value) -> str:
    """A DHT node from either a "host:port" string or a [host, port] pair."""
    if isinstance(value, (bytes, bytearray, str)):
        return _text(value, "node")
    if isinstance(value, list):
        if len(value) < 2 or not isinstance(value[0], (bytes, bytearray, str)) or not isinstance(value[1], int):
            raise BencodeError("node: expected a [host, port] pair")
        host = _text(value[0], "node host")
        if ":" in host:
            host = f"[{host}]"
        return f"{host}:{value[1]}"
    raise BencodeError(f"node: unsupported type: {type(value).__name__}")


def parse_url_list(value) -> list[str]:
    """A url-list given either as a list of strings or a single string."""
    if isinstance(value, list):
        return _strings(value, "url-list")
    return [_text(value, "url-list")]


@dataclass
class MetaInfo:
    """The contents of a .torrent file."""

    info_bytes: bytes = b""
    announce: str = ""
    announce_list: list[list[str]] = field(default_factory=list)
    nodes: list[str] = field(default_factory=list)
    creation_date: int = 0
    comment: str = ""
    created_by: str = ""
    encoding: str = ""
    url_list: list[str] = field(default_factory=list)

    def unmarshal_info(self) -> Info:
        return info_from_dict(bdecode(self.info_bytes))

    def hash_info_bytes(self) -> Hash:
        return hash_bytes(self.info_bytes)

    def to_bytes(self) -> bytes:
        d: dict = {}
        if self.info_bytes:
            d["info"] = _Raw(self.info_bytes)
        if self.announce:
            d["announce"] = self.announce
        if self.announce_list:
            d["announce-list"] = [list(tier) for tier in self.announce_list]
        if self.nodes:
            d["nodes"] = list(self.nodes)
        if self.creation_date:
            d["creation date"] = self.creation_date
        if self.comment:
            d["comment"] = self.comment
        if self.created_by:
            d["created by"] = self.created_by
        if self.encoding:
            d["encoding"] = self.encoding
        if self.url_list:
            d["url-list"] = list(self.url_list)
        return bencode(d)

    def write(self, stream: BinaryIO) -> None:
        stream.write(self.to_bytes())

    def set_defaults(self) -> None:
        """Fill in the fields a newly created torrent should carry."""
        self.comment = "yoloham"
        self.created_by = "torrentkit"
        self.creation_date = int(time.time())

    def magnet(self, display_name: str, info_hash: Hash) -> Magnet:
        return Magnet(
            info_hash=info_hash,
            trackers=distinct_values(self.upverted_announce_list()),
            display_name=display_name,
        )

    def upverted_announce_list(self) -> list[list[str]]:
        """The announce list, built from the single announce URL if needed."""
        if overrides_announce(self.announce_list, self.announce):
            return self.announce_list
        if self.announce:
            return [[self.announce]]
        return []


def _parse(data: bytes, allow_trailing: bool) -> MetaInfo:
    data = bytes(data)
    parser = _Parser(data)
    if not data or data[0] != ord("d"):
        raise BencodeError("metainfo must be a dictionary")
    mi = MetaInfo()
    pos = 1
    while parser._need(pos) != ord("e"):
        raw_key, pos = parser.string(pos)
        start = pos
        value, pos = parser.value(pos)
        key = raw_key.decode("utf-8", "surrogateescape")
        if key == "info":
            mi.info_bytes = data[start:pos]
        elif key == "announce":
            mi.announce = _text(value, key)
        elif key == "announce-list":
            if not isinstance(value, list):
                raise BencodeError("announce-list: expected a list")
            mi.announce_list = [_strings(tier, key) for tier in value]
        elif key == "nodes":
            if not isinstance(value, list):
                raise BencodeError("nodes: expected a list")
            mi.nodes = [parse_node(v) for v in value]
        elif key == "creation date":
            if isinstance(value, int):
                mi.creation_date = value
        elif key == "comment":
            mi.comment = _text(value, key)
        elif key == "created by":
            mi.created_by = _text(value, key)
        elif key == "encoding":
            mi.encoding = _text(value, key)
        elif key == "url-list":
            mi.url_list = parse_url_list(value)
    if not allow_trailing and pos + 1 != len(data):
        raise BencodeError("data contains trailing bytes")
    return mi


def metainfo_from_bytes(data: bytes) -> MetaInfo:
    """Decode a complete bencoded metainfo."""
    return _parse(data, allow_trailing=False)


def load(stream: BinaryIO) -> MetaInfo:
    """Read a metainfo from a binary stream."""
    return _parse(stream.read(), allow_trailing=True)


def load_from_file(filename) -> MetaInfo:
    with open(filename, "rb") as f:
        return load(f)