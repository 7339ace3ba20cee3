"""The info dictionary, its files and its pieces."""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass, field
from typing import Callable, Iterator

from torrentkit.metainfo.hash import HASH_SIZE, Hash

_READ_SIZE = 1 << 16


def _text(value, what: str) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", "surrogateescape")
    if isinstance(value, str):
        return value
    raise ValueError(f"{what}: expected a string, got {type(value).__name__}")


def _int(value, what: str) -> int:
    if isinstance(value, int):
        return int(value)
    raise ValueError(f"{what}: expected an integer, got {type(value).__name__}")


def _list(value, what: str) -> list:
    if isinstance(value, list):
        return value
    raise ValueError(f"{what}: expected a list, got {type(value).__name__}")


def _dict(value, what: str) -> dict:
    if not isinstance(value, dict):
        raise ValueError(f"{what}: expected a dictionary, got {type(value).__name__}")
    return {_text(k, "key"): v for k, v in value.items()}


@dataclass
class FileInfo:
    """One file inside a torrent."""

    length: int = 0
    path: list[str] = field(default_factory=list)

    def display_path(self, info: "Info") -> str:
        if info.is_dir():
            return "/".join(self.path)
        return info.name

    def offset(self, info: "Info") -> int:
        """Where this file's data starts in the torrent."""
        ret = 0
        mine = self.display_path(info)
        for fi in info.upverted_files():
            if fi.display_path(info) == mine:
                return ret
            ret += fi.length
        raise LookupError("not found")

    def to_dict(self) -> dict:
        return {"length": self.length, "path": list(self.path)}


def _walk_files(path: str) -> Iterator[tuple[str, int]]:
    with os.scandir(path) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            yield from _walk_files(entry.path)
        else:
            yield entry.path, entry.stat(follow_symlinks=False).st_size


@dataclass
class Info:
    """The info dictionary of a torrent."""

    piece_length: int = 0
    pieces: bytes = b""
    name: str = ""
    length: int = 0
    private: bool | None = None
    source: str = ""
    files: list[FileInfo] = field(default_factory=list)

    def build_from_file_path(self, root: str) -> None:
        """Set the name, files and pieces from a file or directory tree."""
        self.name = os.path.basename(os.path.normpath(root))
        self.files = []
        if os.path.isdir(root):
            for path, size in _walk_files(root):
                rel = os.path.relpath(path, root)
                self.files.append(FileInfo(length=size, path=rel.split(os.sep)))
        else:
            self.length = os.stat(root).st_size
        self.files.sort(key=lambda fi: "/".join(fi.path))
        self.generate_pieces(lambda fi: open(os.path.join(root, *fi.path), "rb"))

    def _data_chunks(self, open_file: Callable) -> Iterator[bytes]:
        for fi in self.upverted_files():
            reader = open_file(fi)
            try:
                remaining = fi.length
                while remaining > 0:
                    chunk = reader.read(min(remaining, _READ_SIZE))
                    if not chunk:
                        raise EOFError(f"error copying {fi}: unexpected EOF")
                    remaining -= len(chunk)
                    yield chunk
            finally:
                close = getattr(reader, "close", None)
                if close is not None:
                    close()

    def generate_pieces(self, open_file: Callable) -> None:
        """Hash the torrent data, read through ``open_file(FileInfo)``, into pieces."""
        if self.piece_length == 0:
            raise ValueError("piece length must be non-zero")
        pieces = bytearray()
        hasher = hashlib.sha1()
        filled = 0
        for chunk in self._data_chunks(open_file):
            view = memoryview(chunk)
            while view:
                take = min(len(view), self.piece_length - filled)
                hasher.update(view[:take])
                filled += take
                view = view[take:]
                if filled == self.piece_length:
                    pieces += hasher.digest()
                    hasher = hashlib.sha1()
                    filled = 0
        if filled:
            pieces += hasher.digest()
        self.pieces = bytes(pieces)

    def total_length(self) -> int:
        if self.is_dir():
            return sum(fi.length for fi in self.files)
        return self.length

    def num_pieces(self) -> int:
        return len(self.pieces) // HASH_SIZE

    def is_dir(self) -> bool:
        return len(self.files) != 0

    def upverted_files(self) -> list[FileInfo]:
        """The files, with a single-file torrent shown as one unnamed file."""
        if not self.files:
            return [FileInfo(length=self.length, path=[])]
        return self.files

    def piece(self, index: int) -> "Piece":
        return Piece(self, index)

    def to_dict(self) -> dict:
        """The dictionary to bencode, with empty optional keys left out."""
        d: dict = {
            "piece length": self.piece_length,
            "pieces": bytes(self.pieces),
            "name": self.name,
        }
        if self.length:
            d["length"] = self.length
        if self.private is not None:
            d["private"] = int(self.private)
        if self.source:
            d["source"] = self.source
        if self.files:
            d["files"] = [fi.to_dict() for fi in self.files]
        return d


def info_from_dict(d) -> Info:
    """Build an Info from a decoded info dictionary."""
    fields = _dict(d, "info")
    info = Info()
    if "piece length" in fields:
        info.piece_length = _int(fields["piece length"], "piece length")
    if "pieces" in fields:
        pieces = fields["pieces"]
        if not isinstance(pieces, (bytes, bytearray)):
            raise ValueError("pieces: expected a string")
        info.pieces = bytes(pieces)
    if "name" in fields:
        info.name = _text(fields["name"], "name")
    if "length" in fields:
        info.length = _int(fields["length"], "length")
    if "private" in fields:
        info.private = bool(_int(fields["private"], "private"))
    if "source" in fields:
        info.source = _text(fields["source"], "source")
    if "files" in fields:
        for entry in _list(fields["files"], "files"):
            fd = _dict(entry, "file")
            info.files.append(
                FileInfo(
                    length=_int(fd.get("length", 0), "length"),
                    path=[_text(p, "path") for p in _list(fd.get("path", []), "path")],
                )
            )
    return info


@dataclass(frozen=True)
class Piece:
    """One piece of a torrent's data."""

    info: Info
    index: int

    def length(self) -> int:
        if self.index == self.info.num_pieces() - 1:
            return self.info.total_length() - self.index * self.info.piece_length
        return self.info.piece_length

    def offset(self) -> int:
        return self.index * self.info.piece_length

    def hash(self) -> Hash:
        start = self.index * HASH_SIZE
        return Hash(self.info.pieces[start : start + HASH_SIZE])