"""BitTorrent building blocks: peer protocol, metainfo, stream encryption, blocklists and helpers."""

__version__ = "0.1.0"