"""Torrent metainfo: bencoding, info dictionaries, hashes, pieces and magnet links."""