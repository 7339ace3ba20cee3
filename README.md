# torrentkit

Building blocks for BitTorrent software, in pure Python with no third-party
dependencies:

- **Peer wire protocol** (`torrentkit.peer_protocol`): message types
  (`MessageType`), handshake extension bits (`PeerExtensionBits`), PEX flags,
  message encoding (`Message.marshal_binary`), a streaming `Decoder`, the
  BEP 10 `ExtendedHandshakeMessage`, and the initial peer `handshake`.
- **Metainfo** (`torrentkit.metainfo`): `.torrent` files (`MetaInfo`,
  `load`, `load_from_file`), info dictionaries (`Info`, `FileInfo`, `Piece`),
  piece hashing, info hashes (`Hash`) and magnet links (`Magnet`,
  `parse_magnet_uri`), with a small bencode codec (`bencode`, `bdecode`).
- **Message Stream Encryption** (`torrentkit.mse`): `initiate_handshake` and
  `receive_handshake`, giving an `MseStream` in plaintext or RC4 afterwards.
- **IP blocklists** (`torrentkit.iplist`): P2P plaintext blocklists
  (`IPList`, `new_from_reader`), CIDR lists (`parse_cidr_list_reader`), and a
  compact packed format (`write_packed`, `PackedIPList`, `mmap_packed_file`)
  that is searched in place and can be memory-mapped.
- Helpers: `torrentkit.mmap_span.MMapSpan` (reads and writes at offsets
  across several buffers), `torrentkit.logonce` (`OnceWriter`, a writer that
  drops repeated writes, and `stderr_logger`) and `torrentkit.misc` (request
  and chunk arithmetic, network strings, default extension bits).

## Installation

```
pip install torrentkit
```

For running the tests:

```
pip install "torrentkit[test]"
pytest
```

## Library examples

Parse a magnet link and print it back:

```python
from torrentkit.metainfo.magnet import parse_magnet_uri

magnet = parse_magnet_uri("magnet:?xt=urn:btih:51340689c960f0778a4387aef9b4b52fd08390cd")
print(str(magnet))
```

Load a torrent file and compute its info hash:

```python
from torrentkit.metainfo.metainfo import load_from_file

mi = load_from_file("example.torrent")
info = mi.unmarshal_info()
print(mi.hash_info_bytes().hex_string(), info.num_pieces(), info.total_length())
```

Build an info dictionary from files on disk:

```python
from torrentkit.metainfo.info import Info

info = Info(piece_length=256 * 1024)
info.build_from_file_path("some/directory")
```

Encode and decode peer wire messages:

```python
import io

from torrentkit.peer_protocol.decoder import Decoder
from torrentkit.peer_protocol.message import make_cancel_message

wire = make_cancel_message(0, 0, 16384).marshal_binary()
for msg in Decoder(io.BytesIO(wire), max_length=1 << 17):
    print(msg.type, msg.request_spec())
```

`Decoder.decode` raises `EOFError` when the stream ends cleanly between
messages and `DecodeError` for malformed or over-long ones.

Check an address against a blocklist:

```python
from torrentkit.iplist.iplist import new_from_reader

with open("blocklist.p2p") as stream:
    blocklist = new_from_reader(stream)
print(blocklist.num_ranges())
print(blocklist.lookup("1.2.8.2"))
```

`lookup` returns the matching `Range` or `None`.

## Command-line tools

### torrentkit-iplist

Reads a P2P plaintext blocklist from standard input, reports the number of
ranges loaded on standard error, and prints, for each address given on the
command line, the range that holds it or that it was not found.

```
torrentkit-iplist 1.2.8.2 86.59.95.195 < blocklist.p2p
```

### torrentkit-pack-blocklist

Reads a P2P plaintext blocklist from standard input and writes the packed
binary form to standard output. The result can be opened with
`torrentkit.iplist.packed.mmap_packed_file`.

```
torrentkit-pack-blocklist < blocklist.p2p > blocklist.packed
```

### torrentkit-mse

Runs a Message Stream Encryption handshake over TCP (or a Unix socket, with
network `unix`) and then copies standard input to the peer and the peer's
data to standard output. `--crypto-method` sets the methods offered when
dialing (1 plaintext, 2 RC4, 3 both; the default is 3).

Wait for one connection, accepting any of the listed secret keys:

```
torrentkit-mse listen tcp 127.0.0.1:7000 secret
```

Connect and initiate the handshake with a secret key, optionally sending an
initial payload:

```
torrentkit-mse dial tcp 127.0.0.1:7000 secret --initial-payload hello
```

## What this package does not do

torrentkit is a set of parts, not a torrent client. It does not manage peer
connections or piece selection, talk to trackers, take part in the DHT,
exchange metadata with peers, or store downloaded data to disk; there is no
command that downloads or seeds a torrent.