import pytest

from torrentkit.metainfo.info import Info
from torrentkit.misc import (
    ALL_PEER_NETWORKS,
    DEFAULT_CHUNK_SIZE,
    ChunkSpec,
    Network,
    Request,
    byte_region_exclusive_pieces,
    chunk_index_spec,
    clamp,
    default_peer_extension_bytes,
    loopback_listen_host,
    metadata_piece_size,
    new_request,
    new_request_from_message,
    parse_network_string,
    torrent_offset_request,
    torrent_request_offset,
    validate_info,
)
from torrentkit.peer_protocol.message import make_cancel_message
from torrentkit.peer_protocol.protocol import MessageType


@pytest.mark.parametrize(
    "tl, ps, off, expected",
    [
        (13, 5, 0, new_request(0, 0, 5)),
        (13, 5, 3, new_request(0, 0, 5)),
        (13, 5, 11, new_request(2, 0, 3)),
        (13, 5, 13, None),
    ],
)
def test_torrent_offset_request(tl, ps, off, expected):
    assert torrent_offset_request(tl, ps, DEFAULT_CHUNK_SIZE, off) == expected


def test_torrent_offset_request_negative():
    assert torrent_offset_request(13, 5, DEFAULT_CHUNK_SIZE, -1) is None


def test_torrent_request_offset():
    assert torrent_request_offset(13, 5, new_request(2, 1, 2)) == 11
    with pytest.raises(ValueError):
        torrent_request_offset(13, 5, new_request(2, 3, 1))


@pytest.mark.parametrize(
    "off, size, piece_size, begin, end",
    [(0, 2, 2, 0, 1), (1, 2, 2, 1, 1), (1, 4, 2, 1, 2)],
)
def test_byte_region_exclusive_pieces(off, size, piece_size, begin, end):
    assert byte_region_exclusive_pieces(off, size, piece_size) == (begin, end)


def test_default_extension_bytes():
    pex = default_peer_extension_bytes()
    assert pex.supports_dht()
    assert pex.supports_extended()
    assert pex.supports_fast()
    assert not pex.get_bit(63)
    with pytest.raises(IndexError):
        pex.get_bit(64)


def test_request_chunk_spec():
    r = new_request(3, 16, 32)
    assert r == Request(3, 16, 32)
    assert r.chunk_spec == ChunkSpec(16, 32)


def test_request_to_msg_marshals():
    msg = new_request(1, 2, 3).to_msg(MessageType.REQUEST)
    assert msg.marshal_binary() == (
        b"\x00\x00\x00\x0d\x06" b"\x00\x00\x00\x01" b"\x00\x00\x00\x02" b"\x00\x00\x00\x03"
    )


def test_new_request_from_message():
    assert new_request_from_message(make_cancel_message(1, 2, 3)) == new_request(1, 2, 3)
    r = new_request(4, 5, 6)
    assert new_request_from_message(r.to_msg(MessageType.REJECT)) == r


def test_new_request_from_message_rejects_other_types():
    with pytest.raises(ValueError):
        new_request_from_message(new_request(0, 0, 1).to_msg(MessageType.CHOKE))


def test_metadata_piece_size():
    assert metadata_piece_size(40000, 0) == 1 << 14
    assert metadata_piece_size(40000, 2) == 40000 - 2 * (1 << 14)


def test_chunk_index_spec():
    assert chunk_index_spec(0, 20, 8) == ChunkSpec(0, 8)
    assert chunk_index_spec(2, 20, 8) == ChunkSpec(16, 4)


def test_clamp():
    assert clamp(1, 0, 5) == 1
    assert clamp(1, 9, 5) == 5
    assert clamp(1, 3, 5) == 3
    with pytest.raises(ValueError):
        clamp(5, 3, 1)


def test_validate_info():
    assert validate_info(Info(piece_length=5, length=13, pieces=bytes(60))) is None
    assert validate_info(Info()) is None
    with pytest.raises(ValueError, match="pieces has invalid length"):
        validate_info(Info(piece_length=5, length=13, pieces=bytes(19)))
    with pytest.raises(ValueError, match="zero piece length"):
        validate_info(Info(length=5))
    with pytest.raises(ValueError, match="at odds"):
        validate_info(Info(piece_length=5, length=13, pieces=bytes(40)))


def test_loopback_listen_host():
    assert loopback_listen_host("tcp4") == "127.0.0.1"
    assert loopback_listen_host("udp6") == "::1"
    assert loopback_listen_host("tcp") == "::1"


def test_parse_network_string():
    assert parse_network_string("udp6") == Network(ipv6=True, udp=True)
    assert parse_network_string("tcp") == Network(tcp=True)


@pytest.mark.parametrize("s", ["tcp4", "tcp6", "udp4", "udp6"])
def test_network_string_round_trip(s):
    assert str(parse_network_string(s)) == s


def test_all_peer_networks():
    names = ["tcp4", "tcp6", "udp4", "udp6"]
    assert list(ALL_PEER_NETWORKS) == [parse_network_string(s) for s in names]