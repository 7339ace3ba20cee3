import io

import pytest

from torrentkit.metainfo.hash import hash_bytes, new_hash_from_hex
from torrentkit.metainfo.info import FileInfo, Info
from torrentkit.metainfo.metainfo import (
    BencodeError,
    MetaInfo,
    bdecode,
    bencode,
    distinct_values,
    load,
    load_from_file,
    metainfo_from_bytes,
    overrides_announce,
    parse_node,
    parse_url_list,
)


def test_unmarshal_cases():
    assert metainfo_from_bytes(b"de") == MetaInfo()
    assert metainfo_from_bytes(b"d4:infodee") == MetaInfo(info_bytes=b"de")
    with pytest.raises(BencodeError):
        metainfo_from_bytes(b"d4:infoe")
    with pytest.raises(BencodeError):
        metainfo_from_bytes(b"d4:infoabce")


def test_marshal_info():
    assert bencode(Info().to_dict()) == b"d4:name0:12:piece lengthi0e6:pieces0:e"


def test_marshal_metainfo_nodes():
    assert MetaInfo(info_bytes=b"de").to_bytes() == b"d4:infodee"
    mi = MetaInfo(nodes=["1.2.3.4:5555", "not a hostport"], info_bytes=b"d2:hi5:theree")
    assert mi.to_bytes() == b"d4:infod2:hi5:theree5:nodesl12:1.2.3.4:555514:not a hostportee"


def test_unmarshal_bad_nodes():
    with pytest.raises(BencodeError):
        metainfo_from_bytes(b"d5:nodesl1:ai42eee")


def test_empty_info_bytes_round_trip():
    buf = io.BytesIO()
    MetaInfo(url_list=["hello"]).write(buf)
    mi = metainfo_from_bytes(buf.getvalue())
    assert mi.url_list == ["hello"]
    assert mi.info_bytes == b""


def test_string_creation_date_ignored():
    mi = metainfo_from_bytes(b"d13:creation date23:29.03.2018 22:18:14 UTC4:infodee")
    assert mi.creation_date == 0
    assert mi.info_bytes == b"de"


def test_url_list_as_list_and_string():
    assert len(metainfo_from_bytes(b"d8:url-listl1:a1:b1:cee").url_list) == 3
    assert metainfo_from_bytes(b"d8:url-list5:helloe").url_list == ["hello"]
    with pytest.raises(BencodeError):
        parse_url_list(5)


def test_nodes_list_strings():
    nodes = ["udp://tracker.openbittorrent.com:80", "udp://tracker.openbittorrent.com:80"]
    mi = metainfo_from_bytes(bencode({"nodes": nodes}))
    assert mi.nodes == nodes


def test_nodes_list_pairs():
    raw = bencode({"nodes": [["185.34.3.132", 5680], ["185.34.3.103", 12340], ["94.209.253.165", 47232]]})
    assert metainfo_from_bytes(raw).nodes == [
        "185.34.3.132:5680",
        "185.34.3.103:12340",
        "94.209.253.165:47232",
    ]


def test_parse_node_ipv6_and_errors():
    assert parse_node([b"::1", 6881]) == "[::1]:6881"
    with pytest.raises(BencodeError):
        parse_node(42)
    with pytest.raises(BencodeError):
        parse_node([b"host"])


def test_full_round_trip():
    mi = MetaInfo(
        info_bytes=b"d4:name1:xe",
        announce="http://a.example.com/announce",
        announce_list=[["http://a.example.com/announce"], ["udp://b.example.com:80"]],
        nodes=["1.2.3.4:5555"],
        creation_date=1234,
        comment="c",
        created_by="me",
        encoding="UTF-8",
        url_list=["http://w.example.com/"],
    )
    assert metainfo_from_bytes(mi.to_bytes()) == mi


def test_info_round_trip_preserves_bytes():
    info = Info(piece_length=5, pieces=bytes(60), name="greeting", length=13)
    mi = MetaInfo(info_bytes=bencode(info.to_dict()))
    decoded = mi.unmarshal_info()
    assert decoded == info
    assert bencode(decoded.to_dict()) == mi.info_bytes
    assert mi.hash_info_bytes() == hash_bytes(mi.info_bytes)


def test_multi_file_info_round_trip():
    info = Info(piece_length=4, pieces=bytes(20), name="d", files=[FileInfo(3, ["a", "b"])], private=False)
    mi = metainfo_from_bytes(MetaInfo(info_bytes=bencode(info.to_dict())).to_bytes())
    assert mi.unmarshal_info() == info


def test_magnet_from_metainfo():
    mi = MetaInfo(
        announce="udp://tracker.openbittorrent.com:80",
        announce_list=[
            ["udp://tracker.openbittorrent.com:80"],
            ["udp://tracker.openbittorrent.com:80", "udp://tracker.publicbt.com:80"],
        ],
    )
    h = new_hash_from_hex("51340689c960f0778a4387aef9b4b52fd08390cd")
    m = mi.magnet("bootstrap.dat", h)
    assert m.display_name == "bootstrap.dat"
    assert m.info_hash == h
    assert m.trackers == ["udp://tracker.openbittorrent.com:80", "udp://tracker.publicbt.com:80"]


def test_upverted_announce_list():
    assert MetaInfo(announce="x").upverted_announce_list() == [["x"]]
    assert MetaInfo().upverted_announce_list() == []
    assert MetaInfo(announce="x", announce_list=[["y"]]).upverted_announce_list() == [["y"]]
    assert MetaInfo(announce="x", announce_list=[[""]]).upverted_announce_list() == [["x"]]


def test_overrides_and_distinct():
    assert overrides_announce([[""]], "") is True
    assert overrides_announce([], "") is False
    assert distinct_values([["a", "b"], ["a", "c"]]) == ["a", "b", "c"]


def test_load_from_file(tmp_path):
    path = tmp_path / "t.torrent"
    mi = MetaInfo(info_bytes=b"de", comment="hi")
    path.write_bytes(mi.to_bytes())
    assert load_from_file(path) == mi
    assert load(io.BytesIO(mi.to_bytes() + b"junk")) == mi


def test_set_defaults():
    mi = MetaInfo()
    mi.set_defaults()
    assert mi.comment == "yoloham"
    assert mi.creation_date > 0


def test_bencode_round_trip_and_errors():
    value = {b"a": [1, -2, b"x"], b"b": {b"c": b""}}
    assert bdecode(bencode(value)) == value
    with pytest.raises(BencodeError):
        bdecode(b"i1eextra")
    with pytest.raises(BencodeError):
        bencode(1.5)
    with pytest.raises(BencodeError):
        bdecode(b"5:ab")