import io
import os
import socket
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from torrentkit.mse.mse import (
    ALL_SUPPORTED_CRYPTO,
    CryptoMethod,
    HandshakeError,
    MseStream,
    NoSecretKeyMatch,
    default_crypto_selector,
    initiate_handshake,
    read_until,
    receive_handshake,
    suffix_match_len,
)


@pytest.fixture
def conns():
    a, b = socket.socketpair()
    a.settimeout(20)
    b.settimeout(20)
    fa = a.makefile("rwb", buffering=0)
    fb = b.makefile("rwb", buffering=0)
    yield (a, fa), (b, fb)
    for f in (fa, fb):
        f.close()
    for s in (a, b):
        s.close()


def _read_exactly(stream: MseStream, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        chunk = stream.read(n - len(buf))
        if not chunk:
            break
        buf += chunk
    return bytes(buf)


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ("hello", "world", 0),
        ("hello", "lo", 2),
        ("hello", "llo", 3),
        ("hello", "hell", 0),
        ("hello", "helloooo!", 5),
        ("hello", "lol!", 2),
        ("hello", "mondo", 0),
        ("mongo", "webscale", 0),
        ("sup", "person", 1),
    ],
)
def test_suffix_match_len(a, b, expected):
    assert suffix_match_len(a.encode(), b.encode()) == expected


def test_read_until_found():
    r = io.BytesIO(b"feakjfeafeafegbaabc00")
    read_until(r, b"abc")
    assert len(r.read()) == 2


def test_read_until_eof():
    r = io.BytesIO(b"feakjfeafeafegbaadc00")
    with pytest.raises(EOFError):
        read_until(r, b"abc")
    assert r.read() == b""


def test_default_crypto_selector():
    assert default_crypto_selector(ALL_SUPPORTED_CRYPTO) == CryptoMethod.PLAINTEXT
    assert default_crypto_selector(CryptoMethod.PLAINTEXT) == CryptoMethod.PLAINTEXT
    assert default_crypto_selector(CryptoMethod.RC4) == CryptoMethod.RC4


SELECTORS = {
    "default": default_crypto_selector,
    "plaintext": lambda provided: CryptoMethod.PLAINTEXT,
    "rc4": lambda provided: CryptoMethod.RC4,
}


@pytest.mark.parametrize("ia", [b"jump the gun, ", None, b""])
@pytest.mark.parametrize("selector_name", sorted(SELECTORS))
def test_handshake(conns, ia, selector_name):
    select = SELECTORS[selector_name]
    (_, fa), (_, fb) = conns
    a_data = b"hello world"
    b_data = b"yo dawg"

    def initiator():
        stream, method = initiate_handshake(fa, b"yep", ia, ALL_SUPPORTED_CRYPTO)
        stream.write(a_data)
        return method, _read_exactly(stream, len(b_data))

    with ThreadPoolExecutor(1) as ex:
        fut = ex.submit(initiator)
        stream, method = receive_handshake(fb, iter([b"nope", b"yep", b"maybe"]), select)
        received = _read_exactly(stream, len(ia or b"") + len(a_data))
        stream.write(b_data)
        a_method, a_received = fut.result(timeout=30)
    expected = select(ALL_SUPPORTED_CRYPTO)
    assert method == expected
    assert a_method == expected
    assert received == (ia or b"") + a_data
    assert a_received == b_data


@pytest.mark.parametrize("crypto", [CryptoMethod.RC4, CryptoMethod.PLAINTEXT])
def test_stream_both_ways(conns, crypto):
    (_, fa), (_, fb) = conns
    ia = os.urandom(0x100)
    a = os.urandom(8192)
    b = os.urandom(8192)

    def read_and_write(stream, n, data):
        t = threading.Thread(target=stream.write, args=(data,))
        t.start()
        got = _read_exactly(stream, n)
        t.join()
        return got

    def initiator():
        stream, _ = initiate_handshake(fa, b"cats", ia, crypto)
        return read_and_write(stream, len(b), a)

    with ThreadPoolExecutor(1) as ex:
        fut = ex.submit(initiator)
        stream, method = receive_handshake(fb, [b"cats"], lambda provided: crypto)
        br = read_and_write(stream, len(ia) + len(a), b)
        ar = fut.result(timeout=60)
    assert method == crypto
    assert ar == b
    assert br[: len(ia)] == ia
    assert br[len(ia) :] == a


class _RandomReader:
    def __init__(self):
        self.n = 0

    def read(self, n):
        data = os.urandom(n)
        self.n += len(data)
        return data

    def write(self, data):
        return len(data)


def test_receive_random_data():
    tr = _RandomReader()
    with pytest.raises(HandshakeError):
        receive_handshake(tr, None, default_crypto_selector)
    # Y, then the most padding read before giving up on synchronizing.
    assert tr.n == 96 + 532


def test_no_secret_key_match(conns):
    (_, fa), (sb, fb) = conns
    with ThreadPoolExecutor(1) as ex:
        fut = ex.submit(initiate_handshake, fa, b"yep", b"", ALL_SUPPORTED_CRYPTO)
        with pytest.raises(NoSecretKeyMatch):
            receive_handshake(fb, [b"nope", b"maybe"], default_crypto_selector)
        sb.shutdown(socket.SHUT_RDWR)
        with pytest.raises(HandshakeError):
            fut.result(timeout=30)


def test_receiver_chooses_unsupported_method(conns):
    (_, fa), (_, fb) = conns
    with ThreadPoolExecutor(1) as ex:
        fut = ex.submit(initiate_handshake, fa, b"yep", b"", CryptoMethod.RC4)
        _, method = receive_handshake(fb, [b"yep"], lambda provided: CryptoMethod.PLAINTEXT)
        with pytest.raises(HandshakeError, match="unsupported method"):
            fut.result(timeout=30)
    assert method == CryptoMethod.PLAINTEXT


def test_initial_payload_too_large():
    with pytest.raises(HandshakeError, match="too large"):
        initiate_handshake(io.BytesIO(), b"yep", bytes(0x10000), ALL_SUPPORTED_CRYPTO)