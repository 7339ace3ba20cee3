import io
import socket
import sys
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from torrentkit.mse.mse import (
    ALL_SUPPORTED_CRYPTO,
    HandshakeError,
    default_crypto_selector,
    initiate_handshake,
    receive_handshake,
)
from torrentkit.mse.mse_cli import main


def _read_exactly(stream, n):
    buf = bytearray()
    while len(buf) < n:
        chunk = stream.read(n - len(buf))
        if not chunk:
            break
        buf += chunk
    return bytes(buf)


def _free_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def stdio(monkeypatch):
    def setup(stdin_data: bytes):
        out = io.BytesIO()
        err = io.StringIO()
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(stdin_data)))
        monkeypatch.setattr(sys, "stdout", io.TextIOWrapper(out))
        monkeypatch.setattr(sys, "stderr", err)
        return out, err

    return setup


@pytest.mark.parametrize("crypto", [1, 2, 3])
def test_dial_streams_both_ways(stdio, crypto):
    data = b"hello world"
    reply = b"yo dawg"
    out, _ = stdio(data)
    listener = socket.socket()
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    listener.settimeout(20)
    port = listener.getsockname()[1]

    def server():
        sock, _ = listener.accept()
        sock.settimeout(20)
        with sock, sock.makefile("rwb", buffering=0) as conn:
            stream, _ = receive_handshake(conn, [b"secret"], default_crypto_selector)
            got = _read_exactly(stream, len(b"hi ") + len(data))
            stream.write(reply)
            sock.shutdown(socket.SHUT_RDWR)
        return got

    with listener, ThreadPoolExecutor(1) as ex:
        fut = ex.submit(server)
        code = main(
            [
                "--crypto-method",
                str(crypto),
                "dial",
                "tcp4",
                f"127.0.0.1:{port}",
                "secret",
                "--initial-payload",
                "hi ",
            ]
        )
        got = fut.result(timeout=30)
    assert code == 0
    assert got == b"hi " + data
    assert out.getvalue() == reply


def test_dial_refused(stdio):
    _, err = stdio(b"")
    assert main(["dial", "tcp4", f"127.0.0.1:{_free_port()}", "secret"]) == 1
    assert "fatal error" in err.getvalue()


def _connect_with_retry(port):
    deadline = time.monotonic() + 20
    while True:
        try:
            return socket.create_connection(("127.0.0.1", port), timeout=20)
        except OSError:
            if time.monotonic() > deadline:
                raise
            time.sleep(0.05)


def test_listen_streams_both_ways(stdio):
    data = b"hello world"
    reply = b"yo dawg"
    out, _ = stdio(reply)
    port = _free_port()
    with ThreadPoolExecutor(1) as ex:
        fut = ex.submit(main, ["listen", "tcp4", f"127.0.0.1:{port}", "nope", "secret"])
        sock = _connect_with_retry(port)
        with sock, sock.makefile("rwb", buffering=0) as conn:
            stream, _ = initiate_handshake(conn, b"secret", b"", ALL_SUPPORTED_CRYPTO)
            stream.write(data)
            got = _read_exactly(stream, len(reply))
            sock.shutdown(socket.SHUT_RDWR)
        code = fut.result(timeout=30)
    assert code == 0
    assert got == reply
    assert out.getvalue() == data


def test_listen_rejects_unknown_key(stdio):
    _, err = stdio(b"")
    port = _free_port()
    with ThreadPoolExecutor(1) as ex:
        fut = ex.submit(main, ["listen", "tcp4", f"127.0.0.1:{port}", "secret"])
        sock = _connect_with_retry(port)
        with sock, sock.makefile("rwb", buffering=0) as conn:
            with pytest.raises(HandshakeError):
                initiate_handshake(conn, b"placeholder", b"", ALL_SUPPORTED_CRYPTO)
        code = fut.result(timeout=30)
    assert code == 1
    assert "fatal error" in err.getvalue()