"""Command line tool that dials or listens and streams stdin/stdout over MSE."""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import threading

from torrentkit.mse.mse import (
    ALL_SUPPORTED_CRYPTO,
    CryptoMethod,
    HandshakeError,
    MseStream,
    default_crypto_selector,
    initiate_handshake,
    receive_handshake,
)

logger = logging.getLogger(__name__)

_CHUNK = 1 << 16


def _split_host_port(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


def _family(network: str) -> int:
    if network.endswith("4"):
        return socket.AF_INET
    if network.endswith("6"):
        return socket.AF_INET6
    return socket.AF_UNSPEC


def _is_unix(network: str) -> bool:
    return network.startswith("unix")


def _dial(network: str, address: str) -> socket.socket:
    if _is_unix(network):
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.connect(address)
        return sock
    host, port = _split_host_port(address)
    last_error: OSError | None = None
    for family, kind, proto, _, sockaddr in socket.getaddrinfo(host, port, _family(network), socket.SOCK_STREAM):
        sock = socket.socket(family, kind, proto)
        try:
            sock.connect(sockaddr)
            return sock
        except OSError as exc:
            sock.close()
            last_error = exc
    raise last_error or OSError(f"no addresses for {address!r}")


def _listen(network: str, address: str) -> socket.socket:
    if _is_unix(network):
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.bind(address)
    else:
        host, port = _split_host_port(address)
        family, kind, proto, _, sockaddr = socket.getaddrinfo(
            host or None, port, _family(network), socket.SOCK_STREAM, 0, socket.AI_PASSIVE
        )[0]
        sock = socket.socket(family, kind, proto)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
    sock.listen(1)
    return sock


def _copy(read, write, flush=None) -> int:
    total = 0
    while chunk := read(_CHUNK):
        write(chunk)
        if flush is not None:
            flush()
        total += len(chunk)
    return total


def _stream(rw: MseStream) -> None:
    stdin = sys.stdin.buffer
    stdout = sys.stdout.buffer

    def outgoing() -> None:
        try:
            logger.info("sent %d bytes", _copy(getattr(stdin, "read1", stdin.read), rw.write))
        except OSError as exc:
            logger.info("sending stopped: %s", exc)

    def incoming() -> None:
        try:
            logger.info("received %d bytes", _copy(rw.read, stdout.write, stdout.flush))
        except OSError as exc:
            logger.info("receiving stopped: %s", exc)

    threads = [threading.Thread(target=outgoing, daemon=True), threading.Thread(target=incoming, daemon=True)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


def _run(args: argparse.Namespace) -> None:
    if args.command == "dial":
        with _dial(args.network, args.address) as sock, sock.makefile("rwb", buffering=0) as conn:
            try:
                rw, _ = initiate_handshake(
                    conn,
                    args.secret_key.encode(),
                    args.initial_payload.encode(),
                    CryptoMethod(args.crypto_method),
                )
            except HandshakeError as exc:
                raise HandshakeError(f"initiating handshake: {exc}") from exc
            _stream(rw)
    elif args.command == "listen":
        with _listen(args.network, args.address) as listener:
            sock, _ = listener.accept()
        with sock, sock.makefile("rwb", buffering=0) as conn:
            rw, _ = receive_handshake(
                conn, [k.encode() for k in args.secret_keys], default_crypto_selector
            )
            _stream(rw)


def main(argv=None) -> int:
    """Run the tool; returns the exit status."""
    parser = argparse.ArgumentParser(prog="mse", description="Stream stdin and stdout over an MSE connection.")
    parser.add_argument("--crypto-method", type=int, default=int(ALL_SUPPORTED_CRYPTO))
    sub = parser.add_subparsers(dest="command")
    dial = sub.add_parser("dial", help="connect and initiate the handshake")
    dial.add_argument("network")
    dial.add_argument("address")
    dial.add_argument("secret_key")
    dial.add_argument("--initial-payload", default="")
    listen = sub.add_parser("listen", help="accept one connection and receive the handshake")
    listen.add_argument("network")
    listen.add_argument("address")
    listen.add_argument("secret_keys", nargs="*")
    args = parser.parse_args(argv)
    try:
        _run(args)
    except (OSError, HandshakeError, ValueError) as exc:
        print(f"fatal error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())