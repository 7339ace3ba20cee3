"""Message stream encryption: obfuscated handshakes for peer connections."""

from __future__ import annotations

import enum
import hashlib
import queue
import secrets
import struct
import threading
from collections import Counter
from typing import Callable, Iterable

MAX_PAD_LEN = 512

# The 768-bit prime and generator fixed by the protocol.
P = int(
    "FFFFFFFFFFFFFFFFC90FDAA22168C234C4C6628B80DC1CD129024E088A67CC74020BBEA63B139B22"
    "514A08798E3404DDEF9519B3CD3A431B302B0A6DF25F14374FE1356D6D51C245E485B576625E7EC6"
    "F44C42E9A63A36210000000000090563",
    16,
)
G = 2

_KEY_LEN = 96
_REQ1 = b"req1"
_REQ2 = b"req2"
_REQ3 = b"req3"
# The verification constant, all zeroes.
_VC = bytes(8)

# Counts of crypto_provides values seen by receivers, keyed by hex value.
crypto_provides_count: Counter = Counter()


class CryptoMethod(enum.IntFlag):
    """Stream encryption chosen after the obfuscated header."""

    PLAINTEXT = 1
    RC4 = 2


ALL_SUPPORTED_CRYPTO = CryptoMethod.PLAINTEXT | CryptoMethod.RC4

CryptoSelector = Callable[[CryptoMethod], CryptoMethod]


class HandshakeError(Exception):
    """The encryption handshake failed."""


class NoSecretKeyMatch(HandshakeError):
    """None of the receiver's secret keys matched the initiator's."""


class _RC4:
    def __init__(self, key: bytes) -> None:
        s = list(range(256))
        j = 0
        for i in range(256):
            j = (j + s[i] + key[i % len(key)]) & 0xFF
            s[i], s[j] = s[j], s[i]
        self._s = s
        self._i = 0
        self._j = 0

    def crypt(self, data: bytes) -> bytes:
        s = self._s
        i, j = self._i, self._j
        out = bytearray(data)
        for k, byte in enumerate(out):
            i = (i + 1) & 0xFF
            j = (j + s[i]) & 0xFF
            s[i], s[j] = s[j], s[i]
            out[k] = byte ^ s[(s[i] + s[j]) & 0xFF]
        self._i, self._j = i, j
        return bytes(out)


def _sha1(*parts: bytes) -> bytes:
    h = hashlib.sha1()
    for part in parts:
        h.update(part)
    return h.digest()


def _xor(a: bytes, b: bytes) -> bytes:
    return bytes(x ^ y for x, y in zip(a, b))


def _new_encrypt(initer: bool, s: bytes, skey: bytes) -> _RC4:
    cipher = _RC4(_sha1(b"keyA" if initer else b"keyB", s, skey))
    cipher.crypt(bytes(1024))
    return cipher


def _new_pad_len() -> int:
    return secrets.randbelow(MAX_PAD_LEN + 1)


def _read_exact(r, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        chunk = r.read(n - len(buf))
        if not chunk:
            raise EOFError("unexpected EOF")
        buf += chunk
    return bytes(buf)


def _write_all(w, data: bytes) -> None:
    view = memoryview(bytes(data))
    while view:
        n = w.write(view)
        if n is None:
            n = len(view)
        if n == 0:
            raise OSError("short write")
        view = view[n:]
    flush = getattr(w, "flush", None)
    if flush is not None:
        flush()


class _LimitedReader:
    def __init__(self, r, limit: int) -> None:
        self._r = r
        self._remaining = limit

    def read(self, n: int) -> bytes:
        if self._remaining <= 0:
            return b""
        data = self._r.read(min(n, self._remaining))
        self._remaining -= len(data)
        return data


class _CipherReader:
    def __init__(self, cipher: _RC4, r) -> None:
        self._cipher = cipher
        self._r = r

    def read(self, n: int) -> bytes:
        return self._cipher.crypt(self._r.read(n))


class _CipherWriter:
    def __init__(self, cipher: _RC4, w) -> None:
        self._cipher: _RC4 | None = cipher
        self._w = w

    def write(self, data: bytes) -> int:
        if self._cipher is None:
            raise OSError("cipher stream is out of step after a failed write")
        encrypted = self._cipher.crypt(bytes(data))
        try:
            _write_all(self._w, encrypted)
        except BaseException:
            # The cipher has advanced beyond what the peer received.
            self._cipher = None
            raise
        return len(data)


class _PrefixReader:
    def __init__(self, prefix: bytes, r) -> None:
        self._prefix = bytes(prefix)
        self._r = r

    def read(self, n: int) -> bytes:
        if self._prefix:
            out, self._prefix = self._prefix[:n], self._prefix[n:]
            return out
        return self._r.read(n)


class MseStream:
    """The connection as seen after the handshake."""

    def __init__(self, reader, writer) -> None:
        self._reader = reader
        self._writer = writer

    def read(self, n: int) -> bytes:
        """Up to ``n`` bytes; empty at end of stream."""
        return self._reader.read(n)

    def write(self, data: bytes) -> int:
        _write_all(self._writer, data)
        return len(data)


class _PostWriter:
    """Writes posted data in the background so that reading never waits on it."""

    def __init__(self, conn) -> None:
        self._conn = conn
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self.error: BaseException | None = None
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while (data := self._queue.get()) is not None:
            try:
                _write_all(self._conn, data)
            except (OSError, ValueError) as exc:
                self.error = exc
                return

    def post(self, data: bytes) -> None:
        if self.error is not None:
            raise HandshakeError(f"error writing: {self.error}") from self.error
        self._queue.put(bytes(data))

    def finish(self) -> None:
        self._queue.put(None)
        self._thread.join()


def suffix_match_len(a: bytes, b: bytes) -> int:
    """The length of the longest prefix of ``b`` that ends ``a``."""
    b = b[: len(a)]
    for i in range(len(b), 0, -1):
        if a[len(a) - i :] == b[:i]:
            return i
    return 0


def read_until(r, b: bytes) -> None:
    """Read from ``r`` until ``b`` has been seen; EOFError if it never is."""
    window = bytearray(len(b))
    matched = 0
    while True:
        window[matched:] = _read_exact(r, len(b) - matched)
        matched = suffix_match_len(bytes(window), b)
        if matched == len(b):
            return
        window[:matched] = window[len(window) - matched :]


def default_crypto_selector(provided: CryptoMethod) -> CryptoMethod:
    """Prefer plaintext, for speed, when the initiator offers it."""
    if provided & CryptoMethod.PLAINTEXT:
        return CryptoMethod.PLAINTEXT
    return CryptoMethod.RC4


def _handshake(conn, steps):
    writer = _PostWriter(conn)
    try:
        try:
            x = int.from_bytes(secrets.token_bytes(20), "big")
            writer.post(pow(G, x, P).to_bytes(_KEY_LEN, "big"))
            try:
                y = int.from_bytes(_read_exact(conn, _KEY_LEN), "big")
            except (EOFError, OSError) as exc:
                raise HandshakeError(f"error while establishing secret: error reading Y: {exc}") from exc
            s = pow(y, x, P).to_bytes(_KEY_LEN, "big")
            writer.post(secrets.token_bytes(_new_pad_len()))
            result = steps(writer, s)
        except (EOFError, OSError) as exc:
            raise HandshakeError(f"handshake failed: {exc}") from exc
    finally:
        writer.finish()
    if writer.error is not None:
        raise HandshakeError(f"error writing: {writer.error}") from writer.error
    return result


def initiate_handshake(rw, skey: bytes, initial_payload: bytes | None, crypto_provides: CryptoMethod):
    """Start the handshake on ``rw``; returns the stream and the chosen method."""
    skey = bytes(skey)
    ia = bytes(initial_payload or b"")
    if len(ia) > 0xFFFF:
        raise HandshakeError("initial payload too large")
    provides = int(crypto_provides)

    def steps(writer: _PostWriter, s: bytes):
        writer.post(_sha1(_REQ1, s))
        writer.post(_xor(_sha1(_REQ2, skey), _sha1(_REQ3, s)))
        pad_len = _new_pad_len()
        payload = (
            _VC
            + struct.pack(">IH", provides, pad_len)
            + bytes(pad_len)
            + struct.pack(">H", len(ia))
            + ia
        )
        enc = _new_encrypt(True, s, skey)
        writer.post(enc.crypt(payload))
        dec = _new_encrypt(False, s, skey)
        encrypted_vc = dec.crypt(_VC)
        # Up to 512 bytes of padding may precede the verification constant.
        try:
            read_until(_LimitedReader(rw, 520), encrypted_vc)
        except EOFError as exc:
            raise HandshakeError("failed to synchronize on VC") from exc
        reader = _CipherReader(dec, rw)
        method, their_pad = struct.unpack(">IH", _read_exact(reader, 6))
        _read_exact(reader, their_pad)
        selected = method & provides
        if selected == CryptoMethod.RC4:
            return MseStream(reader, _CipherWriter(enc, rw)), CryptoMethod.RC4
        if selected == CryptoMethod.PLAINTEXT:
            return MseStream(rw, rw), CryptoMethod.PLAINTEXT
        raise HandshakeError(f"receiver chose unsupported method: {method:x}")

    return _handshake(rw, steps)


def receive_handshake(rw, skeys: Iterable[bytes] | None, select_crypto: CryptoSelector):
    """Answer a handshake on ``rw``, accepting any of ``skeys``."""

    def steps(writer: _PostWriter, s: bytes):
        # Up to 512 bytes of padding precede the 20 byte hash.
        try:
            read_until(_LimitedReader(rw, 532), _sha1(_REQ1, s))
        except EOFError as exc:
            raise HandshakeError("failed to synchronize on S hash") from exc
        obfuscated = _read_exact(rw, 20)
        req3 = _sha1(_REQ3, s)
        skey = next(
            (bytes(k) for k in (skeys or ()) if _xor(_sha1(_REQ2, bytes(k)), req3) == obfuscated),
            None,
        )
        if skey is None:
            raise NoSecretKeyMatch("no skey matched")
        reader = _CipherReader(_new_encrypt(True, s, skey), rw)
        _vc, provides, pad_len = struct.unpack(">8sIH", _read_exact(reader, 14))
        crypto_provides_count[format(provides, "x")] += 1
        chosen = int(select_crypto(CryptoMethod(provides)))
        _read_exact(reader, pad_len)
        (len_ia,) = struct.unpack(">H", _read_exact(reader, 2))
        ia = _read_exact(reader, len_ia) if len_ia else b""
        enc = _new_encrypt(False, s, skey)
        our_pad = _new_pad_len()
        writer.post(enc.crypt(_VC + struct.pack(">IH", chosen, our_pad) + bytes(our_pad)))
        if chosen == CryptoMethod.RC4:
            return MseStream(_PrefixReader(ia, reader), _CipherWriter(enc, rw)), CryptoMethod.RC4
        if chosen == CryptoMethod.PLAINTEXT:
            return MseStream(_PrefixReader(ia, rw), rw), CryptoMethod.PLAINTEXT
        raise HandshakeError("chosen crypto method is not supported")

    return _handshake(rw, steps)