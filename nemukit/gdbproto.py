"""Client side of the GDB remote serial protocol."""

from __future__ import annotations

import socket
from typing import BinaryIO

_HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")
_INVALID_HEX = 0xFFFF
_RLE_BASE = 29
_RLE_MAX = 126


class GdbProtocolError(Exception):
    """Raised when the remote end breaks the protocol."""


class ConnectionClosed(GdbProtocolError):
    """Raised when the remote end closes the connection."""


def _byte(c: int | str | bytes) -> int:
    if isinstance(c, int):
        return c
    if len(c) != 1:
        raise ValueError(f"expected a single character, got {c!r}")
    return c[0] if isinstance(c, bytes) else ord(c)


def _nibble(c: int) -> int:
    return int(chr(c), 16)


def hex_encode(digit: int) -> str:
    """Return the lower-case hex character for a value in 0..15."""
    if not 0 <= digit <= 15:
        raise ValueError(f"hex digit out of range: {digit}")
    return "0123456789abcdef"[digit]


def gdb_decode_hex(msb: int | str | bytes, lsb: int | str | bytes) -> int:
    """Decode two hex characters into a byte; 0xFFFF if either is not a hex digit."""
    hi, lo = _byte(msb), _byte(lsb)
    if hi not in _HEX_DIGITS or lo not in _HEX_DIGITS:
        return _INVALID_HEX
    return 16 * _nibble(hi) + _nibble(lo)


def gdb_decode_hex_str(data: bytes | str) -> int:
    """Decode hex byte pairs in little-endian order, stopping at the first non-hex pair."""
    raw = data.encode("ascii") if isinstance(data, str) else bytes(data)
    value = 0
    weight = 1
    for pos in range(0, len(raw) - 1, 2):
        hi, lo = raw[pos], raw[pos + 1]
        if hi not in _HEX_DIGITS or lo not in _HEX_DIGITS:
            break
        value += weight * gdb_decode_hex(hi, lo)
        weight *= 256
    return value


def encode_packet(command: bytes) -> bytes:
    """Frame a command as ``$payload#XX`` with its modulo-256 checksum."""
    checksum = sum(command) & 0xFF
    return b"$" + bytes(command) + b"#%02X" % checksum


class GdbConnection:
    """A GDB remote protocol session over a pair of binary streams."""

    def __init__(self, reader: BinaryIO, writer: BinaryIO) -> None:
        self._reader = reader
        self._writer = writer
        self._pushback: list[int] = []
        self.ack = True
        # Reset line state by acknowledging any earlier input.
        self._write(b"+")

    @classmethod
    def connect(cls, host: str, port: int) -> "GdbConnection":
        """Open a TCP connection to a GDB server; raises OSError on failure."""
        sock = socket.create_connection((host, port))
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            reader = sock.makefile("rb")
            writer = sock.makefile("wb")
        finally:
            sock.close()
        return cls(reader, writer)

    def __enter__(self) -> "GdbConnection":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _write(self, data: bytes) -> None:
        try:
            self._writer.write(data)
            self._writer.flush()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise ConnectionClosed("send: Connection closed") from exc

    def _getc(self) -> int | None:
        if self._pushback:
            return self._pushback.pop()
        chunk = self._reader.read(1)
        return chunk[0] if chunk else None

    def _ungetc(self, c: int | None) -> None:
        if c is not None:
            self._pushback.append(c)

    def send(self, command: bytes | str) -> None:
        """Send a command, resending until the server acknowledges it."""
        if isinstance(command, str):
            command = command.encode("ascii")
        packet = encode_packet(command)
        while True:
            self._write(packet)
            if not self.ack:
                return
            reply = self._getc()
            if reply is None:
                raise ConnectionClosed("send: Connection closed")
            if reply == ord("+"):
                return

    def _recv_packet(self) -> tuple[bytes, bool]:
        while True:
            c = self._getc()
            if c is None:
                raise ConnectionClosed("recv: Connection closed")
            if c == ord("$"):
                break

        reply = bytearray()
        checksum = 0
        escape = False
        while True:
            c = self._getc()
            if c is None:
                raise ConnectionClosed("recv: Connection closed")
            checksum = (checksum + c) & 0xFF
            if c == ord("$"):
                reply.clear()
                checksum = 0
                escape = False
                continue
            if c == ord("#"):
                checksum = (checksum - c) & 0xFF
                msb = self._getc()
                lsb = self._getc()
                if msb is None or lsb is None:
                    raise ConnectionClosed("recv: Connection closed")
                return bytes(reply), checksum == gdb_decode_hex(msb, lsb)
            if c == ord("}"):
                escape = True
                continue
            if c == ord("*") and reply:
                count_char = self._getc()
                if (
                    count_char is None
                    or count_char < _RLE_BASE
                    or count_char > _RLE_MAX
                    or count_char in (ord("$"), ord("#"))
                ):
                    self._ungetc(count_char)
                else:
                    reply.extend(bytes([reply[-1]]) * (count_char - _RLE_BASE))
                    checksum = (checksum + count_char) & 0xFF
                    continue
            if escape:
                c ^= 0x20
                escape = False
            reply.append(c)

    def recv(self) -> bytes:
        """Receive one packet's payload, requesting resends on checksum errors."""
        while True:
            reply, ok = self._recv_packet()
            if not self.ack:
                return reply
            self._write(b"+" if ok else b"-")
            if ok:
                return reply

    def start_noack(self) -> str:
        """Ask the server to stop acknowledging; return "OK" on success, else ""."""
        self.send(b"QStartNoAckMode")
        reply = self.recv()
        if reply == b"OK":
            self.ack = False
            return "OK"
        return ""

    def close(self) -> None:
        """Close both streams."""
        try:
            self._reader.close()
        finally:
            self._writer.close()