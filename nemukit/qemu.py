"""Differential-testing reference that drives QEMU through its GDB stub."""

from __future__ import annotations

import atexit
import os
import subprocess
import time
from enum import Enum, IntEnum
from typing import Iterable, Sequence

from .gdbproto import GdbConnection, GdbProtocolError, gdb_decode_hex_str, hex_encode

_MTU = 1500
_WORD_MASK = (1 << 32) - 1
_UNION_WORDS = 77
_CONNECT_RETRY_DELAY = 1e-6
_PROTECTED_MODE_STEPS = 20
_MBR_ADDR = 0x7C00

# x86 register layout reported by the GDB stub.
_X86_EIP = 8
_X86_CS = 10


class Isa(Enum):
    """Guest instruction set architectures QEMU can serve as reference for."""

    X86 = "x86"
    MIPS32 = "mips32"
    RISCV32 = "riscv32"
    RISCV64 = "riscv64"
    LOONGARCH32R = "loongarch32r"


class Direction(IntEnum):
    """Direction of a difftest copy."""

    TO_DUT = 0
    TO_REF = 1


_QEMU_BIN = {
    Isa.MIPS32: "qemu-system-mipsel",
    Isa.RISCV32: "qemu-system-riscv32",
    Isa.RISCV64: "qemu-system-riscv64",
    Isa.X86: "qemu-system-i386",
    Isa.LOONGARCH32R: "qemu-system-loongarch32",
}

# Boot sector that switches an x86 guest into 32-bit protected mode.
_X86_MBR = bytes([
    # start16:
    0xFA,
    0x31, 0xC0,
    0x8E, 0xD8,
    0x8E, 0xC0,
    0x8E, 0xD0,
    0x0F, 0x01, 0x16, 0x44, 0x7C,
    0x0F, 0x20, 0xC0,
    0x66, 0x83, 0xC8, 0x01,
    0x0F, 0x22, 0xC0,
    0xEA, 0x1D, 0x7C, 0x08, 0x00,
    # start32:
    0x66, 0xB8, 0x10, 0x00,
    0x8E, 0xD8,
    0x8E, 0xC0,
    0x8E, 0xD0,
    0xEB, 0xFE,
    0x8D, 0x76, 0x00,
    # GDT
    0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00,
    0xFF, 0xFF, 0x00, 0x00, 0x00, 0x9A, 0xCF, 0x00,
    0xFF, 0xFF, 0x00, 0x00, 0x00, 0x92, 0xCF, 0x00,
    # GDT descriptor
    0x17, 0x00, 0x2C, 0x7C, 0x00, 0x00,
])


def difftest_reg_size(isa: Isa | str, rv64: bool = False, rve: bool = False) -> int:
    """Return the number of bytes of register state exchanged with the reference.

    For RISC-V, ``rv64`` forces 64-bit registers (also implied by ``Isa.RISCV64``)
    and ``rve`` selects the 16-register embedded variant.
    """
    isa = Isa(isa)
    if isa is Isa.X86:
        return 4 * 9
    if isa is Isa.MIPS32:
        return 4 * 38
    if isa is Isa.LOONGARCH32R:
        return 4 * 33
    width = 8 if (rv64 or isa is Isa.RISCV64) else 4
    gprs = 16 if rve else 32
    return width * (gprs + 1)


def _union_words(isa: Isa) -> int:
    # RISCV64 carries 32 GPRs, 32 FPRs and pc, each 64 bits wide.
    return 65 * 2 if isa is Isa.RISCV64 else _UNION_WORDS


def qemu_command(isa: Isa | str, port: int, nemu_home: str | None = None) -> list[str]:
    """Build the argument list that starts a halted QEMU with a GDB stub on ``port``."""
    isa = Isa(isa)
    args = [_QEMU_BIN[isa]]
    if isa is Isa.MIPS32:
        home = nemu_home if nemu_home is not None else os.environ.get("NEMU_HOME")
        if not home:
            raise ValueError("mips32 reference needs the NEMU home directory")
        args += ["-machine", "mipssim", "-kernel", f"{home}/resource/mips-elf/mips.dummy"]
    elif isa is Isa.RISCV32:
        args += ["-bios", "none"]
    elif isa is Isa.LOONGARCH32R:
        args += ["-M", "ls3a5k32"]
    args += [
        "-S", "-gdb", f"tcp::{port}", "-nographic",
        "-serial", "none", "-monitor", "none",
    ]
    return args


def _hex_bytes(data: bytes) -> bytes:
    return "".join(hex_encode(b >> 4) + hex_encode(b & 0xF) for b in data).encode("ascii")


def _words_to_bytes(words: Iterable[int]) -> bytes:
    out = bytearray()
    for word in words:
        if not 0 <= word <= _WORD_MASK:
            raise ValueError(f"register word out of range: {word:#x}")
        out += word.to_bytes(4, "little")
    return bytes(out)


def _bytes_to_words(data: bytes) -> list[int]:
    return [int.from_bytes(data[pos:pos + 4], "little") for pos in range(0, len(data) - 3, 4)]


def encode_regs(words: Sequence[int]) -> bytes:
    """Encode 32-bit register words as the hex payload of a 'G' packet."""
    return _hex_bytes(_words_to_bytes(words))


def decode_regs(reply: bytes | str) -> list[int]:
    """Decode a 'g' reply into 32-bit register words (eight hex digits each)."""
    raw = reply.encode("ascii") if isinstance(reply, str) else bytes(reply)
    return [gdb_decode_hex_str(raw[pos:pos + 8]) for pos in range(0, len(raw) - 7, 8)]


class GdbHost:
    """High-level GDB operations against a QEMU stub."""

    def __init__(self, conn) -> None:
        self.conn = conn

    @classmethod
    def connect(cls, port: int) -> "GdbHost":
        """Connect to a stub on localhost, retrying until it accepts."""
        while True:
            try:
                conn = GdbConnection.connect("127.0.0.1", port)
            except OSError:
                time.sleep(_CONNECT_RETRY_DELAY)
                continue
            return cls(conn)

    def _memcpy_small(self, dest: int, data: bytes) -> bool:
        header = f"M0x{dest:x},{len(data):x}:".encode("ascii")
        self.conn.send(header + _hex_bytes(data))
        return self.conn.recv() == b"OK"

    def memcpy_to_qemu(self, dest: int, data: bytes) -> bool:
        """Write ``data`` to guest memory at ``dest`` in MTU-sized pieces."""
        data = bytes(data)
        ok = True
        while len(data) > _MTU:
            ok &= self._memcpy_small(dest, data[:_MTU])
            dest += _MTU
            data = data[_MTU:]
        ok &= self._memcpy_small(dest, data)
        return ok

    def getregs(self) -> list[int]:
        """Read all registers as 32-bit words."""
        self.conn.send(b"g")
        return decode_regs(self.conn.recv())

    def setregs(self, words: Sequence[int]) -> bool:
        """Write all registers from 32-bit words; True if the stub accepted them."""
        self.conn.send(b"G" + encode_regs(words))
        return self.conn.recv() == b"OK"

    def si(self) -> bool:
        """Execute a single instruction."""
        self.conn.send(b"vCont;s:1")
        self.conn.recv()
        return True

    def close(self) -> None:
        """Close the connection."""
        self.conn.close()


def init_isa(host: GdbHost, isa: Isa | str) -> None:
    """Prepare the reference guest; x86 is switched into protected mode."""
    if Isa(isa) is not Isa.X86:
        return
    if not host.memcpy_to_qemu(_MBR_ADDR, _X86_MBR):
        raise GdbProtocolError("failed to load the boot sector into QEMU")
    words = host.getregs()
    words[_X86_EIP] = _MBR_ADDR
    words[_X86_CS] = 0
    if not host.setregs(words):
        raise GdbProtocolError("failed to set the boot registers in QEMU")
    for _ in range(_PROTECTED_MODE_STEPS):
        host.si()


class QemuRef:
    """A QEMU process used as the reference model for differential testing."""

    def __init__(self, isa: Isa | str, port: int, nemu_home: str | None = None) -> None:
        self.isa = Isa(isa)
        self.port = port
        self.nemu_home = nemu_home
        self.host: GdbHost | None = None
        self.process: subprocess.Popen | None = None
        self.reg_size = difftest_reg_size(self.isa)

    def start(self) -> None:
        """Start QEMU, connect to its stub and initialise the guest."""
        command = qemu_command(self.isa, self.port, self.nemu_home)
        self.process = subprocess.Popen(command, stdin=subprocess.DEVNULL)
        self.host = GdbHost.connect(self.port)
        print(f"Connect to QEMU with tcp::{self.port} successfully")
        atexit.register(self.close)
        init_isa(self.host, self.isa)

    def _require_host(self) -> GdbHost:
        if self.host is None:
            raise RuntimeError("the QEMU reference has not been started")
        return self.host

    def memcpy(self, addr: int, data: bytes, direction: Direction = Direction.TO_REF) -> None:
        """Copy ``data`` into the reference's memory at ``addr``."""
        if Direction(direction) is not Direction.TO_REF:
            raise ValueError("memory can only be copied to the reference")
        if not self._require_host().memcpy_to_qemu(addr, data):
            raise GdbProtocolError(f"failed to copy memory to QEMU at {addr:#x}")

    def _ref_words(self) -> list[int]:
        words = self._require_host().getregs()
        size = _union_words(self.isa)
        return (words + [0] * size)[:size]

    def regcpy(self, regs: bytes | None, direction: Direction) -> bytes | None:
        """Exchange register state.

        ``TO_REF`` loads the first ``reg_size`` bytes of ``regs`` into QEMU;
        ``TO_DUT`` returns QEMU's first ``reg_size`` bytes of register state.
        """
        words = self._ref_words()
        raw = bytearray(_words_to_bytes(words))
        if Direction(direction) is Direction.TO_DUT:
            return bytes(raw[:self.reg_size])
        if regs is None or len(regs) < self.reg_size:
            raise ValueError(f"register state must hold at least {self.reg_size} bytes")
        raw[:self.reg_size] = bytes(regs[:self.reg_size])
        if not self._require_host().setregs(_bytes_to_words(bytes(raw))):
            raise GdbProtocolError("failed to set registers in QEMU")
        return None

    def exec(self, n: int) -> None:
        """Execute ``n`` instructions in the reference."""
        host = self._require_host()
        for _ in range(n):
            host.si()

    def raise_intr(self, no: int) -> None:
        """Interrupt injection is not available through the QEMU stub."""
        raise RuntimeError("raise_intr is not supported")

    def close(self) -> None:
        """Disconnect and stop the QEMU process."""
        if self.host is not None:
            host, self.host = self.host, None
            host.close()
        if self.process is not None:
            process, self.process = self.process, None
            if process.poll() is None:
                process.terminate()
            process.wait()