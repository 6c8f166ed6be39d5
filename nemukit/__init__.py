"""Emulator support toolkit: GDB remote client, QEMU reference driver and Kconfig helpers."""

__version__ = "0.1.0"
__all__ = ["gdbproto", "qemu", "kpreprocess", "ksymbol", "ksymstate"]