"""An I/O port space with byte, word and double-word access.

Each port number can be backed by a reader and a writer callable. Reads
from a port with no reader return all ones, as a floating bus does, and
writes to a port with no writer are dropped.
"""

from __future__ import annotations

from collections.abc import Callable

__all__ = ["PortBus", "Reader", "Writer"]

Reader = Callable[[], int]
Writer = Callable[[int], None]

_PORT_LIMIT = 0x10000


def _check_port(port: int) -> None:
    if not 0 <= port < _PORT_LIMIT:
        raise ValueError(f"port 0x{port:x} outside the 16-bit port space")


class PortBus:
    """Dispatches port accesses to the callables mapped on each port."""

    def __init__(self) -> None:
        self._ports: dict[int, tuple[Reader | None, Writer | None]] = {}

    def map(self, port: int, reader: Reader | None = None, writer: Writer | None = None) -> None:
        """Back ``port`` with ``reader`` and ``writer``; either may be None."""
        _check_port(port)
        if reader is None and writer is None:
            self._ports.pop(port, None)
        else:
            self._ports[port] = (reader, writer)

    def _read(self, port: int, bits: int) -> int:
        _check_port(port)
        mask = (1 << bits) - 1
        reader = self._ports.get(port, (None, None))[0]
        if reader is None:
            return mask
        return int(reader()) & mask

    def _write(self, port: int, value: int, bits: int) -> None:
        _check_port(port)
        writer = self._ports.get(port, (None, None))[1]
        if writer is not None:
            writer(int(value) & ((1 << bits) - 1))

    def inb(self, port: int) -> int:
        """Read one byte."""
        return self._read(port, 8)

    def outb(self, port: int, value: int) -> None:
        """Write one byte; wider values are cut to their low byte."""
        self._write(port, value, 8)

    def inw(self, port: int) -> int:
        """Read one 16-bit word."""
        return self._read(port, 16)

    def outw(self, port: int, value: int) -> None:
        """Write one 16-bit word."""
        self._write(port, value, 16)

    def inl(self, port: int) -> int:
        """Read one 32-bit double word."""
        return self._read(port, 32)

    def outl(self, port: int, value: int) -> None:
        """Write one 32-bit double word."""
        self._write(port, value, 32)