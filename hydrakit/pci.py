"""PCI configuration-space access and bus enumeration."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from hydrakit.ports import PortBus

__all__ = [
    "BarType",
    "BaseAddressRegister",
    "PciDevice",
    "PciBus",
    "config_address",
    "PCI_COMMAND_PORT",
    "PCI_DATA_PORT",
    "MAX_BUS",
    "MAX_DEVICE",
    "MAX_FUNCTION",
    "MAX_BARS",
    "PCI_CLASS_MASS_STORAGE_CONTROLLER",
    "PCI_CLASS_DISPLAY_CONTROLLER",
    "PCI_SUBCLASS_IDE_CONTROLLER",
    "PCI_SUBCLASS_VGA_COMP_CONTROLLER",
]

PCI_DATA_PORT = 0xCFC
PCI_COMMAND_PORT = 0xCF8

MAX_BUS = 256
MAX_DEVICE = 32
MAX_FUNCTION = 8
MAX_BARS = 6

PCI_CLASS_MASS_STORAGE_CONTROLLER = 0x01
PCI_CLASS_DISPLAY_CONTROLLER = 0x03
PCI_SUBCLASS_IDE_CONTROLLER = 0x01
PCI_SUBCLASS_VGA_COMP_CONTROLLER = 0x00

_UINT32 = 0xFFFFFFFF


def config_address(bus: int, device: int, function: int, offset: int) -> int:
    """Return the configuration address selecting a dword-aligned register."""
    if not 0 <= bus < MAX_BUS:
        raise ValueError(f"bus {bus} out of range")
    if not 0 <= device < MAX_DEVICE:
        raise ValueError(f"device {device} out of range")
    if not 0 <= function < MAX_FUNCTION:
        raise ValueError(f"function {function} out of range")
    if not 0 <= offset < 0x100:
        raise ValueError(f"offset {offset} out of range")
    return (1 << 31) | (bus << 16) | (device << 11) | (function << 8) | (offset & 0xFC)


class BarType(Enum):
    """Whether a base address register decodes memory or I/O ports."""

    MEMORY_MAPPING = 0
    INPUT_OUTPUT = 1


@dataclass
class BaseAddressRegister:
    """A decoded base address register."""

    type: BarType = BarType.MEMORY_MAPPING
    address: int = 0
    size: int = 0
    prefetchable: bool = False


@dataclass
class PciDevice:
    """One function found on the bus, with its identity and BARs."""

    bus: int
    device: int
    function: int
    vendor_id: int = 0
    device_id: int = 0
    class_code: int = 0
    subclass_code: int = 0
    prog_if: int = 0
    header_type: int = 0
    bars: list[BaseAddressRegister] = field(default_factory=list)


class PciBus:
    """Enumerates PCI functions through configuration mechanism #1."""

    def __init__(self, ports: PortBus) -> None:
        self.ports = ports
        self._devices: list[PciDevice] = []

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self) -> Iterator[PciDevice]:
        return iter(self._devices)

    def _read(self, bus: int, device: int, function: int, offset: int) -> int:
        self.ports.outl(PCI_COMMAND_PORT, config_address(bus, device, function, offset))
        return self.ports.inl(PCI_DATA_PORT)

    def _write(self, bus: int, device: int, function: int, offset: int, value: int) -> None:
        self.ports.outl(PCI_COMMAND_PORT, config_address(bus, device, function, offset))
        self.ports.outl(PCI_DATA_PORT, value)

    def _exists(self, bus: int, device: int, function: int) -> bool:
        vendor_id = self._read(bus, device, function, 0x00) & 0xFFFF
        return vendor_id not in (0xFFFF, 0x0000)

    def _read_bar(self, bus: int, device: int, function: int, number: int) -> BaseAddressRegister:
        offset = 0x10 + 4 * number
        value = self._read(bus, device, function, offset)
        if value & 0x01:
            bar = BaseAddressRegister(BarType.INPUT_OUTPUT, value & ~0x03 & _UINT32)
            mask = ~0x03
        else:
            bar = BaseAddressRegister(
                BarType.MEMORY_MAPPING, value & ~0x0F & _UINT32, prefetchable=bool(value & 0x08)
            )
            mask = ~0x0F

        self._write(bus, device, function, offset, _UINT32)
        probed = self._read(bus, device, function, offset)
        bar.size = (~(probed & mask) + 1) & _UINT32
        self._write(bus, device, function, offset, value)
        return bar

    def _add(self, bus: int, device: int, function: int) -> None:
        ids = self._read(bus, device, function, 0x00)
        class_info = self._read(bus, device, function, 0x08)
        self._devices.append(
            PciDevice(
                bus=bus,
                device=device,
                function=function,
                vendor_id=ids & 0xFFFF,
                device_id=(ids >> 16) & 0xFFFF,
                class_code=(class_info >> 24) & 0xFF,
                subclass_code=(class_info >> 16) & 0xFF,
                prog_if=(class_info >> 8) & 0xFF,
                header_type=(self._read(bus, device, function, 0x0C) >> 16) & 0xFF,
                bars=[self._read_bar(bus, device, function, n) for n in range(MAX_BARS)],
            )
        )

    def _scan_device(self, bus: int, device: int) -> None:
        if not self._exists(bus, device, 0):
            return
        header_type = (self._read(bus, device, 0, 0x0C) >> 16) & 0xFF
        functions = MAX_FUNCTION if header_type & 0x80 else 1
        for function in range(functions):
            if self._exists(bus, device, function):
                self._add(bus, device, function)

    def scan(self) -> int:
        """Enumerate every bus and device afresh; return the number of functions."""
        self._devices = []
        for bus in range(MAX_BUS):
            for device in range(MAX_DEVICE):
                self._scan_device(bus, device)
        return len(self._devices)

    def device(self, index: int) -> PciDevice | None:
        """Return the ``index``-th function found, or None past the end."""
        if not 0 <= index < len(self._devices):
            return None
        return self._devices[index]

    def free(self) -> None:
        """Forget every enumerated function."""
        self._devices = []