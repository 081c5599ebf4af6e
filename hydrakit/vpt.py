"""Partition-table detection and the virtual block devices it produces.

Scanning a block device asks each registered partition table, in
registration order, whether it recognises the device. A recognised device
is split into one virtual block device per partition. An unrecognised one
becomes a single raw virtual device covering the whole disk.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from hydrakit.devices import BlockDevice

__all__ = [
    "PartitionError",
    "VirtualBlockDevice",
    "PartitionTable",
    "PartitionRegistry",
    "MAX_PARTITIONS",
]

MAX_PARTITIONS = 255


class PartitionError(RuntimeError):
    """A partition table could not be read."""


@dataclass(eq=False)
class VirtualBlockDevice:
    """A window onto a block device: a whole raw disk or one partition."""

    bdev: BlockDevice | None = None
    pt: PartitionTable | None = None
    lba_offset: int = 0
    type: int = 0
    index: int = 0


class PartitionTable(ABC):
    """A partition-table format that can recognise and split a block device."""

    @abstractmethod
    def test(self, bdev: BlockDevice) -> bool:
        """Return True when ``bdev`` carries this kind of table."""

    @abstractmethod
    def init(self, bdev: BlockDevice) -> Any:
        """Read the table and return its parsed form, or None on failure."""

    @abstractmethod
    def get(self, index: int, data: Any, vbdev: VirtualBlockDevice) -> bool:
        """Fill ``vbdev`` with partition ``index``; return False past the last one."""

    def free(self, bdev: BlockDevice, data: Any) -> None:
        """Release what ``init`` produced."""


class PartitionRegistry:
    """The registered partition tables and every virtual device found so far."""

    def __init__(self) -> None:
        self._tables: list[PartitionTable] = []
        self._vbdevs: list[VirtualBlockDevice] = []

    def __iter__(self) -> Iterator[VirtualBlockDevice]:
        return iter(self._vbdevs)

    def __len__(self) -> int:
        return len(self._vbdevs)

    def register(self, table: PartitionTable) -> None:
        """Add a partition-table format; earlier ones are tried first."""
        if not isinstance(table, PartitionTable):
            raise TypeError("expected a PartitionTable")
        self._tables.append(table)

    def scan(self, bdev: BlockDevice) -> list[VirtualBlockDevice]:
        """Create the virtual devices of ``bdev`` and return them.

        Each virtual device holds its own reference to ``bdev``. Raises
        PartitionError when the recognised table cannot be read.
        """
        table = next((t for t in self._tables if t.test(bdev)), None)
        if table is None:
            raw = VirtualBlockDevice(bdev=bdev.new_ref())
            self._vbdevs.append(raw)
            return [raw]

        data = table.init(bdev)
        if data is None:
            raise PartitionError("partition table could not be read")

        found: list[VirtualBlockDevice] = []
        try:
            for index in range(MAX_PARTITIONS):
                vbdev = VirtualBlockDevice(bdev=bdev, pt=table, index=index)
                if not table.get(index, data, vbdev):
                    break
                found.append(vbdev)
        finally:
            table.free(bdev, data)

        for vbdev in found:
            vbdev.bdev = bdev.new_ref()
        self._vbdevs.extend(found)
        return found

    def free_virtual_blockdevs(self, bdev: BlockDevice) -> int:
        """Remove every virtual device of ``bdev``, dropping their references.

        Returns the number removed.
        """
        removed = [v for v in self._vbdevs if v.bdev is bdev]
        self._vbdevs = [v for v in self._vbdevs if v.bdev is not bdev]
        for _ in removed:
            bdev.free_ref()
        return len(removed)

    def get(self, bdev: BlockDevice, index: int) -> VirtualBlockDevice | None:
        """Return partition ``index`` of ``bdev``, or None."""
        return next(
            (v for v in self._vbdevs if v.bdev is bdev and v.index == index),
            None,
        )