"""Four-level x86-64 page tables kept in a simulated physical memory."""

from __future__ import annotations

from enum import IntFlag

__all__ = [
    "PAGE_SIZE",
    "TABLE_ENTRIES",
    "PageFlags",
    "PhysicalMemory",
    "AddressSpace",
    "align_down",
    "align_up",
]

PAGE_SIZE = 4096
TABLE_ENTRIES = 512
_ADDRESS_LIMIT = 1 << 64
_FRAME_MASK = (_ADDRESS_LIMIT - 1) & ~0xFFF
_SHIFTS = (39, 30, 21, 12)


class PageFlags(IntFlag):
    """Low bits of a page-table entry."""

    PRESENT = 0x1
    WRITABLE = 0x2
    USER = 0x4


_INTERMEDIATE = int(PageFlags.PRESENT | PageFlags.USER | PageFlags.WRITABLE)


class PhysicalMemory:
    """Page frames that hold page tables of 512 entries each.

    Frames are handed out upwards from ``base``; with ``frames`` given,
    at most that many can be allocated.
    """

    def __init__(self, base: int = 0x100000, frames: int | None = None) -> None:
        if base % PAGE_SIZE:
            raise ValueError("base must be page aligned")
        self.base = base
        self.frames = frames
        self._tables: dict[int, list[int]] = {}

    def __len__(self) -> int:
        return len(self._tables)

    def alloc(self) -> int:
        """Return the address of a fresh zeroed table frame."""
        if self.frames is not None and len(self._tables) >= self.frames:
            raise MemoryError("out of physical page frames")
        address = self.base + len(self._tables) * PAGE_SIZE
        self._tables[address] = [0] * TABLE_ENTRIES
        return address

    def table(self, address: int) -> list[int]:
        """Return the table stored in the frame at ``address``."""
        try:
            return self._tables[address]
        except KeyError:
            raise ValueError(f"no page table at 0x{address:x}") from None


def _check_address(address: int) -> None:
    if not 0 <= address < _ADDRESS_LIMIT:
        raise ValueError(f"address 0x{address:x} outside the 64-bit space")


def _indices(virt: int) -> list[int]:
    return [(virt >> shift) & 0x1FF for shift in _SHIFTS]


class AddressSpace:
    """A top-level (PML4) table and the mappings reachable from it."""

    def __init__(self, memory: PhysicalMemory, root: int | None = None) -> None:
        self.memory = memory
        self.root = memory.alloc() if root is None else root

    @property
    def entries(self) -> list[int]:
        """The entries of the top-level table."""
        return self.memory.table(self.root)

    def map(
        self,
        virt: int,
        phys: int,
        flags: int = PageFlags.PRESENT | PageFlags.WRITABLE,
    ) -> None:
        """Map the page at ``virt`` to the frame at ``phys`` with ``flags``.

        Missing intermediate tables are created present, writable and
        user-accessible. Both addresses must be page aligned.
        """
        _check_address(virt)
        _check_address(phys)
        if virt % PAGE_SIZE or phys % PAGE_SIZE:
            raise ValueError("addresses must be page aligned")
        *upper, last = _indices(virt)
        table = self.memory.table(self.root)
        for index in upper:
            entry = table[index]
            if entry & PageFlags.PRESENT:
                address = entry & _FRAME_MASK
            else:
                address = self.memory.alloc()
                table[index] = address | _INTERMEDIATE
            table = self.memory.table(address)
        table[last] = phys | int(flags)

    def map_range(
        self,
        virt: int,
        phys: int,
        count: int,
        flags: int = PageFlags.PRESENT | PageFlags.WRITABLE,
    ) -> None:
        """Map ``count`` consecutive pages."""
        if virt % PAGE_SIZE or phys % PAGE_SIZE:
            raise ValueError("addresses must be page aligned")
        for page in range(count):
            self.map(virt + page * PAGE_SIZE, phys + page * PAGE_SIZE, flags)

    def get_phys(self, virt: int, user: bool = False) -> int | None:
        """Translate ``virt``; None when unmapped or, for ``user``, not user-accessible."""
        _check_address(virt)
        *upper, last = _indices(virt)
        table = self.memory.table(self.root)
        for index in upper:
            entry = table[index]
            if not entry & PageFlags.PRESENT:
                return None
            table = self.memory.table(entry & _FRAME_MASK)
        entry = table[last]
        if not entry & PageFlags.PRESENT:
            return None
        if user and not entry & PageFlags.USER:
            return None
        return (entry & _FRAME_MASK) | (virt & 0xFFF)


def align_down(address: int) -> int:
    """Return the page boundary at or below ``address``."""
    return address - address % PAGE_SIZE


def align_up(address: int) -> int:
    """Return the first page boundary strictly above ``address``."""
    return address + PAGE_SIZE - address % PAGE_SIZE