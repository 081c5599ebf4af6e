"""Global descriptor table and task state segment layouts for x86-64."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntFlag

__all__ = [
    "Access",
    "SegmentFlags",
    "TaskStateSegment",
    "TSS_SIZE",
    "GDT_ENTRIES",
    "encode_segment_descriptor",
    "encode_system_descriptor",
    "build_gdt",
    "gdt_pointer",
]


class Access(IntFlag):
    """Access byte bits of a segment descriptor."""

    PRESENT = 0x80
    RING0 = 0x00
    RING1 = 0x20
    RING2 = 0x40
    RING3 = 0x60
    SEGMENT = 0x10
    EXECUTABLE = 0x08
    DIRECTION_CONFORMING = 0x04
    READ_WRITE = 0x02
    ACCESSED = 0x01


class SegmentFlags(IntFlag):
    """Flag nibble of a segment descriptor."""

    GRANULARITY = 0x8
    SIZE = 0x4
    LONG_MODE = 0x2
    AVAILABLE = 0x1


_TSS_FORMAT = "<I3QQ7QQHH"
TSS_SIZE = struct.calcsize(_TSS_FORMAT)
GDT_ENTRIES = 7  # the task state segment descriptor takes two slots


@dataclass
class TaskStateSegment:
    """The 64-bit task state segment: stack pointers and I/O map offset."""

    rsp0: int = 0
    rsp1: int = 0
    rsp2: int = 0
    ist1: int = 0
    ist2: int = 0
    ist3: int = 0
    ist4: int = 0
    ist5: int = 0
    ist6: int = 0
    ist7: int = 0
    iopb_offset: int = 0

    def to_bytes(self) -> bytes:
        """Return the packed in-memory layout."""
        return struct.pack(
            _TSS_FORMAT,
            0,
            self.rsp0,
            self.rsp1,
            self.rsp2,
            0,
            self.ist1,
            self.ist2,
            self.ist3,
            self.ist4,
            self.ist5,
            self.ist6,
            self.ist7,
            0,
            0,
            self.iopb_offset,
        )


def _fill(raw: bytearray, base: int, limit: int, access: int, flags: int) -> None:
    raw[0] = limit & 0xFF
    raw[1] = (limit >> 8) & 0xFF
    raw[6] = (limit >> 16) & 0xFF
    raw[2] = base & 0xFF
    raw[3] = (base >> 8) & 0xFF
    raw[4] = (base >> 16) & 0xFF
    raw[7] = (base >> 24) & 0xFF
    raw[5] = access & 0xFF
    raw[6] = (raw[6] | (flags << 4)) & 0xFF


def encode_segment_descriptor(base: int, limit: int, access: int, flags: int) -> bytes:
    """Return the 8-byte descriptor for a code or data segment."""
    raw = bytearray(8)
    _fill(raw, base, limit, access, flags)
    return bytes(raw)


def encode_system_descriptor(base: int, limit: int, access: int, flags: int) -> bytes:
    """Return the 16-byte long-mode system descriptor with a 64-bit base."""
    raw = bytearray(16)
    _fill(raw, base, limit, access, flags)
    for index, shift in enumerate(range(32, 64, 8), start=8):
        raw[index] = (base >> shift) & 0xFF
    return bytes(raw)


def build_gdt(tss_address: int) -> bytes:
    """Return the kernel's table: null, kernel code/data, user data/code, TSS."""
    flat = 0xFFFFF
    present = Access.PRESENT | Access.SEGMENT | Access.READ_WRITE
    entries = [
        encode_segment_descriptor(0, 0, 0, 0),
        encode_segment_descriptor(
            0,
            flat,
            present | Access.RING0 | Access.EXECUTABLE,
            SegmentFlags.LONG_MODE | SegmentFlags.GRANULARITY,
        ),
        encode_segment_descriptor(
            0, flat, present | Access.RING0, SegmentFlags.SIZE | SegmentFlags.GRANULARITY
        ),
        encode_segment_descriptor(
            0, flat, present | Access.RING3, SegmentFlags.SIZE | SegmentFlags.GRANULARITY
        ),
        encode_segment_descriptor(
            0,
            flat,
            present | Access.RING3 | Access.EXECUTABLE,
            SegmentFlags.LONG_MODE | SegmentFlags.GRANULARITY,
        ),
        encode_system_descriptor(
            tss_address,
            TSS_SIZE - 1,
            Access.PRESENT | Access.RING0 | Access.EXECUTABLE | Access.ACCESSED,
            0,
        ),
    ]
    return b"".join(entries)


def gdt_pointer(size: int, offset: int) -> bytes:
    """Return the 10-byte operand for loading a table of ``size`` bytes.

    The stored limit is ``size - 1``; ``size`` must lie in 1..65536.
    """
    if not 1 <= size <= 0x10000:
        raise ValueError(f"table size {size} out of range")
    return struct.pack("<HQ", size - 1, offset & 0xFFFFFFFFFFFFFFFF)