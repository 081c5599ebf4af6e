import struct

import pytest

from hydrakit.gdt import (
    GDT_ENTRIES,
    TSS_SIZE,
    Access,
    SegmentFlags,
    TaskStateSegment,
    build_gdt,
    encode_segment_descriptor,
    encode_system_descriptor,
    gdt_pointer,
)


def decode(raw):
    limit = raw[0] | raw[1] << 8 | (raw[6] & 0x0F) << 16
    base = raw[2] | raw[3] << 8 | raw[4] << 16 | raw[7] << 24
    return base, limit, raw[5], raw[6] >> 4


def test_null_descriptor_is_zero():
    assert encode_segment_descriptor(0, 0, 0, 0) == bytes(8)


def test_kernel_code_descriptor_wire_value():
    raw = encode_segment_descriptor(
        0,
        0xFFFFF,
        Access.PRESENT | Access.RING0 | Access.SEGMENT | Access.READ_WRITE | Access.EXECUTABLE,
        SegmentFlags.LONG_MODE | SegmentFlags.GRANULARITY,
    )
    assert int.from_bytes(raw, "little") == 0x00AF9A000000FFFF


@pytest.mark.parametrize(
    "base, limit, access, flags",
    [
        (0x12345678, 0xABCDE, 0x92, 0xC),
        (0, 0xFFFFF, 0xFA, 0xA),
        (0xFFFFFFFF, 0, 0x89, 0),
    ],
)
def test_segment_descriptor_round_trip(base, limit, access, flags):
    raw = encode_segment_descriptor(base, limit, access, flags)
    assert len(raw) == 8
    assert decode(raw) == (base, limit, access, flags)


def test_system_descriptor_carries_upper_base():
    base = 0xFFFF800012345000
    raw = encode_system_descriptor(base, TSS_SIZE - 1, 0x89, 0)
    assert len(raw) == 16
    low_base, limit, access, _ = decode(raw)
    high_base = int.from_bytes(raw[8:12], "little")
    assert low_base | high_base << 32 == base
    assert limit == TSS_SIZE - 1
    assert access == 0x89
    assert raw[12:] == bytes(4)


def test_tss_layout():
    tss = TaskStateSegment(rsp0=0xDEAD0000, ist1=0x5000, iopb_offset=TSS_SIZE)
    raw = tss.to_bytes()
    assert len(raw) == 104
    assert struct.unpack_from("<Q", raw, 4)[0] == tss.rsp0
    assert struct.unpack_from("<Q", raw, 36)[0] == tss.ist1
    assert struct.unpack_from("<H", raw, len(raw) - 2)[0] == tss.iopb_offset


def test_build_gdt_entries():
    tss_address = 0x200000
    table = build_gdt(tss_address)
    assert len(table) == GDT_ENTRIES * 8
    entries = [table[i * 8 : i * 8 + 8] for i in range(GDT_ENTRIES)]
    assert entries[0] == bytes(8)
    ring0 = Access.PRESENT | Access.SEGMENT | Access.READ_WRITE
    ring3 = ring0 | Access.RING3
    assert decode(entries[1])[2] == ring0 | Access.EXECUTABLE
    assert decode(entries[2])[2] == ring0
    assert decode(entries[3])[2] == ring3
    assert decode(entries[4])[2] == ring3 | Access.EXECUTABLE
    assert decode(entries[1])[3] == SegmentFlags.LONG_MODE | SegmentFlags.GRANULARITY
    assert decode(entries[2])[3] == SegmentFlags.SIZE | SegmentFlags.GRANULARITY


def test_build_gdt_tss_descriptor():
    tss_address = 0xFFFF800000123000
    table = build_gdt(tss_address)
    descriptor = table[5 * 8 : 7 * 8]
    assert descriptor == encode_system_descriptor(
        tss_address,
        TSS_SIZE - 1,
        Access.PRESENT | Access.EXECUTABLE | Access.ACCESSED,
        0,
    )


def test_gdt_pointer_round_trip():
    table = build_gdt(0)
    raw = gdt_pointer(len(table), 0x1000)
    assert len(raw) == 10
    assert struct.unpack("<HQ", raw) == (len(table) - 1, 0x1000)


@pytest.mark.parametrize("size", [0, 0x10001])
def test_gdt_pointer_rejects_bad_size(size):
    with pytest.raises(ValueError):
        gdt_pointer(size, 0)