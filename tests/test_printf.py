import pytest

from hydrakit.printf import (
    MMAP_CONVENTIONAL,
    BootInfo,
    MemoryMapEntry,
    TextConsole,
    describe_boot_info,
    fctprintf,
    snprintf,
    sprintf,
    vformat,
)


@pytest.mark.parametrize(
    "fmt, args",
    [
        ("%d", (42,)),
        ("%i", (-42,)),
        ("%u", (7,)),
        ("%5d", (-7,)),
        ("%-6d|", (13,)),
        ("%05d", (-12,)),
        ("%+d", (5,)),
        ("% d", (5,)),
        ("%x", (255,)),
        ("%X", (255,)),
        ("%#x", (255,)),
        ("%o", (8,)),
        ("%.3d", (7,)),
        ("%.2f", (3.14159,)),
        ("%8.3f", (-2.5,)),
        ("%e", (1234.5,)),
        ("%s", ("abc",)),
        ("%5s", ("ab",)),
        ("%-5s|", ("ab",)),
        ("%.2s", ("abcdef",)),
        ("%c", (65,)),
        ("%3c", (66,)),
        ("100%%", ()),
        ("a %s and %d", ("word", 3)),
    ],
)
def test_matches_standard_formatting(fmt, args):
    assert sprintf(fmt, *args) == fmt % args


def test_unsigned_wraps_to_32_bits():
    assert sprintf("%u", -1) == str(2**32 - 1)


def test_long_long_keeps_64_bits():
    assert sprintf("%lld", -(2**63)) == str(-(2**63))
    assert sprintf("%llu", 2**64 - 1) == str(2**64 - 1)


def test_char_length_truncates_signed():
    assert sprintf("%hhd", 255) == sprintf("%d", -1)
    assert sprintf("%hu", 2**16 + 5) == sprintf("%u", 5)


def test_binary_conversion():
    assert sprintf("%b", 5) == format(5, "b")


def test_star_width_and_precision():
    assert sprintf("%*d", 5, 42) == sprintf("%5d", 42)
    assert sprintf("%*d", -5, 42) == sprintf("%-5d", 42)
    assert sprintf("%.*s", 2, "abcdef") == "ab"


def test_pointer_is_sixteen_uppercase_hex_digits():
    assert sprintf("%p", 0x1234) == format(0x1234, "016X")


def test_special_float_values():
    assert sprintf("%f", float("nan")) == "nan"
    assert sprintf("%f", float("inf")) == "inf"
    assert sprintf("%f", float("-inf")) == "-inf"


def test_large_fixed_switches_to_exponent():
    assert sprintf("%f", 1e10) == sprintf("%e", 1e10)


def test_missing_argument_raises():
    with pytest.raises(TypeError):
        sprintf("%d %d", 1)


def test_vformat_accepts_iterables():
    assert vformat("%d-%d", iter([1, 2])) == sprintf("%d-%d", 1, 2)


def test_snprintf_truncates_and_reports_full_length():
    text, length = snprintf(5, "%s", "abcdefgh")
    assert text == "abcd"
    assert length == len("abcdefgh")


def test_snprintf_zero_count():
    assert snprintf(0, "%s", "abc") == ("", len("abc"))


def test_snprintf_fits():
    assert snprintf(64, "%d", 12) == (sprintf("%d", 12), len(sprintf("%d", 12)))


def test_snprintf_negative_count():
    with pytest.raises(ValueError):
        snprintf(-1, "x")


def test_fctprintf_skips_nul():
    seen = []
    total = fctprintf(seen.append, "a%cb", 0)
    assert total == 3
    assert "".join(seen) == "ab"


def test_console_putchar_sets_cell_and_attribute():
    console = TextConsole()
    console.putchar("A")
    assert console.cell(0, 0) == ("A", 0x07)
    assert (console.row, console.column) == (0, 1)


def test_console_newline_moves_cursor():
    console = TextConsole()
    console.printf("ab\ncd")
    assert console.cell(1, 0) == ("c", 0x07)
    assert (console.row, console.column) == (1, 2)


def test_console_wraps_columns_and_rows():
    console = TextConsole()
    console.printf("%s", "x" * TextConsole.WIDTH)
    assert (console.row, console.column) == (1, 0)
    console.printf("\n" * (TextConsole.HEIGHT - 1))
    assert console.row == 0


def test_console_cell_out_of_range():
    with pytest.raises(IndexError):
        TextConsole().cell(TextConsole.HEIGHT, 0)


def test_console_printf_returns_length():
    console = TextConsole()
    assert console.printf("%d", 123) == len("123")
    assert console.cell(0, 2) == ("3", 0x07)


def test_describe_boot_info_lines():
    entry = MemoryMapEntry(base=0x1000, length=0x9F000, type=MMAP_CONVENTIONAL)
    info = BootInfo(boot_type=0, low_memory=0x27F, mmap=[entry])
    report = describe_boot_info(info)
    assert report == (
        f"low memory: 0x{info.low_memory:x}\n\n"
        f"base 0x{entry.base:x}, length 0x{entry.length:x}, type {entry.type}\n"
    )


def test_describe_boot_info_truncates_to_32_bits():
    entry = MemoryMapEntry(base=(1 << 32) | 0x10, length=1, type=2)
    report = describe_boot_info(BootInfo(0, 0, [entry]))
    assert f"base 0x{entry.base & 0xFFFFFFFF:x}," in report