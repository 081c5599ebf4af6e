import math

import pytest

from hydrakit.numfmt import Flags, format_exponent, format_fixed, format_integer

P = Flags.PRECISION


@pytest.mark.parametrize(
    "value, negative, base, prec, width, flags, pyfmt, pyval",
    [
        (42, False, 10, 0, 0, 0, "%d", 42),
        (42, True, 10, 0, 0, 0, "%d", -42),
        (42, False, 10, 0, 5, 0, "%5d", 42),
        (5, False, 10, 0, 3, Flags.LEFT, "%-3d", 5),
        (42, True, 10, 0, 5, Flags.ZEROPAD, "%05d", -42),
        (42, False, 10, 0, 5, Flags.PLUS, "%+5d", 42),
        (42, False, 10, 0, 0, Flags.SPACE, "% d", 42),
        (7, False, 10, 3, 0, P, "%.3d", 7),
        (255, False, 16, 0, 0, 0, "%x", 255),
        (255, False, 16, 0, 0, Flags.UPPERCASE, "%X", 255),
        (8, False, 8, 0, 0, 0, "%o", 8),
        (255, False, 16, 0, 0, Flags.HASH, "%#x", 255),
        (255, False, 16, 0, 8, Flags.HASH | Flags.ZEROPAD, "%#08x", 255),
        (255, False, 16, 5, 0, Flags.HASH | P, "%#.5x", 255),
    ],
)
def test_integer_matches_standard_formatting(value, negative, base, prec, width, flags, pyfmt, pyval):
    assert format_integer(value, negative, base, prec, width, flags) == pyfmt % pyval


def test_binary_with_hash_matches_prefix_form():
    assert format_integer(5, False, 2, 0, 0, Flags.HASH) == format(5, "#b")


def test_zero_with_explicit_zero_precision_is_empty():
    assert format_integer(0, False, 10, 0, 0, P) == ""


def test_hash_is_dropped_for_zero():
    assert format_integer(0, False, 16, 0, 0, Flags.HASH) == format_integer(0, False, 16, 0, 0, 0)


@pytest.mark.parametrize("base", [2, 8, 10, 16, 36])
@pytest.mark.parametrize("n", [0, 1, 9, 10, 255, 65535, 123456789])
def test_integer_round_trip(base, n):
    assert int(format_integer(n, False, base, 0, 0, 0), base) == n


def test_integer_output_is_capped_at_buffer_size():
    text = format_integer(2**40, False, 2, 0, 0, 0)
    assert len(text) == 32
    assert set(text) == {"0"}


def test_integer_rejects_negative_magnitude():
    with pytest.raises(ValueError):
        format_integer(-1, False, 10, 0, 0, 0)


def test_integer_rejects_bad_base():
    with pytest.raises(ValueError):
        format_integer(10, False, 1, 0, 0, 0)


@pytest.mark.parametrize(
    "value, prec, width, flags, pyfmt",
    [
        (1.5, 0, 0, 0, "%f"),
        (3.14159, 2, 0, P, "%.2f"),
        (-3.25, 3, 10, P, "%10.3f"),
        (-3.25, 3, 10, P | Flags.ZEROPAD, "%010.3f"),
        (2.5, 2, 8, P | Flags.LEFT, "%-8.2f"),
        (0.125, 3, 0, P | Flags.PLUS, "%+.3f"),
        (7.0, 2, 0, P | Flags.SPACE, "% .2f"),
        (2.5, 0, 0, P, "%.0f"),
        (3.5, 0, 0, P, "%.0f"),
        (0.7, 0, 0, P, "%.0f"),
        (0.5, 12, 0, P, "%.12f"),
    ],
)
def test_fixed_matches_standard_formatting(value, prec, width, flags, pyfmt):
    assert format_fixed(value, prec, width, flags) == pyfmt % value


@pytest.mark.parametrize("value", [0.0, 0.1, 1.25, -7.75, 123456.789, 999999.5])
def test_fixed_is_close_to_value(value):
    assert abs(float(format_fixed(value, 6, 0, 0)) - value) <= 5e-7 * max(1.0, abs(value))


def test_fixed_special_values():
    assert format_fixed(math.nan, 6, 0, 0) == "nan"
    assert format_fixed(math.nan, 6, 5, 0) == "nan".rjust(5)
    assert format_fixed(-math.inf, 6, 0, 0) == "-inf"
    assert format_fixed(math.inf, 6, 0, 0) == "inf"
    assert format_fixed(math.inf, 6, 0, Flags.PLUS) == "+inf"


def test_fixed_large_values_switch_to_exponent():
    assert format_fixed(2.5e10, 2, 0, P) == format_exponent(2.5e10, 2, 0, P)
    assert format_fixed(2.5e10, 2, 0, P) == "%.2e" % 2.5e10


@pytest.mark.parametrize(
    "value, prec, width, flags, pyfmt",
    [
        (12345.678, 0, 0, 0, "%e"),
        (0.00123, 0, 0, Flags.UPPERCASE, "%E"),
        (-2.5e20, 0, 0, 0, "%e"),
        (1.5, 2, 12, P, "%12.2e"),
        (1.5, 2, 12, P | Flags.LEFT, "%-12.2e"),
        (3e100, 3, 0, P, "%.3e"),
    ],
)
def test_exponent_matches_standard_formatting(value, prec, width, flags, pyfmt):
    assert format_exponent(value, prec, width, flags) == pyfmt % value


def test_exponent_special_values_follow_fixed():
    assert format_exponent(math.nan, 6, 0, 0) == "nan"
    assert format_exponent(-math.inf, 6, 0, 0) == "-inf"


def test_adaptive_small_value_falls_back_to_fixed():
    assert format_exponent(0.5, 6, 0, Flags.ADAPT_EXP) == format_fixed(0.5, 6, 0, P)


def test_adaptive_large_value_uses_exponent():
    assert format_exponent(1234567.0, 0, 0, Flags.ADAPT_EXP) == "%.6e" % 1234567.0
    assert format_exponent(1234567.0, 3, 0, Flags.ADAPT_EXP | P) == "%.2e" % 1234567.0


@pytest.mark.parametrize("value", [1.5, 12345.678, 0.00123, 6.02e23, 1.6e-19])
def test_exponent_round_trip(value):
    text = format_exponent(value, 6, 0, P)
    assert math.isclose(float(text), value, rel_tol=1e-6)