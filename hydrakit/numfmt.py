"""Conversions of integers and floating-point values to text.

These routines produce the digits, padding and signs that the formatted
output functions emit for the integer, fixed-point and exponential
conversions. Every result is built in a bounded scratch buffer, so very long
conversions are cut short exactly where a fixed 32-character buffer would be.
"""

from __future__ import annotations

import math
import struct
import sys
from enum import IntFlag

__all__ = ["Flags", "format_integer", "format_fixed", "format_exponent"]


class Flags(IntFlag):
    """Conversion flags gathered from a format specifier."""

    ZEROPAD = 1 << 0
    LEFT = 1 << 1
    PLUS = 1 << 2
    SPACE = 1 << 3
    HASH = 1 << 4
    UPPERCASE = 1 << 5
    CHAR = 1 << 6
    SHORT = 1 << 7
    LONG = 1 << 8
    LONG_LONG = 1 << 9
    PRECISION = 1 << 10
    ADAPT_EXP = 1 << 11


_NTOA_BUFFER_SIZE = 32
_FTOA_BUFFER_SIZE = 32
_DEFAULT_FLOAT_PRECISION = 6
_MAX_FLOAT = 1e9
_DBL_MAX = sys.float_info.max
_POW10 = tuple(float(10**i) for i in range(10))
_UINT32_MASK = 0xFFFFFFFF
_UINT64_MASK = 0xFFFFFFFFFFFFFFFF


def _without(flags: Flags, bits: Flags) -> Flags:
    return Flags(int(flags) & ~int(bits))


def _pad(text: str, width: int, flags: Flags) -> str:
    """Apply space padding the way the output stage does."""
    if flags & Flags.LEFT:
        return text.ljust(width)
    if not flags & Flags.ZEROPAD:
        return text.rjust(width)
    return text


def _emit_reversed(buf: list[str], width: int, flags: Flags) -> str:
    return _pad("".join(reversed(buf)), width, flags)


def _append_sign(buf: list[str], negative: bool, flags: Flags, limit: int) -> None:
    if len(buf) >= limit:
        return
    if negative:
        buf.append("-")
    elif flags & Flags.PLUS:
        buf.append("+")
    elif flags & Flags.SPACE:
        buf.append(" ")


def _ntoa_format(
    buf: list[str],
    negative: bool,
    base: int,
    precision: int,
    width: int,
    flags: Flags,
) -> str:
    limit = _NTOA_BUFFER_SIZE
    if not flags & Flags.LEFT:
        if width and flags & Flags.ZEROPAD and (negative or flags & (Flags.PLUS | Flags.SPACE)):
            width -= 1
        while len(buf) < precision and len(buf) < limit:
            buf.append("0")
        while flags & Flags.ZEROPAD and len(buf) < width and len(buf) < limit:
            buf.append("0")

    if flags & Flags.HASH:
        if not flags & Flags.PRECISION and buf and len(buf) in (precision, width):
            buf.pop()
            if buf and base == 16:
                buf.pop()
        if base == 16 and len(buf) < limit:
            buf.append("X" if flags & Flags.UPPERCASE else "x")
        elif base == 2 and len(buf) < limit:
            buf.append("b")
        if len(buf) < limit:
            buf.append("0")

    _append_sign(buf, negative, flags, limit)
    return _emit_reversed(buf, width, flags)


def format_integer(
    value: int,
    negative: bool,
    base: int,
    precision: int,
    width: int,
    flags: int,
) -> str:
    """Render the magnitude ``value`` in ``base``; ``negative`` adds the sign.

    Raises ValueError for a negative magnitude or a base outside 2..36.
    """
    if value < 0:
        raise ValueError("value must be a non-negative magnitude")
    if not 2 <= base <= 36:
        raise ValueError(f"unsupported base {base}")
    flags = Flags(flags)

    if not value:
        flags = _without(flags, Flags.HASH)

    buf: list[str] = []
    if not flags & Flags.PRECISION or value:
        letter = ord("A" if flags & Flags.UPPERCASE else "a")
        while True:
            digit = value % base
            buf.append(chr(48 + digit) if digit < 10 else chr(letter + digit - 10))
            value //= base
            if not value or len(buf) >= _NTOA_BUFFER_SIZE:
                break

    return _ntoa_format(buf, negative, base, precision, width, flags)


def format_fixed(value: float, precision: int, width: int, flags: int) -> str:
    """Render ``value`` in fixed-point notation.

    Values beyond +/-1e9 switch to exponential notation.
    """
    flags = Flags(flags)
    limit = _FTOA_BUFFER_SIZE

    if math.isnan(value):
        return _pad("nan", width, flags)
    if value < -_DBL_MAX:
        return _pad("-inf", width, flags)
    if value > _DBL_MAX:
        return _pad("+inf" if flags & Flags.PLUS else "inf", width, flags)

    if value > _MAX_FLOAT or value < -_MAX_FLOAT:
        return format_exponent(value, precision, width, flags)

    negative = value < 0
    if negative:
        value = 0 - value

    if not flags & Flags.PRECISION:
        precision = _DEFAULT_FLOAT_PRECISION

    buf: list[str] = []
    # Precision beyond nine digits is served by literal zeros.
    while len(buf) < limit and precision > 9:
        buf.append("0")
        precision -= 1
    precision = min(precision, 9)

    whole = int(value)
    tmp = (value - whole) * _POW10[precision]
    frac = int(tmp)
    diff = tmp - frac

    if diff > 0.5:
        frac += 1
        if frac >= _POW10[precision]:
            frac = 0
            whole += 1
    elif diff < 0.5:
        pass
    elif frac == 0 or frac & 1:
        frac += 1

    if precision == 0:
        diff = value - whole
        if diff >= 0.5 and whole & 1:
            whole += 1
    else:
        count = precision
        while len(buf) < limit:
            count = (count - 1) & _UINT32_MASK
            buf.append(chr(48 + frac % 10))
            frac //= 10
            if not frac:
                break
        while len(buf) < limit and count > 0:
            count -= 1
            buf.append("0")
        if len(buf) < limit:
            buf.append(".")

    while len(buf) < limit:
        buf.append(chr(48 + whole % 10))
        whole //= 10
        if not whole:
            break

    if not flags & Flags.LEFT and flags & Flags.ZEROPAD:
        if width and (negative or flags & (Flags.PLUS | Flags.SPACE)):
            width -= 1
        while len(buf) < width and len(buf) < limit:
            buf.append("0")

    _append_sign(buf, negative, flags, limit)
    return _emit_reversed(buf, width, flags)


def _bits_of(value: float) -> int:
    return struct.unpack("<Q", struct.pack("<d", value))[0]


def _float_of(bits: int) -> float:
    return struct.unpack("<d", struct.pack("<Q", bits & _UINT64_MASK))[0]


def format_exponent(value: float, precision: int, width: int, flags: int) -> str:
    """Render ``value`` in exponential notation.

    With ``Flags.ADAPT_EXP`` the precision counts significant figures and
    values in [1e-4, 1e6) fall back to fixed-point notation.
    """
    flags = Flags(flags)

    if math.isnan(value) or math.isinf(value):
        return format_fixed(value, precision, width, flags)

    negative = value < 0
    if negative:
        value = -value

    if not flags & Flags.PRECISION:
        precision = _DEFAULT_FLOAT_PRECISION

    bits = _bits_of(value)
    exp2 = ((bits >> 52) & 0x07FF) - 1023
    mantissa = _float_of((bits & ((1 << 52) - 1)) | (1023 << 52))
    expval = int(
        0.1760912590558 + exp2 * 0.301029995663981 + (mantissa - 1.5) * 0.289529654602168
    )
    exp2 = int(expval * 3.321928094887362 + 0.5)
    z = expval * 2.302585092994046 - exp2 * 0.6931471805599453
    z2 = z * z
    scale = _float_of((exp2 + 1023) << 52)
    scale *= 1 + 2 * z / (2 - z + (z2 / (6 + (z2 / (10 + z2 / 14)))))
    if value < scale:
        expval -= 1
        scale /= 10

    minwidth = 4 if -100 < expval < 100 else 5

    if flags & Flags.ADAPT_EXP:
        if 1e-4 <= value < 1e6:
            precision = precision - expval - 1 if precision > expval else 0
            flags |= Flags.PRECISION
            minwidth = 0
            expval = 0
        elif precision > 0 and flags & Flags.PRECISION:
            precision -= 1

    fwidth = width - minwidth if width > minwidth else 0
    if flags & Flags.LEFT and minwidth:
        fwidth = 0

    if expval:
        value /= scale

    text = format_fixed(
        -value if negative else value,
        precision,
        fwidth,
        _without(flags, Flags.ADAPT_EXP),
    )

    if minwidth:
        text += "E" if flags & Flags.UPPERCASE else "e"
        text += format_integer(
            abs(expval),
            expval < 0,
            10,
            0,
            minwidth - 1,
            Flags.ZEROPAD | Flags.PLUS,
        )
        if flags & Flags.LEFT:
            text = text.ljust(width)
    return text