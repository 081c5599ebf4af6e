"""Formatted text output and a simple 80x25 text-mode console.

The format language covers ``%[flags][width][.precision][length]specifier``
with the integer (``d i u x X o b``), floating-point (``f F e E g G``),
character, string, pointer and ``%`` conversions. Integer arguments are cut
to the width their length modifier names, as a 64-bit machine would do.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from hydrakit.numfmt import Flags, format_exponent, format_fixed, format_integer

__all__ = [
    "vformat",
    "sprintf",
    "snprintf",
    "fctprintf",
    "TextConsole",
    "MemoryMapEntry",
    "BootInfo",
    "describe_boot_info",
    "MMAP_CONVENTIONAL",
    "MMAP_RESERVED",
]

MMAP_CONVENTIONAL = 1
MMAP_RESERVED = 2

_UINT64_MASK = (1 << 64) - 1

_SPEC = re.compile(
    r"%(?P<flags>[-+ #0]*)"
    r"(?P<width>\d+|\*)?"
    r"(?P<dot>\.(?P<precision>\d+|\*)?)?"
    r"(?P<length>hh|h|ll|l|t|j|z)?"
    r"(?P<conv>.?)",
    re.DOTALL,
)

_FLAG_CHARS = {
    "0": Flags.ZEROPAD,
    "-": Flags.LEFT,
    "+": Flags.PLUS,
    " ": Flags.SPACE,
    "#": Flags.HASH,
}

_LENGTH_FLAGS = {
    "hh": Flags.SHORT | Flags.CHAR,
    "h": Flags.SHORT,
    "l": Flags.LONG,
    "ll": Flags.LONG | Flags.LONG_LONG,
    "t": Flags.LONG,
    "j": Flags.LONG,
    "z": Flags.LONG,
}


def _take(supply: Iterator[Any]) -> Any:
    try:
        return next(supply)
    except StopIteration:
        raise TypeError("not enough arguments for format string") from None


def _without(flags: Flags, bits: Flags) -> Flags:
    return Flags(int(flags) & ~int(bits))


def _to_signed(value: int, bits: int) -> int:
    value &= (1 << bits) - 1
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _int_bits(flags: Flags) -> int:
    if flags & (Flags.LONG | Flags.LONG_LONG):
        return 64
    if flags & Flags.CHAR:
        return 8
    if flags & Flags.SHORT:
        return 16
    return 32


def _as_char(arg: Any) -> str:
    if isinstance(arg, str):
        return chr(ord(arg[0]) & 0xFF) if arg else "\0"
    return chr(int(arg) & 0xFF)


def _as_text(arg: Any) -> str:
    if isinstance(arg, (bytes, bytearray)):
        arg = bytes(arg).decode("latin-1")
    return str(arg).split("\0", 1)[0]


def _pad(text: str, width: int, flags: Flags) -> str:
    return text.ljust(width) if flags & Flags.LEFT else text.rjust(width)


def _convert_integer(conv: str, arg: Any, precision: int, width: int, flags: Flags) -> str:
    if conv in "xX":
        base = 16
    elif conv == "o":
        base = 8
    elif conv == "b":
        base = 2
    else:
        base = 10
        flags = _without(flags, Flags.HASH)
    if conv == "X":
        flags |= Flags.UPPERCASE
    if conv not in "di":
        flags = _without(flags, Flags.PLUS | Flags.SPACE)
    if flags & Flags.PRECISION:
        flags = _without(flags, Flags.ZEROPAD)

    bits = _int_bits(flags)
    if conv in "di":
        value = _to_signed(int(arg), bits)
        return format_integer(abs(value), value < 0, base, precision, width, flags)
    return format_integer(int(arg) & ((1 << bits) - 1), False, base, precision, width, flags)


def _convert(conv: str, supply: Iterator[Any], precision: int, width: int, flags: Flags) -> str:
    if conv in "diuxXob":
        return _convert_integer(conv, _take(supply), precision, width, flags)
    if conv in "fF":
        if conv == "F":
            flags |= Flags.UPPERCASE
        return format_fixed(float(_take(supply)), precision, width, flags)
    if conv in "eEgG":
        if conv in "gG":
            flags |= Flags.ADAPT_EXP
        if conv in "EG":
            flags |= Flags.UPPERCASE
        return format_exponent(float(_take(supply)), precision, width, flags)
    if conv == "c":
        return _pad(_as_char(_take(supply)), width, flags)
    if conv == "s":
        text = _as_text(_take(supply))
        if flags & Flags.PRECISION:
            text = text[:precision]
        return _pad(text, width, flags)
    if conv == "p":
        flags |= Flags.ZEROPAD | Flags.UPPERCASE
        return format_integer(int(_take(supply)) & _UINT64_MASK, False, 16, precision, 16, flags)
    # "%%" and any unknown specifier print the specifier character itself.
    return conv


def vformat(fmt: str, args: Iterable[Any]) -> str:
    """Return the complete text that ``fmt`` produces with ``args``.

    Raises TypeError when the format asks for more arguments than given.
    """
    supply = iter(args)
    parts: list[str] = []
    pos = 0
    while True:
        start = fmt.find("%", pos)
        if start < 0:
            parts.append(fmt[pos:])
            break
        parts.append(fmt[pos:start])
        match = _SPEC.match(fmt, start)
        assert match is not None  # every part of the pattern is optional
        pos = match.end()

        flags = Flags(0)
        for char in match.group("flags"):
            flags |= _FLAG_CHARS[char]

        width = 0
        width_text = match.group("width")
        if width_text == "*":
            requested = int(_take(supply))
            if requested < 0:
                flags |= Flags.LEFT
                width = -requested
            else:
                width = requested
        elif width_text:
            width = int(width_text)

        precision = 0
        if match.group("dot"):
            flags |= Flags.PRECISION
            precision_text = match.group("precision")
            if precision_text == "*":
                precision = max(int(_take(supply)), 0)
            elif precision_text:
                precision = int(precision_text)

        length = match.group("length")
        if length:
            flags |= _LENGTH_FLAGS[length]

        conv = match.group("conv")
        if not conv:
            break
        parts.append(_convert(conv, supply, precision, width, flags))
    return "".join(parts)


def sprintf(fmt: str, *args: Any) -> str:
    """Format ``args`` according to ``fmt``."""
    return vformat(fmt, args)


def snprintf(count: int, fmt: str, *args: Any) -> tuple[str, int]:
    """Format into a buffer of ``count`` characters.

    Returns the text that fits (at most ``count - 1`` characters, leaving
    room for the terminator) and the length the full output would have.
    """
    if count < 0:
        raise ValueError("count must not be negative")
    text = vformat(fmt, args)
    if count == 0:
        return "", len(text)
    return text[: count - 1], len(text)


def fctprintf(out: Callable[[str], Any], fmt: str, *args: Any) -> int:
    """Send every non-NUL output character to ``out``; return the full length."""
    text = vformat(fmt, args)
    for char in text:
        if char != "\0":
            out(char)
    return len(text)


class TextConsole:
    """An 80x25 text screen of (character, attribute) cells.

    Writing past the last column or row wraps back to the start.
    """

    WIDTH = 80
    HEIGHT = 25
    ATTRIBUTE = 0x07

    def __init__(self) -> None:
        self.row = 0
        self.column = 0
        self._memory = bytearray(self.WIDTH * self.HEIGHT * 2)

    def _next_row(self) -> None:
        self.column = 0
        self.row += 1
        if self.row >= self.HEIGHT:
            self.row = 0

    def putchar(self, character: str | int) -> None:
        """Write one character at the cursor and advance it."""
        code = ord(character) if isinstance(character, str) else int(character)
        code &= 0xFF
        if code == ord("\n"):
            self._next_row()
            return
        offset = (self.row * self.WIDTH + self.column) * 2
        self._memory[offset] = code
        self._memory[offset + 1] = self.ATTRIBUTE
        self.column += 1
        if self.column >= self.WIDTH:
            self._next_row()

    def printf(self, fmt: str, *args: Any) -> int:
        """Format and write to the screen; return the output length."""
        return fctprintf(self.putchar, fmt, *args)

    def cell(self, row: int, column: int) -> tuple[str, int]:
        """Return the character and attribute stored at a cell."""
        if not (0 <= row < self.HEIGHT and 0 <= column < self.WIDTH):
            raise IndexError(f"cell ({row}, {column}) is off screen")
        offset = (row * self.WIDTH + column) * 2
        return chr(self._memory[offset]), self._memory[offset + 1]


@dataclass
class MemoryMapEntry:
    """One region of the firmware memory map."""

    base: int
    length: int
    type: int
    reserved: int = 0


@dataclass
class BootInfo:
    """What the boot stage hands on: boot kind, low memory and memory map."""

    boot_type: int
    low_memory: int
    mmap: list[MemoryMapEntry] = field(default_factory=list)


def describe_boot_info(boot_info: BootInfo) -> str:
    """Return the boot report: low memory followed by each memory region."""
    lines = [vformat("low memory: 0x%x\n\n", (boot_info.low_memory,))]
    for entry in boot_info.mmap:
        lines.append(
            vformat(
                "base 0x%x, length 0x%x, type %d\n",
                (entry.base, entry.length, entry.type),
            )
        )
    return "".join(lines)