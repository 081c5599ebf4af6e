"""Character, block and input devices with reference counting.

Covers the debug console on port 0xE9, the 80x25 VGA text screen, the PS/2
keyboard and the translation of key packets to ASCII on a German (QWERTZ)
layout. Block devices are an abstract interface that drivers fill in.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, IntEnum, IntFlag

from hydrakit.interrupts import InterruptController, InterruptFrame
from hydrakit.ports import PortBus

__all__ = [
    "DeviceError",
    "Color",
    "BlockdevType",
    "PacketType",
    "Modifier",
    "InputPacket",
    "CharDevice",
    "BlockDevice",
    "InputDevice",
    "E9Device",
    "VgaTextDevice",
    "Ps2Keyboard",
    "packet_to_ascii",
    "E9_PORT",
    "KEYBOARD_DATA_PORT",
    "KEYBOARD_COMMAND_PORT",
]

E9_PORT = 0xE9
KEYBOARD_DATA_PORT = 0x60
KEYBOARD_COMMAND_PORT = 0x64

_KEYBOARD_ACK = 0xFA
_SET_LEDS = 0xED
_ACK_ATTEMPTS = 10_000
_KEY_BUFFER_SIZE = 50

_LEFT_SHIFT = 0x2A
_RIGHT_SHIFT = 0x36
_CTRL = 0x1D
_ALT = 0x38
_CAPS_LOCK = 0x3A


class DeviceError(RuntimeError):
    """A device could not be created or did not respond."""


class Color(IntEnum):
    """The sixteen text-mode colours."""

    BLACK = 0
    BLUE = 1
    GREEN = 2
    CYAN = 3
    RED = 4
    MAGENTA = 5
    BROWN = 6
    LIGHT_GRAY = 7
    DARK_GRAY = 8
    LIGHT_BLUE = 9
    LIGHT_GREEN = 10
    LIGHT_CYAN = 11
    LIGHT_RED = 12
    LIGHT_MAGENTA = 13
    YELLOW = 14
    WHITE = 15


class BlockdevType(Enum):
    """Whether a block device is fixed or removable media."""

    HARD_DRIVE = 0
    REMOVABLE = 1


class PacketType(Enum):
    """What an input packet reports."""

    NULL = 0
    KEYDOWN = 1
    KEYUP = 2
    KEYREPEAT = 3


class Modifier(IntFlag):
    """Modifier keys held while a key event happened."""

    SHIFT = 0x01
    CTRL = 0x02
    ALT = 0x04
    CAPS_LOCK = 0x08


@dataclass
class InputPacket:
    """One key event."""

    type: PacketType
    modifier: Modifier = Modifier(0)
    scancode: int = 0


class _RefCounted:
    """Reference counting shared by every device kind."""

    def __init__(self) -> None:
        self.references = 1
        self.released = False

    def _check_alive(self) -> None:
        if self.released:
            raise DeviceError("device has been released")

    def _acquire(self) -> None:
        self._check_alive()
        self.references += 1

    def _release(self) -> bool:
        self._check_alive()
        if self.references <= 1:
            self.references = 0
            self.released = True
            return True
        self.references -= 1
        return False


def _char_code(character: str | int) -> int:
    if isinstance(character, str):
        if len(character) != 1:
            raise ValueError("expected exactly one character")
        code = ord(character)
    else:
        code = int(character)
    if not 0 <= code <= 0xFF:
        raise ValueError(f"character code {code} does not fit in a byte")
    return code


class CharDevice(_RefCounted, ABC):
    """A device that takes characters with a foreground and background colour."""

    def new_ref(self) -> CharDevice:
        """Take another reference and return the device."""
        self._acquire()
        return self

    def free_ref(self) -> bool:
        """Drop a reference; return True when that released the device."""
        return self._release()

    @abstractmethod
    def write(
        self,
        character: str | int,
        fg: Color = Color.LIGHT_GRAY,
        bg: Color = Color.BLACK,
    ) -> None:
        """Output one character."""


class BlockDevice(_RefCounted, ABC):
    """A device addressed in fixed-size blocks."""

    def __init__(
        self,
        block_size: int,
        num_blocks: int,
        model: str = "",
        type: BlockdevType = BlockdevType.HARD_DRIVE,
        available: bool = True,
    ) -> None:
        super().__init__()
        if block_size <= 0:
            raise ValueError("block size must be positive")
        self.block_size = block_size
        self.num_blocks = num_blocks
        self.model = model
        self.type = type
        self.available = available

    def new_ref(self) -> BlockDevice:
        """Take another reference and return the device."""
        self._acquire()
        return self

    def free_ref(self) -> bool:
        """Drop a reference; return True when that released the device."""
        return self._release()

    @abstractmethod
    def _read_block(self, lba: int) -> bytes:
        """Return the contents of block ``lba``."""

    @abstractmethod
    def _write_block(self, lba: int, data: bytes) -> None:
        """Store ``data`` in block ``lba``."""

    def _eject(self) -> None:
        raise ValueError("device has no eject mechanism")

    def read_block(self, lba: int) -> bytes:
        """Return one block."""
        self._check_alive()
        if lba < 0:
            raise ValueError("block address must not be negative")
        return bytes(self._read_block(lba))

    def write_block(self, lba: int, data: bytes) -> None:
        """Write one whole block."""
        self._check_alive()
        if lba < 0:
            raise ValueError("block address must not be negative")
        if len(data) != self.block_size:
            raise ValueError(f"expected {self.block_size} bytes, got {len(data)}")
        self._write_block(lba, bytes(data))

    def eject(self) -> None:
        """Eject removable media; fixed drives raise ValueError."""
        self._check_alive()
        if self.type is not BlockdevType.REMOVABLE:
            raise ValueError("only removable devices can be ejected")
        self._eject()


class InputDevice(_RefCounted, ABC):
    """A device that delivers key packets."""

    def new_ref(self) -> InputDevice:
        """Take another reference and return the device."""
        self._acquire()
        return self

    def free_ref(self) -> bool:
        """Drop a reference; return True when that released the device."""
        return self._release()

    @abstractmethod
    def poll(self) -> InputPacket:
        """Return the next packet, or a NULL packet when none is pending."""


class E9Device(CharDevice):
    """The emulator debug console: each character goes to port 0xE9."""

    def __init__(self, ports: PortBus) -> None:
        super().__init__()
        self.ports = ports

    def write(
        self,
        character: str | int,
        fg: Color = Color.LIGHT_GRAY,
        bg: Color = Color.BLACK,
    ) -> None:
        """Send the character; colours are ignored."""
        self._check_alive()
        self.ports.outb(E9_PORT, _char_code(character))


class VgaTextDevice(CharDevice):
    """An 80x25 colour text screen that scrolls up when the bottom is passed."""

    WIDTH = 80
    HEIGHT = 25

    def __init__(self) -> None:
        super().__init__()
        self.row = 0
        self.column = 0
        self._cells = [0] * (self.WIDTH * self.HEIGHT)

    def _newline(self, color: int) -> None:
        self.column = 0
        if self.row < self.HEIGHT - 1:
            self.row += 1
            return
        del self._cells[: self.WIDTH]
        self._cells.extend([color << 8] * self.WIDTH)

    def _backspace(self) -> None:
        if self.column > 0:
            self.column -= 1
        elif self.row > 0:
            self.row -= 1
            self.column = self.WIDTH - 1

    def write(
        self,
        character: str | int,
        fg: Color = Color.LIGHT_GRAY,
        bg: Color = Color.BLACK,
    ) -> None:
        """Write at the cursor; handles newline, backspace and tab (four spaces)."""
        self._check_alive()
        code = _char_code(character)
        color = (int(fg) & 0x0F) | ((int(bg) << 4) & 0xFF)

        if code == 0x0A:
            self._newline(color)
            return
        if code == 0x08:
            self._backspace()
            return
        if code == 0x09:
            for _ in range(4):
                self.write(" ", fg, bg)
            return

        if self.column >= self.WIDTH:
            self._newline(color)
        self._cells[self.column + self.row * self.WIDTH] = (color << 8) | code
        self.column += 1

    def cell(self, row: int, column: int) -> tuple[str, int]:
        """Return the character and colour attribute at a cell."""
        if not (0 <= row < self.HEIGHT and 0 <= column < self.WIDTH):
            raise IndexError(f"cell ({row}, {column}) is off screen")
        value = self._cells[column + row * self.WIDTH]
        return chr(value & 0xFF), value >> 8


class Ps2Keyboard(InputDevice):
    """A PS/2 keyboard fed by IRQ 1 (interrupt 33).

    Pending key events are kept on a stack: the most recent one is polled
    first. Modifier keys update the state but produce no packets.
    """

    IRQ = 33
    CAPACITY = _KEY_BUFFER_SIZE - 1  # the first slot of the buffer is never used

    def __init__(self, ports: PortBus, interrupts: InterruptController | None = None) -> None:
        super().__init__()
        self.ports = ports
        self._buffer: list[InputPacket] = []
        self._pressed: set[int] = set()
        self.shift = False
        self.ctrl = False
        self.alt = False
        self.caps_lock = False
        if interrupts is not None:
            interrupts.register_handler(self.IRQ, self.handle_irq)

    @property
    def modifiers(self) -> Modifier:
        """The modifier keys currently in effect."""
        mods = Modifier(0)
        if self.shift:
            mods |= Modifier.SHIFT
        if self.ctrl:
            mods |= Modifier.CTRL
        if self.alt:
            mods |= Modifier.ALT
        if self.caps_lock:
            mods |= Modifier.CAPS_LOCK
        return mods

    def _set_modifier(self, code: int, down: bool) -> bool:
        if code in (_LEFT_SHIFT, _RIGHT_SHIFT):
            self.shift = down
        elif code == _CTRL:
            self.ctrl = down
        elif code == _ALT:
            self.alt = down
        else:
            return False
        return True

    def handle_irq(self, frame: InterruptFrame | None = None) -> None:
        """Read one scancode from the controller and record the event."""
        scancode = self.ports.inb(KEYBOARD_DATA_PORT)
        code = scancode & 0x7F

        if scancode & 0x80:
            kind = PacketType.KEYUP
            self._pressed.discard(code)
            if self._set_modifier(code, False):
                return
        else:
            kind = PacketType.KEYREPEAT if code in self._pressed else PacketType.KEYDOWN
            self._pressed.add(code)
            if self._set_modifier(code, True):
                return
            if code == _CAPS_LOCK:
                self.caps_lock = not self.caps_lock
                self.set_leds(False, False, self.caps_lock)
                return

        if len(self._buffer) >= self.CAPACITY:
            return
        self._buffer.append(InputPacket(kind, self.modifiers, code))

    def _send(self, byte: int) -> None:
        self.ports.outb(KEYBOARD_DATA_PORT, byte)
        for _ in range(_ACK_ATTEMPTS):
            if self.ports.inb(KEYBOARD_DATA_PORT) == _KEYBOARD_ACK:
                return
        raise DeviceError(f"keyboard did not acknowledge 0x{byte:02x}")

    def set_leds(self, scroll_lock: bool, num_lock: bool, caps_lock: bool) -> None:
        """Switch the keyboard lights, waiting for each byte to be acknowledged."""
        status = 0
        if scroll_lock:
            status |= 0x01
        if num_lock:
            status |= 0x02
        if caps_lock:
            status |= 0x04
        self._send(_SET_LEDS)
        self._send(status)

    def poll(self) -> InputPacket:
        """Return the most recent pending event, or a NULL packet."""
        self._check_alive()
        if not self._buffer:
            return InputPacket(PacketType.NULL)
        return self._buffer.pop()


def _layout(keys: str) -> str:
    return keys.ljust(128, "\x00")


_NORMAL = _layout(
    "\x00\x00123456" "7890\x00\x00\b\x00" "qwertzui" "op\x00+\n\x00as"
    "dfghjkl\x00" "\x00^\x00#yxcv" "bnm,.-\x00\x00\x00 "
)
_SHIFTED = _layout(
    "\x00\x00!\"\x00$%&" "/()=\x00\x00\b\x00" "QWERTZUI" "OP\x00*\n\x00AS"
    "DFGHJKL\x00" "\x00\x00\x00'YXCV" "BNM;:_\x00\x00\x00 "
)
_CAPS = _layout(
    "\x00\x00123456" "7890\x00\x00\b\x00" "QWERTZUI" "OP\x00+\n\x00AS"
    "DFGHJKL\x00" "\x00^\x00#YXCV" "BNM,.-\x00\x00\x00 "
)


def packet_to_ascii(packet: InputPacket) -> str:
    """Translate a key packet to its character; "\\0" when there is none."""
    code = packet.scancode
    if not 0 <= code < 128:
        return "\x00"
    mods = Modifier(packet.modifier)
    if mods & Modifier.SHIFT and mods & Modifier.CAPS_LOCK:
        char = _NORMAL[code]
        return char.swapcase() if char.isalpha() else char
    if mods & Modifier.SHIFT:
        return _SHIFTED[code]
    if mods & Modifier.CAPS_LOCK:
        return _CAPS[code]
    return _NORMAL[code]