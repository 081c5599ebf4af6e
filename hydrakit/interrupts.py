"""Interrupt descriptor table, PIC remapping and interrupt dispatch."""

from __future__ import annotations

import struct
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from hydrakit.ports import PortBus
from hydrakit.printf import vformat

__all__ = [
    "IdtEntry",
    "InterruptFrame",
    "InterruptController",
    "INTERRUPT_GATE",
    "INTERRUPT_TRAP",
    "KERNEL_CODE_SELECTOR",
    "IDT_ENTRIES",
    "EXCEPTION_NAMES",
]

INTERRUPT_GATE = 0x8E
INTERRUPT_TRAP = 0x8F
KERNEL_CODE_SELECTOR = 0x08  # the kernel code segment is the second descriptor
IDT_ENTRIES = 256

_PIC_MASTER_COMMAND = 0x20
_PIC_MASTER_DATA = 0x21
_PIC_SLAVE_COMMAND = 0xA0
_PIC_SLAVE_DATA = 0xA1
_PIC_EOI = 0x20

_PIC_REMAP_SEQUENCE = (
    (_PIC_MASTER_COMMAND, 0x11),
    (_PIC_SLAVE_COMMAND, 0x11),
    (_PIC_MASTER_DATA, 0x20),
    (_PIC_SLAVE_DATA, 0x28),
    (_PIC_MASTER_DATA, 0x04),
    (_PIC_SLAVE_DATA, 0x02),
    (_PIC_MASTER_DATA, 0x01),
    (_PIC_SLAVE_DATA, 0x01),
    (_PIC_MASTER_DATA, 0x00),
    (_PIC_SLAVE_DATA, 0x00),
)

_NAMED_EXCEPTIONS = (
    "Division Error",
    "Debug",
    "Non-maskable Interrupt",
    "Breakpoint",
    "Overflow",
    "Bound Range Exceeded",
    "Invalid Opcode",
    "Device Not Available",
    "Double Fault",
    "Coprocessor Segment Overrun",
    "Invalid TSS",
    "Segment Not Present",
    "Stack-Segment Fault",
    "General Protection Fault",
    "Page Fault",
    "Reserved",
    "x87 Floating-Point Exception",
    "Alignment Check",
    "Machine Check",
    "SIMD Floating-Point Exception",
    "Virtualization Exception",
    "Control Protection Exception",
    "Reserved",
    "Hypervisor Injection Exception",
    "VMM Communication Exception",
    "Security Exception",
    "Reserved",
)
EXCEPTION_NAMES = _NAMED_EXCEPTIONS + ("Reserved",) * (32 - len(_NAMED_EXCEPTIONS))

_PAGE_FAULT = 14

_REGISTER_REPORT = (
    "\n[Registers]\ncs=0x%x rip=0x%x\nrflags=0x%x error=0x%x\nrax=0x%x rcx=0x%x\n"
    "rdx=0x%x rsi=0x%x\nrdi=0x%x r8=0x%x\nr9=0x%x r10=0x%x\nr11=0x%x rbp=0x%x\n"
    "rsp=0x%x\n"
)


@dataclass
class IdtEntry:
    """One 16-byte gate descriptor."""

    offset: int = 0
    selector: int = 0
    ist: int = 0
    type_attributes: int = 0

    def to_bytes(self) -> bytes:
        """Return the packed descriptor with the handler address split in three."""
        return struct.pack(
            "<HHBBHII",
            self.offset & 0xFFFF,
            self.selector & 0xFFFF,
            self.ist & 0xFF,
            self.type_attributes & 0xFF,
            (self.offset >> 16) & 0xFFFF,
            (self.offset >> 32) & 0xFFFFFFFF,
            0,
        )


@dataclass
class InterruptFrame:
    """Register state saved when an interrupt or exception arrives."""

    int_no: int
    err_code: int = 0
    rip: int = 0
    cs: int = 0
    rflags: int = 0
    rsp: int = 0
    rax: int = 0
    rcx: int = 0
    rdx: int = 0
    rsi: int = 0
    rdi: int = 0
    r8: int = 0
    r9: int = 0
    r10: int = 0
    r11: int = 0
    rbp: int = 0


Handler = Callable[[InterruptFrame], Any]


class InterruptController:
    """Owns the gate table and the handlers hardware interrupts go to.

    ``switch_space`` is called with ``kernel_space`` on entry to a handler and
    with the current process's ``pml4`` on the way out. ``current_process``
    returns the running process (with ``pml4``, ``path`` and ``rip``) or None.
    """

    def __init__(
        self,
        ports: PortBus,
        switch_space: Callable[[Any], Any] | None = None,
        kernel_space: Any = None,
        current_process: Callable[[], Any] | None = None,
    ) -> None:
        self.ports = ports
        self.switch_space = switch_space
        self.kernel_space = kernel_space
        self.current_process = current_process
        self.entries = [IdtEntry() for _ in range(IDT_ENTRIES)]
        self._handlers: dict[int, Handler] = {}

    @property
    def table(self) -> bytes:
        """The whole table as it lies in memory."""
        return b"".join(entry.to_bytes() for entry in self.entries)

    def set_gate(self, ino: int, handler_address: int) -> None:
        """Point gate ``ino`` at a handler; exceptions get trap gates."""
        if not 0 <= ino < IDT_ENTRIES:
            raise ValueError(f"interrupt number {ino} out of range")
        self.entries[ino] = IdtEntry(
            offset=handler_address & 0xFFFFFFFFFFFFFFFF,
            selector=KERNEL_CODE_SELECTOR,
            ist=0,
            type_attributes=INTERRUPT_TRAP if ino <= 31 else INTERRUPT_GATE,
        )

    def _remap_pic(self) -> None:
        for port, value in _PIC_REMAP_SEQUENCE:
            self.ports.outb(port, value)

    def init(self, isr_stubs: Sequence[int], irq_stubs: Sequence[int]) -> None:
        """Remap the PICs and fill gates 0-31 with exception stubs, 32-254 with IRQ stubs."""
        if len(isr_stubs) < 32:
            raise ValueError("need 32 exception stubs")
        if len(irq_stubs) < IDT_ENTRIES - 1 - 32:
            raise ValueError(f"need {IDT_ENTRIES - 1 - 32} interrupt stubs")
        self._remap_pic()
        for ino, address in zip(range(32), isr_stubs):
            self.set_gate(ino, address)
        for ino, address in zip(range(32, IDT_ENTRIES - 1), irq_stubs):
            self.set_gate(ino, address)

    def register_handler(self, irq: int, handler: Handler | None) -> None:
        """Install ``handler`` for interrupt number ``irq``; None removes it."""
        if not 0 <= irq < IDT_ENTRIES:
            raise ValueError(f"interrupt number {irq} out of range")
        if handler is None:
            self._handlers.pop(irq, None)
        else:
            self._handlers[irq] = handler

    def _switch(self, space: Any) -> None:
        if self.switch_space is not None:
            self.switch_space(space)

    def _process(self) -> Any:
        return self.current_process() if self.current_process is not None else None

    def handle_irq(self, frame: InterruptFrame) -> None:
        """Acknowledge the interrupt at the PICs and run its handler."""
        self._switch(self.kernel_space)
        if frame.int_no >= 40:
            self.ports.outb(_PIC_SLAVE_COMMAND, _PIC_EOI)
        self.ports.outb(_PIC_MASTER_COMMAND, _PIC_EOI)

        handler = self._handlers.get(frame.int_no)
        if handler is not None:
            handler(frame)

        process = self._process()
        if process is not None:
            self._switch(process.pml4)

    def describe_exception(self, frame: InterruptFrame, fault_address: int = 0) -> str:
        """Return the report for a CPU exception; page faults are decoded in detail."""
        if not 0 <= frame.int_no < len(EXCEPTION_NAMES):
            raise ValueError(f"interrupt {frame.int_no} is not a CPU exception")

        lines = [
            vformat(
                "CPU exception triggered\n\n[Exception Info]\nType: %s\n",
                (EXCEPTION_NAMES[frame.int_no],),
            )
        ]
        if frame.int_no == _PAGE_FAULT:
            code = frame.err_code
            lines.append("Error Code:")
            lines.append(vformat("- Tried to access virtual address 0x%x\n", (fault_address,)))
            if code & 0b1:
                lines.append("- Couldn't complete because of page-protection violation")
            else:
                lines.append("- Couldn't complete because page was not present")
            if code & 0b10:
                lines.append("- This was an attempt to WRITE to this address.")
            else:
                lines.append("- This was an attempt to READ from this address.")
            if code & 0b100:
                process = self._process()
                path = process.path if process is not None else "?"
                rip = process.rip if process is not None else 0
                lines.append(
                    vformat("- Memory access came from user ('%s') at 0x%x.\n", (path, rip))
                )
            else:
                lines.append("- Memory access came from kernel.")
            if code & 0b1000:
                lines.append("- caused by reading a 1 in a reserved field.")
            if code & 0b10000:
                lines.append("- caused by an instruction fetch.")

        lines.append(
            vformat(
                _REGISTER_REPORT,
                (
                    frame.cs,
                    frame.rip,
                    frame.rflags,
                    frame.err_code,
                    frame.rax,
                    frame.rcx,
                    frame.rdx,
                    frame.rsi,
                    frame.rdi,
                    frame.r8,
                    frame.r9,
                    frame.r10,
                    frame.r11,
                    frame.rbp,
                    frame.rsp,
                ),
            )
        )
        return "\n".join(lines)