# hydrakit

`hydrakit` models the core pieces of a small x86_64 hobby operating system
in plain Python. The hardware is simulated, so everything runs and can be
tested on an ordinary machine. It is a library; it installs no commands.

## Modules

- `hydrakit.numfmt` – the integer, fixed-point and exponential conversions
  (`format_integer`, `format_fixed`, `format_exponent`) and their `Flags`.
- `hydrakit.printf` – the formatted output family (`vformat`, `sprintf`,
  `snprintf`, `fctprintf`), an 80×25 `TextConsole`, and the boot memory-map
  report (`BootInfo`, `MemoryMapEntry`, `describe_boot_info`).
- `hydrakit.gdt` – segment and system descriptor encoding
  (`encode_segment_descriptor`, `encode_system_descriptor`), the
  `TaskStateSegment`, the complete table from `build_gdt` and the load
  operand from `gdt_pointer`.
- `hydrakit.ports` – a `PortBus` whose ports are backed by Python callables.
  Unmapped ports read as all ones and drop writes.
- `hydrakit.interrupts` – `IdtEntry` gates and an `InterruptController` that
  remaps the PICs, dispatches IRQs with end-of-interrupt acknowledgement and
  describes CPU exceptions, with page faults decoded.
- `hydrakit.pci` – `config_address`, and a `PciBus` that scans every bus and
  device and decodes base address registers.
- `hydrakit.devices` – reference-counted `CharDevice`, `BlockDevice` and
  `InputDevice` bases. It also provides `E9Device` (debug port 0xE9),
  `VgaTextDevice` (a scrolling colour text screen), `Ps2Keyboard`, and
  `packet_to_ascii` for a QWERTZ layout.
- `hydrakit.vpt` – `PartitionTable` formats, a `PartitionRegistry` that
  splits block devices into `VirtualBlockDevice`s, and the raw device used
  when no table is recognised.
- `hydrakit.vmm` – four-level page tables (`AddressSpace`) over a simulated
  `PhysicalMemory`, with `align_down` and `align_up`.
- `hydrakit.shell` – a line-based `Shell` and the `Sysinit` loop that keeps
  restarting it, both running programs through a process host you supply.

## Installation

`hydrakit` needs Python 3.10 or later and has no runtime dependencies.
The `test` extra adds pytest.

## Formatting text

```python
from hydrakit.printf import sprintf, snprintf, TextConsole

sprintf("%5d|%-5s|", 42, "ab")    # '   42|ab   |'
sprintf("%#x", 255)               # '0xff'
snprintf(4, "%s", "overflow")     # ('ove', 8): the text that fits, full length

console = TextConsole()
console.printf("hi %d\n", 7)
console.cell(0, 0)                # ('h', 7)
```

Integer arguments are cut to the width their length modifier names (`hh`,
`h`, none, `l`, `ll`). A format that asks for more arguments than it was
given raises `TypeError`.

## Paging

```python
from hydrakit.vmm import AddressSpace, PageFlags, PhysicalMemory, align_down, align_up

space = AddressSpace(PhysicalMemory())
space.map(0x400000, 0x200000, PageFlags.PRESENT | PageFlags.WRITABLE | PageFlags.USER)
space.get_phys(0x400123, user=True)   # 0x200123
space.get_phys(0x800000)              # None: not mapped

align_down(0x1234)   # 0x1000
align_up(0x1234)     # 0x2000 (always the next boundary strictly above)
```

## Hardware on a port bus

```python
from hydrakit.ports import PortBus
from hydrakit.pci import PciBus
from hydrakit.devices import E9Device

ports = PortBus()
written = []
ports.map(0xE9, writer=written.append)
E9Device(ports).write("A")     # written == [0x41]

PciBus(ports).scan()           # 0: every unmapped port reads all ones
```

## The shell

A process host is any object with `spawn(path, argv)`, which returns a pid,
and `is_running(pid)`. `spawn` raises `ForkError` or `ExecError` from
`hydrakit.shell` on failure.

```python
import io
from hydrakit.shell import Shell

class Host:
    def spawn(self, path, argv):
        return 1

    def is_running(self, pid):
        return False

out = io.StringIO()
Shell(Host(), io.StringIO("help\nexit\n"), out).run()   # 0
out.getvalue()   # '> help\nHydra Shell v1.0\n> exit\n'
```

## Errors

Operations that a kernel would report with a negative status code raise
Python exceptions instead: `ValueError` for invalid arguments,
`DeviceError` for released or unresponsive devices, `PartitionError` for an
unreadable partition table and `MemoryError` when page frames run out.

## What it does not do

There is no filesystem layer: the package does not mount virtual block
devices, open files or resolve `"<disk>:/path"` names. Nor is there a device
manager that brings up devices from a PCI scan. Devices, partition tables
and block-device drivers are created and wired together by the caller.