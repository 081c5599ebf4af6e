import pytest

from hydrakit.pci import BarType, PciBus, config_address
from hydrakit.ports import PortBus


class FakeConfigSpace:
    """Configuration space behind ports 0xCF8/0xCFC, with BAR sizing."""

    def __init__(self, bus):
        self.functions = {}
        self.bar_sizes = {}
        self.sizing = set()
        self.address = 0
        bus.map(0xCF8, lambda: self.address, self._set_address)
        bus.map(0xCFC, self._read, self._write)

    def _set_address(self, value):
        self.address = value

    def add(self, loc, vendor, device, class_info=0, header=0, bars=()):
        regs = {0x00: (device << 16) | vendor, 0x08: class_info, 0x0C: header << 16}
        for number, (value, size) in enumerate(bars):
            regs[0x10 + 4 * number] = value
            self.bar_sizes[(loc, 0x10 + 4 * number)] = size
        self.functions[loc] = regs

    def _decode(self):
        a = self.address
        return ((a >> 16) & 0xFF, (a >> 11) & 0x1F, (a >> 8) & 0x7), a & 0xFC

    def _read(self):
        loc, off = self._decode()
        regs = self.functions.get(loc)
        if regs is None:
            return 0xFFFFFFFF
        if (loc, off) in self.sizing:
            size = self.bar_sizes.get((loc, off), 0)
            original = regs.get(off, 0)
            low = original & (0x3 if original & 1 else 0xF)
            return ((~(size - 1)) & 0xFFFFFFFF) | low if size else 0
        return regs.get(off, 0)

    def _write(self, value):
        loc, off = self._decode()
        regs = self.functions.get(loc)
        if regs is None:
            return
        if value == 0xFFFFFFFF and 0x10 <= off < 0x28:
            self.sizing.add((loc, off))
            return
        self.sizing.discard((loc, off))
        regs[off] = value


@pytest.fixture
def setup():
    ports = PortBus()
    space = FakeConfigSpace(ports)
    return PciBus(ports), space


def test_config_address_fields_round_trip():
    addr = config_address(3, 17, 5, 0x13)
    assert addr >> 31 == 1
    assert (addr >> 16) & 0xFF == 3
    assert (addr >> 11) & 0x1F == 17
    assert (addr >> 8) & 0x7 == 5
    assert addr & 0xFF == 0x10


def test_config_address_enable_bit_only():
    assert config_address(0, 0, 0, 0) == 0x80000000


@pytest.mark.parametrize("args", [(256, 0, 0, 0), (0, 32, 0, 0), (0, 0, 8, 0), (0, 0, 0, 256)])
def test_config_address_out_of_range(args):
    with pytest.raises(ValueError):
        config_address(*args)


def test_empty_bus_finds_nothing(setup):
    pci, _ = setup
    assert pci.scan() == 0
    assert pci.device(0) is None


def test_scan_reads_identity_and_class(setup):
    pci, space = setup
    space.add((0, 1, 1), 0x8086, 0x7010, class_info=(0x01 << 24) | (0x01 << 16) | (0x80 << 8))
    space.add((0, 1, 0), 0x8086, 0x7000, header=0x80)
    assert pci.scan() == 2
    first, second = pci.device(0), pci.device(1)
    assert (first.function, second.function) == (0, 1)
    assert second.vendor_id == 0x8086
    assert second.device_id == 0x7010
    assert (second.class_code, second.subclass_code, second.prog_if) == (0x01, 0x01, 0x80)
    assert first.header_type == 0x80


def test_single_function_device_hides_other_functions(setup):
    pci, space = setup
    space.add((0, 2, 0), 0x1234, 0x1111)
    space.add((0, 2, 3), 0x1234, 0x2222)
    assert pci.scan() == 1
    assert pci.device(0).device_id == 0x1111


def test_vendor_zero_is_absent(setup):
    pci, space = setup
    space.add((1, 0, 0), 0x0000, 0x1111)
    assert pci.scan() == 0


def test_bar_decoding_and_restore(setup):
    pci, space = setup
    io_bar = (0x1F1, 8)
    mem_bar = (0xFEB00008, 0x1000)
    space.add((0, 3, 0), 0x1234, 0x0001, bars=[io_bar, mem_bar])
    pci.scan()
    bars = pci.device(0).bars
    assert len(bars) == 6
    assert bars[0].type is BarType.INPUT_OUTPUT
    assert bars[0].address == 0x1F0
    assert bars[0].size == 8
    assert bars[0].prefetchable is False
    assert bars[1].type is BarType.MEMORY_MAPPING
    assert bars[1].address == 0xFEB00000
    assert bars[1].size == 0x1000
    assert bars[1].prefetchable is True
    assert space.functions[(0, 3, 0)][0x10] == 0x1F1
    assert space.functions[(0, 3, 0)][0x14] == 0xFEB00008


def test_unused_bar_has_zero_size(setup):
    pci, space = setup
    space.add((0, 4, 0), 0x1234, 0x0002)
    pci.scan()
    assert all(bar.size == 0 and bar.address == 0 for bar in pci.device(0).bars)


def test_free_and_rescan(setup):
    pci, space = setup
    space.add((0, 5, 0), 0x1234, 0x0003)
    pci.scan()
    assert len(pci) == 1
    pci.free()
    assert len(pci) == 0
    assert pci.device(0) is None
    assert pci.scan() == 1
    assert [d.device for d in pci] == [5]