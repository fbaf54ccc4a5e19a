import pytest

from nexcore.device import (
    PAGE_SIZE,
    Device,
    DeviceDriver,
    DeviceError,
    DriverRegistry,
    MemoryDriver,
)


@pytest.fixture
def registry():
    reg = DriverRegistry()
    driver = MemoryDriver("mem")
    driver.add_unit(0, 16, 512, "ramdisk")
    reg.register(driver)
    return reg


def test_probe_reports_unit():
    driver = MemoryDriver("mem")
    driver.add_unit(3, 10, 512, "ramdisk")
    assert driver.probe(3) == (10, 512, "ramdisk")
    assert driver.probe(4) is None


def test_open_and_round_trip(registry):
    dev = registry.open("mem", 0)
    payload = bytes(range(256)) * 4
    assert dev.write(payload, 2) == 2
    assert dev.read(2, 2) == payload
    assert dev.read(1, 0) == bytes(512)


def test_open_unknown_driver_or_unit(registry):
    with pytest.raises(DeviceError):
        registry.open("nothing", 0)
    with pytest.raises(DeviceError):
        registry.open("mem", 7)


def test_lookup_missing_returns_none(registry):
    assert registry.lookup("nothing") is None
    assert registry.lookup("mem").name == "mem"


def test_latest_registration_wins():
    reg = DriverRegistry()
    first = MemoryDriver("dup")
    second = MemoryDriver("dup")
    reg.register(first)
    reg.register(second)
    assert reg.lookup("dup") is second


def test_multiplier_scales_blocks():
    reg = DriverRegistry()
    driver = MemoryDriver("ata", multiplier=8)
    driver.add_unit(0, 64, 512, "disk")
    reg.register(driver)
    dev = reg.open("ata", 0)
    assert dev.block_size() == PAGE_SIZE
    assert dev.nblocks() * dev.block_size() == 64 * 512
    data = b"\x5a" * dev.block_size()
    assert dev.write(data, 1) == 1
    assert dev.read(1, 1) == data
    assert driver.read(0, 8, 8) == data


def test_set_multiplier_limits(registry):
    dev = registry.open("mem", 0)
    with pytest.raises(DeviceError):
        dev.set_multiplier(0)
    with pytest.raises(DeviceError):
        dev.set_multiplier(PAGE_SIZE // 512 + 1)
    dev.set_multiplier(2)
    assert dev.block_size() == 1024


def test_stats_count_driver_blocks():
    reg = DriverRegistry()
    driver = MemoryDriver("ata", multiplier=8)
    driver.add_unit(0, 64, 512, "disk")
    reg.register(driver)
    dev = reg.open("ata", 0)
    dev.read(2, 0)
    dev.write(bytes(dev.block_size()), 3)
    stats = reg.get_stats("ata")
    assert stats.blocks_read == 2 * 8
    assert stats.blocks_written == 8


def test_get_stats_is_a_copy(registry):
    dev = registry.open("mem", 0)
    snapshot = registry.get_stats("mem")
    dev.read(1, 0)
    assert snapshot.blocks_read == 0
    assert registry.get_stats("mem").blocks_read == 1
    with pytest.raises(DeviceError):
        registry.get_stats("nothing")


def test_out_of_range_read_fails(registry):
    dev = registry.open("mem", 0)
    with pytest.raises(DeviceError):
        dev.read(1, 16)
    with pytest.raises(DeviceError):
        dev.write(b"\x00" * 100, 0)


def test_base_driver_rejects_operations():
    driver = DeviceDriver("bare")
    dev = Device(driver, 0, 4, 512)
    with pytest.raises(DeviceError):
        dev.read(1, 0)
    with pytest.raises(DeviceError):
        dev.read_nonblock(1, 0)
    with pytest.raises(DeviceError):
        dev.write(bytes(512), 0)


def test_refcount(registry):
    dev = registry.open("mem", 0)
    assert dev.addref() is dev
    dev.close()
    assert dev.closed is False
    dev.close()
    assert dev.closed is True


def test_identity_accessors(registry):
    dev = registry.open("mem", 0)
    assert dev.name() == "mem"
    assert dev.unit() == 0
    assert dev.read_nonblock(1, 0) == bytes(512)