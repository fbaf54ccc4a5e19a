import pytest

from nexcore.bcache import BlockCache
from nexcore.device import Device, DeviceError, MemoryDriver

BS = 512
NBLOCKS = 8


@pytest.fixture
def driver():
    drv = MemoryDriver("mem")
    drv.add_unit(0, NBLOCKS, BS, "a")
    drv.add_unit(1, NBLOCKS, BS, "b")
    return drv


@pytest.fixture
def device(driver):
    return Device(driver, 0, NBLOCKS, BS)


def block(fill):
    return bytes([fill]) * BS


def test_write_is_deferred_until_flush(driver, device):
    cache = BlockCache()
    cache.write_block(device, block(7), 3)
    assert driver.read(0, 1, 3) == bytes(BS)
    assert cache.read_block(device, 3) == block(7)
    cache.flush_block(device, 3)
    assert driver.read(0, 1, 3) == block(7)
    assert cache.get_stats().writebacks == 1


def test_clean_flush_writes_nothing(device):
    cache = BlockCache()
    cache.write_block(device, block(1), 0)
    cache.flush_all()
    cache.flush_all()
    assert cache.get_stats().writebacks == 1


def test_read_hits_and_misses(driver, device):
    driver.write(0, block(9), 2)
    cache = BlockCache()
    assert cache.read_block(device, 2) == block(9)
    assert cache.read_block(device, 2) == block(9)
    stats = cache.get_stats()
    assert (stats.read_misses, stats.read_hits) == (1, 1)


def test_write_hits_and_misses(device):
    cache = BlockCache()
    cache.write_block(device, block(1), 0)
    cache.write_block(device, block(2), 0)
    stats = cache.get_stats()
    assert (stats.write_misses, stats.write_hits) == (1, 1)


def test_eviction_writes_back_oldest(driver, device):
    cache = BlockCache(max_size=2)
    for i in range(3):
        cache.write_block(device, block(i + 1), i)
    assert len(cache) == 2
    assert driver.read(0, 1, 0) == block(1)
    assert driver.read(0, 1, 1) == bytes(BS)
    assert cache.get_stats().writebacks == 1


def test_failed_read_leaves_no_entry(device):
    cache = BlockCache()
    with pytest.raises(DeviceError):
        cache.read_block(device, NBLOCKS)
    with pytest.raises(DeviceError):
        cache.read_block(device, NBLOCKS)
    assert len(cache) == 0
    assert cache.get_stats().read_misses == 2


def test_multi_block_read_stops_at_end(driver, device):
    driver.write(0, block(4), NBLOCKS - 1)
    cache = BlockCache()
    assert cache.read(device, 3, NBLOCKS - 1) == block(4)
    with pytest.raises(DeviceError):
        cache.read(device, 2, NBLOCKS)


def test_multi_block_write_round_trip(device):
    cache = BlockCache()
    data = block(5) + block(6)
    assert cache.write(device, data, 2, 4) == 2
    assert cache.read(device, 2, 4) == data


def test_write_block_size_checked(device):
    cache = BlockCache()
    with pytest.raises(ValueError):
        cache.write_block(device, b"short", 0)
    with pytest.raises(ValueError):
        BlockCache(max_size=0)


def test_flush_device_only_touches_that_device(driver, device):
    other = Device(driver, 1, NBLOCKS, BS)
    cache = BlockCache()
    cache.write_block(device, block(1), 0)
    cache.write_block(other, block(2), 0)
    cache.flush_device(other)
    assert driver.read(1, 1, 0) == block(2)
    assert driver.read(0, 1, 0) == bytes(BS)


def test_stats_snapshot_is_a_copy(device):
    cache = BlockCache()
    snapshot = cache.get_stats()
    cache.write_block(device, block(1), 0)
    assert snapshot.write_misses == 0
    assert cache.get_stats().write_misses == 1