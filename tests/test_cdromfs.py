import struct

import pytest

from nexcore.bcache import BlockCache
from nexcore.cdromfs import CdromFs, fix_filename
from nexcore.device import DriverRegistry, MemoryDriver
from nexcore.fs import FsNotADirectoryError, FsNotFoundError, FsNotImplementedError, Volume

BS = 2048
NBLOCKS = 32
HELLO = (bytes(range(256)) * 20)[:5000]
INNER = b"0123456789"


def record(ident, sector, length, isdir):
    size = 33 + len(ident) + (1 if len(ident) % 2 == 0 else 0)
    rec = bytearray(size)
    rec[0] = size
    struct.pack_into("<I", rec, 2, sector)
    struct.pack_into(">I", rec, 6, sector)
    struct.pack_into("<I", rec, 10, length)
    struct.pack_into(">I", rec, 14, length)
    rec[25] = 2 if isdir else 0
    rec[32] = len(ident)
    rec[33:33 + len(ident)] = ident
    return bytes(rec)


def descriptor(kind, root=None):
    block = bytearray(BS)
    block[0] = kind
    block[1:6] = b"CD001"
    block[6] = 1
    if root is not None:
        struct.pack_into("<I", block, 80, NBLOCKS)
        block[156:156 + len(root)] = root
    return bytes(block)


def pad(data):
    return data + bytes(-len(data) % BS)


def make_device(descriptors):
    driver = MemoryDriver("atapi")
    driver.add_unit(0, NBLOCKS, BS)
    registry = DriverRegistry()
    registry.register(driver)
    device = registry.open("atapi", 0)
    for index, desc in enumerate(descriptors):
        device.write(desc, 16 + index)
    root = (record(b"\x00", 20, BS, True) + record(b"\x01", 20, BS, True)
            + record(b"HELLO.TXT;1", 21, len(HELLO), False) + record(b"SUB.", 24, BS, True))
    device.write(pad(root), 20)
    device.write(pad(HELLO), 21)
    sub = record(b"\x00", 24, BS, True) + record(b"\x01", 20, BS, True) + record(b"INNER.DAT;1", 25, len(INNER), False)
    device.write(pad(sub), 24)
    device.write(pad(INNER), 25)
    return device


def standard_descriptors():
    return [descriptor(1, record(b"\x00", 20, BS, True)), descriptor(255)]


@pytest.fixture
def device():
    return make_device(standard_descriptors())


@pytest.fixture
def volume(device):
    return Volume.open(CdromFs(BlockCache()), device)


@pytest.mark.parametrize("raw, expected", [
    ("README.TXT;1", "readme.txt"),
    ("DIR.", "dir"),
    ("NAME", "name"),
    (".", "."),
])
def test_fix_filename(raw, expected):
    assert fix_filename(raw) == expected


def test_volume_reads_primary_descriptor(volume):
    assert volume.root_sector == 20
    assert volume.root_length == BS
    assert volume.total_sectors == NBLOCKS
    assert volume.block_size == BS


def test_root_listing(volume):
    assert volume.root().list() == [".", "..", "hello.txt", "sub"]


def test_read_whole_file(volume):
    f = volume.root().lookup("hello.txt")
    assert f.size() == len(HELLO)
    assert f.isdir() is False
    assert f.read(len(HELLO) + 100, 0) == HELLO


def test_read_across_block_boundary(volume):
    f = volume.root().traverse("hello.txt")
    assert f.read(100, 2040) == HELLO[2040:2140]


def test_traverse_into_subdirectory(volume):
    root = volume.root()
    inner = root.traverse("sub/inner.dat")
    assert inner.read(len(INNER), 0) == INNER
    assert root.traverse("sub").list() == [".", "..", "inner.dat"]


def test_dotdot_is_directory(volume):
    parent = volume.root().traverse("sub/..")
    assert parent.isdir()
    assert "hello.txt" in parent.list()


def test_missing_name_raises(volume):
    with pytest.raises(FsNotFoundError):
        volume.root().lookup("absent")


def test_lookup_in_file_raises(volume):
    f = volume.root().lookup("hello.txt")
    with pytest.raises(FsNotFoundError):
        f.lookup("anything")


def test_list_of_file_raises(volume):
    f = volume.root().lookup("hello.txt")
    with pytest.raises(FsNotADirectoryError):
        f.list()


def test_writes_are_unsupported(volume):
    root = volume.root()
    with pytest.raises(FsNotImplementedError):
        root.mkdir("new")
    with pytest.raises(FsNotImplementedError):
        root.lookup("hello.txt").write(b"x", 0)


def test_blank_device_has_no_filesystem():
    device = make_device([])
    with pytest.raises(FsNotFoundError):
        Volume.open(CdromFs(BlockCache()), device)


def test_other_descriptor_types_are_skipped():
    descs = [descriptor(2)] + standard_descriptors()
    volume = Volume.open(CdromFs(BlockCache()), make_device(descs))
    assert volume.root().lookup("hello.txt").read(10, 0) == HELLO[:10]


def test_terminator_stops_scan():
    descs = [descriptor(255), descriptor(1, record(b"\x00", 20, BS, True))]
    with pytest.raises(FsNotFoundError):
        Volume.open(CdromFs(BlockCache()), make_device(descs))


def test_references_are_released(device):
    volume = Volume.open(CdromFs(BlockCache()), device)
    assert device.refcount == 2
    root = volume.root()
    child = root.lookup("sub")
    assert volume.refcount == 3
    child.close()
    root.close()
    assert volume.refcount == 1
    volume.close()
    assert device.refcount == 1