"""A simple block filesystem with inodes, a free-block bitmap and flat directories."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from typing import Iterator

from .bcache import BlockCache
from .device import Device
from .fs import (
    Dirent,
    FileSystem,
    FsError,
    FsNotEmptyError,
    FsNotFoundError,
    FsOutOfSpaceError,
    Volume,
)

log = logging.getLogger(__name__)

DISKFS_MAGIC = 0xABCD4321
DISKFS_BLOCK_SIZE = 4096
DISKFS_DIRECT_POINTERS = 6
DISKFS_NAME_MAX = 26

ITEM_BLANK = 0
ITEM_FILE = 1
ITEM_DIR = 2

_SUPERBLOCK = struct.Struct("<8I")
_INODE = struct.Struct(f"<II{DISKFS_DIRECT_POINTERS}II")
_ITEM = struct.Struct(f"<IBB{DISKFS_NAME_MAX}s")
_POINTER = struct.Struct("<I")

INODE_SIZE = _INODE.size
ITEM_SIZE = _ITEM.size
DISKFS_INODES_PER_BLOCK = DISKFS_BLOCK_SIZE // INODE_SIZE
DISKFS_ITEMS_PER_BLOCK = DISKFS_BLOCK_SIZE // ITEM_SIZE
DISKFS_POINTERS_PER_BLOCK = DISKFS_BLOCK_SIZE // _POINTER.size
_BITS_PER_BITMAP_BLOCK = DISKFS_BLOCK_SIZE * 8
# The inode table is sized from a fixed budget of bytes.
_INODE_TABLE_BUDGET = 1024


@dataclass
class Superblock:
    """Where each region of the volume starts and how many blocks it spans."""

    magic: int = DISKFS_MAGIC
    block_size: int = DISKFS_BLOCK_SIZE
    inode_start: int = 0
    inode_blocks: int = 0
    bitmap_start: int = 0
    bitmap_blocks: int = 0
    data_start: int = 0
    data_blocks: int = 0

    def pack(self) -> bytes:
        return _SUPERBLOCK.pack(
            self.magic, self.block_size, self.inode_start, self.inode_blocks,
            self.bitmap_start, self.bitmap_blocks, self.data_start, self.data_blocks,
        )

    @classmethod
    def unpack(cls, data: bytes) -> Superblock:
        return cls(*_SUPERBLOCK.unpack_from(data))


@dataclass
class Inode:
    """Size and block pointers of one file or directory."""

    inuse: int = 0
    size: int = 0
    direct: list[int] = field(default_factory=lambda: [0] * DISKFS_DIRECT_POINTERS)
    indirect: int = 0

    def pack(self) -> bytes:
        if len(self.direct) != DISKFS_DIRECT_POINTERS:
            raise ValueError(f"an inode has exactly {DISKFS_DIRECT_POINTERS} direct pointers")
        return _INODE.pack(self.inuse, self.size, *self.direct, self.indirect)

    @classmethod
    def unpack(cls, data: bytes) -> Inode:
        values = _INODE.unpack_from(data)
        return cls(values[0], values[1], list(values[2:2 + DISKFS_DIRECT_POINTERS]), values[-1])


@dataclass
class Item:
    """One directory entry: a name bound to an inode number."""

    inumber: int = 0
    type: int = ITEM_BLANK
    name: str = ""

    def pack(self) -> bytes:
        raw = self.name.encode("utf-8")
        if len(raw) > DISKFS_NAME_MAX:
            raise ValueError(f"name longer than {DISKFS_NAME_MAX} bytes: {self.name!r}")
        return _ITEM.pack(self.inumber, self.type, len(raw), raw)

    @classmethod
    def unpack(cls, data: bytes) -> Item:
        inumber, kind, length, raw = _ITEM.unpack_from(data)
        name = raw[:min(length, DISKFS_NAME_MAX)].decode("utf-8", errors="replace")
        return cls(inumber, kind, name)


def _pointer(block: bytes, index: int) -> int:
    return _POINTER.unpack_from(block, index * _POINTER.size)[0]


def _set_pointer(block: bytearray, index: int, value: int) -> None:
    _POINTER.pack_into(block, index * _POINTER.size, value)


def _items(block: bytes) -> Iterator[tuple[int, Item]]:
    for j in range(DISKFS_ITEMS_PER_BLOCK):
        yield j, Item.unpack(block[j * ITEM_SIZE:(j + 1) * ITEM_SIZE])


def _blocks_for(size: int) -> int:
    return -(-size // DISKFS_BLOCK_SIZE)


class DiskVolume(Volume):
    def __init__(self, fs: FileSystem, device: Device, block_size: int, disk: Superblock) -> None:
        super().__init__(fs, device, block_size)
        self.disk = disk


class DiskDirent(Dirent):
    def __init__(self, volume: Volume, inumber: int, inode: Inode, isdir: bool) -> None:
        super().__init__(volume, inode.size, isdir)
        self.inumber = inumber
        self.inode = inode


class DiskFs(FileSystem):
    """Volumes laid out as superblock, inode table, bitmap and data blocks."""

    def __init__(self, cache: BlockCache | None = None) -> None:
        super().__init__("diskfs", cache)

    # Raw and region-relative block access.

    def _block_read(self, device: Device, blockno: int) -> bytearray:
        return bytearray(self.cache.read(device, 1, blockno))

    def _block_write(self, device: Device, data: bytes, blockno: int) -> None:
        self.cache.write_block(device, bytes(data), blockno)

    @staticmethod
    def _check(blockno: int, count: int, region: str) -> None:
        if not 0 <= blockno < count:
            raise FsOutOfSpaceError(f"{region} block {blockno} out of range")

    def _bitmap_read(self, v: DiskVolume, blockno: int) -> bytearray:
        self._check(blockno, v.disk.bitmap_blocks, "bitmap")
        return self._block_read(v.device, v.disk.bitmap_start + blockno)

    def _bitmap_write(self, v: DiskVolume, data: bytes, blockno: int) -> None:
        self._check(blockno, v.disk.bitmap_blocks, "bitmap")
        self._block_write(v.device, data, v.disk.bitmap_start + blockno)

    def _inode_block_read(self, v: DiskVolume, blockno: int) -> bytearray:
        self._check(blockno, v.disk.inode_blocks, "inode")
        return self._block_read(v.device, v.disk.inode_start + blockno)

    def _inode_block_write(self, v: DiskVolume, data: bytes, blockno: int) -> None:
        self._check(blockno, v.disk.inode_blocks, "inode")
        self._block_write(v.device, data, v.disk.inode_start + blockno)

    def _data_read(self, v: DiskVolume, blockno: int) -> bytearray:
        self._check(blockno, v.disk.data_blocks, "data")
        return self._block_read(v.device, v.disk.data_start + blockno)

    def _data_write(self, v: DiskVolume, data: bytes, blockno: int) -> None:
        self._check(blockno, v.disk.data_blocks, "data")
        self._block_write(v.device, data, v.disk.data_start + blockno)

    # Allocation.

    def _data_block_alloc(self, v: DiskVolume) -> int:
        for i in range(v.disk.bitmap_blocks):
            block = self._bitmap_read(v, i)
            for j, byte in enumerate(block):
                if byte == 0xFF:
                    continue
                for k in range(8):
                    if byte & (1 << k):
                        continue
                    blockno = i * _BITS_PER_BITMAP_BLOCK + j * 8 + k
                    # Block zero stands for "no block" and is never handed out.
                    if blockno == 0:
                        continue
                    if blockno >= v.disk.data_blocks:
                        log.warning("diskfs: warning: out of space!")
                        raise FsOutOfSpaceError("no free data blocks")
                    block[j] |= 1 << k
                    self._bitmap_write(v, block, i)
                    return blockno
        log.warning("diskfs: warning: out of space!")
        raise FsOutOfSpaceError("no free data blocks")

    def _data_block_free(self, v: DiskVolume, blockno: int) -> None:
        index, bit = divmod(blockno, _BITS_PER_BITMAP_BLOCK)
        block = self._bitmap_read(v, index)
        block[bit // 8] &= ~(1 << (bit % 8)) & 0xFF
        self._bitmap_write(v, block, index)

    def _inumber_alloc(self, v: DiskVolume) -> int:
        for i in range(v.disk.inode_blocks):
            block = self._inode_block_read(v, i)
            for j in range(DISKFS_INODES_PER_BLOCK):
                start = j * INODE_SIZE
                inode = Inode.unpack(block[start:start + INODE_SIZE])
                if not inode.inuse:
                    inode.inuse = 1
                    block[start:start + INODE_SIZE] = inode.pack()
                    self._inode_block_write(v, block, i)
                    return i * DISKFS_INODES_PER_BLOCK + j
        log.warning("diskfs: warning: out of inodes!")
        raise FsOutOfSpaceError("no free inodes")

    def _inode_load(self, v: DiskVolume, inumber: int) -> Inode:
        index, position = divmod(inumber, DISKFS_INODES_PER_BLOCK)
        block = self._inode_block_read(v, index)
        start = position * INODE_SIZE
        return Inode.unpack(block[start:start + INODE_SIZE])

    def _inode_save(self, v: DiskVolume, inumber: int, inode: Inode) -> None:
        index, position = divmod(inumber, DISKFS_INODES_PER_BLOCK)
        block = self._inode_block_read(v, index)
        start = position * INODE_SIZE
        block[start:start + INODE_SIZE] = inode.pack()
        self._inode_block_write(v, block, index)

    def _inode_delete(self, v: DiskVolume, inumber: int) -> None:
        node = self._inode_load(v, inumber)
        nblocks = _blocks_for(node.size)
        pointers = list(node.direct[:min(nblocks, DISKFS_DIRECT_POINTERS)])
        if nblocks > DISKFS_DIRECT_POINTERS and node.indirect:
            iblock = self._data_read(v, node.indirect)
            count = min(nblocks - DISKFS_DIRECT_POINTERS, DISKFS_POINTERS_PER_BLOCK)
            pointers.extend(_pointer(iblock, k) for k in range(count))
        if node.indirect:
            pointers.append(node.indirect)
        for blockno in pointers:
            if blockno:
                self._data_block_free(v, blockno)
        self._inode_save(v, inumber, Inode())

    # File blocks.

    @staticmethod
    def _indirect_index(blocknum: int) -> int:
        index = blocknum - DISKFS_DIRECT_POINTERS
        if index >= DISKFS_POINTERS_PER_BLOCK:
            raise FsOutOfSpaceError(f"file block {blocknum} beyond the largest file")
        return index

    def _inode_read(self, d: DiskDirent, blocknum: int) -> bytearray:
        v = d.volume
        if blocknum < DISKFS_DIRECT_POINTERS:
            actual = d.inode.direct[blocknum]
        else:
            index = self._indirect_index(blocknum)
            actual = _pointer(self._data_read(v, d.inode.indirect), index)
        return self._data_read(v, actual)

    def _inode_write(self, d: DiskDirent, data: bytes, blocknum: int) -> None:
        v = d.volume
        inode = d.inode
        if blocknum < DISKFS_DIRECT_POINTERS:
            actual = inode.direct[blocknum]
            if actual == 0:
                actual = self._data_block_alloc(v)
                inode.direct[blocknum] = actual
                self._inode_save(v, d.inumber, inode)
        else:
            index = self._indirect_index(blocknum)
            if inode.indirect == 0:
                inode.indirect = self._data_block_alloc(v)
                self._inode_save(v, d.inumber, inode)
                self._data_write(v, bytes(DISKFS_BLOCK_SIZE), inode.indirect)
            iblock = self._data_read(v, inode.indirect)
            actual = _pointer(iblock, index)
            if actual == 0:
                actual = self._data_block_alloc(v)
                _set_pointer(iblock, index, actual)
                self._data_write(v, iblock, inode.indirect)
        self._data_write(v, data, actual)

    # Directories.

    def _dirent_create(self, volume: DiskVolume, inumber: int, kind: int) -> DiskDirent:
        return DiskDirent(volume, inumber, self._inode_load(volume, inumber), kind == ITEM_DIR)

    def _dir_blocks(self, d: DiskDirent) -> Iterator[tuple[int, bytearray]]:
        for i in range(_blocks_for(d.length)):
            yield i, self._inode_read(d, i)

    def _dirent_add(self, d: DiskDirent, name: str, kind: int, inumber: int) -> None:
        packed = Item(inumber, kind, name).pack()
        for i, block in self._dir_blocks(d):
            for j, existing in _items(block):
                if existing.type != ITEM_BLANK:
                    continue
                block[j * ITEM_SIZE:(j + 1) * ITEM_SIZE] = packed
                self._inode_write(d, block, i)
                newsize = i * DISKFS_BLOCK_SIZE + (j + 1) * ITEM_SIZE
                if newsize > d.length:
                    self.resize(d, newsize)
                    self._inode_save(d.volume, d.inumber, d.inode)
                return
        block = bytearray(DISKFS_BLOCK_SIZE)
        block[:ITEM_SIZE] = packed
        nblocks = _blocks_for(d.length)
        self.resize(d, d.length + ITEM_SIZE)
        self._inode_write(d, block, nblocks)
        self._inode_save(d.volume, d.inumber, d.inode)

    def _create(self, d: DiskDirent, name: str, kind: int) -> DiskDirent:
        if len(name.encode("utf-8")) > DISKFS_NAME_MAX:
            raise FsError(f"name too long: {name!r}")
        if self.lookup(d, name) is not None:
            raise FsError(f"{name!r} already exists")
        v = d.volume
        inumber = self._inumber_alloc(v)
        self._inode_save(v, inumber, Inode(inuse=1, size=0))
        self._dirent_add(d, name, kind, inumber)
        return self._dirent_create(v, inumber, kind)

    # Filesystem operations.

    @staticmethod
    def _check_device(device: Device) -> None:
        if device.block_size() != DISKFS_BLOCK_SIZE:
            raise FsError(
                f"diskfs needs {DISKFS_BLOCK_SIZE}-byte blocks, "
                f"{device.name()} unit {device.unit()} has {device.block_size()}"
            )

    def volume_format(self, device: Device) -> Superblock:
        """Write an empty filesystem holding only a root directory; return its superblock."""
        self._check_device(device)
        nblocks = device.nblocks()
        log.info("diskfs: formatting device %s unit %d", device.name(), device.unit())

        inode_blocks = _INODE_TABLE_BUDGET // INODE_SIZE
        # Block zero holds the superblock.
        remaining = nblocks - 1 - inode_blocks
        bitmap_blocks = 1 + max(remaining, 0) // _BITS_PER_BITMAP_BLOCK
        data_blocks = remaining - bitmap_blocks
        if data_blocks < 2:
            raise FsOutOfSpaceError(f"device of {nblocks} blocks is too small")

        sb = Superblock(
            inode_start=1,
            inode_blocks=inode_blocks,
            bitmap_blocks=bitmap_blocks,
            data_blocks=data_blocks,
        )
        sb.bitmap_start = sb.inode_start + sb.inode_blocks
        sb.data_start = sb.bitmap_start + sb.bitmap_blocks
        log.info("diskfs: %d inode blocks, %d bitmap blocks, %d data blocks",
                 sb.inode_blocks, sb.bitmap_blocks, sb.data_blocks)

        block = bytearray(DISKFS_BLOCK_SIZE)
        block[:_SUPERBLOCK.size] = sb.pack()
        log.info("diskfs: writing superblock")
        self._block_write(device, block, 0)

        zero = bytes(DISKFS_BLOCK_SIZE)
        log.info("diskfs: writing %d inode blocks", sb.inode_blocks)
        for i in reversed(range(sb.inode_blocks)):
            self._block_write(device, zero, sb.inode_start + i)
        log.info("diskfs: writing %d bitmap blocks", sb.bitmap_blocks)
        for i in reversed(range(sb.bitmap_blocks)):
            self._block_write(device, zero, sb.bitmap_start + i)

        log.info("diskfs: creating root directory")
        # Data blocks zero and one are in use from the start.
        block = bytearray(DISKFS_BLOCK_SIZE)
        block[0] = 0x03
        self._block_write(device, block, sb.bitmap_start)

        root = Inode(inuse=1, size=ITEM_SIZE)
        root.direct[0] = 1
        block = bytearray(DISKFS_BLOCK_SIZE)
        block[:INODE_SIZE] = root.pack()
        self._block_write(device, block, sb.inode_start)

        block = bytearray(DISKFS_BLOCK_SIZE)
        block[:ITEM_SIZE] = Item(0, ITEM_DIR, ".").pack()
        self._block_write(device, block, sb.data_start + 1)

        log.info("diskfs: flushing buffer cache")
        self.cache.flush_device(device)
        return sb

    def volume_open(self, device: Device) -> DiskVolume | None:
        self._check_device(device)
        log.info("diskfs: opening device %s unit %d", device.name(), device.unit())
        sb = Superblock.unpack(self._block_read(device, 0))
        if sb.magic != DISKFS_MAGIC:
            log.info("diskfs: no filesystem found!")
            return None
        log.info("diskfs: %d bitmap blocks, %d inode blocks, %d data blocks",
                 sb.bitmap_blocks, sb.inode_blocks, sb.data_blocks)
        return DiskVolume(self, device, device.block_size(), sb)

    def volume_close(self, volume: Volume) -> None:
        pass

    def volume_root(self, volume: DiskVolume) -> DiskDirent:
        return self._dirent_create(volume, 0, ITEM_DIR)

    def lookup(self, dirent: DiskDirent, name: str) -> DiskDirent | None:
        for _, block in self._dir_blocks(dirent):
            for _, item in _items(block):
                if item.type != ITEM_BLANK and item.name == name:
                    return self._dirent_create(dirent.volume, item.inumber, item.type)
        return None

    def mkdir(self, dirent: DiskDirent, name: str) -> DiskDirent:
        return self._create(dirent, name, ITEM_DIR)

    def mkfile(self, dirent: DiskDirent, name: str) -> DiskDirent:
        return self._create(dirent, name, ITEM_FILE)

    def read_block(self, dirent: DiskDirent, blocknum: int) -> bytes:
        return bytes(self._inode_read(dirent, blocknum))

    def write_block(self, dirent: DiskDirent, data: bytes, blocknum: int) -> None:
        self._inode_write(dirent, data, blocknum)

    def list(self, dirent: DiskDirent) -> list[str]:
        return [
            item.name
            for _, block in self._dir_blocks(dirent)
            for _, item in _items(block)
            if item.type in (ITEM_FILE, ITEM_DIR)
        ]

    def remove(self, dirent: DiskDirent, name: str) -> None:
        v = dirent.volume
        for i, block in self._dir_blocks(dirent):
            for j, item in _items(block):
                if item.type == ITEM_BLANK or item.name != name:
                    continue
                if item.type == ITEM_DIR and self._inode_load(v, item.inumber).size > 0:
                    raise FsNotEmptyError(name)
                item.type = ITEM_BLANK
                block[j * ITEM_SIZE:(j + 1) * ITEM_SIZE] = item.pack()
                self._inode_write(dirent, block, i)
                self._inode_delete(v, item.inumber)
                return
        raise FsNotFoundError(name)

    def resize(self, dirent: DiskDirent, size: int) -> None:
        dirent.length = dirent.inode.size = size

    def close(self, dirent: DiskDirent) -> None:
        self._inode_save(dirent.volume, dirent.inumber, dirent.inode)