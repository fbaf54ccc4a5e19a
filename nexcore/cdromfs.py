"""A read-only ISO 9660 filesystem."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Iterator

from .bcache import BlockCache
from .device import Device, DeviceError
from .fs import Dirent, FileSystem, FsNotADirectoryError, Volume

log = logging.getLogger(__name__)

CDROMFS_BLOCK_SIZE = 2048

VOLUME_TYPE_PRIMARY = 1
VOLUME_TYPE_TERMINATOR = 255
EXTENT_FLAG_DIRECTORY = 0x02

_DESCRIPTOR_START = 16
_DESCRIPTOR_COUNT = 16
_MAGIC = b"CD001"
_NSECTORS_OFFSET = 80
_ROOT_RECORD_OFFSET = 156

# length, first sector (LE), data length (LE), flags, identifier length
_RECORD = struct.Struct("<BxI4xI4x7xB6xB")


def fix_filename(name: str) -> str:
    """Drop the version and trailing dot of an ISO 9660 name and lower-case it."""
    if len(name) > 2 and name[-2] == ";":
        name = name[:-2]
    if len(name) > 1 and name[-1] == ".":
        name = name[:-1]
    return name.split("\0", 1)[0].lower()


@dataclass(frozen=True)
class _Record:
    name: str
    sector: int
    length: int
    isdir: bool


def _records(block: bytes) -> Iterator[_Record]:
    pos = 0
    while pos + _RECORD.size <= len(block):
        desc_len, sector, length, flags, ident_len = _RECORD.unpack_from(block, pos)
        if desc_len == 0:
            return
        ident = block[pos + _RECORD.size:pos + _RECORD.size + ident_len]
        if ident[:1] == b"\x00":
            name = "."
        elif ident[:1] == b"\x01":
            name = ".."
        else:
            name = fix_filename(ident.decode("latin-1"))
        yield _Record(name, sector, length, bool(flags & EXTENT_FLAG_DIRECTORY))
        pos += desc_len


class CdromVolume(Volume):
    def __init__(self, fs: FileSystem, device: Device, block_size: int,
                 root_sector: int, root_length: int, total_sectors: int) -> None:
        super().__init__(fs, device, block_size)
        self.root_sector = root_sector
        self.root_length = root_length
        self.total_sectors = total_sectors


class CdromDirent(Dirent):
    def __init__(self, volume: Volume, sector: int, size: int, isdir: bool) -> None:
        super().__init__(volume, size, isdir)
        self.sector = sector


class CdromFs(FileSystem):
    """ISO 9660 volumes; lookups, listings and reads only."""

    def __init__(self, cache: BlockCache | None = None) -> None:
        super().__init__("cdromfs", cache)

    def volume_open(self, device: Device) -> CdromVolume | None:
        log.info("cdromfs: scanning %s unit %d...", device.name(), device.unit())
        for j in range(_DESCRIPTOR_COUNT):
            log.debug("cdromfs: checking volume %d", j)
            try:
                desc = self.cache.read(device, 1, _DESCRIPTOR_START + j)
            except DeviceError:
                continue
            if desc[1:6] != _MAGIC:
                continue
            if desc[0] == VOLUME_TYPE_PRIMARY:
                (nsectors,) = struct.unpack_from("<I", desc, _NSECTORS_OFFSET)
                _, root_sector, root_length, _, _ = _RECORD.unpack_from(desc, _ROOT_RECORD_OFFSET)
                log.info("cdromfs: mounted filesystem on %s-%d", device.name(), device.unit())
                return CdromVolume(self, device, device.block_size(),
                                   root_sector, root_length, nsectors)
            if desc[0] == VOLUME_TYPE_TERMINATOR:
                break
        log.info("cdromfs: no filesystem found")
        return None

    def volume_close(self, volume: Volume) -> None:
        """Release the volume's cached blocks back to the device."""
        super().volume_close(volume)
        log.debug("cdromfs: closed %s-%d", volume.device.name(), volume.device.unit())

    def volume_root(self, volume: CdromVolume) -> CdromDirent:
        return CdromDirent(volume, volume.root_sector, volume.root_length, True)

    def read_block(self, dirent: CdromDirent, blocknum: int) -> bytes:
        return self.cache.read(dirent.volume.device, 1, dirent.sector + blocknum)

    def _directory_records(self, dirent: CdromDirent) -> Iterator[_Record]:
        nsectors = -(-dirent.length // CDROMFS_BLOCK_SIZE)
        for i in range(nsectors):
            yield from _records(self.read_block(dirent, i))

    def lookup(self, dirent: CdromDirent, name: str) -> CdromDirent | None:
        if not dirent.directory:
            return None
        for record in self._directory_records(dirent):
            if record.name == name:
                return CdromDirent(dirent.volume, record.sector, record.length, record.isdir)
        return None

    def list(self, dirent: CdromDirent) -> list[str]:
        if not dirent.directory:
            raise FsNotADirectoryError("not a directory")
        return [record.name for record in self._directory_records(dirent)]

    def close(self, dirent: Dirent) -> None:
        pass