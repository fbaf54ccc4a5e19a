"""Filesystem volumes and directory entries layered over block devices."""

from __future__ import annotations

import logging

from .bcache import BlockCache
from .device import PAGE_SIZE, Device, DeviceError

log = logging.getLogger(__name__)


class FsError(Exception):
    """Base class of filesystem errors."""


class FsNotFoundError(FsError):
    """A name, path or filesystem does not exist."""


class FsNotADirectoryError(FsError):
    """A directory operation was applied to something else."""


class FsNotEmptyError(FsError):
    """A directory that still holds entries cannot be removed."""


class FsOutOfSpaceError(FsError):
    """The volume has no room left."""


class FsNotImplementedError(FsError):
    """The filesystem does not support the requested operation."""


class FileSystem:
    """A filesystem type; subclasses override the operations they support."""

    def __init__(self, name: str, cache: BlockCache | None = None) -> None:
        self.name = name
        self.cache = cache if cache is not None else BlockCache()

    def _unsupported(self, operation: str) -> FsNotImplementedError:
        return FsNotImplementedError(f"{self.name}: {operation} is not supported")

    def volume_open(self, device: Device) -> Volume | None:
        raise self._unsupported("volume_open")

    def volume_close(self, volume: Volume) -> None:
        """Write back every cached block of the volume's device."""
        self.cache.flush_device(volume.device)

    def volume_format(self, device: Device):
        raise self._unsupported("volume_format")

    def volume_root(self, volume: Volume) -> Dirent:
        raise self._unsupported("volume_root")

    def lookup(self, dirent: Dirent, name: str) -> Dirent | None:
        raise self._unsupported("lookup")

    def mkdir(self, dirent: Dirent, name: str) -> Dirent | None:
        raise self._unsupported("mkdir")

    def mkfile(self, dirent: Dirent, name: str) -> Dirent | None:
        raise self._unsupported("mkfile")

    def read_block(self, dirent: Dirent, blocknum: int) -> bytes:
        raise self._unsupported("read_block")

    def write_block(self, dirent: Dirent, data: bytes, blocknum: int) -> None:
        raise self._unsupported("write_block")

    def list(self, dirent: Dirent) -> list[str]:
        raise self._unsupported("list")

    def remove(self, dirent: Dirent, name: str) -> None:
        raise self._unsupported("remove")

    def resize(self, dirent: Dirent, size: int) -> None:
        raise self._unsupported("resize")

    def close(self, dirent: Dirent) -> None:
        raise self._unsupported("close")


class Volume:
    """An instance of a filesystem stored on a device, reference counted."""

    def __init__(self, fs: FileSystem, device: Device, block_size: int) -> None:
        self.fs = fs
        self.device = device
        self.block_size = block_size
        self.refcount = 1

    @classmethod
    def open(cls, fs: FileSystem, device: Device) -> Volume:
        volume = fs.volume_open(device)
        if volume is None:
            raise FsNotFoundError(f"{fs.name}: no filesystem found on {device.name()} unit {device.unit()}")
        volume.fs = fs
        volume.device = device.addref()
        return volume

    def addref(self) -> Volume:
        self.refcount += 1
        return self

    def root(self) -> Dirent:
        dirent = self.fs.volume_root(self)
        dirent.volume = self.addref()
        return dirent

    def close(self) -> None:
        self.refcount -= 1
        if self.refcount == 0:
            self.fs.volume_close(self)
            self.fs.cache.flush_device(self.device)
            self.device.close()

    def __enter__(self) -> Volume:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Dirent:
    """One entry of the filesystem tree: a file or a directory."""

    def __init__(self, volume: Volume, size: int = 0, isdir: bool = False) -> None:
        self.volume = volume
        self.length = size
        self.directory = bool(isdir)
        self.refcount = 1

    @property
    def _fs(self) -> FileSystem:
        return self.volume.fs

    def addref(self) -> Dirent:
        self.refcount += 1
        return self

    def close(self) -> None:
        self.refcount -= 1
        if self.refcount == 0:
            self._fs.close(self)
            # Pairs with the volume reference taken when this entry was handed out.
            self.volume.close()

    def __enter__(self) -> Dirent:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def lookup(self, name: str) -> Dirent:
        if name == ".":
            return self.addref()
        found = self._fs.lookup(self, name)
        if found is None:
            raise FsNotFoundError(name)
        found.volume = self.volume.addref()
        return found

    def traverse(self, path: str) -> Dirent:
        """Follow a slash-separated path; the result is a new reference."""
        current, owned = self, False
        try:
            for part in (p for p in path.split("/") if p):
                found = current.lookup(part)
                if owned:
                    current.close()
                current, owned = found, True
        except FsError:
            if owned:
                current.close()
            raise
        return current if owned else self.addref()

    def list(self) -> list[str]:
        return self._fs.list(self)

    def _block(self, blocknum: int) -> bytes:
        block = self._fs.read_block(self, blocknum)
        if len(block) != self.volume.block_size:
            raise FsError(f"short block {blocknum}")
        return block

    def read(self, length: int, offset: int) -> bytes:
        """Read up to ``length`` bytes at ``offset``, clipped to the entry's size."""
        if offset > self.length:
            return b""
        length = min(length, self.length - offset)
        bs = self.volume.block_size
        out = bytearray()
        while length > 0:
            blocknum, skip = divmod(offset, bs)
            try:
                block = self._block(blocknum)
            except (FsError, DeviceError):
                if not out:
                    raise
                break
            chunk = block[skip:skip + min(bs - skip, length)]
            out += chunk
            length -= len(chunk)
            offset += len(chunk)
        return bytes(out)

    def write(self, data: bytes, offset: int) -> int:
        """Write ``data`` at ``offset``, growing the entry as needed; return bytes written."""
        data = bytes(data)
        fs = self._fs
        end = offset + len(data)
        if end > self.length:
            fs.resize(self, end)
        bs = self.volume.block_size
        total = 0
        while total < len(data):
            blocknum, skip = divmod(offset, bs)
            count = min(bs - skip, len(data) - total)
            try:
                if count == bs:
                    fs.write_block(self, data[total:total + bs], blocknum)
                else:
                    block = bytearray(self._block(blocknum))
                    block[skip:skip + count] = data[total:total + count]
                    fs.write_block(self, bytes(block), blocknum)
            except (FsError, DeviceError):
                if total == 0:
                    raise
                break
            total += count
            offset += count
        return total

    def _created(self, made: Dirent | None, name: str) -> Dirent:
        if made is None:
            raise FsError(f"cannot create {name!r}")
        made.volume = self.volume.addref()
        return made

    def mkdir(self, name: str) -> Dirent:
        return self._created(self._fs.mkdir(self, name), name)

    def mkfile(self, name: str) -> Dirent:
        return self._created(self._fs.mkfile(self, name), name)

    def remove(self, name: str) -> None:
        self._fs.remove(self, name)

    def size(self) -> int:
        return self.length

    def isdir(self) -> bool:
        return self.directory


def copy_tree(src: Dirent, dst: Dirent, depth: int = 0) -> None:
    """Copy every entry below ``src`` into ``dst``, recursing into directories."""
    names = src.list()
    if not names:
        raise FsNotFoundError("nothing to copy")
    prefix = ">" * depth
    for name in names:
        if name in (".", ".."):
            continue
        try:
            new_src = src.lookup(name)
        except FsError:
            log.warning("couldn't lookup %s in directory!", name)
            continue
        with new_src:
            if new_src.isdir():
                log.info("%s%s (dir)", prefix, name)
                try:
                    new_dst = dst.mkdir(name)
                except FsError:
                    log.warning("couldn't create %s!", name)
                    continue
                with new_dst:
                    copy_tree(new_src, new_dst, depth + 1)
            else:
                log.info("%s%s (%d bytes)", prefix, name, new_src.size())
                try:
                    new_dst = dst.mkfile(name)
                except FsError:
                    log.warning("couldn't create %s!", name)
                    continue
                with new_dst:
                    size = new_src.size()
                    offset = 0
                    while offset < size:
                        chunk = min(PAGE_SIZE, size - offset)
                        new_dst.write(new_src.read(chunk, offset), offset)
                        offset += chunk


class FsRegistry:
    """Filesystem types by name; the most recently registered wins a clash."""

    def __init__(self) -> None:
        self._filesystems: list[FileSystem] = []

    def register(self, fs: FileSystem) -> None:
        self._filesystems.insert(0, fs)

    def lookup(self, name: str) -> FileSystem | None:
        return next((f for f in self._filesystems if f.name == name), None)

    def format(self, name: str, device: Device):
        fs = self.lookup(name)
        if fs is None:
            raise FsNotFoundError(f"no filesystem named {name!r}")
        return fs.volume_format(device)