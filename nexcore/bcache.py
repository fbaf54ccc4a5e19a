"""A write-back cache of device blocks."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, replace

from .device import Device, DeviceError

DEFAULT_MAX_CACHE_SIZE = 100


@dataclass
class CacheStats:
    """Hit, miss and write-back counters of a block cache."""

    read_hits: int = 0
    read_misses: int = 0
    write_hits: int = 0
    write_misses: int = 0
    writebacks: int = 0


@dataclass
class _Entry:
    device: Device
    block: int
    data: bytearray
    dirty: bool = False


class BlockCache:
    """Caches blocks per device; the oldest entries are evicted first."""

    def __init__(self, max_size: int = DEFAULT_MAX_CACHE_SIZE) -> None:
        if max_size < 1:
            raise ValueError("cache must hold at least one block")
        self.max_size = max_size
        # Ordered from oldest to newest.
        self._entries: OrderedDict[tuple[Device, int], _Entry] = OrderedDict()
        self._stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def _clean(self, entry: _Entry) -> None:
        if entry.dirty:
            entry.device.write(bytes(entry.data), entry.block)
            entry.dirty = False
            self._stats.writebacks += 1

    def _trim(self) -> None:
        while len(self._entries) > self.max_size:
            _, entry = self._entries.popitem(last=False)
            self._clean(entry)

    def _find_or_create(self, device: Device, block: int) -> tuple[_Entry, bool]:
        key = (device, block)
        entry = self._entries.get(key)
        hit = entry is not None
        if entry is None:
            entry = _Entry(device, block, bytearray(device.block_size()))
            self._entries[key] = entry
        self._trim()
        return entry, hit

    def read_block(self, device: Device, block: int) -> bytes:
        entry, hit = self._find_or_create(device, block)
        if hit:
            self._stats.read_hits += 1
        else:
            self._stats.read_misses += 1
            try:
                data = device.read(1, block)
            except DeviceError:
                del self._entries[(device, block)]
                raise
            entry.data[:] = data
        return bytes(entry.data)

    def read(self, device: Device, blocks: int, offset: int) -> bytes:
        """Read consecutive blocks, stopping early at the first failure after one success."""
        chunks: list[bytes] = []
        for block in range(offset, offset + blocks):
            try:
                chunks.append(self.read_block(device, block))
            except DeviceError:
                if not chunks:
                    raise
                break
        return b"".join(chunks)

    def write_block(self, device: Device, data: bytes, block: int) -> None:
        if len(data) != device.block_size():
            raise ValueError(f"block data must be {device.block_size()} bytes")
        entry, hit = self._find_or_create(device, block)
        if hit:
            self._stats.write_hits += 1
        else:
            self._stats.write_misses += 1
        entry.data[:] = data
        entry.dirty = True

    def write(self, device: Device, data: bytes, blocks: int, offset: int) -> int:
        bs = device.block_size()
        if len(data) < blocks * bs:
            raise ValueError("not enough data for the requested blocks")
        for i in range(blocks):
            self.write_block(device, data[i * bs:(i + 1) * bs], offset + i)
        return blocks

    def flush_block(self, device: Device, block: int) -> None:
        entry = self._entries.get((device, block))
        if entry is not None:
            self._clean(entry)

    def flush_device(self, device: Device) -> None:
        for entry in reversed(self._entries.values()):
            if entry.device is device:
                self._clean(entry)

    def flush_all(self) -> None:
        for entry in reversed(self._entries.values()):
            self._clean(entry)

    def get_stats(self) -> CacheStats:
        return replace(self._stats)