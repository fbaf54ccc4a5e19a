"""Block devices and the registry of drivers that back them."""

from __future__ import annotations

from dataclasses import dataclass, replace

PAGE_SIZE = 4096


class DeviceError(Exception):
    """Raised when a device request is invalid, unsupported or fails."""


@dataclass
class DriverStats:
    """Counters of blocks moved through one driver."""

    blocks_read: int = 0
    blocks_written: int = 0


class DeviceDriver:
    """A named block driver; subclasses override the operations they support."""

    def __init__(self, name: str, multiplier: int = 0) -> None:
        self.name = name
        self.multiplier = multiplier
        self.stats = DriverStats()

    def probe(self, unit: int) -> tuple[int, int, str] | None:
        """Return ``(nblocks, block_size, info)`` for a unit, or None if absent."""
        return None

    def read(self, unit: int, nblocks: int, offset: int) -> bytes:
        raise DeviceError(f"driver {self.name!r} does not support read")

    def read_nonblock(self, unit: int, nblocks: int, offset: int) -> bytes:
        raise DeviceError(f"driver {self.name!r} does not support non-blocking read")

    def write(self, unit: int, data: bytes, offset: int) -> int:
        raise DeviceError(f"driver {self.name!r} does not support write")


@dataclass
class _Unit:
    nblocks: int
    block_size: int
    info: str
    data: bytearray


class MemoryDriver(DeviceDriver):
    """A driver whose units are byte arrays held in memory."""

    def __init__(self, name: str = "memory", multiplier: int = 0) -> None:
        super().__init__(name, multiplier)
        self._units: dict[int, _Unit] = {}

    def add_unit(self, unit: int, nblocks: int, block_size: int, info: str = "") -> None:
        """Attach a zero-filled unit of ``nblocks`` blocks of ``block_size`` bytes."""
        if nblocks < 0 or block_size <= 0:
            raise ValueError("a unit needs a non-negative size and a positive block size")
        self._units[unit] = _Unit(nblocks, block_size, info, bytearray(nblocks * block_size))

    def probe(self, unit: int) -> tuple[int, int, str] | None:
        found = self._units.get(unit)
        if found is None:
            return None
        return found.nblocks, found.block_size, found.info

    def _get(self, unit: int) -> _Unit:
        found = self._units.get(unit)
        if found is None:
            raise DeviceError(f"{self.name}: no unit {unit}")
        return found

    def _span(self, found: _Unit, nblocks: int, offset: int) -> slice:
        if nblocks < 0 or offset < 0 or offset + nblocks > found.nblocks:
            raise DeviceError(f"{self.name}: blocks {offset}..{offset + nblocks} out of range")
        return slice(offset * found.block_size, (offset + nblocks) * found.block_size)

    def read(self, unit: int, nblocks: int, offset: int) -> bytes:
        found = self._get(unit)
        return bytes(found.data[self._span(found, nblocks, offset)])

    def read_nonblock(self, unit: int, nblocks: int, offset: int) -> bytes:
        return self.read(unit, nblocks, offset)

    def write(self, unit: int, data: bytes, offset: int) -> int:
        found = self._get(unit)
        if len(data) % found.block_size:
            raise DeviceError(f"{self.name}: write of {len(data)} bytes is not whole blocks")
        nblocks = len(data) // found.block_size
        found.data[self._span(found, nblocks, offset)] = data
        return nblocks


class Device:
    """An open unit of a driver, addressed in blocks of ``block_size()`` bytes."""

    def __init__(self, driver: DeviceDriver, unit: int, nblocks: int, block_size: int) -> None:
        self.driver = driver
        self._unit = unit
        self._nblocks = nblocks
        self._block_size = block_size
        self.refcount = 1
        # A driver multiplier groups raw sectors into larger logical blocks.
        self.multiplier = driver.multiplier if driver.multiplier > 0 else 1

    @property
    def closed(self) -> bool:
        return self.refcount < 1

    def addref(self) -> Device:
        self.refcount += 1
        return self

    def close(self) -> None:
        self.refcount -= 1

    def set_multiplier(self, multiplier: int) -> None:
        if multiplier < 1 or multiplier * self._block_size > PAGE_SIZE:
            raise DeviceError(f"invalid multiplier {multiplier}")
        self.multiplier = multiplier

    def read(self, nblocks: int, offset: int) -> bytes:
        m = self.multiplier
        data = self.driver.read(self._unit, nblocks * m, offset * m)
        self.driver.stats.blocks_read += nblocks * m
        return data

    def read_nonblock(self, nblocks: int, offset: int) -> bytes:
        m = self.multiplier
        data = self.driver.read_nonblock(self._unit, nblocks * m, offset * m)
        self.driver.stats.blocks_read += nblocks * m
        return data

    def write(self, data: bytes, offset: int) -> int:
        """Write whole blocks at ``offset`` and return how many were written."""
        m = self.multiplier
        written = self.driver.write(self._unit, data, offset * m)
        self.driver.stats.blocks_written += written
        return written // m

    def block_size(self) -> int:
        return self._block_size * self.multiplier

    def nblocks(self) -> int:
        return self._nblocks // self.multiplier

    def unit(self) -> int:
        return self._unit

    def name(self) -> str:
        return self.driver.name


class DriverRegistry:
    """Drivers by name; the most recently registered one wins a name clash."""

    def __init__(self) -> None:
        self._drivers: list[DeviceDriver] = []

    def register(self, driver: DeviceDriver) -> None:
        driver.stats = DriverStats()
        self._drivers.insert(0, driver)

    def lookup(self, name: str) -> DeviceDriver | None:
        return next((d for d in self._drivers if d.name == name), None)

    def open(self, name: str, unit: int) -> Device:
        driver = self.lookup(name)
        if driver is None:
            raise DeviceError(f"no driver named {name!r}")
        found = driver.probe(unit)
        if not found:
            raise DeviceError(f"{name} unit {unit}: not connected")
        nblocks, block_size, _info = found
        return Device(driver, unit, nblocks, block_size)

    def get_stats(self, name: str) -> DriverStats:
        driver = self.lookup(name)
        if driver is None:
            raise DeviceError(f"no driver named {name!r}")
        return replace(driver.stats)