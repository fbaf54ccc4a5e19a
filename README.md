# nexcore

An in-memory model of the storage and display layers of a small teaching
kernel, written as an ordinary Python library with no dependencies outside
the standard library:

- `nexcore.device`: block device drivers (`DeviceDriver`, `MemoryDriver`),
  opened devices with a block-size multiplier (`Device`), and a
  `DriverRegistry` that keeps per-driver `DriverStats`.
- `nexcore.bcache`: a write-back `BlockCache` over devices, with hit, miss
  and writeback counters (`CacheStats`).
- `nexcore.fs`: the generic filesystem layer. It has `FileSystem`,
  `FsRegistry`, `Volume`, `Dirent` (lookup, traverse, list, read, write,
  mkdir, mkfile, remove, size, isdir) and `copy_tree`.
- `nexcore.cdromfs`: a read-only ISO 9660 filesystem (`CdromFs`) and the
  `fix_filename` helper.
- `nexcore.diskfs`: a simple inode-based read/write filesystem (`DiskFs`)
  with on-disk `Superblock`, `Inode` and `Item` records. Each record has
  `pack`/`unpack`.
- `nexcore.elf`: `elf_load` loads a 32-bit i386 ELF executable into an
  `AddressSpace`.
- `nexcore.graphics`: clipped drawing (`Graphics`, `Color`) on a
  `nexcore.bitmap.Bitmap`.
- Supporting pieces: `nexcore.hash_set` (`HashSet`, `hash_string`),
  `nexcore.clock` (`Clock`, `ClockTime`, `clock_diff`) and
  `nexcore.event_queue` (`Event`, `EventQueue`).

Errors are raised as exceptions and are not returned as status codes:
`DeviceError`, `FsError` and its subclasses (`FsNotFoundError`,
`FsNotADirectoryError`, `FsNotEmptyError`, `FsOutOfSpaceError`,
`FsNotImplementedError`), and `ElfError` and its subclasses. Progress
messages go to the standard `logging` module.

## Installing

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## A short tour

Create a memory-backed disk, format it with diskfs, and use it. diskfs
needs 4096-byte blocks, so the driver groups eight 512-byte sectors into
one block:

```python
from nexcore.bcache import BlockCache
from nexcore.device import DriverRegistry, MemoryDriver
from nexcore.diskfs import DiskFs
from nexcore.fs import FsNotFoundError, FsRegistry, Volume

drivers = DriverRegistry()
ram = MemoryDriver("ram", multiplier=8)
ram.add_unit(0, nblocks=2048, block_size=512, info="scratch disk")
drivers.register(ram)

device = drivers.open("ram", 0)       # device.block_size() == 4096
cache = BlockCache()

filesystems = FsRegistry()
diskfs = DiskFs(cache)
filesystems.register(diskfs)
filesystems.format("diskfs", device)  # returns the new Superblock

volume = Volume.open(diskfs, device)
root = volume.root()

notes = root.mkfile("notes")
notes.write(b"hello, disk", 0)
print(notes.read(notes.size(), 0))    # b'hello, disk'
print(root.list())                    # ['.', 'notes']

docs = root.mkdir("docs")
try:
    root.traverse("docs/readme")
except FsNotFoundError:
    print("no such file")

docs.close()
notes.close()
root.close()
volume.close()                        # flushes the cache to the device
```

`Dirent.traverse` resolves a slash-separated path one component at a time
and returns a new reference. `Volume` and `Dirent` are reference counted.
Both also work as context managers that call `close()`. Removing a
directory that is not empty raises `FsNotEmptyError`.

`copy_tree(src, dst)` copies every file and directory below one directory
entry into another, for example from an ISO 9660 volume opened with
`CdromFs` onto a diskfs volume. `CdromFs` needs a device with 2048-byte
blocks.

### The buffer cache

`BlockCache` holds up to 100 blocks by default. When it is full it evicts
the block that was inserted earliest, whether or not it was used since. It
writes dirty blocks back on eviction or when flushed:

```python
cache.write_block(device, b"\x00" * device.block_size(), 5)
cache.flush_device(device)
stats = cache.get_stats()
print(stats.write_misses, stats.writebacks)
```

### Graphics

```python
from nexcore.bitmap import Bitmap, BitmapFormat
from nexcore.graphics import Color, Graphics

gx = Graphics(Bitmap(320, 200, BitmapFormat.RGB))
gx.fgcolor = Color(255, 0, 0)
gx.rect(10, 10, 20, 20)
gx.line(0, 0, 50, 30)
print(gx.pixel(15, 15))               # Color(r=255, g=0, b=0, a=0)
```

`set_clip` narrows drawing to a rectangle. `draw_bitmap` draws a one-bit
image. `scrollup` moves a region up and clears the rows it uncovers.

### Loading ELF executables

```python
from nexcore.elf import AddressSpace, elf_load

space = AddressSpace()
entry = elf_load(space, program_dirent)   # any object with read(length, offset)
```

The loader accepts only loadable i386 images whose text sits at or above
the user-space base address (`PROCESS_ENTRY_POINT`). Any other image
raises `ElfNotExecutableError`.

## What this package does not do

- It does not talk to real hardware. All storage is in memory through
  `MemoryDriver`, or through a `DeviceDriver` subclass that you write.
- It does not draw to a screen. Graphics go into a `Bitmap` byte buffer.
- It does not run programs. `elf_load` only places an image in an
  `AddressSpace` and returns its entry point.
- It has no command-line tool, shell or console.
- `Clock` advances only when `tick()` is called. `EventQueue` receives only
  the events you `post`.