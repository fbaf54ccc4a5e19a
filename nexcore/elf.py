"""Loading of 32-bit i386 ELF executables into a process address space."""

from __future__ import annotations

import struct

from .device import DeviceError, PAGE_SIZE
from .fs import FsError

PROCESS_ENTRY_POINT = 0x80000000
PROCESS_STACK_INIT = 0xFFFFFFF0

ELF_MAGIC = b"\x7fELF"
ELF_HEADER_MACHINE_I386 = 3
ELF_HEADER_VERSION = 1
ELF_PROGRAM_TYPE_LOADABLE = 1
ELF_SECTION_TYPE_PROGRAM = 1
ELF_SECTION_TYPE_BSS = 8
MAX_PROGRAM_SIZE = 0x8000000

_HEADER = struct.Struct("<16sHHIIIIIHHHHHH")
_PROGRAM = struct.Struct("<8I")
_SECTION = struct.Struct("<10I")
_U32 = 0xFFFFFFFF


class ElfError(Exception):
    """Base class of executable loading errors."""


class ElfNotFoundError(ElfError):
    """The file could not be read far enough to be recognised."""


class ElfNotExecutableError(ElfError):
    """The file is not a valid i386 ELF executable."""


class ElfOutOfMemoryError(ElfError):
    """The address space could not be grown to hold the program."""


class ElfExecutionFailedError(ElfError):
    """The program was recognised but did not load completely."""


class AddressSpace:
    """User data memory starting at PROCESS_ENTRY_POINT, grown on demand."""

    def __init__(self, max_data_size: int = PROCESS_STACK_INIT - PROCESS_ENTRY_POINT) -> None:
        self.max_data_size = max_data_size
        self.memory = bytearray()

    @property
    def data_size(self) -> int:
        return len(self.memory)

    def set_data_size(self, size: int) -> None:
        """Resize the data area; new bytes read as zero."""
        if not 0 <= size <= self.max_data_size:
            raise MemoryError(f"data size {size:#x} exceeds {self.max_data_size:#x}")
        if size > len(self.memory):
            self.memory.extend(bytes(size - len(self.memory)))
        else:
            del self.memory[size:]

    def _span(self, address: int, length: int) -> slice:
        start = address - PROCESS_ENTRY_POINT
        if start < 0 or length < 0 or start + length > len(self.memory):
            raise MemoryError(f"{length} bytes at {address:#x} are outside the data area")
        return slice(start, start + length)

    def write(self, address: int, data: bytes) -> None:
        self.memory[self._span(address, len(data))] = data

    def read(self, address: int, length: int) -> bytes:
        return bytes(self.memory[self._span(address, length)])


def _ensure_address_space(space: AddressSpace, addr: int) -> None:
    limit = (addr - PROCESS_ENTRY_POINT) & _U32
    limit = (limit + PAGE_SIZE - limit % PAGE_SIZE) & _U32
    if limit > space.data_size:
        try:
            space.set_data_size(limit)
        except MemoryError as exc:
            raise ElfOutOfMemoryError("elf: failed to allocate memory") from exc


def _read(dirent, length: int, offset: int) -> bytes:
    try:
        return dirent.read(length, offset)
    except (FsError, DeviceError):
        return b""


def elf_load(space: AddressSpace, dirent) -> int:
    """Load an executable from ``dirent`` into ``space`` and return its entry point."""
    raw = _read(dirent, _HEADER.size, 0)
    if len(raw) != _HEADER.size:
        raise ElfNotFoundError("elf: failed to load correctly!")
    (ident, _type, machine, version, entry, program_offset, section_offset,
     _flags, _hsize, _phentsize, _phnum, shentsize, shnum, _shstrndx) = _HEADER.unpack(raw)
    if (ident[:4] != ELF_MAGIC or machine != ELF_HEADER_MACHINE_I386
            or version != ELF_HEADER_VERSION):
        raise ElfNotExecutableError("elf: not a valid i386 ELF executable")

    raw = _read(dirent, _PROGRAM.size, program_offset)
    if len(raw) != _PROGRAM.size:
        raise ElfNotFoundError("elf: failed to load correctly!")
    ptype, poffset, vaddr, _paddr, file_size, memory_size, _pflags, _align = _PROGRAM.unpack(raw)
    if (ptype != ELF_PROGRAM_TYPE_LOADABLE or vaddr < PROCESS_ENTRY_POINT
            or memory_size > MAX_PROGRAM_SIZE or memory_size != file_size):
        raise ElfNotExecutableError("elf: not a valid i386 ELF executable")

    try:
        space.set_data_size(memory_size)
    except MemoryError as exc:
        raise ElfOutOfMemoryError("elf: failed to allocate memory") from exc

    body = _read(dirent, memory_size, poffset)
    if len(body) != memory_size:
        raise ElfExecutionFailedError("elf: did not load correctly")
    try:
        space.write(vaddr, body)
    except MemoryError as exc:
        raise ElfExecutionFailedError("elf: did not load correctly") from exc

    for i in range(shnum):
        raw = _read(dirent, _SECTION.size, section_offset + i * shentsize)
        if len(raw) != _SECTION.size:
            raise ElfExecutionFailedError("elf: did not load correctly")
        _name, stype, _sflags, address, soffset, size, *_rest = _SECTION.unpack(raw)
        if stype == ELF_SECTION_TYPE_BSS:
            _ensure_address_space(space, address + size)
            space.write(address, bytes(size))
        elif stype == ELF_SECTION_TYPE_PROGRAM and address != 0:
            _ensure_address_space(space, address + size)
            data = _read(dirent, size, soffset)
            if len(data) != size:
                raise ElfExecutionFailedError("elf: did not load correctly")
            space.write(address, data)

    return entry