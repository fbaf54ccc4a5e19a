"""In-memory block devices, buffer cache, ISO 9660 and disk filesystems, bitmap graphics and ELF loading."""

__version__ = "0.1.0"