"""A bucketed hash set of unsigned keys carrying data."""

from __future__ import annotations

from bisect import bisect_left
from typing import Any

_PRIME = 31
_GOLDEN_RATIO = 0x61C88647
_MASK = 0xFFFFFFFF


def hash_string(string: str | bytes, range_min: int, range_max: int) -> int:
    """Hash a string into ``range_min <= h < range_max``."""
    if range_max <= range_min:
        raise ValueError("range_max must exceed range_min")
    raw = string.encode("utf-8") if isinstance(string, str) else bytes(string)
    value = _PRIME
    for byte in raw:
        signed = byte - 256 if byte >= 128 else byte
        value = (_PRIME * value + signed) & _MASK
    return value % (range_max - range_min) + range_min


class HashSet:
    """Keys spread over a fixed number of buckets, each kept in key order."""

    def __init__(self, buckets: int) -> None:
        if buckets < 1:
            raise ValueError("a hash set needs at least one bucket")
        self._buckets: list[list[tuple[int, Any]]] = [[] for _ in range(buckets)]
        self._count = 0

    def _index(self, key: int) -> int:
        if not 0 <= key <= _MASK:
            raise ValueError(f"key {key} is not an unsigned 32-bit value")
        return (key * _GOLDEN_RATIO & _MASK) % len(self._buckets)

    def _locate(self, key: int) -> tuple[list[tuple[int, Any]], int, bool]:
        bucket = self._buckets[self._index(key)]
        pos = bisect_left(bucket, key, key=lambda item: item[0])
        return bucket, pos, pos < len(bucket) and bucket[pos][0] == key

    def add(self, key: int, data: Any) -> bool:
        """Add a key; return False if it was already present."""
        bucket, pos, found = self._locate(key)
        if found:
            return False
        bucket.insert(pos, (key, data))
        self._count += 1
        return True

    def lookup(self, key: int) -> Any:
        bucket, pos, found = self._locate(key)
        return bucket[pos][1] if found else None

    def remove(self, key: int) -> bool:
        """Remove a key; return False if it was absent."""
        bucket, pos, found = self._locate(key)
        if not found:
            return False
        del bucket[pos]
        self._count -= 1
        return True

    def entries(self) -> int:
        return self._count

    def __len__(self) -> int:
        return self._count

    def __contains__(self, key: object) -> bool:
        return isinstance(key, int) and 0 <= key <= _MASK and self._locate(key)[2]

    def dump(self) -> str:
        """Describe the set one ``bucket: key`` line at a time."""
        lines = ["printing hash set:"]
        for index, bucket in enumerate(self._buckets):
            lines.extend(f"{index}: {key}" for key, _ in bucket)
        return "\n".join(lines) + "\n"