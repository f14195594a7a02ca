# esbridge/core/buffer.py
from __future__ import annotations

from typing import Iterator, List, Tuple, Union

BytesLike = Union[bytes, bytearray, memoryview]


class BytesArray:
    """
    Preallocated byte region with a logical length.
    Appending copies into the existing storage; reset() only rewinds the length so the
    same allocation is reused across flushes. Storage grows only when a single append
    does not fit even into an empty array.
    """

    def __init__(self, capacity: int = 0) -> None:
        self._bytes = bytearray(capacity)
        self._size = 0

    def allocate(self, capacity: int) -> None:
        """Replace the storage with a fresh region of `capacity` bytes (drops the content)."""
        self._bytes = bytearray(capacity)
        self._size = 0

    @property
    def capacity(self) -> int:
        return len(self._bytes)

    @property
    def length(self) -> int:
        return self._size

    @property
    def available(self) -> int:
        return len(self._bytes) - self._size

    def add(self, data: BytesLike) -> None:
        end = self._size + len(data)
        # slice assignment past the end extends the bytearray
        self._bytes[self._size:end] = data
        self._size = end

    def slice(self, start: int, end: int) -> bytes:
        return bytes(self._bytes[start : min(end, self._size)])

    def to_bytes(self) -> bytes:
        return bytes(self._bytes[: self._size])

    def reset(self) -> None:
        self._size = 0

    def __repr__(self) -> str:
        return f"BytesArray(length={self._size}, capacity={len(self._bytes)})"


class BytesRef:
    """One serialized bulk fragment, possibly made of several chunks. Reused after reset()."""

    def __init__(self) -> None:
        self._chunks: List[BytesLike] = []
        self._size = 0

    def add(self, data: Union[BytesLike, str]) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._chunks.append(data)
        self._size += len(data)

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[BytesLike]:
        return iter(self._chunks)

    def to_bytes(self) -> bytes:
        return b"".join(bytes(c) for c in self._chunks)

    def reset(self) -> None:
        self._chunks = []
        self._size = 0


class TrackingBytesArray:
    """
    BytesArray wrapper that remembers where each appended fragment starts and ends,
    so a bulk payload can be framed or inspected per entry.
    """

    def __init__(self, data: BytesArray) -> None:
        self._data = data
        self._entries: List[Tuple[int, int]] = []

    def copy_from(self, ref: BytesRef) -> None:
        offset = self._data.length
        for chunk in ref:
            self._data.add(chunk)
        self._entries.append((offset, len(ref)))

    @property
    def length(self) -> int:
        return self._data.length

    @property
    def available(self) -> int:
        return self._data.available

    @property
    def entries(self) -> int:
        return len(self._entries)

    def entry(self, index: int) -> bytes:
        offset, size = self._entries[index]
        return self._data.slice(offset, offset + size)

    def to_bytes(self) -> bytes:
        return self._data.to_bytes()

    def reset(self) -> None:
        self._data.reset()
        self._entries.clear()

    def __repr__(self) -> str:
        return f"TrackingBytesArray(entries={len(self._entries)}, {self._data!r})"


__all__ = ["BytesArray", "BytesRef", "TrackingBytesArray"]
