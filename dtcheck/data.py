"""Property values: byte strings annotated with typed markers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator

_CHUNK_SIZE = 4096


class MarkerType(enum.Enum):
    """Kinds of annotation that can be attached to a position in a value."""

    TYPE_NONE = 0
    REF_PHANDLE = 1
    REF_PATH = 2
    LABEL = 3
    TYPE_UINT8 = 4
    TYPE_UINT16 = 5
    TYPE_UINT32 = 6
    TYPE_UINT64 = 7
    TYPE_STRING = 8


@dataclass(eq=False)
class Marker:
    """An annotation at a byte offset within a value."""

    type: MarkerType
    offset: int
    ref: str | None = None


@dataclass(eq=False)
class Data:
    """A mutable byte value with an ordered list of markers."""

    val: bytearray = field(default_factory=bytearray)
    markers: list[Marker] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.val, bytearray):
            self.val = bytearray(self.val)

    def __len__(self) -> int:
        return len(self.val)

    def __bytes__(self) -> bytes:
        return bytes(self.val)

    @classmethod
    def from_bytes(cls, mem: bytes) -> "Data":
        """Create a value holding a copy of ``mem`` and no markers."""
        return cls(bytearray(mem))

    @classmethod
    def from_file(cls, f: BinaryIO, maxlen: int = -1) -> "Data":
        """Read up to ``maxlen`` bytes (all of them if negative) from a binary file."""
        data = cls()
        data.add_marker(MarkerType.TYPE_NONE)
        while maxlen < 0 or len(data.val) < maxlen:
            size = _CHUNK_SIZE if maxlen < 0 else maxlen - len(data.val)
            chunk = f.read(size)
            if not chunk:
                break
            data.val += chunk
        return data

    def add_marker(self, type: MarkerType, ref: str | None = None) -> "Data":
        """Append a marker at the current end of the value."""
        self.markers.append(Marker(type, len(self.val), ref))
        return self

    def markers_of_type(self, type: MarkerType) -> Iterator[Marker]:
        """Yield the markers of the given type, in order."""
        return (m for m in self.markers if m.type is type)

    def append(self, data: bytes) -> "Data":
        """Append raw bytes."""
        self.val += data
        return self

    def insert_at_marker(self, marker: Marker, data: bytes) -> "Data":
        """Insert bytes at a marker's offset, shifting the markers after it."""
        for index, m in enumerate(self.markers):
            if m is marker:
                break
        else:
            raise ValueError("marker does not belong to this value")
        offset = marker.offset
        self.val[offset:offset] = data
        for later in self.markers[index + 1:]:
            later.offset += len(data)
        return self

    def merge(self, other: "Data") -> "Data":
        """Append another value, carrying its markers over with adjusted offsets."""
        base = len(self.val)
        self.val += other.val
        self.markers.extend(
            Marker(m.type, m.offset + base, m.ref) for m in other.markers
        )
        return self

    def append_integer(self, value: int, bits: int) -> "Data":
        """Append a big-endian integer of 8, 16, 32 or 64 bits."""
        if bits not in (8, 16, 32, 64):
            raise ValueError(f"Invalid literal size ({bits})")
        value &= (1 << bits) - 1
        return self.append(value.to_bytes(bits // 8, "big"))

    def append_re(self, address: int, size: int) -> "Data":
        """Append a memory reservation entry (two 64-bit words)."""
        return self.append_integer(address, 64).append_integer(size, 64)

    def append_cell(self, word: int) -> "Data":
        """Append a 32-bit cell."""
        return self.append_integer(word, 32)

    def append_addr(self, addr: int) -> "Data":
        """Append a 64-bit address."""
        return self.append_integer(addr, 64)

    def append_byte(self, byte: int) -> "Data":
        """Append a single byte."""
        return self.append_integer(byte, 8)

    def append_zeroes(self, length: int) -> "Data":
        """Append ``length`` zero bytes."""
        return self.append(bytes(length))

    def append_align(self, align: int) -> "Data":
        """Pad with zeroes up to a multiple of ``align`` (a power of two)."""
        length = len(self.val)
        aligned = (length + align - 1) & ~(align - 1)
        return self.append_zeroes(aligned - length)

    def is_one_string(self) -> bool:
        """True if the value is exactly one NUL-terminated string."""
        if not self.val:
            return False
        return self.val[-1] == 0 and 0 not in self.val[:-1]