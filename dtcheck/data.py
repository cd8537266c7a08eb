"""Property value buffers carrying typed markers at byte offsets."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator

CELL_SIZE = 4
_READ_CHUNK = 4096
_VALID_BITS = (8, 16, 32, 64)


class MarkerType(enum.Enum):
    """Kinds of annotation that can be attached to a position in a value."""

    TYPE_NONE = enum.auto()
    REF_PHANDLE = enum.auto()
    REF_PATH = enum.auto()
    LABEL = enum.auto()
    TYPE_UINT8 = enum.auto()
    TYPE_UINT16 = enum.auto()
    TYPE_UINT32 = enum.auto()
    TYPE_UINT64 = enum.auto()
    TYPE_STRING = enum.auto()


@dataclass
class Marker:
    """An annotation at a byte offset of a value."""

    offset: int
    type: MarkerType
    ref: str | None = None


@dataclass
class Data:
    """A byte buffer with an ordered list of markers.

    Mutating methods change the buffer in place and return it, so calls
    can be chained.
    """

    val: bytearray = field(default_factory=bytearray)
    markers: list[Marker] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.val = bytearray(self.val)

    def __len__(self) -> int:
        return len(self.val)

    def __bytes__(self) -> bytes:
        return bytes(self.val)

    @classmethod
    def from_bytes(cls, mem: bytes) -> Data:
        """Return a new value holding a copy of ``mem``."""
        return cls(bytearray(mem))

    @classmethod
    def from_file(cls, f: BinaryIO, maxlen: int | None = None) -> Data:
        """Read a binary stream into a new value, up to ``maxlen`` bytes.

        ``maxlen`` of None or a negative number reads to end of file.
        """
        data = cls().add_marker(MarkerType.TYPE_NONE)
        unlimited = maxlen is None or maxlen < 0
        while unlimited or len(data.val) < maxlen:
            size = _READ_CHUNK if unlimited else maxlen - len(data.val)
            chunk = f.read(size)
            if not chunk:
                break
            data.val += chunk
        return data

    def append(self, p: bytes) -> Data:
        """Append raw bytes."""
        self.val += p
        return self

    def insert_at_marker(self, marker: Marker, p: bytes) -> Data:
        """Insert bytes at ``marker``'s offset, shifting the markers after it."""
        index = next(
            (i for i, m in enumerate(self.markers) if m is marker), None
        )
        if index is None:
            raise ValueError("marker does not belong to this value")
        offset = marker.offset
        if not 0 <= offset <= len(self.val):
            raise ValueError(f"marker offset {offset} outside value")
        self.val[offset:offset] = p
        for later in self.markers[index + 1:]:
            later.offset += len(p)
        return self

    def merge(self, other: Data) -> Data:
        """Append another value, carrying its markers over with adjusted offsets."""
        base = len(self.val)
        self.val += other.val
        self.markers.extend(
            Marker(m.offset + base, m.type, m.ref) for m in other.markers
        )
        return self

    def append_integer(self, value: int, bits: int) -> Data:
        """Append ``value`` big-endian, truncated to ``bits`` (8, 16, 32 or 64)."""
        if bits not in _VALID_BITS:
            raise ValueError(f"Invalid literal size ({bits})")
        masked = value & ((1 << bits) - 1)
        return self.append(masked.to_bytes(bits // 8, "big"))

    def append_re(self, address: int, size: int) -> Data:
        """Append a memory reservation entry (two 64-bit words)."""
        return self.append_integer(address, 64).append_integer(size, 64)

    def append_cell(self, word: int) -> Data:
        """Append a 32-bit cell."""
        return self.append_integer(word, 32)

    def append_addr(self, addr: int) -> Data:
        """Append a 64-bit address."""
        return self.append_integer(addr, 64)

    def append_byte(self, byte: int) -> Data:
        """Append a single byte."""
        return self.append_integer(byte, 8)

    def append_zeroes(self, length: int) -> Data:
        """Append ``length`` zero bytes."""
        if length < 0:
            raise ValueError("length must not be negative")
        self.val += bytes(length)
        return self

    def append_align(self, align: int) -> Data:
        """Pad with zeroes up to the next multiple of ``align``."""
        if align <= 0:
            raise ValueError("alignment must be positive")
        newlen = (len(self.val) + align - 1) // align * align
        return self.append_zeroes(newlen - len(self.val))

    def add_marker(self, type: MarkerType, ref: str | None = None) -> Data:
        """Add a marker at the current end of the value."""
        self.markers.append(Marker(len(self.val), type, ref))
        return self

    def markers_of_type(self, type: MarkerType) -> Iterator[Marker]:
        """Yield the markers of the given type, in order."""
        return (m for m in self.markers if m.type is type)

    def is_one_string(self) -> bool:
        """True if the value is exactly one NUL-terminated string."""
        if not self.val:
            return False
        return self.val[-1] == 0 and 0 not in self.val[:-1]