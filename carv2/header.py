"""The CARv2 pragma and fixed-size header.

A CARv2 file starts with a pragma (a CARv1 header declaring version 2),
followed by a 40 byte header locating the CARv1 data payload and the index.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace
from typing import BinaryIO

from .errors import CarError

PRAGMA_SIZE = 11
"""Size of the CARv2 pragma in bytes."""

HEADER_SIZE = 40
"""Fixed size of the CARv2 header in bytes."""

CHARACTERISTICS_SIZE = 16
"""Fixed size of the characteristics bitfield within the header."""

PRAGMA = bytes(
    [
        0x0A,  # uint(10)
        0xA1,  # map(1)
        0x67,  # string(7)
        0x76, 0x65, 0x72, 0x73, 0x69, 0x6F, 0x6E,  # "version"
        0x02,  # uint(2)
    ]
)
"""The CARv2 pragma: a valid CARv1 header with version 2 and no roots."""

_FULLY_INDEXED_BIT = 7
_INT64_LIMIT = 1 << 63
_CHARACTERISTICS = struct.Struct("<QQ")
_OFFSETS = struct.Struct("<QQQ")


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise EOFError("unexpected EOF" if data else "EOF")
    return data


@dataclass
class Characteristics:
    """The 128-bit characteristics bitfield of a CARv2 file."""

    hi: int = 0
    lo: int = 0

    def to_bytes(self) -> bytes:
        """Serialise as 16 little-endian bytes."""
        return _CHARACTERISTICS.pack(self.hi, self.lo)

    @classmethod
    def from_bytes(cls, data: bytes) -> Characteristics:
        """Parse exactly 16 bytes."""
        if len(data) != CHARACTERISTICS_SIZE:
            raise ValueError(
                f"characteristics must be {CHARACTERISTICS_SIZE} bytes, got {len(data)}"
            )
        hi, lo = _CHARACTERISTICS.unpack(data)
        return cls(hi, lo)

    def write_to(self, stream: BinaryIO) -> int:
        """Write to a binary stream and return the number of bytes written."""
        data = self.to_bytes()
        stream.write(data)
        return len(data)

    @classmethod
    def read_from(cls, stream: BinaryIO) -> Characteristics:
        """Read 16 bytes from a binary stream."""
        return cls.from_bytes(_read_exact(stream, CHARACTERISTICS_SIZE))

    def is_fully_indexed(self) -> bool:
        """Whether the index is a catalogue of every CID in the payload."""
        return bool(self.hi & (1 << _FULLY_INDEXED_BIT))

    def set_fully_indexed(self, value: bool) -> None:
        """Set or clear the fully-indexed bit."""
        if value:
            self.hi |= 1 << _FULLY_INDEXED_BIT
        else:
            self.hi &= ~(1 << _FULLY_INDEXED_BIT)


@dataclass(frozen=True)
class Header:
    """The CARv2 header that follows the pragma."""

    characteristics: Characteristics = field(default_factory=Characteristics)
    data_offset: int = 0
    data_size: int = 0
    index_offset: int = 0

    def _with(self, **changes: int) -> Header:
        return replace(self, characteristics=replace(self.characteristics), **changes)

    @classmethod
    def new(cls, data_size: int) -> Header:
        """A header for a payload of data_size bytes placed right after the header."""
        data_offset = PRAGMA_SIZE + HEADER_SIZE
        return cls(
            data_offset=data_offset,
            data_size=data_size,
            index_offset=data_offset + data_size,
        )

    def with_index_padding(self, padding: int) -> Header:
        """Return a copy with the index moved forward by padding bytes."""
        return self._with(index_offset=self.index_offset + padding)

    def with_data_padding(self, padding: int) -> Header:
        """Return a copy with the payload after padding bytes; the index shifts too."""
        return self._with(
            data_offset=PRAGMA_SIZE + HEADER_SIZE + padding,
            index_offset=self.index_offset + padding,
        )

    def with_data_size(self, size: int) -> Header:
        """Return a copy with the data size set and the index offset moved by it."""
        return self._with(data_size=size, index_offset=size + self.index_offset)

    def has_index(self) -> bool:
        """Whether an index is present."""
        return self.index_offset != 0

    def to_bytes(self) -> bytes:
        """Serialise as 40 little-endian bytes."""
        return self.characteristics.to_bytes() + _OFFSETS.pack(
            self.data_offset, self.data_size, self.index_offset
        )

    def write_to(self, stream: BinaryIO) -> int:
        """Write to a binary stream and return the number of bytes written."""
        data = self.to_bytes()
        stream.write(data)
        return len(data)

    @classmethod
    def read_from(cls, stream: BinaryIO) -> Header:
        """Read and validate a header from a binary stream."""
        characteristics = Characteristics.read_from(stream)
        data_offset, data_size, index_offset = _OFFSETS.unpack(
            _read_exact(stream, _OFFSETS.size)
        )
        if data_offset < PRAGMA_SIZE + HEADER_SIZE or data_offset >= _INT64_LIMIT:
            raise CarError(f"invalid data payload offset: {data_offset}")
        if data_size == 0 or data_size >= _INT64_LIMIT:
            raise CarError(f"invalid data payload size: {data_size}")
        if index_offset >= _INT64_LIMIT:
            raise CarError(f"invalid index offset: {index_offset}")
        return cls(characteristics, data_offset, data_size, index_offset)