"""The multihash-sorted CAR index: sorted indexes grouped by hash function."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, Iterator

from .errors import CarError, NotFoundError
from .indexbase import IterableIndex, Record, _read_exact
from .multiformats import (
    CAR_MULTIHASH_INDEX_SORTED,
    Cid,
    multihash_decode,
    multihash_encode,
)
from .sorted import MultiWidthIndex

_I32 = struct.Struct("<i")
_U64 = struct.Struct("<Q")


@dataclass(init=False)
class MultiWidthCodedIndex(MultiWidthIndex):
    """A sorted index for digests made by one multihash function."""

    code: int = 0

    def __init__(self, code: int = 0) -> None:
        super().__init__()
        self.code = code

    def marshal(self, stream: BinaryIO) -> int:
        """Write the multihash code, then the sorted index."""
        stream.write(_U64.pack(self.code))
        return _U64.size + super().marshal(stream)

    def unmarshal(self, stream: BinaryIO) -> None:
        (self.code,) = _U64.unpack(_read_exact(stream, _U64.size))
        super().unmarshal(stream)

    def items(self) -> Iterator[tuple[bytes, int]]:
        """Iterate over (multihash, offset) pairs."""
        for digest, offset in self.iter_digests():
            yield multihash_encode(digest, self.code), offset


@dataclass
class MultihashIndexSorted(IterableIndex):
    """Maps multihash codes to sorted indexes of their digests."""

    indexes: dict[int, MultiWidthCodedIndex] = field(default_factory=dict)

    def codec(self) -> int:
        return CAR_MULTIHASH_INDEX_SORTED

    def marshal(self, stream: BinaryIO) -> int:
        """Write the group count, then each group in order of multihash code."""
        stream.write(_I32.pack(len(self.indexes)))
        written = _I32.size
        for code in sorted(self.indexes):
            written += self.indexes[code].marshal(stream)
        return written

    def unmarshal(self, stream: BinaryIO) -> None:
        (count,) = _I32.unpack(_read_exact(stream, _I32.size))
        if count < 0:
            raise CarError(
                "index too big; MultihashIndexSorted count is overflowing int32"
            )
        for _ in range(count):
            coded = MultiWidthCodedIndex()
            coded.unmarshal(stream)
            self.indexes[coded.code] = coded

    def load(self, records: Iterable[Record]) -> None:
        by_code: dict[int, list[Record]] = {}
        for record in records:
            code = multihash_decode(record.cid.multihash).code
            by_code.setdefault(code, []).append(record)
        for code, group in by_code.items():
            coded = MultiWidthCodedIndex(code)
            coded.load(group)
            self.indexes[code] = coded

    def get_all(self, key: Cid) -> Iterator[int]:
        code = multihash_decode(key.multihash).code
        coded = self.indexes.get(code)
        if coded is None:
            raise NotFoundError()
        yield from coded.get_all(key)

    def items(self) -> Iterator[tuple[bytes, int]]:
        """Iterate over (multihash, offset) pairs, lowest multihash code first."""
        for code in sorted(self.indexes):
            yield from self.indexes[code].items()