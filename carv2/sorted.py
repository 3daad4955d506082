"""The sorted CAR index: digests grouped by width, each group sorted."""

from __future__ import annotations

import bisect
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, Iterator

from .errors import CarError, NotFoundError
from .indexbase import Index, Record, _read_exact
from .multiformats import CAR_INDEX_SORTED, Cid, multihash_decode

_MIN_WIDTH = 8
_MAX_WIDTH = 32 << 20  # 32 MiB, roughly the largest CID allowed
_INT64_LIMIT = 1 << 63

_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_I64 = struct.Struct("<q")
_U64 = struct.Struct("<Q")


@dataclass
class SingleWidthIndex:
    """Sorted fixed-width entries of digest followed by a 64-bit offset."""

    width: int = _MIN_WIDTH
    data: bytes = b""

    def __post_init__(self) -> None:
        self.data = bytes(self.data)
        if self.width < _MIN_WIDTH:
            raise ValueError("malformed index; width must be at least 8")

    @property
    def count(self) -> int:
        """Number of entries held."""
        return len(self.data) // self.width

    def _digest_at(self, i: int) -> bytes:
        return self.data[i * self.width:(i + 1) * self.width - 8]

    def _offset_at(self, i: int) -> int:
        return _U64.unpack_from(self.data, (i + 1) * self.width - 8)[0]

    def marshal(self, stream: BinaryIO) -> int:
        """Write width, byte length and entries; return the bytes written."""
        stream.write(_U32.pack(self.width))
        stream.write(_I64.pack(len(self.data)))
        stream.write(self.data)
        return _U32.size + _I64.size + len(self.data)

    def unmarshal(self, stream: BinaryIO) -> None:
        """Read width, byte length and entries from stream."""
        (width,) = _U32.unpack(_read_exact(stream, _U32.size))
        (data_len,) = _U64.unpack(_read_exact(stream, _U64.size))
        if width < _MIN_WIDTH:
            raise CarError("malformed index; width must be at least 8")
        if width > _MAX_WIDTH:
            raise CarError(
                "index too big; singleWidthIndex width is larger than allowed maximum"
            )
        if data_len >= _INT64_LIMIT:
            raise CarError("index too big; singleWidthIndex len is overflowing int64")
        self.width = width
        self.data = _read_exact(stream, data_len)

    def get_all(self, key: Cid) -> Iterator[int]:
        """Iterate over offsets whose digest matches key's multihash digest."""
        yield from self.get_all_digest(multihash_decode(key.multihash).digest)

    def get_all_digest(self, digest: bytes) -> Iterator[int]:
        """Iterate over offsets stored under digest; raise NotFoundError if none."""
        digest = bytes(digest)
        start = bisect.bisect_left(range(self.count), digest, key=self._digest_at)
        found = False
        for i in range(start, self.count):
            if self._digest_at(i) != digest:
                break
            found = True
            yield self._offset_at(i)
        if not found:
            raise NotFoundError()

    def load(self, records: Iterable[Record]) -> None:
        """Replace the contents with records that must all share one digest width."""
        loaded = MultiWidthIndex()
        loaded.load(records)
        if len(loaded.buckets) != 1:
            raise CarError(f"unexpected number of cid widths: {len(loaded.buckets)}")
        (bucket,) = loaded.buckets.values()
        self.width = bucket.width
        self.data = bucket.data

    def iter_digests(self) -> Iterator[tuple[bytes, int]]:
        """Iterate over (digest, offset) pairs in stored order."""
        for i in range(self.count):
            yield self._digest_at(i), self._offset_at(i)


@dataclass
class MultiWidthIndex(Index):
    """The sorted index: one SingleWidthIndex per entry width."""

    buckets: dict[int, SingleWidthIndex] = field(default_factory=dict)

    def codec(self) -> int:
        return CAR_INDEX_SORTED

    def marshal(self, stream: BinaryIO) -> int:
        """Write the bucket count, then each bucket in order of width."""
        stream.write(_I32.pack(len(self.buckets)))
        written = _I32.size
        for width in sorted(self.buckets):
            written += self.buckets[width].marshal(stream)
        return written

    def unmarshal(self, stream: BinaryIO) -> None:
        (count,) = _I32.unpack(_read_exact(stream, _I32.size))
        if count < 0:
            raise CarError("index too big; multiWidthIndex count is overflowing int32")
        for _ in range(count):
            bucket = SingleWidthIndex()
            bucket.unmarshal(stream)
            self.buckets[bucket.width] = bucket

    def load(self, records: Iterable[Record]) -> None:
        groups: dict[int, list[tuple[bytes, int]]] = {}
        for record in records:
            digest = multihash_decode(record.cid.multihash).digest
            groups.setdefault(len(digest), []).append((digest, record.offset))
        for length, entries in groups.items():
            entries.sort(key=lambda entry: entry[0])
            width = length + 8
            compact = b"".join(digest + _U64.pack(offset) for digest, offset in entries)
            self.buckets[width] = SingleWidthIndex(width, compact)

    def get_all(self, key: Cid) -> Iterator[int]:
        digest = multihash_decode(key.multihash).digest
        bucket = self.buckets.get(len(digest) + 8)
        if bucket is None:
            raise NotFoundError()
        yield from bucket.get_all_digest(digest)

    def iter_digests(self) -> Iterator[tuple[bytes, int]]:
        """Iterate over (digest, offset) pairs, narrowest width first."""
        for width in sorted(self.buckets):
            yield from self.buckets[width].iter_digests()