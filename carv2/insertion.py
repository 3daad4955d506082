"""An in-memory index suited to random-access lookups while writing.

It is not meant to be attached to a CARv2 file; flatten it into one of the
sorted index types for that.
"""

from __future__ import annotations

import bisect
import struct
from typing import BinaryIO, Iterable, Iterator

import cbor2

from .errors import CarError, NotFoundError
from .index import new
from .indexbase import Index, IterableIndex, Record, _read_exact
from .multiformats import Cid, multihash_decode

INSERTION_INDEX_CODEC = 0x300003
"""Reserved multicodec code of the insertion index."""

_I64 = struct.Struct("<q")


class InsertionIndex(IterableIndex):
    """Records kept sorted by multihash digest; duplicates keep insertion order."""

    def __init__(self) -> None:
        self._digests: list[bytes] = []
        self._records: list[Record] = []

    def __len__(self) -> int:
        return len(self._records)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InsertionIndex):
            return NotImplemented
        return self._records == other._records

    def _insert(self, record: Record) -> None:
        digest = multihash_decode(record.cid.multihash).digest
        pos = bisect.bisect_right(self._digests, digest)
        self._digests.insert(pos, digest)
        self._records.insert(pos, record)

    def _matching(self, digest: bytes) -> list[Record]:
        start = bisect.bisect_left(self._digests, digest)
        end = bisect.bisect_right(self._digests, digest, lo=start)
        return self._records[start:end]

    def insert_no_replace(self, key: Cid, offset: int) -> None:
        """Add key at offset, keeping any records already present for it."""
        self._insert(Record(key, offset))

    def get(self, key: Cid) -> int:
        """Return the offset of the first record whose digest matches key."""
        matches = self._matching(multihash_decode(key.multihash).digest)
        if not matches:
            raise NotFoundError()
        return matches[0].offset

    def get_all(self, key: Cid) -> Iterator[int]:
        matches = self._matching(multihash_decode(key.multihash).digest)
        if not matches:
            raise NotFoundError()
        for record in matches:
            yield record.offset

    def codec(self) -> int:
        return INSERTION_INDEX_CODEC

    def marshal(self, stream: BinaryIO) -> int:
        """Write the record count, then each record as a CBOR map."""
        header = _I64.pack(len(self._records))
        stream.write(header)
        written = len(header)
        for record in self._records:
            encoded = cbor2.dumps(
                {"Cid": record.cid.to_bytes(), "Offset": record.offset}
            )
            stream.write(encoded)
            written += len(encoded)
        return written

    def unmarshal(self, stream: BinaryIO) -> None:
        (length,) = _I64.unpack(_read_exact(stream, _I64.size))
        if length < 0:
            raise CarError(f"invalid insertion index length: {length}")
        decoder = cbor2.CBORDecoder(stream)
        for _ in range(length):
            try:
                item = decoder.decode()
            except cbor2.CBORDecodeError as exc:
                raise CarError(f"invalid insertion index record: {exc}") from exc
            self._insert(_record_from_item(item))

    def load(self, records: Iterable[Record]) -> None:
        for record in records:
            self._insert(record)

    def items(self) -> Iterator[tuple[bytes, int]]:
        """Iterate over (multihash, offset) pairs in digest order."""
        for record in self._records:
            yield record.cid.multihash, record.offset

    def iter_cids(self) -> Iterator[tuple[Cid, int]]:
        """Iterate over (CID, offset) pairs in digest order."""
        for record in self._records:
            yield record.cid, record.offset

    def flatten(self, codec: int) -> Index:
        """Return the records loaded into a new index of the given codec."""
        flat = new(codec)
        flat.load(list(self._records))
        return flat

    def has_exact_cid(self, key: Cid) -> bool:
        """Whether a record holds exactly this CID, codec and version included."""
        digest = multihash_decode(key.multihash).digest
        return any(record.cid == key for record in self._matching(digest))

    def has_multihash(self, mh: bytes) -> bool:
        """Whether a record's CID carries exactly this multihash."""
        mh = bytes(mh)
        digest = multihash_decode(mh).digest
        return any(record.cid.multihash == mh for record in self._matching(digest))


def _record_from_item(item: object) -> Record:
    if not isinstance(item, dict):
        raise CarError(f"invalid insertion index record: {item!r}")
    try:
        raw_cid = item["Cid"]
        offset = item["Offset"]
    except KeyError as exc:
        raise CarError(f"invalid insertion index record: {item!r}") from exc
    if not isinstance(raw_cid, bytes) or not isinstance(offset, int) or offset < 0:
        raise CarError(f"invalid insertion index record: {item!r}")
    try:
        cid = Cid.from_bytes(raw_cid)
    except ValueError as exc:
        raise CarError(f"invalid entry: {item!r}") from exc
    return Record(cid, offset)