"""Indexes mapping CIDs to byte offsets within a CARv1 data payload.

An index gives random access over a CARv1 payload. Indexes can be written
and read back, prefixed with their codec, using carv2.index.write_to and
carv2.index.read_from.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Iterator

from .errors import NotFoundError
from .multiformats import Cid

_CHUNK_SIZE = 1 << 20


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read exactly size bytes, in bounded chunks; raise EOFError if short."""
    parts = []
    remaining = size
    while remaining:
        chunk = stream.read(min(remaining, _CHUNK_SIZE))
        if not chunk:
            raise EOFError("unexpected EOF")
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


@dataclass(frozen=True)
class Record:
    """A CID and the offset of its section in the data payload."""

    cid: Cid
    offset: int


class Index(abc.ABC):
    """Looks up the byte offsets of blocks by CID.

    Each index type is free to match CIDs as it sees fit; the sorted
    indexes, for example, match on multihash digests only, so a lookup
    finds a block even if the CID's codec differs.
    """

    @abc.abstractmethod
    def codec(self) -> int:
        """The multicodec code of this index type."""

    @abc.abstractmethod
    def marshal(self, stream: BinaryIO) -> int:
        """Write the serial form to stream and return the number of bytes written."""

    @abc.abstractmethod
    def unmarshal(self, stream: BinaryIO) -> None:
        """Read the serial form from stream into this index."""

    @abc.abstractmethod
    def load(self, records: Iterable[Record]) -> None:
        """Insert records into the index."""

    @abc.abstractmethod
    def get_all(self, key: Cid) -> Iterator[int]:
        """Iterate over the offsets of every block matching key.

        Iteration raises NotFoundError when nothing matches.
        """


class IterableIndex(Index):
    """An index whose entries can be enumerated."""

    @abc.abstractmethod
    def items(self) -> Iterator[tuple[bytes, int]]:
        """Iterate over (multihash, offset) pairs in a deterministic order."""


def get_first(idx: Index, key: Cid) -> int:
    """Return the offset of the first block in idx matching key."""
    for offset in idx.get_all(key):
        return offset
    raise NotFoundError()