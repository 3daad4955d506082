"""Creating, writing and reading CAR indexes prefixed with their codec."""

from __future__ import annotations

from typing import BinaryIO

from .errors import CarError
from .indexbase import Index
from .mhsorted import MultihashIndexSorted
from .multiformats import (
    CAR_INDEX_SORTED,
    CAR_MULTIHASH_INDEX_SORTED,
    encode_uvarint,
    read_uvarint,
)
from .sorted import MultiWidthIndex

CAR_INDEX_NONE = 0x300000
"""Multicodec code used to signal that there is no index."""


def new(codec: int) -> Index:
    """Return an empty index of the type named by the given multicodec code."""
    if codec == CAR_INDEX_SORTED:
        return MultiWidthIndex()
    if codec == CAR_MULTIHASH_INDEX_SORTED:
        return MultihashIndexSorted()
    raise CarError(f"unknown index codec: {codec:#x}")


def write_to(idx: Index, stream: BinaryIO) -> int:
    """Write idx, prefixed with its codec, and return the number of bytes written."""
    prefix = encode_uvarint(idx.codec())
    stream.write(prefix)
    return len(prefix) + idx.marshal(stream)


def read_from(stream: BinaryIO) -> Index:
    """Read an index written by write_to.

    Indexes from untrusted sources should be regenerated from the data
    payload rather than read.
    """
    idx = new(read_codec(stream))
    idx.unmarshal(stream)
    return idx


def read_codec(stream: BinaryIO) -> int:
    """Read the varint codec that prefixes a serialised index."""
    return read_uvarint(stream)