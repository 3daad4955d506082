# carv2

Tools for working with the fixed parts of CARv2 archives: the pragma, the
40-byte header, and the indexes that map block CIDs to the offsets of their
sections in the CARv1 data payload.

## Install

```
pip install carv2
```

For running the test suite:

```
pip install "carv2[test]"
pytest
```

## The pragma and header

`carv2.header` holds the constants `PRAGMA` (the 11-byte pragma, itself a
valid CARv1 header declaring version 2), `PRAGMA_SIZE`, `HEADER_SIZE` and
`CHARACTERISTICS_SIZE`, and the `Header` and `Characteristics` classes.

```python
import io
from carv2.header import Header, Characteristics

header = Header.new(1413).with_data_padding(3).with_index_padding(7)
print(header.data_offset, header.index_offset)   # 54 1474
print(header.has_index())                        # True

raw = header.to_bytes()                          # always 40 bytes
same = Header.read_from(io.BytesIO(raw))
assert same == header

chars = Characteristics()
chars.set_fully_indexed(True)
assert chars.is_fully_indexed()
print(chars.to_bytes()[:1])                      # b'\x80'
```

`Header` is immutable; the `with_*` methods return new headers.
`Header.read_from` raises `carv2.errors.CarError` when the data offset is
smaller than the pragma and header together, when the data size is zero, or
when an offset or size does not fit in a signed 64-bit integer. A stream that
ends early raises `EOFError`.

## CIDs and multihashes

`carv2.multiformats` has the small set of helpers the indexes rely on:

* unsigned varints: `encode_uvarint`, `decode_uvarint`, `read_uvarint`
* multihashes: `multihash_sum`, `multihash_encode`, `multihash_decode`
  (returning a `DecodedMultihash` with `code`, `length` and `digest`);
  `multihash_sum` supports identity, sha1, sha2-256/512, sha3 and
  blake2b-256/512
* the `Cid` class: `Cid.v0`, `Cid.v1`, `Cid.from_bytes`, `Cid.from_stream`,
  `Cid.decode` (string form), `Cid.to_bytes` and `str(cid)` (base58btc for
  version 0, base32 for version 1)

## Indexes

An index is loaded from `Record`s (a CID with its offset), and can be
written to and read from a binary stream with its codec varint in front:

```python
import io
from carv2 import index
from carv2.indexbase import Record, get_first
from carv2.multiformats import RAW, SHA2_256, Cid, multihash_sum

key = Cid.v1(RAW, multihash_sum(b"fish", SHA2_256))

idx = index.new(0x0401)          # multihash-sorted index
idx.load([Record(key, 61)])

buf = io.BytesIO()
index.write_to(idx, buf)
buf.seek(0)
again = index.read_from(buf)
print(get_first(again, key))     # 61
```

Supported codecs for `index.new` and `index.read_from`:

* `0x0400`: sorted by digest, grouped by digest width
  (`carv2.sorted.MultiWidthIndex`)
* `0x0401`: sorted by digest, grouped by multihash code and digest width
  (`carv2.mhsorted.MultihashIndexSorted`)

Any other codec raises `CarError`. `index.read_codec` reads only the codec
prefix.

`get_all(cid)` yields every offset stored for the CID's digest; the sorted
indexes match on the multihash digest, so a CID with a different codec finds
the same block. When nothing matches, iteration raises
`carv2.errors.NotFoundError`, as does `get_first`.
`MultihashIndexSorted.items()` yields `(multihash, offset)` pairs in a
stable order.

`carv2.insertion.InsertionIndex` is an in-memory index for building up
records one at a time with `insert_no_replace`. It answers `get`, `get_all`,
`has_exact_cid` and `has_multihash`, and `flatten(codec)` turns it into one
of the indexes above for writing out.

## Errors

All errors about CAR data raised by the package derive from
`carv2.errors.CarError`. `NotFoundError` is also a `LookupError`.
`CidTooLargeError` reports a CID larger than an index allows.

## What this package does not do

It does not read or write whole CAR files: there is no CARv1 header or
section parser, no block reader, no generation of an index from a data
payload, and no blockstore. It covers the header, the CID and multihash
helpers the indexes need, and the indexes themselves.