import io

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from carv2.errors import CarError, NotFoundError
from carv2.indexbase import Record, get_first
from carv2.insertion import INSERTION_INDEX_CODEC, InsertionIndex
from carv2.mhsorted import MultihashIndexSorted
from carv2.multiformats import (
    CAR_INDEX_SORTED,
    CAR_MULTIHASH_INDEX_SORTED,
    CIDV1,
    DAG_CBOR,
    IDENTITY,
    RAW,
    SHA2_256,
    SHA2_512,
    Cid,
    multihash_decode,
    multihash_sum,
)
from carv2.sorted import MultiWidthIndex


def _cid(data: bytes, code: int = SHA2_256, codec: int = RAW) -> Cid:
    return Cid.v1(codec, multihash_sum(data, code))


def _filled() -> InsertionIndex:
    idx = InsertionIndex()
    idx.insert_no_replace(_cid(b"fish"), 61)
    idx.insert_no_replace(_cid(b"lobster"), 120)
    idx.insert_no_replace(_cid(b"barreleye", SHA2_512), 300)
    return idx


def test_codec_is_reserved_insertion_code():
    assert InsertionIndex().codec() == 0x300003
    assert INSERTION_INDEX_CODEC == 0x300003


def test_get_returns_inserted_offset():
    idx = _filled()
    assert idx.get(_cid(b"fish")) == 61
    assert idx.get(_cid(b"barreleye", SHA2_512)) == 300


def test_get_missing_raises_not_found():
    with pytest.raises(NotFoundError):
        _filled().get(_cid(b"lobstermuncher"))


def test_get_all_missing_raises_not_found():
    with pytest.raises(NotFoundError):
        list(_filled().get_all(_cid(b"lobstermuncher")))


def test_duplicates_are_kept_in_insertion_order():
    idx = InsertionIndex()
    key = _cid(b"fish")
    idx.insert_no_replace(key, 10)
    idx.insert_no_replace(_cid(b"fish", codec=DAG_CBOR), 20)
    idx.insert_no_replace(key, 30)
    assert list(idx.get_all(key)) == [10, 20, 30]
    assert idx.get(key) == 10
    assert len(idx) == 3


def test_get_first_uses_index():
    idx = _filled()
    assert get_first(idx, _cid(b"lobster")) == 120


def test_items_are_sorted_by_digest():
    idx = _filled()
    digests = [multihash_decode(mh).digest for mh, _ in idx.items()]
    assert digests == sorted(digests)
    assert len(digests) == 3


def test_iter_cids_returns_all_records():
    idx = _filled()
    got = dict(idx.iter_cids())
    assert got == {
        _cid(b"fish"): 61,
        _cid(b"lobster"): 120,
        _cid(b"barreleye", SHA2_512): 300,
    }


def test_marshal_unmarshal_round_trip():
    idx = _filled()
    buf = io.BytesIO()
    written = idx.marshal(buf)
    assert written == len(buf.getvalue())
    buf.seek(0)
    got = InsertionIndex()
    got.unmarshal(buf)
    assert got == idx
    assert list(got.iter_cids()) == list(idx.iter_cids())


def test_unmarshal_negative_length_raises():
    with pytest.raises(CarError):
        InsertionIndex().unmarshal(io.BytesIO(b"\xff" * 8))


def test_unmarshal_truncated_raises():
    with pytest.raises(EOFError):
        InsertionIndex().unmarshal(io.BytesIO(b"\x01\x00"))


def test_load_inserts_records():
    idx = InsertionIndex()
    idx.load([Record(_cid(b"a"), 1), Record(_cid(b"b"), 2)])
    assert idx.get(_cid(b"a")) == 1
    assert idx.get(_cid(b"b")) == 2


@pytest.mark.parametrize(
    "codec, kind",
    [
        (CAR_MULTIHASH_INDEX_SORTED, MultihashIndexSorted),
        (CAR_INDEX_SORTED, MultiWidthIndex),
    ],
)
def test_flatten_preserves_lookups(codec, kind):
    idx = _filled()
    flat = idx.flatten(codec)
    assert isinstance(flat, kind)
    assert flat.codec() == codec
    for key, offset in idx.iter_cids():
        assert get_first(flat, key) == offset


def test_flatten_multihash_sorted_has_same_items():
    idx = _filled()
    flat = idx.flatten(CAR_MULTIHASH_INDEX_SORTED)
    assert sorted(flat.items()) == sorted(idx.items())


def test_flatten_unknown_codec_raises():
    with pytest.raises(CarError):
        _filled().flatten(CIDV1)


def test_has_exact_cid_distinguishes_codec():
    idx = _filled()
    assert idx.has_exact_cid(_cid(b"fish")) is True
    assert idx.has_exact_cid(_cid(b"fish", codec=DAG_CBOR)) is False
    assert idx.has_exact_cid(_cid(b"nothere")) is False


def test_has_multihash():
    idx = _filled()
    assert idx.has_multihash(multihash_sum(b"fish", SHA2_256)) is True
    assert idx.has_multihash(multihash_sum(b"nothere", SHA2_256)) is False


def test_has_multihash_requires_same_hash_function():
    idx = InsertionIndex()
    idx.insert_no_replace(_cid(b"x" * 32, IDENTITY), 5)
    assert idx.has_multihash(multihash_sum(b"x" * 32, IDENTITY)) is True
    assert idx.has_multihash(multihash_sum(b"other", SHA2_256)) is False


@settings(max_examples=30)
@given(
    st.lists(
        st.tuples(st.binary(max_size=16), st.integers(0, 2**64 - 1)),
        max_size=20,
    )
)
def test_round_trip_property(entries):
    idx = InsertionIndex()
    for data, offset in entries:
        idx.insert_no_replace(_cid(data), offset)
    buf = io.BytesIO()
    idx.marshal(buf)
    buf.seek(0)
    got = InsertionIndex()
    got.unmarshal(buf)
    assert list(got.iter_cids()) == list(idx.iter_cids())
    assert len(got) == len(entries)