"""Unsigned varints, multihashes and CIDs as used inside CAR files."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from typing import BinaryIO, Callable

# Multihash codes.
IDENTITY = 0x00
SHA1 = 0x11
SHA2_256 = 0x12
SHA2_512 = 0x13
SHA3_512 = 0x14
SHA3_384 = 0x15
SHA3_256 = 0x16
SHA3_224 = 0x17
BLAKE2B_256 = 0xB220
BLAKE2B_512 = 0xB240

# Multicodec codes.
CIDV1 = 0x01
RAW = 0x55
DAG_PB = 0x70
DAG_CBOR = 0x71
DAG_JSON = 0x0129
CAR_INDEX_SORTED = 0x0400
CAR_MULTIHASH_INDEX_SORTED = 0x0401

_MAX_UVARINT_LEN = 9
_MAX_UVARINT = (1 << 63) - 1

_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

_HASHERS: dict[int, Callable[[bytes], bytes]] = {
    IDENTITY: lambda data: bytes(data),
    SHA1: lambda data: hashlib.sha1(data).digest(),
    SHA2_256: lambda data: hashlib.sha256(data).digest(),
    SHA2_512: lambda data: hashlib.sha512(data).digest(),
    SHA3_224: lambda data: hashlib.sha3_224(data).digest(),
    SHA3_256: lambda data: hashlib.sha3_256(data).digest(),
    SHA3_384: lambda data: hashlib.sha3_384(data).digest(),
    SHA3_512: lambda data: hashlib.sha3_512(data).digest(),
    BLAKE2B_256: lambda data: hashlib.blake2b(data, digest_size=32).digest(),
    BLAKE2B_512: lambda data: hashlib.blake2b(data, digest_size=64).digest(),
}


def encode_uvarint(value: int) -> bytes:
    """Encode a non-negative integer below 2**63 as an unsigned varint."""
    if value < 0:
        raise ValueError(f"cannot encode negative varint: {value}")
    if value > _MAX_UVARINT:
        raise ValueError(f"varint larger than uint63 not supported: {value}")
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def decode_uvarint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a varint from data at offset; return the value and the offset after it."""
    value = 0
    window = data[offset:offset + _MAX_UVARINT_LEN]
    for count, byte in enumerate(window, start=1):
        value |= (byte & 0x7F) << (7 * (count - 1))
        if byte < 0x80:
            if byte == 0 and count > 1:
                raise ValueError("varint not minimally encoded")
            return value, offset + count
    if len(window) >= _MAX_UVARINT_LEN:
        raise ValueError("varints larger than uint63 not supported")
    raise ValueError("truncated varint")


def read_uvarint(stream: BinaryIO) -> int:
    """Read one varint from a binary stream.

    Raises EOFError when the stream ends before or inside the varint.
    """
    buf = bytearray()
    while True:
        chunk = stream.read(1)
        if not chunk:
            raise EOFError("unexpected EOF" if buf else "EOF")
        buf += chunk
        if chunk[0] < 0x80:
            break
        if len(buf) >= _MAX_UVARINT_LEN:
            raise ValueError("varints larger than uint63 not supported")
    value, _ = decode_uvarint(bytes(buf))
    return value


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise EOFError("unexpected EOF")
    return data


@dataclass(frozen=True)
class DecodedMultihash:
    """The parts of a multihash."""

    code: int
    length: int
    digest: bytes


def multihash_encode(digest: bytes, code: int) -> bytes:
    """Build a multihash from a digest and a hash function code."""
    return encode_uvarint(code) + encode_uvarint(len(digest)) + bytes(digest)


def multihash_decode(mh: bytes) -> DecodedMultihash:
    """Split a multihash into code, length and digest."""
    code, pos = decode_uvarint(mh)
    length, pos = decode_uvarint(mh, pos)
    digest = bytes(mh[pos:])
    if len(digest) != length:
        raise ValueError("multihash length inconsistent")
    return DecodedMultihash(code, length, digest)


def multihash_sum(data: bytes, code: int) -> bytes:
    """Hash data with the function named by code and return the multihash."""
    try:
        hasher = _HASHERS[code]
    except KeyError:
        raise ValueError(f"unsupported multihash code: {code:#x}") from None
    return multihash_encode(hasher(data), code)


def _multihash_end(data: bytes, offset: int) -> int:
    _, pos = decode_uvarint(data, offset)
    length, pos = decode_uvarint(data, pos)
    end = pos + length
    if end > len(data):
        raise ValueError("truncated multihash")
    return end


def _b58encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    chars = []
    while number:
        number, rem = divmod(number, 58)
        chars.append(_BASE58_ALPHABET[rem])
    leading = len(data) - len(data.lstrip(b"\0"))
    return "1" * leading + "".join(reversed(chars))


def _b58decode(text: str) -> bytes:
    number = 0
    for char in text:
        digit = _BASE58_ALPHABET.find(char)
        if digit < 0:
            raise ValueError(f"invalid base58 character: {char!r}")
        number = number * 58 + digit
    leading = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big")
    return b"\0" * leading + body


@dataclass(frozen=True)
class Cid:
    """A content identifier: version, content codec and multihash."""

    version: int
    codec: int
    multihash: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "multihash", bytes(self.multihash))
        decoded = multihash_decode(self.multihash)
        if self.version == 0:
            if self.codec != DAG_PB:
                raise ValueError("cid version 0 requires the dag-pb codec")
            if decoded.code != SHA2_256 or decoded.length != 32:
                raise ValueError("cid version 0 requires a 32 byte sha2-256 multihash")
        elif self.version != 1:
            raise ValueError(f"invalid cid version: {self.version}")

    @classmethod
    def v0(cls, multihash: bytes) -> Cid:
        """Make a version 0 CID from a sha2-256 multihash."""
        return cls(0, DAG_PB, multihash)

    @classmethod
    def v1(cls, codec: int, multihash: bytes) -> Cid:
        """Make a version 1 CID."""
        return cls(1, codec, multihash)

    @classmethod
    def _parse(cls, data: bytes, offset: int = 0) -> tuple[Cid, int]:
        if data[offset:offset + 2] == b"\x12\x20":
            end = offset + 34
            if end > len(data):
                raise ValueError("truncated cid")
            return cls.v0(data[offset:end]), end
        version, pos = decode_uvarint(data, offset)
        if version != 1:
            raise ValueError(f"invalid cid version: {version}")
        codec, pos = decode_uvarint(data, pos)
        end = _multihash_end(data, pos)
        return cls(1, codec, data[pos:end]), end

    @classmethod
    def from_bytes(cls, data: bytes) -> Cid:
        """Parse the binary form of a CID; the whole input must be consumed."""
        data = bytes(data)
        cid, end = cls._parse(data)
        if end != len(data):
            raise ValueError("trailing bytes after cid")
        return cid

    @classmethod
    def from_stream(cls, stream: BinaryIO) -> Cid:
        """Read one binary CID from a stream, leaving it positioned after the CID."""
        first = read_uvarint(stream)
        if first == SHA2_256:
            length = read_uvarint(stream)
            if length != 32:
                raise ValueError("invalid cid version 0 multihash length")
            return cls.v0(multihash_encode(_read_exact(stream, 32), SHA2_256))
        if first != 1:
            raise ValueError(f"invalid cid version: {first}")
        codec = read_uvarint(stream)
        code = read_uvarint(stream)
        length = read_uvarint(stream)
        digest = _read_exact(stream, length)
        return cls(1, codec, multihash_encode(digest, code))

    @classmethod
    def decode(cls, text: str) -> Cid:
        """Parse the string form of a CID (base58btc v0, or base32/base58btc v1)."""
        if len(text) == 46 and text.startswith("Qm"):
            return cls.from_bytes(_b58decode(text))
        if not text:
            raise ValueError("empty cid string")
        prefix, body = text[0], text[1:]
        if prefix == "b":
            padded = body.upper() + "=" * (-len(body) % 8)
            try:
                raw = base64.b32decode(padded)
            except ValueError as exc:
                raise ValueError(f"invalid base32 cid: {text}") from exc
            return cls.from_bytes(raw)
        if prefix == "z":
            return cls.from_bytes(_b58decode(body))
        raise ValueError(f"unsupported multibase prefix: {prefix!r}")

    def to_bytes(self) -> bytes:
        """Return the binary form of this CID."""
        if self.version == 0:
            return self.multihash
        return encode_uvarint(1) + encode_uvarint(self.codec) + self.multihash

    def __str__(self) -> str:
        if self.version == 0:
            return _b58encode(self.multihash)
        encoded = base64.b32encode(self.to_bytes()).decode("ascii")
        return "b" + encoded.lower().rstrip("=")

    def __repr__(self) -> str:
        return f"Cid({str(self)!r})"