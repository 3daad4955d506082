"""CARv2 pragma and header, CID and multihash helpers, and block indexes."""

__version__ = "0.1.0"