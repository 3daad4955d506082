"""Exceptions raised while reading, writing and indexing CAR data."""

from __future__ import annotations


class CarError(Exception):
    """Base class for errors about CAR files and their indexes."""


class CidTooLargeError(CarError):
    """A CID is too large to be included in a CARv2 index."""

    def __init__(self, max_size: int, current_size: int) -> None:
        super().__init__(max_size, current_size)
        self.max_size = max_size
        self.current_size = current_size

    def __str__(self) -> str:
        return (
            f"cid size is larger than max allowed "
            f"({self.current_size} > {self.max_size})"
        )


class NotFoundError(CarError, LookupError):
    """A record is not present in an index."""

    def __init__(self, message: str = "not found") -> None:
        super().__init__(message)