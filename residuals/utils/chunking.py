"""Fixed-size chunking for bulk store operations."""
from __future__ import annotations

from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[tuple[int, Sequence[T]]]:
    """Yield ``(chunk_number, chunk)`` pairs; chunk numbers start at 1."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    for number, start in enumerate(range(0, len(items), size), start=1):
        yield number, items[start:start + size]


__all__ = ["chunked"]
