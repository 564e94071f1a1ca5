from __future__ import annotations

from typing import Iterable, Iterator, List, TypeVar

T = TypeVar("T")


def chunked(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive groups of at most `size` items, preserving order."""
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) == size:
            yield batch
            batch = []
    if batch:
        yield batch
