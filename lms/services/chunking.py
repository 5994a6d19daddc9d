"""Chunked fan-out for membership queries.

Firestore's "in" and "array-contains-any" filters accept at most 10
values.  Every join in this service (roster -> users, courses ->
modules, ...) has to split its id set into batches that fit, run one
query per batch, and put the results back together.

Two pieces, composable and separately testable:

  chunked(ids, size)            pure generator of ordered batches
  gather_chunks(ids, fetch, ..) runs fetch(batch) for every batch with a
                                bounded number in flight and returns the
                                per-batch results in batch order

The concurrency bound keeps a 500-student roster from opening 50
simultaneous queries against the store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Iterator, Sequence
from typing import TypeVar

from lms.core.config import SETTINGS
from lms.store.base import MEMBERSHIP_QUERY_LIMIT

T = TypeVar("T")
R = TypeVar("R")


def chunked(ids: Iterable[T], size: int = MEMBERSHIP_QUERY_LIMIT) -> Iterator[list[T]]:
    """Yield consecutive batches of at most ``size`` items, in input order."""
    if size < 1:
        raise ValueError(f"chunk size must be at least 1 (got {size})")
    batch: list[T] = []
    for item in ids:
        batch.append(item)
        if len(batch) == size:
            yield batch
            batch = []
    if batch:
        yield batch


def unique(ids: Iterable[T | None]) -> list[T]:
    """Drop empties and repeats, keep first-seen order."""
    seen: set[T] = set()
    out: list[T] = []
    for item in ids:
        if item is None or item == "" or item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


async def gather_chunks(
    ids: Sequence[T],
    fetch: Callable[[list[T]], Awaitable[R]],
    *,
    size: int = MEMBERSHIP_QUERY_LIMIT,
    concurrency: int | None = None,
) -> list[R]:
    limit = concurrency or SETTINGS.fanout_concurrency
    semaphore = asyncio.Semaphore(limit)

    async def _run(batch: list[T]) -> R:
        async with semaphore:
            return await fetch(batch)

    return list(await asyncio.gather(*(_run(b) for b in chunked(ids, size))))


async def gather_bounded(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    concurrency: int | None = None,
) -> list[R]:
    """Like gather_chunks but one call per item (per-course, per-class lookups)."""
    semaphore = asyncio.Semaphore(concurrency or SETTINGS.fanout_concurrency)

    async def _run(item: T) -> R:
        async with semaphore:
            return await fn(item)

    return list(await asyncio.gather(*(_run(i) for i in items)))
