"""
Fan-out/join helpers for per-example work.

Batches are split into contiguous chunks, one per worker. Each worker writes
only to its own result slots (``parallel_map``) or returns its own partial
accumulator (``parallel_sum``); partials are combined after every worker has
finished. Nothing here mutates shared state during the fan-out.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def resolve_workers(num_workers: Optional[int]) -> int:
    """Map ``None`` to the available hardware parallelism."""
    if num_workers is None:
        return os.cpu_count() or 1
    if num_workers < 1:
        raise ValueError(f"num_workers must be at least 1, got {num_workers}")
    return num_workers


def chunk_slices(n_items: int, n_chunks: int) -> List[slice]:
    """Split ``range(n_items)`` into at most ``n_chunks`` contiguous, non-empty slices."""
    n_chunks = max(1, min(n_chunks, n_items))
    base, extra = divmod(n_items, n_chunks)
    slices = []
    start = 0
    for i in range(n_chunks):
        stop = start + base + (1 if i < extra else 0)
        if stop > start:
            slices.append(slice(start, stop))
        start = stop
    return slices


def parallel_map(
    fn: Callable[[T], R],
    items: Sequence[T],
    num_workers: Optional[int] = None,
) -> List[R]:
    """
    Apply ``fn`` to every item, preserving order.

    Args:
        fn: Function of one item; must not mutate shared state
        items: Items to process
        num_workers: Worker count (``None`` = ``os.cpu_count()``)

    Returns:
        ``[fn(x) for x in items]``
    """
    workers = resolve_workers(num_workers)
    results: List[Any] = [None] * len(items)
    chunks = chunk_slices(len(items), workers)

    def _work(chunk: slice) -> None:
        for i in range(chunk.start, chunk.stop):
            results[i] = fn(items[i])

    if len(chunks) <= 1:
        for chunk in chunks:
            _work(chunk)
        return results

    with ThreadPoolExecutor(max_workers=len(chunks)) as executor:
        futures = [executor.submit(_work, chunk) for chunk in chunks]
        for future in futures:
            future.result()
    return results


def parallel_sum(
    fn: Callable[[slice], R],
    n_items: int,
    num_workers: Optional[int] = None,
) -> R:
    """
    Sum per-chunk partial results.

    Args:
        fn: Computes the partial accumulator (e.g. a numpy array) for one
            contiguous chunk of ``range(n_items)``
        n_items: Number of items to split across workers
        num_workers: Worker count (``None`` = ``os.cpu_count()``)

    Returns:
        The sum of all partials

    Raises:
        ValueError: If ``n_items`` is zero
    """
    if n_items <= 0:
        raise ValueError("parallel_sum needs at least one item")
    chunks = chunk_slices(n_items, resolve_workers(num_workers))

    if len(chunks) == 1:
        return fn(chunks[0])

    with ThreadPoolExecutor(max_workers=len(chunks)) as executor:
        partials = list(executor.map(fn, chunks))

    total = partials[0]
    for partial in partials[1:]:
        total = total + partial
    return total
