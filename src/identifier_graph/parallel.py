"""Parallel execution helpers for corpus processing."""

import multiprocessing
import os
import threading
from concurrent.futures import ProcessPoolExecutor
from typing import Callable, Iterable, Iterator, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")


def supports_fork() -> bool:
    """Return True when the multiprocessing runtime can safely use fork."""
    if "fork" not in multiprocessing.get_all_start_methods():
        return False
    return threading.active_count() <= 1


def resolve_max_workers(max_workers: Optional[int]) -> int:
    """Resolve max_workers using the CPU count when unset."""
    if max_workers is not None:
        return max(1, max_workers)
    return max(1, os.cpu_count() or 1)


def parallel_map(
    items: Iterable[T],
    fn: Callable[[T], U],
    max_workers: Optional[int] = None,
) -> Iterator[U]:
    """
    Map items over a process pool, yielding results in input order.

    Args:
        items: Inputs, each handed to one worker call
        fn: Module-level function applied to every item
        max_workers: Pool size, CPU count when None

    Yields:
        Results of fn, in the order of items
    """
    ctx = (
        multiprocessing.get_context("fork")
        if supports_fork()
        else multiprocessing.get_context("spawn")
    )
    with ProcessPoolExecutor(max_workers=resolve_max_workers(max_workers), mp_context=ctx) as executor:
        for result in executor.map(fn, items):
            yield result
