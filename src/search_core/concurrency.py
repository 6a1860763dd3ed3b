"""Bounded worker pool with an explicit join barrier.

Every parallel point of the core (per-document indexing tasks, left/right
sub-query resolution, chunked scoring) goes through :meth:`WorkerPool.run_all`.
Tasks never yield to each other; the only suspension point is the barrier.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
import contextvars
import logging
import threading
from typing import Any, TypeVar

from search_core.errors import InterruptedOperation


logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkerPool:
    """Thread pool shared by the indexer, query resolver and ranker."""

    def __init__(self, max_workers: int = 8, *, name: str = "search-core") -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._closed = False
        self._lock = threading.Lock()

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def run_all(self, tasks: Sequence[Callable[[], T]]) -> list[T]:
        """Run every task and wait for all of them.

        Results come back in submission order. The first failing task cancels
        whatever has not started yet and its exception is re-raised; a
        cancelled or interrupted task surfaces as ``InterruptedOperation``.
        """
        if not tasks:
            return []

        futures = self._submit_all(tasks)
        _, not_done = wait(futures, return_when=FIRST_EXCEPTION)

        if not_done:
            for future in not_done:
                future.cancel()
            # Tasks already running cannot be cancelled; the barrier still waits for them.
            wait(not_done)

        for future in futures:
            if future.cancelled():
                continue
            exc = future.exception()
            if exc is None:
                continue
            if isinstance(exc, KeyboardInterrupt):
                raise InterruptedOperation("Parallel task was interrupted") from exc
            raise exc

        if any(future.cancelled() for future in futures):
            raise InterruptedOperation("Parallel task was cancelled before completion")
        return [future.result() for future in futures]

    def _submit_all(self, tasks: Sequence[Callable[[], T]]) -> list[Future]:
        with self._lock:
            if self._closed:
                raise InterruptedOperation("Worker pool is shut down")
            futures: list[Future] = []
            try:
                for task in tasks:
                    ctx = contextvars.copy_context()
                    futures.append(self._executor.submit(ctx.run, task))
            except RuntimeError as exc:
                for future in futures:
                    future.cancel()
                raise InterruptedOperation("Worker pool rejected a task") from exc
            return futures

    def map_chunks(self, items: Sequence[Any], chunk_count: int, func: Callable[[Sequence[Any]], T]) -> list[T]:
        """Split ``items`` into contiguous chunks and run ``func`` on each."""
        return self.run_all([_bind(func, chunk) for chunk in split_contiguous(items, chunk_count)])

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=True, cancel_futures=True)
        logger.debug("Worker pool closed (%d workers)", self.max_workers)


def split_contiguous(items: Sequence[Any], chunk_count: int) -> list[Sequence[Any]]:
    """Partition ``items`` into at most ``chunk_count`` contiguous, non-empty slices."""
    total = len(items)
    if total == 0:
        return []
    chunk_count = max(1, min(chunk_count, total))
    base, extra = divmod(total, chunk_count)
    chunks: list[Sequence[Any]] = []
    start = 0
    for index in range(chunk_count):
        size = base + (1 if index < extra else 0)
        chunks.append(items[start : start + size])
        start += size
    return chunks


def _bind(func: Callable[[Sequence[Any]], T], chunk: Sequence[Any]) -> Callable[[], T]:
    return lambda: func(chunk)
