# imgpipe/common/concurrency/thread_manager.py
from __future__ import annotations

import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

from imgpipe.common.logging import get_logger

T = TypeVar("T")
R = TypeVar("R")

log = get_logger(__name__)


@dataclass
class ThreadStats:
    start_ts: float
    tasks_submitted: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    tasks_coalesced: int = 0

    @property
    def uptime_sec(self) -> float:
        return time.time() - self.start_ts

    @property
    def in_flight(self) -> int:
        return max(0, self.tasks_submitted - (self.tasks_completed + self.tasks_failed))


class ThreadManager(Generic[T, R]):
    """
    Bounded thread pool that keeps decode/encode work off the request thread.

    Features
    --------
    - submit(fn, *args, **kwargs) -> Future
    - submit_once(key, fn, ...) -> Future shared by every caller while `key` is in flight
    - run(fn, ..., timeout=...) -> R, raising TimeoutError past the deadline
    - Bounded outstanding tasks via a semaphore (max_queue)
    - Stats snapshot
    - Clean shutdown, context manager support

    Notes
    -----
    - Tasks here are Pillow decode/resize/encode calls, which release the GIL.
    """

    def __init__(
        self,
        name: str = "worker",
        max_workers: Optional[int] = None,
        max_queue: Optional[int] = None,
        thread_name_prefix: Optional[str] = None,
        log_exceptions: bool = True,
    ) -> None:
        if max_workers is None:
            n = os.cpu_count() or 4
            max_workers = max(2, min(8, n))

        self._name = name
        self._max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=thread_name_prefix or f"{name}",
        )
        self._stats = ThreadStats(start_ts=time.time())
        self._log_exceptions = log_exceptions

        if not max_queue or max_queue <= 0:
            self._slots = None  # unbounded
        else:
            self._slots = threading.Semaphore(max_queue)

        self._inflight: Dict[Hashable, Future] = {}
        self._closed = False
        self._lock = threading.Lock()

    # -------------------------
    # Lifecycle
    # -------------------------
    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        """Shut down the executor. Safe to call multiple times."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._inflight.clear()
        self._executor.shutdown(wait=wait, cancel_futures=cancel_futures)

    def __enter__(self) -> "ThreadManager[T, R]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True, cancel_futures=True)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def stats(self) -> ThreadStats:
        """Return a *snapshot* of current stats."""
        with self._lock:
            return ThreadStats(
                start_ts=self._stats.start_ts,
                tasks_submitted=self._stats.tasks_submitted,
                tasks_completed=self._stats.tasks_completed,
                tasks_failed=self._stats.tasks_failed,
                tasks_coalesced=self._stats.tasks_coalesced,
            )

    # -------------------------
    # Submission
    # -------------------------
    def submit(
        self, fn: Callable[..., R], /, *args, queue_timeout: Optional[float] = None, **kwargs
    ) -> Future[R]:
        """
        Submit a single callable. Applies queue bounding and stats bookkeeping.
        Returns a Future that will hold the result or exception.
        When the queue is full, waits at most `queue_timeout` seconds for a
        slot (None = wait forever) and then raises TimeoutError.
        """
        if self._closed:
            raise RuntimeError(f"{self._name}: submit() after shutdown")

        if self._slots is not None and not self._slots.acquire(timeout=queue_timeout):
            raise TimeoutError(f"{self._name}: no queue slot within {queue_timeout}s")

        def _wrapped(*a, **kw) -> R:
            try:
                return fn(*a, **kw)
            finally:
                if self._slots is not None:
                    self._slots.release()

        with self._lock:
            self._stats.tasks_submitted += 1

        fut: Future[R] = self._executor.submit(_wrapped, *args, **kwargs)

        def _cb(f: Future[R]) -> None:
            if f.cancelled():
                with self._lock:
                    self._stats.tasks_failed += 1
                return
            exc = f.exception()
            with self._lock:
                if exc is None:
                    self._stats.tasks_completed += 1
                else:
                    self._stats.tasks_failed += 1
            if exc is not None and self._log_exceptions:
                log.debug("%s task failed: %s", self._name, exc)

        fut.add_done_callback(_cb)
        return fut

    def submit_once(
        self,
        key: Hashable,
        fn: Callable[..., R],
        /,
        *args,
        queue_timeout: Optional[float] = None,
        **kwargs,
    ) -> Future[R]:
        """
        Coalesce identical work: while a task for `key` is running, every other
        caller receives that same Future instead of starting a duplicate.
        """
        with self._lock:
            existing = self._inflight.get(key)
            if existing is not None and not existing.done():
                self._stats.tasks_coalesced += 1
                return existing

        fut = self.submit(fn, *args, queue_timeout=queue_timeout, **kwargs)

        with self._lock:
            # a racing caller may have registered first; keep theirs visible
            current = self._inflight.get(key)
            if current is None or current.done():
                self._inflight[key] = fut

        def _forget(f: Future[R]) -> None:
            with self._lock:
                if self._inflight.get(key) is f:
                    del self._inflight[key]

        fut.add_done_callback(_forget)
        return fut

    # -------------------------
    # Blocking helpers
    # -------------------------
    def wait(self, fut: Future[R], timeout: Optional[float] = None) -> R:
        """Block for a result; raises TimeoutError if `timeout` elapses first."""
        try:
            return fut.result(timeout=timeout)
        except FutureTimeout as e:
            raise TimeoutError(f"{self._name}: task exceeded {timeout}s") from e

    def run(self, fn: Callable[..., R], /, *args, timeout: Optional[float] = None, **kwargs) -> R:
        """`timeout` bounds the whole call: waiting for a queue slot plus running."""
        deadline = None if timeout is None else time.monotonic() + timeout
        fut = self.submit(fn, *args, queue_timeout=timeout, **kwargs)
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        return self.wait(fut, timeout=remaining)
