"""
Bounded worker pool for protocol generation jobs.

Wraps a ThreadPoolExecutor with a hard limit on admitted work (running plus
queued). When the limit is reached, reserve() fails with QueueFull instead
of queueing without bound, so callers see backpressure before they create
any job record.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from ..errors import QueueFull

logger = logging.getLogger(__name__)


class Reservation:
    """A claimed slot in the pool. Submit exactly once, or release."""

    def __init__(self, pool: "WorkerPool"):
        self._pool = pool
        self._used = False

    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        if self._used:
            raise RuntimeError("Reservation already used")
        self._used = True
        return self._pool._submit_reserved(fn, *args, **kwargs)

    def release(self):
        if not self._used:
            self._used = True
            self._pool._release()


class WorkerPool:
    """Thread pool with bounded admission."""

    def __init__(self, max_workers: int = 2, max_pending: int = 8, name: str = "protocol-job"):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if max_pending < max_workers:
            raise ValueError("max_pending must be >= max_workers")
        self.max_workers = max_workers
        self.max_pending = max_pending
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._pending = 0
        self._closed = False

    @property
    def pending(self) -> int:
        """Jobs admitted and not yet finished (running + queued)."""
        with self._lock:
            return self._pending

    @property
    def capacity(self) -> int:
        """Slots still free."""
        with self._lock:
            return self.max_pending - self._pending

    def reserve(self) -> Reservation:
        """
        Claim a slot for one job.

        Raises:
            QueueFull: max_pending jobs are already admitted
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Worker pool is shut down")
            if self._pending >= self.max_pending:
                logger.warning(f"Worker pool saturated ({self._pending}/{self.max_pending} jobs)")
                raise QueueFull(f"{self._pending} protocol jobs already pending")
            self._pending += 1
        return Reservation(self)

    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        """Reserve a slot and submit in one step."""
        return self.reserve().submit(fn, *args, **kwargs)

    def _submit_reserved(self, fn: Callable, *args, **kwargs) -> Future:
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except Exception:
            self._release()
            raise
        future.add_done_callback(lambda _: self._release())
        return future

    def _release(self):
        with self._lock:
            self._pending -= 1

    def shutdown(self, wait: bool = True):
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown(wait=True)
