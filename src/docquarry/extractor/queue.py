"""
Concurrency-limiting admission queue for extractions.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from docquarry.observability import gauge

from .errors import ExtractionCancelled

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class ExtractionMetrics:
    """Point-in-time copy of the queue counters."""

    total_extractions: int = 0
    active_extractions: int = 0
    queued_extractions: int = 0
    failed_extractions: int = 0

    @property
    def success_rate(self) -> float:
        if self.total_extractions == 0:
            return 0.0
        return (self.total_extractions - self.failed_extractions) / self.total_extractions * 100


class ExtractionQueue:
    """Bounds the number of extractions running at once.

    Slots are handed out by an ``asyncio.Semaphore``; waiters are not guaranteed to
    be served in arrival order. A waiter whose timeout expires, or whose task is
    cancelled, leaves without holding a slot.
    """

    def __init__(self, max_concurrent: int) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._lock = threading.Lock()
        self._total = 0
        self._active = 0
        self._queued = 0
        self._failed = 0

    def _publish(self) -> None:
        gauge("extractions_active", self._active)
        gauge("extractions_queued", self._queued)

    async def acquire(self, timeout: Optional[float] = None) -> None:
        """Wait for a slot.

        Raises:
            ExtractionCancelled: No slot became free before ``timeout`` elapsed.
            asyncio.CancelledError: The waiting task was cancelled.
        """
        with self._lock:
            self._queued += 1
            self._publish()
        try:
            if timeout is None:
                await self._semaphore.acquire()
            else:
                await asyncio.wait_for(self._semaphore.acquire(), timeout=max(timeout, 0.0))
        except asyncio.TimeoutError:
            with self._lock:
                self._queued -= 1
                self._publish()
            raise ExtractionCancelled("", "waiting for an extraction slot", deadline_exceeded=True) from None
        except BaseException:
            with self._lock:
                self._queued -= 1
                self._publish()
            raise

        with self._lock:
            self._queued -= 1
            self._active += 1
            self._total += 1
            self._publish()

    def release(self) -> None:
        with self._lock:
            self._active -= 1
            self._publish()
        self._semaphore.release()

    def record_failure(self) -> None:
        with self._lock:
            self._failed += 1

    async def execute(self, fn: Callable[[], Awaitable[T]], timeout: Optional[float] = None) -> T:
        """Acquire a slot, await ``fn()``, count a failure if it raises, then release."""
        await self.acquire(timeout)
        try:
            return await fn()
        except BaseException:
            self.record_failure()
            raise
        finally:
            self.release()

    def get_metrics(self) -> ExtractionMetrics:
        with self._lock:
            return ExtractionMetrics(
                total_extractions=self._total,
                active_extractions=self._active,
                queued_extractions=self._queued,
                failed_extractions=self._failed,
            )

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    @property
    def queued(self) -> int:
        with self._lock:
            return self._queued

