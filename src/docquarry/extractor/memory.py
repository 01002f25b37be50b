"""
Memory-bounded execution of synchronous extractors.

Extractors run on a worker thread while the event loop samples process RSS growth
with psutil. Exceeding the per-file budget or the deadline cancels the shared token;
the worker notices at its next checkpoint.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import Executor
from typing import TYPE_CHECKING, Callable, List, Optional

import psutil
import structlog

from .errors import DocumentError, ErrorKind, ExtractionCancelled

if TYPE_CHECKING:
    from .cancellation import ExtractionContext

logger = structlog.get_logger(__name__)

# Text appended between two tracker checks.
CHECK_EVERY_CHARS = 4096

# How long a worker gets to hand back partial text once the deadline has passed.
DEADLINE_GRACE_SECONDS = 0.5

# Called with the future of a worker that is given up on while it still runs.
AbandonHook = Callable[[asyncio.Future], None]


def _process_rss() -> int:
    return psutil.Process().memory_info().rss


def _abandon(future: asyncio.Future[str], on_abandon: Optional[AbandonHook]) -> None:
    # The worker keeps running until its next checkpoint; its outcome is discarded.
    future.add_done_callback(lambda f: f.cancelled() or f.exception())
    if on_abandon is not None:
        on_abandon(future)


class MemoryTracker:
    """Tracks process RSS growth against a per-extraction budget."""

    def __init__(self, limit: Optional[int], rss_reader: Callable[[], int] = _process_rss) -> None:
        self.limit = limit
        self._read_rss = rss_reader
        self.baseline = rss_reader()
        self.peak_growth = 0

    def growth(self) -> int:
        growth = self._read_rss() - self.baseline
        if growth > self.peak_growth:
            self.peak_growth = growth
        return growth

    def exceeded(self) -> bool:
        return self.limit is not None and self.growth() > self.limit

    def check(self) -> None:
        """Raise ``DocumentError(MEMORY_LIMIT)`` when growth is over budget."""
        if self.exceeded():
            raise DocumentError(
                ErrorKind.MEMORY_LIMIT,
                f"memory growth {self.peak_growth} bytes exceeds limit {self.limit} bytes",
            )


class StreamingTextBuilder:
    """Append-only text accumulator with an output ceiling."""

    def __init__(self, max_chars: int, tracker: Optional[MemoryTracker] = None) -> None:
        self.max_chars = max_chars
        self.tracker = tracker
        self._parts: List[str] = []
        self._length = 0
        self._since_check = 0

    def __len__(self) -> int:
        return self._length

    def append(self, text: str) -> None:
        if not text:
            return
        if self._length + len(text) > self.max_chars:
            raise DocumentError(
                ErrorKind.MEMORY_LIMIT,
                f"extracted text exceeds {self.max_chars} characters",
            )
        self._parts.append(text)
        self._length += len(text)
        self._since_check += len(text)
        if self._since_check >= CHECK_EVERY_CHARS:
            self._since_check = 0
            if self.tracker is not None:
                self.tracker.check()

    @property
    def last_char(self) -> str:
        return self._parts[-1][-1] if self._parts else ""

    def text(self) -> str:
        if len(self._parts) > 1:
            self._parts = ["".join(self._parts)]
        return self._parts[0] if self._parts else ""


async def run_with_memory_limit(
    fn: Callable[[], str],
    ctx: ExtractionContext,
    *,
    max_memory: int,
    sample_interval: float,
    executor: Optional[Executor] = None,
    on_abandon: Optional[AbandonHook] = None,
) -> str:
    """Run ``fn`` on a worker thread under the memory and deadline watchdog.

    ``on_abandon`` receives the future of a worker that is given up on while still
    running.

    Raises:
        DocumentError: An extractor failure, a memory breach, or an unexpected
            exception wrapped as ``EXTRACTION_FAILED``.
        ExtractionCancelled: The deadline passed, possibly with partial text.
    """
    from .cancellation import REASON_DEADLINE, REASON_MEMORY

    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(executor, fn)
    token = ctx.token
    tracker = ctx.tracker

    try:
        while True:
            wait_for = sample_interval
            remaining = token.remaining()
            if remaining is not None:
                wait_for = min(wait_for, remaining)
            done, _ = await asyncio.wait({future}, timeout=wait_for)
            if done:
                break

            growth = tracker.growth()
            if growth > max_memory:
                token.cancel(REASON_MEMORY)
                _abandon(future, on_abandon)
                raise DocumentError(
                    ErrorKind.MEMORY_LIMIT,
                    f"memory growth {growth} bytes exceeds limit {max_memory} bytes",
                )

            if token.expired:
                token.cancel(REASON_DEADLINE)
                # Give the worker a moment to surface its partial text.
                done, _ = await asyncio.wait({future}, timeout=DEADLINE_GRACE_SECONDS)
                if not done:
                    _abandon(future, on_abandon)
                    raise ExtractionCancelled("", ctx.progress, deadline_exceeded=True)
                break
    except asyncio.CancelledError:
        token.cancel()
        _abandon(future, on_abandon)
        raise

    try:
        text = future.result()
    except (DocumentError, ExtractionCancelled):
        raise
    except Exception as exc:
        logger.error(
            "extractor_crashed",
            content_type=ctx.content_type,
            error_type=type(exc).__name__,
            exc_info=True,
        )
        raise DocumentError(ErrorKind.EXTRACTION_FAILED, f"{type(exc).__name__}: {exc}") from exc

    growth = tracker.growth()
    if growth > max_memory:
        raise DocumentError(
            ErrorKind.MEMORY_LIMIT,
            f"memory growth {growth} bytes exceeds limit {max_memory} bytes",
        )
    return text

