"""
Cooperative cancellation for extractors running on worker threads.

A worker thread cannot be interrupted from the event loop, so every extractor polls
an :class:`ExtractionContext` at natural boundaries (pages, sheets, slides, rows).
The context raises once the deadline has passed, the caller cancelled, or the memory
watchdog tripped.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from .errors import DocumentError, ErrorKind, ExtractionCancelled
from .memory import MemoryTracker, StreamingTextBuilder

REASON_DEADLINE = "deadline"
REASON_MEMORY = "memory"
REASON_CANCELLED = "cancelled"

# Partial text, or a callable producing it only once cancellation is certain.
Partial = Union[str, Callable[[], str]]


class CancellationToken:
    """Deadline plus a thread-safe cancel flag shared by the loop and a worker."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._event = threading.Event()
        self._reason: Optional[str] = None

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    @property
    def reason(self) -> Optional[str]:
        if self._reason is None and self.expired:
            return REASON_DEADLINE
        return self._reason

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    @property
    def deadline_exceeded(self) -> bool:
        return self.reason == REASON_DEADLINE

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self, reason: str = REASON_CANCELLED) -> None:
        # First reason wins.
        if self._reason is None:
            self._reason = reason
        self._event.set()

    def raise_if_cancelled(self, partial: Partial = "", progress: str = "") -> None:
        if not self.cancelled:
            return
        if callable(partial):
            partial = partial()
        if self.reason == REASON_MEMORY:
            raise DocumentError(ErrorKind.MEMORY_LIMIT, "memory watchdog stopped the extraction")
        raise ExtractionCancelled(partial, progress, deadline_exceeded=self.deadline_exceeded)


@dataclass
class ExtractionContext:
    """Per-call state handed to an extractor."""

    token: CancellationToken
    tracker: MemoryTracker
    max_output_chars: int
    content_type: str = ""
    filename: str = ""
    progress: str = field(default="", init=False)

    def checkpoint(self, partial: Partial = "", progress: str = "") -> None:
        """Raise if the extraction must stop; ``partial`` is the text gathered so far."""
        if progress:
            self.progress = progress
        self.token.raise_if_cancelled(partial, progress or self.progress)

    def builder(self) -> StreamingTextBuilder:
        return StreamingTextBuilder(self.max_output_chars, self.tracker)

    @classmethod
    def unbounded(cls, max_output_chars: int = 20_000_000) -> ExtractionContext:
        """Context without deadline or memory ceiling, for direct extractor use."""
        return cls(
            token=CancellationToken(),
            tracker=MemoryTracker(limit=None),
            max_output_chars=max_output_chars,
        )
