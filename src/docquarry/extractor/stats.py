"""
Cumulative extraction statistics and structured extraction logging.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict

import structlog

from .queue import ExtractionMetrics

MB = 1024 * 1024


@dataclass(slots=True, frozen=True)
class ExtractionEvent:
    """Immutable record of one extraction attempt."""

    content_type: str
    file_size: int
    duration: float
    success: bool
    error: str = ""
    text_length: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class FormatStats:
    count: int = 0
    success_count: int = 0
    failed_count: int = 0
    total_duration: float = 0.0
    total_bytes: int = 0

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.count if self.count else 0.0

    @property
    def average_speed(self) -> float:
        """Throughput in MB/s over every recorded attempt."""
        if self.total_duration <= 0:
            return 0.0
        return self.total_bytes / MB / self.total_duration

    def record(self, event: ExtractionEvent) -> None:
        self.count += 1
        self.total_duration += event.duration
        self.total_bytes += event.file_size
        if event.success:
            self.success_count += 1
        else:
            self.failed_count += 1


@dataclass(slots=True)
class ExtractionStats:
    """Aggregates over every attempt, overall and per content type."""

    total_extractions: int = 0
    successful_extractions: int = 0
    failed_extractions: int = 0
    total_duration: float = 0.0
    total_bytes_processed: int = 0
    by_format: Dict[str, FormatStats] = field(default_factory=dict)

    def record(self, event: ExtractionEvent) -> None:
        self.total_extractions += 1
        self.total_duration += event.duration
        self.total_bytes_processed += event.file_size
        if event.success:
            self.successful_extractions += 1
        else:
            self.failed_extractions += 1
        self.by_format.setdefault(event.content_type, FormatStats()).record(event)


class StatsRecorder:
    """Thread-safe owner of an :class:`ExtractionStats` aggregate."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats = ExtractionStats()

    def record(self, event: ExtractionEvent) -> None:
        with self._lock:
            self._stats.record(event)

    def snapshot(self) -> ExtractionStats:
        with self._lock:
            return copy.deepcopy(self._stats)


class ExtractionLogger:
    """Emits one structured log event per extraction milestone.

    Disabled loggers are silent; the switch can be flipped at runtime.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self.logger = structlog.get_logger(__name__).bind(component="ExtractionLogger")

    def log_start(self, content_type: str, file_size: int) -> None:
        if not self.enabled:
            return
        self.logger.info(
            "extraction_started",
            content_type=content_type,
            file_size=file_size,
            size_mb=round(file_size / MB, 2),
        )

    def log_success(self, content_type: str, file_size: int, duration: float, text_length: int) -> None:
        if not self.enabled:
            return
        speed = file_size / MB / duration if duration > 0 else 0.0
        self.logger.info(
            "extraction_succeeded",
            content_type=content_type,
            file_size=file_size,
            duration_s=round(duration, 4),
            chars=text_length,
            speed_mb_s=round(speed, 2),
        )

    def log_failure(self, content_type: str, file_size: int, duration: float, error: BaseException) -> None:
        if not self.enabled:
            return
        self.logger.warning(
            "extraction_failed",
            content_type=content_type,
            file_size=file_size,
            duration_s=round(duration, 4),
            error=str(error),
        )

    def log_timeout(self, content_type: str, file_size: int, timeout: float, partial_chars: int = 0) -> None:
        if not self.enabled:
            return
        self.logger.warning(
            "extraction_timeout",
            content_type=content_type,
            file_size=file_size,
            timeout_s=timeout,
            partial_chars=partial_chars,
        )

    def log_metrics(self, metrics: ExtractionMetrics) -> None:
        if not self.enabled:
            return
        self.logger.info(
            "extraction_metrics",
            total=metrics.total_extractions,
            active=metrics.active_extractions,
            queued=metrics.queued_extractions,
            failed=metrics.failed_extractions,
            success_rate=round(metrics.success_rate, 2),
        )

    def log_memory_warning(self, used: int, limit: int) -> None:
        if not self.enabled:
            return
        self.logger.warning(
            "memory_warning",
            used_bytes=used,
            limit_bytes=limit,
            usage_percent=round(used / limit * 100, 2) if limit else 0.0,
        )

    def log_queue_status(self, active: int, queued: int, max_concurrent: int) -> None:
        if not self.enabled:
            return
        self.logger.debug("queue_status", active=active, queued=queued, max_concurrent=max_concurrent)
