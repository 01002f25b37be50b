"""
Single entry point for document text extraction.

The router owns the format registry, the admission queue, the worker pool and the
statistics. Each call resolves an extractor from the declared content type, waits
for a queue slot before the size-scaled deadline, runs the extractor on a worker
thread under the memory watchdog and turns every outcome into an
:class:`ExtractionResult`.
"""

from __future__ import annotations

import asyncio
import functools
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from docquarry.config.config import MB, ExtractionConfig
from docquarry.observability import histogram, increment

from . import errors
from .cancellation import CancellationToken, ExtractionContext
from .csv_extractor import CSVExtractor
from .docx_extractor import DocxExtractor
from .epub_extractor import EPUBExtractor
from .errors import DocumentError, ExtractionCancelled, ExtractionError
from .html_extractor import HTMLExtractor
from .json_extractor import JSONExtractor
from .markdown_extractor import MarkdownExtractor
from .memory import MemoryTracker, run_with_memory_limit
from .models import ExtractionResult, FormatInfo
from .pdf_extractor import PDFExtractor
from .pptx_extractor import PptxExtractor
from .protocols import Extractor
from .queue import ExtractionMetrics, ExtractionQueue
from .rtf_extractor import RTFExtractor
from .stats import ExtractionEvent, ExtractionLogger, ExtractionStats, StatsRecorder
from .text_extractor import PlainTextExtractor
from .validator import DOCX, EPUB, PPTX, XLSX, normalize_content_type, validate_format
from .xlsx_extractor import XlsxExtractor

logger = structlog.get_logger(__name__)

BASE_TIMEOUT = 5.0
BASE_TIMEOUT_SIZE = 10 * MB
TIMEOUT_PER_EXTRA_MB = 0.5


def extraction_deadline(file_size: int, ceiling: float) -> float:
    """Seconds allowed for one file: 5 s up to 10 MiB, +0.5 s per further whole MiB."""
    if file_size <= BASE_TIMEOUT_SIZE:
        return min(BASE_TIMEOUT, ceiling)
    extra_mb = (file_size - BASE_TIMEOUT_SIZE) // MB
    return min(BASE_TIMEOUT + extra_mb * TIMEOUT_PER_EXTRA_MB, ceiling)


def default_formats() -> List[tuple[FormatInfo, Extractor, Sequence[str]]]:
    """The built-in registry: (format, extractor, alias content types)."""
    rtf = RTFExtractor()
    return [
        (FormatInfo("Plain Text", (".txt", ".text"), "text/plain", "PlainTextExtractor"), PlainTextExtractor(), ()),
        (
            FormatInfo("Markdown", (".md", ".markdown"), "text/markdown", "MarkdownExtractor"),
            MarkdownExtractor(),
            ("text/x-markdown",),
        ),
        (
            FormatInfo("HTML", (".html", ".htm"), "text/html", "HTMLExtractor"),
            HTMLExtractor(),
            ("application/xhtml+xml",),
        ),
        (FormatInfo("JSON", (".json",), "application/json", "JSONExtractor"), JSONExtractor(), ("text/json",)),
        (FormatInfo("CSV", (".csv",), "text/csv", "CSVExtractor"), CSVExtractor(), ()),
        (FormatInfo("PDF Document", (".pdf",), "application/pdf", "PDFExtractor"), PDFExtractor(), ()),
        (FormatInfo("Word Document", (".docx",), DOCX, "DocxExtractor"), DocxExtractor(), ()),
        (FormatInfo("Excel Spreadsheet", (".xlsx",), XLSX, "XlsxExtractor"), XlsxExtractor(), ()),
        (FormatInfo("PowerPoint Presentation", (".pptx",), PPTX, "PptxExtractor"), PptxExtractor(), ()),
        (FormatInfo("EPUB Document", (".epub",), EPUB, "EPUBExtractor"), EPUBExtractor(), ()),
        (FormatInfo("Rich Text Format", (".rtf",), "application/rtf", "RTFExtractor"), rtf, ("text/rtf",)),
    ]


class ExtractionRouter:
    """
    Routes documents to format-specific extractors under shared resource limits.

    Features:
    - Content-type registry with aliases
    - Optional magic-number / extension validation
    - Bounded concurrency with live queue metrics
    - Size-scaled deadlines with partial results for multi-unit formats
    - Per-file memory budget
    - Cumulative per-format statistics
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        *,
        rss_reader: Optional[Callable[[], int]] = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self.logger = logger.bind(component="ExtractionRouter")

        self._extractors: Dict[str, Extractor] = {}
        self._formats: Dict[str, FormatInfo] = {}
        self._queue = ExtractionQueue(self.config.max_concurrent)
        # One spare thread per slot for workers abandoned after their deadline.
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_concurrent * 2,
            thread_name_prefix="docquarry-extract",
        )
        self._stats = StatsRecorder()
        self._extraction_logger = ExtractionLogger(self.config.logging_enabled)
        self._rss_reader = rss_reader
        self._detached_workers = 0

        for info, extractor, aliases in default_formats():
            self.register(info, extractor, aliases=aliases)

    # --- Registry ------------------------------------------------------------

    def register(self, info: FormatInfo, extractor: Extractor, *, aliases: Sequence[str] = ()) -> None:
        """Route ``info.content_type`` and every alias to ``extractor``."""
        if not isinstance(extractor, Extractor):
            raise TypeError(f"{extractor!r} does not implement the Extractor protocol")
        for content_type in (info.content_type, *aliases):
            key = normalize_content_type(content_type)
            self._extractors[key] = extractor
            self._formats[key] = info

    def is_supported(self, content_type: str) -> bool:
        return normalize_content_type(content_type) in self._extractors

    def supported_formats(self) -> List[str]:
        """Display names in registration order, without duplicates."""
        return list(dict.fromkeys(info.name for info in self._formats.values()))

    def supported_content_types(self) -> List[str]:
        return list(self._formats)

    def get_format_info(self, content_type: str) -> Optional[FormatInfo]:
        return self._formats.get(normalize_content_type(content_type))

    # --- Extraction ----------------------------------------------------------

    async def extract(self, data: bytes, content_type: str, *, filename: str = "") -> ExtractionResult:
        """Extract text; validates first only when ``require_validation`` is set."""
        return await self._extract(data, content_type, filename, validate=self.config.require_validation)

    async def extract_with_validation(self, data: bytes, content_type: str, filename: str) -> ExtractionResult:
        """Cross-check file header, extension and declared type, then extract."""
        return await self._extract(data, content_type, filename, validate=True)

    async def _extract(self, data: bytes, content_type: str, filename: str, *, validate: bool) -> ExtractionResult:
        file_size = len(data)
        if file_size == 0:
            return self._reject(errors.empty_file(content_type, filename), content_type)
        if file_size > self.config.max_file_size:
            error = errors.file_too_large(content_type, file_size, filename, self.config.max_file_size)
            return self._reject(error, content_type)

        content_type = normalize_content_type(content_type)
        self._extraction_logger.log_start(content_type, file_size)
        start = time.perf_counter()

        if validate:
            try:
                validate_format(data, filename, content_type)
            except DocumentError as e:
                error = errors.from_document_error(e, content_type, file_size, filename)
                self._extraction_logger.log_failure(content_type, file_size, time.perf_counter() - start, error)
                return self._reject(error, content_type)

        extractor = self._extractors.get(content_type)
        if extractor is None:
            error = errors.unsupported_format(content_type, file_size, self.supported_formats())
            self._extraction_logger.log_failure(content_type, file_size, time.perf_counter() - start, error)
            return self._reject(error, content_type)

        timeout = extraction_deadline(file_size, self.config.extraction_timeout)
        ctx = ExtractionContext(
            token=CancellationToken(timeout),
            tracker=self._new_tracker(),
            max_output_chars=self.config.max_output_chars,
            content_type=content_type,
            filename=filename,
        )

        result = await self._run(extractor, data, ctx, timeout)
        duration = time.perf_counter() - start
        self._record(result, file_size, duration)
        return result

    async def _run(self, extractor: Extractor, data: bytes, ctx: ExtractionContext, timeout: float) -> ExtractionResult:
        content_type, filename, file_size = ctx.content_type, ctx.filename, len(data)

        slot_retained = False

        def on_abandon(worker: asyncio.Future) -> None:
            nonlocal slot_retained
            if self._detached_workers < self.config.max_concurrent:
                self._detached_workers += 1
                worker.add_done_callback(self._worker_reclaimed)
            else:
                # No spare thread left: the slot stays taken until the worker returns.
                slot_retained = True
                worker.add_done_callback(lambda _: self._queue.release())

        try:
            await self._queue.acquire(timeout=ctx.token.remaining())
            try:
                text = await run_with_memory_limit(
                    functools.partial(extractor.extract, data, ctx),
                    ctx,
                    max_memory=self.config.max_memory_per_file,
                    sample_interval=self.config.memory_sample_interval,
                    executor=self._executor,
                    on_abandon=on_abandon,
                )
            except BaseException:
                self._queue.record_failure()
                raise
            finally:
                if not slot_retained:
                    self._queue.release()
        except ExtractionCancelled as e:
            error = errors.extraction_timeout(content_type, file_size, filename, timeout, cause=e)
            self._extraction_logger.log_timeout(content_type, file_size, timeout, len(e.partial_text))
            if e.partial_text:
                return ExtractionResult.partial_result(e.partial_text, error, content_type)
            return ExtractionResult.failure(error, content_type)
        except DocumentError as e:
            if ctx.token.expired:
                error = errors.extraction_timeout(content_type, file_size, filename, timeout, cause=e)
                self._extraction_logger.log_timeout(content_type, file_size, timeout)
            else:
                error = errors.from_document_error(e, content_type, file_size, filename)
                if error.kind is errors.ErrorKind.MEMORY_LIMIT:
                    self._extraction_logger.log_memory_warning(ctx.tracker.peak_growth, self.config.max_memory_per_file)
            return ExtractionResult.failure(error, content_type)
        except asyncio.CancelledError:
            ctx.token.cancel()
            raise

        return ExtractionResult.success(text, content_type)

    def _worker_reclaimed(self, _worker: asyncio.Future) -> None:
        self._detached_workers -= 1

    def _new_tracker(self) -> MemoryTracker:
        if self._rss_reader is None:
            return MemoryTracker(self.config.max_memory_per_file)
        return MemoryTracker(self.config.max_memory_per_file, rss_reader=self._rss_reader)

    # --- Accounting ----------------------------------------------------------

    def _metric_label(self, content_type: str) -> str:
        normalized = normalize_content_type(content_type)
        return normalized if normalized in self._extractors else "unsupported"

    def _reject(self, error: ExtractionError, content_type: str) -> ExtractionResult:
        """Failure decided before any extractor ran."""
        increment("extractions_total", labels={"content_type": self._metric_label(content_type), "outcome": "rejected"})
        increment("extraction_failures_total", labels={"kind": error.kind.value})
        return ExtractionResult.failure(error, normalize_content_type(content_type))

    def _record(self, result: ExtractionResult, file_size: int, duration: float) -> None:
        content_type = result.content_type
        error = result.error
        self._stats.record(
            ExtractionEvent(
                content_type=content_type,
                file_size=file_size,
                duration=duration,
                success=result.ok,
                error=str(error) if error is not None else "",
                text_length=len(result.text),
            )
        )

        label = self._metric_label(content_type)
        increment("extractions_total", labels={"content_type": label, "outcome": result.status.value})
        increment("extracted_bytes_total", value=file_size, labels={"content_type": label})
        histogram("extraction_duration_seconds", duration, labels={"content_type": label})

        if error is None:
            self._extraction_logger.log_success(content_type, file_size, duration, len(result.text))
            return
        increment("extraction_failures_total", labels={"kind": error.kind.value})
        if error.kind is not errors.ErrorKind.TIMEOUT:
            self._extraction_logger.log_failure(content_type, file_size, duration, error)

    # --- Introspection -------------------------------------------------------

    def get_metrics(self) -> ExtractionMetrics:
        metrics = self._queue.get_metrics()
        self._extraction_logger.log_metrics(metrics)
        return metrics

    def get_stats(self) -> ExtractionStats:
        return self._stats.snapshot()

    def set_logging_enabled(self, enabled: bool) -> None:
        self._extraction_logger.enabled = enabled

    def log_queue_status(self) -> None:
        metrics = self._queue.get_metrics()
        self._extraction_logger.log_queue_status(
            metrics.active_extractions, metrics.queued_extractions, self.config.max_concurrent
        )

    # --- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        """Stop the worker pool; running extractions finish at their next checkpoint."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    async def __aenter__(self) -> ExtractionRouter:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()
