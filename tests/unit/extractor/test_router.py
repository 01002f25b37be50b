"""
Unit tests for ExtractionRouter with comprehensive branch coverage.
"""

from __future__ import annotations

import asyncio
import threading
import time

import pytest
from docquarry.config import ExtractionConfig
from docquarry.extractor import (
    ErrorKind,
    ExtractionContext,
    ExtractionRouter,
    ExtractionStatus,
    FormatInfo,
    extraction_deadline,
)
from docquarry.extractor.validator import DOCX, PPTX, XLSX
from docquarry.observability import METRICS

from tests.helpers.documents import build_pdf
from tests.helpers.metric_delta import histogram_observes, metric_delta

MB = 1024 * 1024
SLOW_TYPE = "application/x-paged"
SLOW_FORMAT = FormatInfo("Paged", (".paged",), SLOW_TYPE, "PagedExtractor")

ALL_CONTENT_TYPES = [
    "text/plain",
    "text/markdown",
    "text/x-markdown",
    "text/html",
    "application/xhtml+xml",
    "application/json",
    "text/json",
    "text/csv",
    "application/pdf",
    DOCX,
    XLSX,
    PPTX,
    "application/epub+zip",
    "application/rtf",
    "text/rtf",
]


class PagedExtractor:
    """Emits one page per step and checkpoints between pages."""

    name = "paged"

    def __init__(self, pages: int = 1000, delay: float = 0.01) -> None:
        self.pages = pages
        self.delay = delay
        self.running = 0
        self.peak = 0
        self._lock = threading.Lock()

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        with self._lock:
            self.running += 1
            self.peak = max(self.peak, self.running)
        try:
            out = ctx.builder()
            for number in range(self.pages):
                ctx.checkpoint(partial=out.text, progress=f"page {number}")
                if len(out):
                    out.append("\n\n")
                out.append(f"page {number}")
                time.sleep(self.delay)
            return out.text()
        finally:
            with self._lock:
                self.running -= 1


class SleepingExtractor:
    """Never reaches a checkpoint."""

    name = "sleeping"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        time.sleep(1.5)
        return "too late"


class CrashingExtractor:
    name = "crashing"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        raise RuntimeError("unexpected parser state")


class FakeRSS:
    def __init__(self, *values: int) -> None:
        self._values = list(values)
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            return self._values.pop(0) if len(self._values) > 1 else self._values[0]


def make_router(extractor, rss_reader=None, **config) -> ExtractionRouter:
    config.setdefault("logging_enabled", False)
    router = ExtractionRouter(ExtractionConfig(**config), rss_reader=rss_reader)
    router.register(SLOW_FORMAT, extractor)
    return router


class TestRegistry:
    def test_default_registry_covers_every_sample(self, router, sample_documents):
        assert set(router.supported_content_types()) == set(ALL_CONTENT_TYPES)
        assert set(sample_documents) == set(ALL_CONTENT_TYPES)

    @pytest.mark.parametrize("content_type", ALL_CONTENT_TYPES)
    def test_is_supported(self, router, content_type):
        assert router.is_supported(content_type)
        assert router.is_supported(content_type.upper() + "; charset=utf-8")

    def test_unknown_type_is_not_supported(self, router):
        assert not router.is_supported("image/png")
        assert router.get_format_info("image/png") is None

    def test_supported_formats_are_unique_names(self, router):
        assert router.supported_formats() == [
            "Plain Text",
            "Markdown",
            "HTML",
            "JSON",
            "CSV",
            "PDF Document",
            "Word Document",
            "Excel Spreadsheet",
            "PowerPoint Presentation",
            "EPUB Document",
            "Rich Text Format",
        ]

    def test_aliases_share_format_info(self, router):
        assert router.get_format_info("text/x-markdown") is router.get_format_info("text/markdown")
        assert router.get_format_info("text/rtf").name == "Rich Text Format"
        assert router.get_format_info(DOCX).extensions == (".docx",)

    def test_register_rejects_non_extractors(self, router):
        with pytest.raises(TypeError):
            router.register(SLOW_FORMAT, object())

    def test_register_custom_extractor(self, router):
        router.register(SLOW_FORMAT, PagedExtractor(pages=1), aliases=("application/x-pages",))
        assert router.is_supported(SLOW_TYPE)
        assert router.is_supported("application/x-pages")
        assert "Paged" in router.supported_formats()


class TestDeadline:
    @pytest.mark.parametrize(
        "size, ceiling, expected",
        [
            (1, 30.0, 5.0),
            (10 * MB, 30.0, 5.0),
            (10 * MB + MB - 1, 30.0, 5.0),
            (11 * MB, 30.0, 5.5),
            (20 * MB, 30.0, 10.0),
            (100 * MB, 30.0, 30.0),
            (1, 2.0, 2.0),
        ],
    )
    def test_extraction_deadline(self, size, ceiling, expected):
        assert extraction_deadline(size, ceiling) == expected


class TestExtract:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type", ALL_CONTENT_TYPES)
    async def test_minimal_sample_of_every_type(self, router, sample_documents, content_type):
        data, filename = sample_documents[content_type]
        result = await router.extract_with_validation(data, content_type, filename)
        assert result.status is ExtractionStatus.SUCCESS, result.error
        assert result.text
        assert result.content_type == content_type

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_large_pdf_finishes_within_its_deadline(self, default_router):
        data = build_pdf([f"Page {n} of the annual filing" for n in range(1, 6)], padding=12 * MB)
        assert len(data) > 12 * MB - 1024
        assert extraction_deadline(len(data), default_router.config.extraction_timeout) > 5.0

        result = await default_router.extract(data, "application/pdf", filename="filing.pdf")

        assert result.status is ExtractionStatus.SUCCESS, result.error
        assert result.text == "\n\n".join(f"Page {n} of the annual filing" for n in range(1, 6))

    @pytest.mark.asyncio
    async def test_content_type_parameters_are_ignored(self, router):
        result = await router.extract(b"caf\xc3\xa9  au   lait", "Text/Plain; charset=UTF-8")
        assert result.ok
        assert result.text == "café au lait"
        assert result.content_type == "text/plain"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type", ALL_CONTENT_TYPES + ["image/png"])
    async def test_empty_file(self, router, content_type):
        with metric_delta(METRICS["extraction_failures_total"].labels(kind="empty_file")):
            result = await router.extract(b"", content_type, filename="empty")
        assert result.status is ExtractionStatus.FAILED
        assert result.error.kind is ErrorKind.EMPTY_FILE

    @pytest.mark.asyncio
    async def test_file_too_large(self, router):
        result = await router.extract(b"x" * (MB + 1), "text/plain", filename="big.txt")
        assert result.error.kind is ErrorKind.FILE_TOO_LARGE
        assert result.error.file_size == MB + 1

    @pytest.mark.asyncio
    async def test_unsupported_format(self, router):
        rejected = METRICS["extractions_total"].labels(content_type="unsupported", outcome="rejected")
        with metric_delta(rejected):
            result = await router.extract(b"\x89PNG\r\n", "image/png")
        assert result.error.kind is ErrorKind.UNSUPPORTED_FORMAT
        assert "PDF Document" in result.error.user_message

    @pytest.mark.asyncio
    async def test_password_protected_pdf(self, router, encrypted_pdf):
        result = await router.extract(encrypted_pdf, "application/pdf", filename="secret.pdf")
        assert result.error.kind is ErrorKind.PASSWORD_PROTECTED
        assert not result.error.retryable

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type", [DOCX, XLSX, PPTX])
    async def test_password_protected_office(self, router, encrypted_ooxml, content_type):
        result = await router.extract(encrypted_ooxml, content_type)
        assert result.error.kind is ErrorKind.PASSWORD_PROTECTED

    @pytest.mark.asyncio
    async def test_multipage_pdf(self, router, multipage_pdf):
        result = await router.extract(multipage_pdf, "application/pdf")
        assert result.text == "First page text\n\nSecond page text\n\nThird page text"

    @pytest.mark.asyncio
    async def test_records_duration_histogram(self, router):
        with histogram_observes(METRICS["extraction_duration_seconds"].labels(content_type="text/csv")):
            await router.extract(b"1,2\n", "text/csv")


class TestValidation:
    @pytest.mark.asyncio
    async def test_unvalidated_path_trusts_declared_type(self, router):
        result = await router.extract(b"plain words", "application/pdf", filename="doc.pdf")
        assert result.error.kind is ErrorKind.CORRUPTED_FILE

    @pytest.mark.asyncio
    async def test_validated_path_rejects_mismatch(self, router):
        result = await router.extract_with_validation(b"plain words", "application/pdf", "doc.pdf")
        assert result.error.kind is ErrorKind.INVALID_FORMAT

    @pytest.mark.asyncio
    async def test_docx_with_another_declared_type(self, router, sample_docx):
        result = await router.extract_with_validation(sample_docx, XLSX, "report.docx")
        assert result.error.kind is ErrorKind.INVALID_FORMAT

    @pytest.mark.asyncio
    async def test_docx_without_zip_magic(self, router):
        result = await router.extract_with_validation(b"definitely not a zip archive", DOCX, "report.docx")
        assert result.error.kind is ErrorKind.CORRUPTED_FILE

    @pytest.mark.asyncio
    async def test_encrypted_docx(self, router, encrypted_ooxml):
        result = await router.extract_with_validation(encrypted_ooxml, DOCX, "secret.docx")
        assert result.error.kind is ErrorKind.PASSWORD_PROTECTED

    @pytest.mark.asyncio
    async def test_require_validation_applies_to_extract(self):
        router = ExtractionRouter(ExtractionConfig(require_validation=True, logging_enabled=False))
        try:
            result = await router.extract(b"plain words", "application/pdf", filename="doc.pdf")
        finally:
            router.close()
        assert result.error.kind is ErrorKind.INVALID_FORMAT

    @pytest.mark.asyncio
    async def test_rejections_are_not_counted_in_stats(self, router):
        await router.extract_with_validation(b"plain words", "application/pdf", "doc.pdf")
        await router.extract(b"", "text/plain")
        assert router.get_stats().total_extractions == 0


class TestLimits:
    @pytest.mark.asyncio
    async def test_deadline_returns_partial_result(self):
        router = make_router(PagedExtractor(), extraction_timeout=0.3, memory_sample_interval=0.02)
        try:
            result = await router.extract(b"payload", SLOW_TYPE)
        finally:
            router.close()

        assert result.status is ExtractionStatus.PARTIAL
        assert not result.ok
        assert result.usable_text.startswith("page 0\n\npage 1")
        assert result.error.kind is ErrorKind.TIMEOUT
        assert result.error.retryable
        assert "Timeout: 0.3s" in result.error.technical_details

        stats = router.get_stats()
        assert stats.failed_extractions == 1
        assert router.get_metrics().failed_extractions == 1

    @pytest.mark.asyncio
    async def test_unresponsive_extractor_times_out_without_text(self):
        router = make_router(SleepingExtractor(), extraction_timeout=0.2, memory_sample_interval=0.02)
        try:
            result = await router.extract(b"payload", SLOW_TYPE)
        finally:
            router.close()

        assert result.status is ExtractionStatus.FAILED
        assert result.error.kind is ErrorKind.TIMEOUT
        assert result.usable_text == ""

    @pytest.mark.asyncio
    async def test_abandoned_worker_does_not_starve_the_next_file(self):
        router = make_router(SleepingExtractor(), max_concurrent=1, extraction_timeout=0.2, memory_sample_interval=0.02)
        try:
            first = await router.extract(b"payload", SLOW_TYPE)
            second = await router.extract(b"hello world", "text/plain")
        finally:
            router.close()

        assert first.error.kind is ErrorKind.TIMEOUT
        assert second.status is ExtractionStatus.SUCCESS, second.error
        assert second.text == "hello world"
        metrics = router.get_metrics()
        assert metrics.failed_extractions == 1
        assert metrics.active_extractions == 0

    @pytest.mark.asyncio
    async def test_slot_is_held_once_spare_threads_are_used_up(self):
        router = make_router(SleepingExtractor(), max_concurrent=1, extraction_timeout=0.2, memory_sample_interval=0.02)
        try:
            await router.extract(b"payload", SLOW_TYPE)
            second = await router.extract(b"payload", SLOW_TYPE)
            assert second.error.kind is ErrorKind.TIMEOUT
            # The second stuck worker has no spare thread, so it keeps its slot.
            assert router.get_metrics().active_extractions == 1

            await asyncio.sleep(2.0)
            assert router.get_metrics().active_extractions == 0
            third = await router.extract(b"hello world", "text/plain")
        finally:
            router.close()

        assert third.ok

    @pytest.mark.asyncio
    async def test_memory_limit(self):
        router = make_router(
            PagedExtractor(),
            rss_reader=FakeRSS(0, 500 * MB),
            max_memory_per_file=MB,
            memory_sample_interval=0.01,
        )
        try:
            result = await router.extract(b"payload", SLOW_TYPE)
        finally:
            router.close()

        assert result.status is ExtractionStatus.FAILED
        assert result.error.kind is ErrorKind.MEMORY_LIMIT
        assert result.error.retryable

    @pytest.mark.asyncio
    async def test_output_ceiling_is_memory_limit(self):
        router = ExtractionRouter(ExtractionConfig(max_output_chars=10, logging_enabled=False))
        try:
            result = await router.extract(b"x" * 100, "text/plain")
        finally:
            router.close()
        assert result.error.kind is ErrorKind.MEMORY_LIMIT

    @pytest.mark.asyncio
    async def test_crashing_extractor_is_extraction_failed(self):
        router = make_router(CrashingExtractor())
        try:
            result = await router.extract(b"payload", SLOW_TYPE)
        finally:
            router.close()
        assert result.error.kind is ErrorKind.EXTRACTION_FAILED
        assert "unexpected parser state" in result.error.technical_details

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        extractor = PagedExtractor(pages=3, delay=0.03)
        router = make_router(extractor, max_concurrent=2)
        try:
            results = await asyncio.gather(*(router.extract(b"payload", SLOW_TYPE) for _ in range(6)))
        finally:
            router.close()

        assert all(result.ok for result in results)
        assert extractor.peak <= 2
        metrics = router.get_metrics()
        assert metrics.total_extractions == 6
        assert metrics.active_extractions == 0
        assert metrics.queued_extractions == 0
        assert metrics.success_rate == 100.0

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self):
        extractor = PagedExtractor(pages=1000, delay=0.01)
        router = make_router(extractor)
        try:
            task = asyncio.create_task(router.extract(b"payload", SLOW_TYPE))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            assert router.get_metrics().active_extractions == 0
        finally:
            router.close()


class TestStatsAndLifecycle:
    @pytest.mark.asyncio
    async def test_stats_per_format(self, router, sample_pdf):
        await router.extract(b"hello", "text/plain")
        await router.extract(b"world", "text/plain")
        await router.extract(sample_pdf, "application/pdf")
        await router.extract(b"%PDF-broken", "application/pdf")

        stats = router.get_stats()
        assert stats.total_extractions == 4
        assert stats.successful_extractions == 3
        assert stats.failed_extractions == 1
        assert stats.by_format["text/plain"].count == 2
        assert stats.by_format["application/pdf"].failed_count == 1
        assert stats.total_bytes_processed == 10 + len(sample_pdf) + len(b"%PDF-broken")

    @pytest.mark.asyncio
    async def test_async_context_manager(self, extraction_config):
        async with ExtractionRouter(extraction_config) as router:
            result = await router.extract(b"inside", "text/plain")
        assert result.text == "inside"

    def test_logging_switch(self, router):
        router.set_logging_enabled(True)
        assert router._extraction_logger.enabled
        router.set_logging_enabled(False)
        assert not router._extraction_logger.enabled
        router.log_queue_status()
