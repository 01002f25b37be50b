"""
docquarry document extraction module - multi-format text extraction engine

This module turns uploaded documents into normalized plain text:
1. Format sniffing and extension/content-type validation
2. Routing to one of eleven format-specific extractors
3. Bounded concurrency with size-scaled deadlines
4. Per-file memory budget with cooperative cancellation

Supported formats:
- PDF, Word (.docx), Excel (.xlsx), PowerPoint (.pptx), EPUB
- RTF, HTML, Markdown, JSON, CSV and plain text
"""

from .cancellation import CancellationToken, ExtractionContext
from .csv_extractor import CSVExtractor
from .docx_extractor import DocxExtractor
from .epub_extractor import EPUBExtractor
from .errors import (
    DocumentError,
    ErrorKind,
    ExtractionCancelled,
    ExtractionError,
    get_user_friendly_message,
    is_retryable,
)
from .html_extractor import HTMLExtractor
from .json_extractor import JSONExtractor
from .markdown_extractor import MarkdownExtractor
from .memory import MemoryTracker, StreamingTextBuilder, run_with_memory_limit
from .models import ExtractionResult, ExtractionStatus, FormatInfo
from .pdf_extractor import PDFExtractor
from .pptx_extractor import PptxExtractor
from .protocols import Extractor
from .queue import ExtractionMetrics, ExtractionQueue
from .router import ExtractionRouter, extraction_deadline
from .rtf_extractor import RTFExtractor
from .stats import ExtractionEvent, ExtractionLogger, ExtractionStats, FormatStats
from .text_extractor import PlainTextExtractor
from .validator import detect_content_type, expected_content_type, is_encrypted_ooxml, validate_format
from .xlsx_extractor import XlsxExtractor

__all__ = [
    "CancellationToken",
    "ExtractionContext",
    "DocumentError",
    "ErrorKind",
    "ExtractionCancelled",
    "ExtractionError",
    "get_user_friendly_message",
    "is_retryable",
    "MemoryTracker",
    "StreamingTextBuilder",
    "run_with_memory_limit",
    "ExtractionResult",
    "ExtractionStatus",
    "FormatInfo",
    "Extractor",
    "ExtractionMetrics",
    "ExtractionQueue",
    "ExtractionRouter",
    "extraction_deadline",
    "ExtractionEvent",
    "ExtractionLogger",
    "ExtractionStats",
    "FormatStats",
    "detect_content_type",
    "expected_content_type",
    "is_encrypted_ooxml",
    "validate_format",
    "PlainTextExtractor",
    "MarkdownExtractor",
    "HTMLExtractor",
    "JSONExtractor",
    "CSVExtractor",
    "PDFExtractor",
    "DocxExtractor",
    "XlsxExtractor",
    "PptxExtractor",
    "EPUBExtractor",
    "RTFExtractor",
]
