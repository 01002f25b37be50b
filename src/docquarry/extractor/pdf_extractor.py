"""
PDF extractor built on pypdf.
"""

from __future__ import annotations

import io
from typing import List

import structlog
from pypdf import PasswordType, PdfReader
from pypdf.errors import PdfReadError, PyPdfError

from .cancellation import ExtractionContext
from .errors import DocumentError, ErrorKind
from .normalize import normalize_whitespace
from .protocols import Extractor

logger = structlog.get_logger(__name__)

PDF_MAGIC = b"%PDF-"


def classify_pdf_error(error: BaseException) -> DocumentError:
    """Map a pypdf failure while opening a document onto an error kind."""
    message = str(error).lower()
    if "encrypt" in message or "decrypt" in message or "password" in message:
        return DocumentError(ErrorKind.PASSWORD_PROTECTED, "PDF is password-protected")
    if "xref" in message or "trailer" in message:
        return DocumentError(
            ErrorKind.CORRUPTED_FILE,
            "PDF structure is corrupted (invalid xref table or trailer)",
        )
    return DocumentError(ErrorKind.CORRUPTED_FILE, f"failed to parse PDF - {error}")


def page_text(raw: str) -> str:
    """One output line per non-blank text line of a page."""
    lines = (line.strip() for line in raw.splitlines())
    return "\n".join(line for line in lines if line)


class PDFExtractor(Extractor):
    """Page-by-page text extraction.

    Unreadable pages are skipped. Pages that yield text are joined with a blank
    line. When the deadline passes mid-document the pages read so far are handed
    back as partial text.
    """

    name = "pdf"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        if len(data) < len(PDF_MAGIC) or not data.startswith(PDF_MAGIC):
            raise DocumentError(
                ErrorKind.CORRUPTED_FILE,
                "invalid PDF header - file may be corrupted or not a PDF",
            )
        ctx.checkpoint()

        reader = self._open(data)
        try:
            page_count = len(reader.pages)
        except (PyPdfError, ValueError, KeyError, TypeError) as e:
            raise classify_pdf_error(e) from e

        if page_count == 0:
            return ""

        out = ctx.builder()
        failures: List[str] = []
        for number in range(page_count):
            ctx.checkpoint(
                partial=lambda: normalize_whitespace(out.text()),
                progress=f"extracted {number} of {page_count} pages",
            )
            try:
                text = page_text(reader.pages[number].extract_text() or "")
            except Exception as e:
                # A single broken page must not lose the rest of the document.
                failures.append(f"page {number + 1}: {e}")
                logger.debug("pdf_page_failed", page=number + 1, error=str(e))
                continue
            if text:
                if len(out):
                    out.append("\n\n")
                out.append(text)

        if not len(out) and failures:
            raise DocumentError(
                ErrorKind.EXTRACTION_FAILED,
                f"failed to extract text from any page - errors: {'; '.join(failures)}",
            )

        ctx.tracker.check()
        return normalize_whitespace(out.text())

    def _open(self, data: bytes) -> PdfReader:
        try:
            reader = PdfReader(io.BytesIO(data), strict=False)
        except (PdfReadError, PyPdfError, ValueError, KeyError, TypeError) as e:
            raise classify_pdf_error(e) from e

        if reader.is_encrypted:
            try:
                result = reader.decrypt("")
            except (PyPdfError, NotImplementedError) as e:
                raise DocumentError(ErrorKind.PASSWORD_PROTECTED, f"PDF is password-protected: {e}") from e
            if result == PasswordType.NOT_DECRYPTED:
                raise DocumentError(ErrorKind.PASSWORD_PROTECTED, "PDF is password-protected")
        return reader
