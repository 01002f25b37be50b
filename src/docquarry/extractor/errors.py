"""
Error taxonomy for document text extraction.

Every failure that reaches a caller is an :class:`ExtractionError` tagged with one of
nine :class:`ErrorKind` values. Extractors never build those directly: they raise
:class:`DocumentError` (a failure that is a property of the input) or
:class:`ExtractionCancelled` (deadline or cancellation, possibly with partial text),
and the router turns them into fully contextualised errors.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence


class ErrorKind(str, Enum):
    """The nine failure classes an extraction can end with."""

    UNSUPPORTED_FORMAT = "unsupported_format"
    CORRUPTED_FILE = "corrupted_file"
    PASSWORD_PROTECTED = "password_protected"
    EXTRACTION_FAILED = "extraction_failed"
    FILE_TOO_LARGE = "file_too_large"
    TIMEOUT = "extraction_timeout"
    INVALID_FORMAT = "invalid_format"
    EMPTY_FILE = "empty_file"
    MEMORY_LIMIT = "memory_limit_exceeded"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_KINDS

    @property
    def base_message(self) -> str:
        return _BASE_MESSAGES[self]


_RETRYABLE_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.MEMORY_LIMIT})

_BASE_MESSAGES = {
    ErrorKind.UNSUPPORTED_FORMAT: "unsupported document format",
    ErrorKind.CORRUPTED_FILE: "file appears to be corrupted",
    ErrorKind.PASSWORD_PROTECTED: "document is password protected",
    ErrorKind.EXTRACTION_FAILED: "text extraction failed",
    ErrorKind.FILE_TOO_LARGE: "file exceeds maximum size",
    ErrorKind.TIMEOUT: "extraction timeout exceeded",
    ErrorKind.INVALID_FORMAT: "file format validation failed",
    ErrorKind.EMPTY_FILE: "file is empty",
    ErrorKind.MEMORY_LIMIT: "extraction exceeded memory limit",
}

_DEFAULT_USER_MESSAGES = {
    ErrorKind.UNSUPPORTED_FORMAT: (
        "This file format is not supported. Please upload a PDF, Word, Excel, PowerPoint, or text document."
    ),
    ErrorKind.CORRUPTED_FILE: "The file appears to be corrupted or invalid. Please check the file and try again.",
    ErrorKind.PASSWORD_PROTECTED: "This document is password-protected. Please remove the password and try again.",
    ErrorKind.EXTRACTION_FAILED: (
        "Failed to extract text from the document. The file may be corrupted or in an unsupported format variant."
    ),
    ErrorKind.FILE_TOO_LARGE: "File size exceeds the maximum allowed size.",
    ErrorKind.TIMEOUT: "Text extraction took too long. Please try with a smaller file.",
    ErrorKind.INVALID_FORMAT: "The file format doesn't match its extension. Please check the file.",
    ErrorKind.EMPTY_FILE: "The file is empty. Please upload a file with content.",
    ErrorKind.MEMORY_LIMIT: "The file is too complex to process. Please try with a simpler document.",
}

DEFAULT_FORMAT_LIST = (
    "PDF, Word (.docx), Excel (.xlsx), PowerPoint (.pptx), Plain Text, Markdown, HTML, JSON, CSV, EPUB, RTF"
)


# ---------------------------------------------------------------------------
# Internal signals raised by extractors
# ---------------------------------------------------------------------------


class DocumentError(Exception):
    """Raised by an extractor when the input itself cannot be processed."""

    def __init__(self, kind: ErrorKind, detail: str) -> None:
        super().__init__(f"{kind.base_message}: {detail}")
        self.kind = kind
        self.detail = detail


class ExtractionCancelled(Exception):
    """Raised at a checkpoint once the deadline has passed or the call was cancelled."""

    def __init__(self, partial_text: str = "", progress: str = "", *, deadline_exceeded: bool = True) -> None:
        message = "extraction cancelled" if not deadline_exceeded else "extraction deadline exceeded"
        if progress:
            message = f"{message}: {progress}"
        super().__init__(message)
        self.partial_text = partial_text
        self.progress = progress
        self.deadline_exceeded = deadline_exceeded


# ---------------------------------------------------------------------------
# Public error type
# ---------------------------------------------------------------------------


class ExtractionError(Exception):
    """A classified extraction failure, carrying user-facing and technical context.

    Instances are built once by the factory functions below. The classification
    fields are read-only.
    """

    def __init__(
        self,
        kind: ErrorKind,
        *,
        cause: Optional[BaseException] = None,
        content_type: str = "",
        file_size: int = 0,
        filename: str = "",
        user_message: str = "",
        technical_details: str = "",
        retryable: Optional[bool] = None,
    ) -> None:
        self._kind = kind
        self._cause = cause
        self._content_type = content_type
        self._file_size = file_size
        self._filename = filename
        self._user_message = user_message or _DEFAULT_USER_MESSAGES[kind]
        self._technical_details = technical_details
        self._retryable = kind.retryable if retryable is None else retryable
        super().__init__(self._render())
        if cause is not None:
            self.__cause__ = cause

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def cause(self) -> Optional[BaseException]:
        return self._cause

    @property
    def content_type(self) -> str:
        return self._content_type

    @property
    def file_size(self) -> int:
        return self._file_size

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def user_message(self) -> str:
        return self._user_message

    @property
    def technical_details(self) -> str:
        return self._technical_details

    @property
    def retryable(self) -> bool:
        return self._retryable

    def _render(self) -> str:
        if self.technical_details:
            return f"{self.kind.value}: {self.kind.base_message} (details: {self.technical_details})"
        return f"{self.kind.value}: {self.kind.base_message}"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.user_message,
            "details": self.technical_details,
            "content_type": self.content_type,
            "file_size": self.file_size,
            "filename": self.filename,
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"ExtractionError(kind={self.kind.value!r}, content_type={self.content_type!r}, size={self.file_size})"


# --- Factories -------------------------------------------------------------


def _file_label(filename: str) -> str:
    return filename or "<unnamed>"


def unsupported_format(content_type: str, file_size: int, supported_formats: Sequence[str] = ()) -> ExtractionError:
    format_list = ", ".join(supported_formats) if supported_formats else DEFAULT_FORMAT_LIST
    return ExtractionError(
        ErrorKind.UNSUPPORTED_FORMAT,
        content_type=content_type,
        file_size=file_size,
        user_message=f"The file format '{content_type}' is not supported. Supported formats: {format_list}",
        technical_details=f"Content-Type: {content_type}, Size: {file_size} bytes",
    )


def corrupted_file(
    content_type: str, file_size: int, filename: str = "", cause: Optional[BaseException] = None
) -> ExtractionError:
    return ExtractionError(
        ErrorKind.CORRUPTED_FILE,
        cause=cause,
        content_type=content_type,
        file_size=file_size,
        filename=filename,
        user_message="The file appears to be corrupted or invalid. Please check the file and try uploading again.",
        technical_details=(
            f"File: {_file_label(filename)}, Content-Type: {content_type}, Size: {file_size} bytes, "
            f"Original error: {cause}"
        ),
    )


def password_protected(
    content_type: str, file_size: int, filename: str = "", cause: Optional[BaseException] = None
) -> ExtractionError:
    return ExtractionError(
        ErrorKind.PASSWORD_PROTECTED,
        cause=cause,
        content_type=content_type,
        file_size=file_size,
        filename=filename,
        user_message="This document is password-protected. Please remove the password and try again.",
        technical_details=f"File: {_file_label(filename)}, Content-Type: {content_type}, Size: {file_size} bytes",
    )


def extraction_timeout(
    content_type: str,
    file_size: int,
    filename: str = "",
    timeout: float = 0.0,
    cause: Optional[BaseException] = None,
) -> ExtractionError:
    return ExtractionError(
        ErrorKind.TIMEOUT,
        cause=cause,
        content_type=content_type,
        file_size=file_size,
        filename=filename,
        user_message=(
            "Text extraction took too long to complete. Please try with a smaller file or a simpler document."
        ),
        technical_details=(
            f"File: {_file_label(filename)}, Content-Type: {content_type}, Size: {file_size} bytes, "
            f"Timeout: {timeout:.1f}s"
        ),
    )


def file_too_large(content_type: str, file_size: int, filename: str = "", max_size: int = 0) -> ExtractionError:
    mb = 1024 * 1024
    return ExtractionError(
        ErrorKind.FILE_TOO_LARGE,
        content_type=content_type,
        file_size=file_size,
        filename=filename,
        user_message=(
            f"File size ({file_size // mb} MB) exceeds the maximum allowed size of {max_size // mb} MB. "
            "Please upload a smaller file."
        ),
        technical_details=(
            f"File: {_file_label(filename)}, Content-Type: {content_type}, Size: {file_size} bytes, "
            f"Max: {max_size} bytes"
        ),
    )


def invalid_format(content_type: str, file_size: int, filename: str = "", reason: str = "") -> ExtractionError:
    return ExtractionError(
        ErrorKind.INVALID_FORMAT,
        content_type=content_type,
        file_size=file_size,
        filename=filename,
        user_message=f"The file format doesn't match its extension. {reason}".strip(),
        technical_details=(
            f"File: {_file_label(filename)}, Content-Type: {content_type}, Size: {file_size} bytes, Reason: {reason}"
        ),
    )


def empty_file(content_type: str, filename: str = "") -> ExtractionError:
    return ExtractionError(
        ErrorKind.EMPTY_FILE,
        content_type=content_type,
        file_size=0,
        filename=filename,
        user_message="The file is empty. Please upload a file with content.",
        technical_details=f"File: {_file_label(filename)}, Content-Type: {content_type}",
    )


def memory_limit(
    content_type: str, file_size: int, filename: str = "", cause: Optional[BaseException] = None
) -> ExtractionError:
    return ExtractionError(
        ErrorKind.MEMORY_LIMIT,
        cause=cause,
        content_type=content_type,
        file_size=file_size,
        filename=filename,
        user_message="The file is too complex to process. Please try with a simpler document or contact support.",
        technical_details=(
            f"File: {_file_label(filename)}, Content-Type: {content_type}, Size: {file_size} bytes, Cause: {cause}"
        ),
    )


def extraction_failed(
    content_type: str, file_size: int, filename: str = "", cause: Optional[BaseException] = None
) -> ExtractionError:
    return ExtractionError(
        ErrorKind.EXTRACTION_FAILED,
        cause=cause,
        content_type=content_type,
        file_size=file_size,
        filename=filename,
        user_message=(
            "Failed to extract text from the document. "
            "The file may be corrupted or in an unsupported format variant."
        ),
        technical_details=(
            f"File: {_file_label(filename)}, Content-Type: {content_type}, Size: {file_size} bytes, Error: {cause}"
        ),
    )


def from_document_error(
    error: DocumentError, content_type: str, file_size: int, filename: str = ""
) -> ExtractionError:
    """Attach call context to a failure raised inside an extractor."""
    if error.kind is ErrorKind.CORRUPTED_FILE:
        return corrupted_file(content_type, file_size, filename, cause=error)
    if error.kind is ErrorKind.PASSWORD_PROTECTED:
        return password_protected(content_type, file_size, filename, cause=error)
    if error.kind is ErrorKind.MEMORY_LIMIT:
        return memory_limit(content_type, file_size, filename, cause=error)
    if error.kind is ErrorKind.INVALID_FORMAT:
        return invalid_format(content_type, file_size, filename, reason=error.detail)
    if error.kind is ErrorKind.UNSUPPORTED_FORMAT:
        return unsupported_format(content_type, file_size)
    if error.kind is ErrorKind.EMPTY_FILE:
        return empty_file(content_type, filename)
    if error.kind is ErrorKind.TIMEOUT:
        return extraction_timeout(content_type, file_size, filename, cause=error)
    return extraction_failed(content_type, file_size, filename, cause=error)


# --- Helpers for arbitrary exceptions --------------------------------------


def get_user_friendly_message(error: BaseException) -> str:
    """Return a message suitable for end users for any exception."""
    if isinstance(error, ExtractionError):
        return error.user_message
    if isinstance(error, DocumentError):
        return _DEFAULT_USER_MESSAGES[error.kind]
    if isinstance(error, ExtractionCancelled):
        return _DEFAULT_USER_MESSAGES[ErrorKind.TIMEOUT]
    return "Failed to process the document. Please try again or contact support if the problem persists."


def is_retryable(error: BaseException) -> bool:
    """Timeouts and memory limits are worth retrying; input defects are not."""
    if isinstance(error, ExtractionError):
        return error.retryable
    if isinstance(error, DocumentError):
        return error.kind.retryable
    return isinstance(error, (ExtractionCancelled, TimeoutError))
