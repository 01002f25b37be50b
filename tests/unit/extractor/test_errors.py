"""
Unit tests for the extraction error taxonomy.
"""

import pytest
from docquarry.extractor import errors
from docquarry.extractor.errors import (
    DocumentError,
    ErrorKind,
    ExtractionCancelled,
    ExtractionError,
    get_user_friendly_message,
    is_retryable,
)


class TestErrorKind:
    def test_nine_kinds_with_wire_values(self):
        assert {kind.value for kind in ErrorKind} == {
            "unsupported_format",
            "corrupted_file",
            "password_protected",
            "extraction_failed",
            "file_too_large",
            "extraction_timeout",
            "invalid_format",
            "empty_file",
            "memory_limit_exceeded",
        }

    @pytest.mark.parametrize("kind", list(ErrorKind))
    def test_only_timeout_and_memory_are_retryable(self, kind):
        assert kind.retryable is (kind in (ErrorKind.TIMEOUT, ErrorKind.MEMORY_LIMIT))


class TestExtractionError:
    def test_str_includes_kind_base_message_and_details(self):
        error = ExtractionError(ErrorKind.CORRUPTED_FILE, technical_details="bad xref")
        assert str(error) == "corrupted_file: file appears to be corrupted (details: bad xref)"

    def test_str_without_details(self):
        assert str(ExtractionError(ErrorKind.EMPTY_FILE)) == "empty_file: file is empty"

    def test_default_user_message(self):
        error = ExtractionError(ErrorKind.TIMEOUT)
        assert "took too long" in error.user_message
        assert error.retryable is True

    def test_cause_is_chained(self):
        cause = DocumentError(ErrorKind.CORRUPTED_FILE, "truncated")
        error = errors.corrupted_file("application/pdf", 10, "a.pdf", cause=cause)
        assert error.cause is cause
        assert error.__cause__ is cause
        assert "truncated" in error.technical_details

    def test_to_dict(self):
        error = errors.file_too_large("application/pdf", 60 * 1024 * 1024, "big.pdf", 50 * 1024 * 1024)
        data = error.to_dict()
        assert data["kind"] == "file_too_large"
        assert data["filename"] == "big.pdf"
        assert data["retryable"] is False
        assert "60 MB" in data["message"]
        assert "50 MB" in data["message"]

    @pytest.mark.parametrize(
        "field",
        ["kind", "cause", "content_type", "file_size", "filename", "user_message", "technical_details", "retryable"],
    )
    def test_fields_are_read_only(self, field):
        error = errors.empty_file("text/plain", "notes.txt")
        with pytest.raises(AttributeError):
            setattr(error, field, None)
        assert error.kind is ErrorKind.EMPTY_FILE


class TestFactories:
    def test_unsupported_format_lists_supported_formats(self):
        error = errors.unsupported_format("image/png", 12, ["PDF Document", "CSV"])
        assert error.kind is ErrorKind.UNSUPPORTED_FORMAT
        assert "image/png" in error.user_message
        assert "PDF Document, CSV" in error.user_message

    def test_unsupported_format_default_list(self):
        error = errors.unsupported_format("image/png", 12)
        assert errors.DEFAULT_FORMAT_LIST in error.user_message

    def test_empty_file(self):
        error = errors.empty_file("text/plain", "empty.txt")
        assert error.kind is ErrorKind.EMPTY_FILE
        assert error.file_size == 0
        assert "empty.txt" in error.technical_details

    def test_timeout_details_carry_deadline(self):
        error = errors.extraction_timeout("application/pdf", 100, "slow.pdf", 7.5)
        assert "Timeout: 7.5s" in error.technical_details
        assert error.retryable

    def test_unnamed_file_label(self):
        error = errors.password_protected("application/pdf", 5)
        assert "<unnamed>" in error.technical_details

    @pytest.mark.parametrize(
        "kind",
        [
            ErrorKind.CORRUPTED_FILE,
            ErrorKind.PASSWORD_PROTECTED,
            ErrorKind.MEMORY_LIMIT,
            ErrorKind.INVALID_FORMAT,
            ErrorKind.EXTRACTION_FAILED,
            ErrorKind.EMPTY_FILE,
            ErrorKind.TIMEOUT,
        ],
    )
    def test_from_document_error_keeps_kind(self, kind):
        error = errors.from_document_error(DocumentError(kind, "detail"), "text/plain", 3, "a.txt")
        assert error.kind is kind
        assert error.content_type == "text/plain"

    def test_from_document_error_invalid_format_reason(self):
        error = errors.from_document_error(
            DocumentError(ErrorKind.INVALID_FORMAT, "extension .exe is wrong"), "application/pdf", 3, "a.exe"
        )
        assert "extension .exe is wrong" in error.user_message


class TestHelpers:
    def test_user_friendly_message_for_extraction_error(self):
        error = errors.empty_file("text/plain")
        assert get_user_friendly_message(error) == error.user_message

    def test_user_friendly_message_for_internal_signals(self):
        assert "password" in get_user_friendly_message(DocumentError(ErrorKind.PASSWORD_PROTECTED, "x"))
        assert "too long" in get_user_friendly_message(ExtractionCancelled("partial"))

    def test_user_friendly_message_for_unknown_exception(self):
        assert "Failed to process the document" in get_user_friendly_message(RuntimeError("boom"))

    def test_is_retryable(self):
        assert is_retryable(errors.extraction_timeout("text/plain", 1))
        assert is_retryable(errors.memory_limit("text/plain", 1))
        assert not is_retryable(errors.corrupted_file("text/plain", 1))
        assert is_retryable(DocumentError(ErrorKind.MEMORY_LIMIT, "x"))
        assert not is_retryable(DocumentError(ErrorKind.CORRUPTED_FILE, "x"))
        assert is_retryable(ExtractionCancelled())
        assert is_retryable(TimeoutError())
        assert not is_retryable(ValueError())


class TestInternalSignals:
    def test_document_error_message(self):
        error = DocumentError(ErrorKind.CORRUPTED_FILE, "missing trailer")
        assert str(error) == "file appears to be corrupted: missing trailer"
        assert error.detail == "missing trailer"

    def test_cancelled_carries_partial_text_and_progress(self):
        signal = ExtractionCancelled("page one", "extracted 1 of 3 pages")
        assert signal.partial_text == "page one"
        assert signal.deadline_exceeded
        assert "extracted 1 of 3 pages" in str(signal)

    def test_cancelled_without_deadline(self):
        signal = ExtractionCancelled(deadline_exceeded=False)
        assert str(signal) == "extraction cancelled"
