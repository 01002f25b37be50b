"""
Magic-number sniffing and extension/content-type cross-checks.

Validation failures are raised as :class:`DocumentError` so the router can attach
the call context: a mismatch between extension, declared type and file header is
``INVALID_FORMAT``; a ZIP-based document that is not a ZIP archive is
``CORRUPTED_FILE`` unless it is an encrypted Office container.
"""

from __future__ import annotations

import posixpath

from .errors import DocumentError, ErrorKind

PDF = "application/pdf"
ZIP = "application/zip"
RTF = "application/rtf"
HTML = "text/html"
JSON = "application/json"
PLAIN = "text/plain"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
EPUB = "application/epub+zip"

ZIP_MAGIC = b"PK\x03\x04"
OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_ENCRYPTED_PACKAGE = "EncryptedPackage".encode("utf-16-le")

SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"%PDF-", PDF),
    (ZIP_MAGIC, ZIP),
    (b"{\\rtf", RTF),
    (b"<!DOCTYPE html", HTML),
    (b"<!doctype html", HTML),
    (b"<html", HTML),
    (b"<HTML", HTML),
    (b"{", JSON),
    (b"[", JSON),
)

# Sniffed types that say little about the real format.
WEAK_SNIFFS = frozenset({PLAIN, JSON})

ZIP_BASED_EXTENSIONS = {
    ".docx": DOCX,
    ".xlsx": XLSX,
    ".pptx": PPTX,
    ".epub": EPUB,
}

EXTENSION_CONTENT_TYPES = {
    ".pdf": PDF,
    ".docx": DOCX,
    ".xlsx": XLSX,
    ".pptx": PPTX,
    ".epub": EPUB,
    ".rtf": RTF,
    ".txt": PLAIN,
    ".text": PLAIN,
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".html": HTML,
    ".htm": HTML,
    ".json": JSON,
    ".csv": "text/csv",
}

VALID_EXTENSIONS: dict[str, tuple[str, ...]] = {
    PDF: (".pdf",),
    DOCX: (".docx",),
    XLSX: (".xlsx",),
    PPTX: (".pptx",),
    EPUB: (".epub",),
    RTF: (".rtf",),
    "text/rtf": (".rtf",),
    PLAIN: (".txt", ".text"),
    "text/markdown": (".md", ".markdown"),
    "text/x-markdown": (".md", ".markdown"),
    HTML: (".html", ".htm"),
    "application/xhtml+xml": (".xhtml", ".html", ".htm"),
    JSON: (".json",),
    "text/json": (".json",),
    "text/csv": (".csv",),
}

TEXT_BASED_TYPES = frozenset(
    {
        PLAIN,
        "text/markdown",
        "text/x-markdown",
        "text/csv",
        HTML,
        "application/xhtml+xml",
        JSON,
        "text/json",
        RTF,
        "text/rtf",
    }
)

_COMPATIBLE_GROUPS = (
    frozenset({RTF, "text/rtf"}),
    frozenset({HTML, "application/xhtml+xml"}),
    frozenset({JSON, "text/json"}),
)


def normalize_content_type(content_type: str) -> str:
    """Drop parameters after ``;``, trim and lowercase."""
    return content_type.split(";", 1)[0].strip().lower()


def file_extension(filename: str) -> str:
    return posixpath.splitext(filename.replace("\\", "/"))[1].lower()


def expected_content_type(filename: str) -> str:
    """Canonical content type for a filename's extension, or ``""``."""
    return EXTENSION_CONTENT_TYPES.get(file_extension(filename), "")


def is_encrypted_ooxml(data: bytes) -> bool:
    """Password-protected Office files are OLE containers with an EncryptedPackage stream."""
    return data.startswith(OLE_MAGIC) and _ENCRYPTED_PACKAGE in data


def _is_plain_text(data: bytes) -> bool:
    sample = data[:512]
    if not sample:
        return False
    printable = sum(1 for b in sample if 32 <= b <= 126 or b in (9, 10, 13) or b >= 128)
    return printable / len(sample) > 0.95


def detect_content_type(data: bytes) -> str:
    """Content type implied by the file header, or ``""`` when unknown."""
    if not data:
        return ""
    for signature, content_type in SIGNATURES:
        if data.startswith(signature):
            return content_type
    if _is_plain_text(data):
        return PLAIN
    return ""


def is_compatible_content_type(detected: str, declared: str) -> bool:
    if detected == declared:
        return True
    return any(detected in group and declared in group for group in _COMPATIBLE_GROUPS)


def is_valid_extension(ext: str, content_type: str) -> bool:
    extensions = VALID_EXTENSIONS.get(content_type)
    if extensions is None:
        return True
    return ext in extensions


def _validate_zip_container(ext: str, declared: str) -> None:
    expected = ZIP_BASED_EXTENSIONS.get(ext)
    if expected is not None:
        if declared and declared != expected:
            raise DocumentError(
                ErrorKind.INVALID_FORMAT,
                f"file extension {ext} does not match declared content type {declared}",
            )
        return
    if ext:
        raise DocumentError(
            ErrorKind.INVALID_FORMAT,
            f"file appears to be a ZIP archive but has unexpected extension {ext}",
        )
    if declared and declared not in ZIP_BASED_EXTENSIONS.values():
        raise DocumentError(
            ErrorKind.INVALID_FORMAT,
            f"file appears to be a ZIP archive but was declared as {declared}",
        )


def validate_format(data: bytes, filename: str = "", declared_content_type: str = "") -> None:
    """Cross-check extension, file header and declared content type.

    Raises:
        DocumentError: ``INVALID_FORMAT`` on a mismatch, ``CORRUPTED_FILE`` for a
            ZIP-based document without a ZIP header, ``PASSWORD_PROTECTED`` for an
            encrypted Office container.
    """
    declared = normalize_content_type(declared_content_type)
    ext = file_extension(filename) if filename else ""
    detected = detect_content_type(data)

    if detected == ZIP:
        _validate_zip_container(ext, declared)
        return

    zip_expected = ZIP_BASED_EXTENSIONS.get(ext) or (declared if declared in ZIP_BASED_EXTENSIONS.values() else "")
    if zip_expected:
        if is_encrypted_ooxml(data):
            raise DocumentError(ErrorKind.PASSWORD_PROTECTED, "document is an encrypted Office container")
        raise DocumentError(
            ErrorKind.CORRUPTED_FILE,
            f"{ext or declared} documents are ZIP archives, but the file has no ZIP header",
        )

    if detected and declared and declared in VALID_EXTENSIONS:
        if detected in WEAK_SNIFFS:
            compatible = declared in TEXT_BASED_TYPES
        else:
            compatible = is_compatible_content_type(detected, declared)
        if not compatible:
            raise DocumentError(
                ErrorKind.INVALID_FORMAT,
                f"content does not match declared type (declared {declared}, detected {detected})",
            )

    if filename and not is_valid_extension(ext, declared):
        raise DocumentError(
            ErrorKind.INVALID_FORMAT,
            f"file extension {ext or '(none)'} is not valid for content type {declared}",
        )
