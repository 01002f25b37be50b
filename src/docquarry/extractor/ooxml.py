"""
Container checks shared by the Office Open XML extractors.
"""

from __future__ import annotations

import zipfile

from .errors import DocumentError, ErrorKind
from .validator import ZIP_MAGIC, is_encrypted_ooxml

MIN_CONTAINER_SIZE = 100


def check_container(data: bytes, label: str) -> None:
    """Reject inputs that cannot be an Office document before the library sees them.

    Raises:
        DocumentError: ``CORRUPTED_FILE`` for tiny or non-ZIP input,
            ``PASSWORD_PROTECTED`` for an encrypted OLE container.
    """
    if len(data) < MIN_CONTAINER_SIZE:
        raise DocumentError(ErrorKind.CORRUPTED_FILE, f"file too small to be a valid {label} document")
    if is_encrypted_ooxml(data):
        raise DocumentError(ErrorKind.PASSWORD_PROTECTED, "document is password-protected")
    if not data.startswith(ZIP_MAGIC):
        raise DocumentError(
            ErrorKind.CORRUPTED_FILE,
            f"invalid {label} header - file may be corrupted or not a {label}",
        )


def open_error(error: BaseException, label: str) -> DocumentError:
    """Classify an exception raised while a library opened the package."""
    message = str(error).lower()
    if "encrypt" in message or "password" in message:
        return DocumentError(ErrorKind.PASSWORD_PROTECTED, "document is password-protected")
    if isinstance(error, zipfile.BadZipFile) or "zip" in message or "corrupt" in message:
        return DocumentError(ErrorKind.CORRUPTED_FILE, f"{label} structure is corrupted: {error}")
    return DocumentError(ErrorKind.CORRUPTED_FILE, f"failed to parse {label} - {error}")
