"""
Protocols for pluggable document extraction strategies.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .cancellation import ExtractionContext


@runtime_checkable
class Extractor(Protocol):
    """Pluggable bytes-to-text strategy for one document format."""

    name: str

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        """Extract normalized text from a document.

        Args:
            data: Raw document bytes
            ctx: Deadline, cancellation and memory context for this call

        Returns:
            The extracted text

        Raises:
            DocumentError: The input cannot be processed
            ExtractionCancelled: The deadline passed or the call was cancelled
        """
        ...
