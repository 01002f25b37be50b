"""
Plain-text extractor.
"""

from __future__ import annotations

from .cancellation import ExtractionContext
from .normalize import ensure_utf8, normalize_text
from .protocols import Extractor


class PlainTextExtractor(Extractor):
    """Decodes text files and normalizes their whitespace."""

    name = "text"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        ctx.checkpoint()
        text = normalize_text(ensure_utf8(data))
        builder = ctx.builder()
        builder.append(text)
        return builder.text()
