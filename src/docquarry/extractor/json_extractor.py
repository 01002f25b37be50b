"""
JSON extractor: flattens a document into indented ``key: value`` lines.
"""

from __future__ import annotations

import json
from typing import Any

from .cancellation import ExtractionContext
from .errors import DocumentError, ErrorKind
from .memory import StreamingTextBuilder
from .normalize import ensure_utf8, normalize_whitespace
from .protocols import Extractor

MAX_DEPTH = 20


def _scalar(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class JSONExtractor(Extractor):
    """Walks objects and arrays in document order.

    Object members become ``key: value``; array items become ``[i]: value``. A
    nested container opens a new block indented two spaces deeper. Anything below
    ``MAX_DEPTH`` levels is dropped.
    """

    name = "json"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        ctx.checkpoint()
        try:
            document = json.loads(ensure_utf8(data))
        except (ValueError, RecursionError) as e:
            raise DocumentError(ErrorKind.CORRUPTED_FILE, f"invalid JSON: {e}") from e

        builder = ctx.builder()
        self._walk(document, builder, ctx, depth=0)
        return normalize_whitespace(builder.text(), keep_indent=True)

    def _walk(self, value: Any, out: StreamingTextBuilder, ctx: ExtractionContext, depth: int) -> None:
        if depth > MAX_DEPTH:
            return
        ctx.checkpoint()

        if isinstance(value, dict):
            items = ((str(key), item) for key, item in value.items())
        elif isinstance(value, list):
            items = ((f"[{index}]", item) for index, item in enumerate(value))
        else:
            out.append(_scalar(value) + "\n")
            return

        indent = "  " * depth
        for label, item in items:
            if isinstance(item, (dict, list)):
                out.append(f"{indent}{label}:\n")
                self._walk(item, out, ctx, depth + 1)
            else:
                out.append(f"{indent}{label}: {_scalar(item)}\n")
