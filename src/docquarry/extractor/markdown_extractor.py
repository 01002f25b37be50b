"""
Markdown extractor: strips markup while keeping the document's structure readable.
"""

from __future__ import annotations

import re
from typing import List, Tuple

from .cancellation import ExtractionContext
from .normalize import ensure_utf8, normalize_line_endings
from .protocols import Extractor

CODE_START = "[CODE BLOCK]"
CODE_END = "[END CODE BLOCK]"

_HEADING = re.compile(r"^(#{1,6}) (.*)$")
_UNORDERED = re.compile(r"^([ \t]*)[*+-] (.*)$")
_ORDERED = re.compile(r"^([ \t]*)(\d+)\.\s+(.*)$")
_BLOCKQUOTE = re.compile(r"^[ \t]*(?:> ?)+")
_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]+\)")
_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_INLINE_CODE = re.compile(r"`([^`]+)`")
_EMPHASIS = (
    re.compile(r"\*\*([^*]+)\*\*"),
    re.compile(r"(?<!\w)__([^_]+)__(?!\w)"),
    re.compile(r"\*([^*]+)\*"),
    re.compile(r"(?<!\w)_([^_]+)_(?!\w)"),
    re.compile(r"~~([^~]+)~~"),
)
_INLINE_SPACE = re.compile(r"[ \t]+")

# (line, verbatim) pairs; verbatim lines keep their internal whitespace.
Lines = List[Tuple[str, bool]]


def convert_inline(line: str) -> str:
    """Apply the inline rewrites in order: images, links, code, emphasis."""
    line = _IMAGE.sub(r"[Image: \1]", line)
    line = _LINK.sub(r"\1 (\2)", line)
    line = _INLINE_CODE.sub(r"\1", line)
    for pattern in _EMPHASIS:
        line = pattern.sub(r"\1", line)
    return line


def convert_line(line: str) -> List[str]:
    heading = _HEADING.match(line)
    if heading:
        return ["", heading.group(2).strip(), ""]

    line = _BLOCKQUOTE.sub("", line)
    unordered = _UNORDERED.match(line)
    if unordered:
        line = f"{unordered.group(1)}• {unordered.group(2)}"
    else:
        ordered = _ORDERED.match(line)
        if ordered:
            line = f"{ordered.group(1)}{ordered.group(2)}. {ordered.group(3)}"
    return [convert_inline(line)]


def _normalize(lines: Lines) -> str:
    out: List[str] = []
    prev_empty = False
    for line, verbatim in lines:
        line = line.rstrip(" \t")
        if verbatim:
            out.append(line)
            prev_empty = False
            continue
        if not line:
            if not prev_empty:
                out.append("")
                prev_empty = True
            continue
        out.append(_INLINE_SPACE.sub(" ", line))
        prev_empty = False
    return "\n".join(out).strip()


class MarkdownExtractor(Extractor):
    """Line-oriented Markdown to plain text conversion."""

    name = "markdown"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        text = normalize_line_endings(ensure_utf8(data))
        lines: Lines = []
        fence = ""

        for index, line in enumerate(text.split("\n")):
            if index % 1000 == 0:
                ctx.checkpoint(progress=f"line {index}")

            if line.startswith(("```", "~~~")):
                if not fence:
                    fence = line[:3]
                    lines.extend([("", False), (CODE_START, False)])
                    continue
                if line.startswith(fence):
                    fence = ""
                    lines.extend([(CODE_END, False), ("", False)])
                    continue

            if fence:
                lines.append((line, True))
                continue

            lines.extend((converted, False) for converted in convert_line(line))

        if fence:
            lines.append((CODE_END, False))

        builder = ctx.builder()
        builder.append(_normalize(lines))
        return builder.text()
