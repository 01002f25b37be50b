"""
HTML extractor built on BeautifulSoup.

The DOM is walked with an explicit stack so deeply nested markup cannot exhaust the
interpreter's recursion limit. The same walker renders EPUB chapters.
"""

from __future__ import annotations

from typing import List, Tuple, Union

from bs4 import BeautifulSoup, Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

from .cancellation import ExtractionContext, Partial
from .memory import StreamingTextBuilder
from .normalize import normalize_whitespace
from .protocols import Extractor

SKIP_TAGS = frozenset({"script", "style", "noscript", "template"})
BLOCK_TAGS = frozenset(
    {
        "p",
        "div",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "li",
        "tr",
        "ul",
        "ol",
        "table",
        "section",
        "article",
        "header",
        "footer",
        "blockquote",
        "pre",
        "dt",
        "dd",
    }
)
_SKIP_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)
CHECKPOINT_EVERY_NODES = 500


def render_html(
    markup: Union[bytes, str],
    ctx: ExtractionContext,
    out: StreamingTextBuilder,
    partial: Partial = "",
) -> None:
    """Append the visible text of ``markup`` to ``out``.

    ``partial`` is handed to checkpoints, for callers rendering one part of a
    larger document.
    """
    soup = BeautifulSoup(markup, "html.parser")
    # (node, closing) pairs; a closing entry emits the newline after a block element.
    stack: List[Tuple[object, bool]] = [(soup, False)]
    visited = 0

    while stack:
        node, closing = stack.pop()
        if closing:
            out.append("\n")
            continue

        visited += 1
        if visited % CHECKPOINT_EVERY_NODES == 0:
            ctx.checkpoint(partial=partial, progress=f"{visited} nodes")

        if isinstance(node, NavigableString):
            if isinstance(node, _SKIP_STRINGS):
                continue
            text = str(node).strip()
            if text:
                out.append(text + " ")
            continue

        if not isinstance(node, Tag):
            continue

        name = node.name.lower() if node.name else ""
        if name in SKIP_TAGS:
            continue
        if name == "br":
            out.append("\n")
            continue

        if name in BLOCK_TAGS:
            if len(out) and out.last_char != "\n":
                out.append("\n")
            stack.append((node, True))
        if name == "li":
            out.append("• ")

        stack.extend((child, False) for child in reversed(node.contents))


class HTMLExtractor(Extractor):
    """Visible text of an HTML page, one block element per line."""

    name = "html"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        ctx.checkpoint()
        out = ctx.builder()
        render_html(data, ctx, out)
        return normalize_whitespace(out.text())
