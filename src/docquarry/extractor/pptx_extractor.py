"""
Presentation (.pptx) extractor built on python-pptx.
"""

from __future__ import annotations

import io
import zipfile
from typing import Any, Iterable, Iterator, List

from lxml import etree
from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE_TYPE
from pptx.exc import PackageNotFoundError

from .cancellation import ExtractionContext
from .normalize import normalize_whitespace
from .ooxml import check_container, open_error
from .protocols import Extractor

LABEL = ".pptx"


def paragraph_lines(text_frame: Any) -> Iterator[str]:
    for paragraph in text_frame.paragraphs:
        line = "".join(run.text for run in paragraph.runs).strip()
        if line:
            yield line


def shape_lines(shapes: Iterable[Any]) -> Iterator[str]:
    """Text of every shape, descending into groups and table cells."""
    for shape in shapes:
        if shape.shape_type == MSO_SHAPE_TYPE.GROUP:
            yield from shape_lines(shape.shapes)
            continue
        if shape.has_text_frame:
            yield from paragraph_lines(shape.text_frame)
        if shape.has_table:
            for row in shape.table.rows:
                for cell in row.cells:
                    yield from paragraph_lines(cell.text_frame)


class PptxExtractor(Extractor):
    """Slides in presentation order, each followed by its speaker notes."""

    name = "pptx"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        check_container(data, LABEL)
        ctx.checkpoint()
        try:
            presentation = Presentation(io.BytesIO(data))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError, etree.XMLSyntaxError) as e:
            raise open_error(e, LABEL) from e

        out = ctx.builder()
        slides = list(presentation.slides)
        for number, slide in enumerate(slides, start=1):
            ctx.checkpoint(
                partial=lambda: normalize_whitespace(out.text()),
                progress=f"extracted {number - 1} of {len(slides)} slides",
            )
            lines: List[str] = list(shape_lines(slide.shapes))
            notes: List[str] = []
            if slide.has_notes_slide:
                frame = slide.notes_slide.notes_text_frame
                if frame is not None:
                    notes = list(paragraph_lines(frame))

            if not lines and not notes:
                continue
            out.append(f"Slide {number}:\n")
            for line in lines:
                out.append(line + "\n")
            if notes:
                out.append("Notes:\n")
                for line in notes:
                    out.append(line + "\n")
            out.append("\n")

        return normalize_whitespace(out.text())
