"""
Word-processing (.docx) extractor built on python-docx.
"""

from __future__ import annotations

import io
import zipfile

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from docx.table import Table
from docx.text.paragraph import Paragraph
from lxml import etree

from .cancellation import ExtractionContext
from .memory import StreamingTextBuilder
from .normalize import normalize_whitespace
from .ooxml import check_container, open_error
from .protocols import Extractor

LABEL = ".docx"
CHECKPOINT_EVERY_BLOCKS = 200


def table_lines(table: Table) -> list[str]:
    lines = []
    for row in table.rows:
        cells = [cell.text.strip() for cell in row.cells]
        line = " | ".join(cell for cell in cells if cell)
        if line:
            lines.append(line)
    return lines


class DocxExtractor(Extractor):
    """Body paragraphs and tables in document order."""

    name = "docx"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        check_container(data, LABEL)
        ctx.checkpoint()
        try:
            document = Document(io.BytesIO(data))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError, etree.XMLSyntaxError) as e:
            raise open_error(e, LABEL) from e

        out = ctx.builder()
        for index, block in enumerate(document.iter_inner_content()):
            if index % CHECKPOINT_EVERY_BLOCKS == 0:
                ctx.checkpoint(progress=f"block {index}")
            self._render(block, out)
        return normalize_whitespace(out.text())

    @staticmethod
    def _render(block: Paragraph | Table, out: StreamingTextBuilder) -> None:
        if isinstance(block, Table):
            for line in table_lines(block):
                out.append(line + "\n")
            out.append("\n")
            return
        text = block.text
        if text.strip():
            out.append(text + "\n")
