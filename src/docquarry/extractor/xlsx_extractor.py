"""
Spreadsheet (.xlsx) extractor built on openpyxl.
"""

from __future__ import annotations

import datetime as dt
import io
import zipfile
from typing import Any
from xml.etree.ElementTree import ParseError

from lxml import etree
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .cancellation import ExtractionContext
from .normalize import normalize_whitespace
from .ooxml import check_container, open_error
from .protocols import Extractor

LABEL = ".xlsx"
CHECKPOINT_EVERY_ROWS = 500


def format_cell(value: Any) -> str:
    """Cached cell value as display text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    return str(value).strip()


class XlsxExtractor(Extractor):
    """Every worksheet in workbook order, one line per non-blank row.

    Cells are read from their cached values, so formulas contribute the result the
    authoring application last computed.
    """

    name = "xlsx"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        check_container(data, LABEL)
        ctx.checkpoint()
        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (
            InvalidFileException,
            zipfile.BadZipFile,
            KeyError,
            ValueError,
            TypeError,
            ParseError,
            etree.XMLSyntaxError,
        ) as e:
            raise open_error(e, LABEL) from e

        try:
            return self._read(workbook, ctx)
        finally:
            workbook.close()

    def _read(self, workbook: Any, ctx: ExtractionContext) -> str:
        out = ctx.builder()
        sheets = workbook.worksheets
        multiple = len(sheets) > 1

        def partial() -> str:
            return normalize_whitespace(out.text())

        for index, sheet in enumerate(sheets):
            ctx.checkpoint(partial=partial, progress=f"extracted {index} of {len(sheets)} sheets")
            if multiple:
                out.append(f"Sheet: {sheet.title}\n")
            for row_number, row in enumerate(sheet.iter_rows(values_only=True), start=1):
                if row_number % CHECKPOINT_EVERY_ROWS == 0:
                    ctx.checkpoint(partial=partial, progress=f"sheet {index + 1}, row {row_number}")
                cells = [text for text in (format_cell(value) for value in row) if text]
                if cells:
                    out.append(" | ".join(cells) + "\n")
            if index < len(sheets) - 1:
                out.append("\n")

        return normalize_whitespace(out.text())
