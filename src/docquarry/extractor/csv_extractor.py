"""
CSV extractor: renders rows as labelled records when the file has a header row.
"""

from __future__ import annotations

import csv
import io
from typing import List

from .cancellation import ExtractionContext
from .errors import DocumentError, ErrorKind
from .normalize import ensure_utf8
from .protocols import Extractor

DELIMITER_CANDIDATES = (",", ";", "\t", "|")
SNIFF_BYTES = 1024
_NUMERIC_CHARS = frozenset("0123456789.-+")


def detect_delimiter(data: bytes) -> str:
    """Most frequent candidate in the first kilobyte; ties keep the earlier one."""
    sample = data[:SNIFF_BYTES].decode("utf-8", errors="ignore")
    best, best_count = ",", 0
    for candidate in DELIMITER_CANDIDATES:
        count = sample.count(candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


def is_numeric_cell(cell: str) -> bool:
    return bool(cell) and all(ch in _NUMERIC_CHARS for ch in cell)


def is_likely_header(row: List[str]) -> bool:
    """A header row is one where fewer than half of the cells are numbers."""
    if not row:
        return False
    numeric = sum(1 for cell in row if is_numeric_cell(cell.strip()))
    return numeric * 2 < len(row)


class CSVExtractor(Extractor):
    name = "csv"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        ctx.checkpoint()
        delimiter = detect_delimiter(data)
        reader = csv.reader(io.StringIO(ensure_utf8(data), newline=""), delimiter=delimiter, skipinitialspace=True)

        try:
            records = [record for record in reader if record]
        except csv.Error as e:
            raise DocumentError(ErrorKind.CORRUPTED_FILE, f"failed to parse CSV: {e}") from e

        if not records:
            return ""

        out = ctx.builder()
        header = records[0] if is_likely_header(records[0]) else None

        if header is not None:
            out.append("Headers: " + ", ".join(header) + "\n\n")
            for index, record in enumerate(records[1:], start=1):
                if index % 100 == 0:
                    ctx.checkpoint(progress=f"row {index}")
                out.append(f"Row {index}:\n")
                for column, cell in enumerate(record[: len(header)]):
                    label = header[column] or f"Column{column + 1}"
                    out.append(f"  {label}: {cell}\n")
                out.append("\n")
        else:
            for index, record in enumerate(records, start=1):
                if index % 100 == 0:
                    ctx.checkpoint(progress=f"row {index}")
                out.append(f"Row {index}: " + ", ".join(record) + "\n")

        return out.text().strip()
