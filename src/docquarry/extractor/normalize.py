"""
Text coercion and whitespace normalization shared by all extractors.
"""

from __future__ import annotations

import re
from typing import List

_UTF16_BOMS = (b"\xff\xfe", b"\xfe\xff")
_INLINE_SPACE = re.compile(r"[ \t]+")


def _looks_like_utf16(data: bytes) -> bool:
    """NUL bytes in every other position of the first few hundred bytes."""
    sample = data[:512]
    if len(sample) < 4:
        return False
    odd_nuls = sample[1::2].count(0)
    even_nuls = sample[0::2].count(0)
    half = len(sample) // 2
    return odd_nuls >= half * 0.4 or even_nuls >= half * 0.4


def ensure_utf8(data: bytes) -> str:
    """Decode bytes to text without ever failing.

    UTF-16 is used when a byte-order mark or an alternating NUL pattern points to
    it. Otherwise valid UTF-8 is decoded directly (a leading BOM is dropped), and as
    a last resort invalid sequences are replaced with U+FFFD.
    """
    if data.startswith(_UTF16_BOMS):
        try:
            return data.decode("utf-16")
        except UnicodeDecodeError:
            pass
    elif _looks_like_utf16(data):
        encoding = "utf-16-le" if data[1:2] == b"\x00" else "utf-16-be"
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            pass

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("utf-8", errors="replace")
    return text[1:] if text.startswith("\ufeff") else text


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def normalize_whitespace(text: str, *, keep_indent: bool = False) -> str:
    """Collapse inline whitespace and blank-line runs, then trim the whole text.

    Each line loses its trailing spaces and tabs and has internal runs collapsed to
    one space. With ``keep_indent`` the leading indentation of a line is kept as is.
    At most one empty line separates paragraphs.
    """
    lines: List[str] = []
    prev_empty = False
    for line in text.split("\n"):
        line = line.rstrip(" \t")
        if not line:
            if not prev_empty:
                lines.append("")
                prev_empty = True
            continue
        if keep_indent:
            body = line.lstrip(" \t")
            indent = line[: len(line) - len(body)]
            line = indent + _INLINE_SPACE.sub(" ", body)
        else:
            line = _INLINE_SPACE.sub(" ", line)
        lines.append(line)
        prev_empty = False
    return "\n".join(lines).strip()


def normalize_text(text: str, *, keep_indent: bool = False) -> str:
    return normalize_whitespace(normalize_line_endings(text), keep_indent=keep_indent)
