"""
Rich Text Format extractor.

RTF is parsed byte by byte with a group stack: every ``{`` saves the current
destination state and every ``}`` restores it. Destination groups that hold
metadata rather than body text (font tables, pictures, ``\\*`` groups) are
suppressed.
"""

from __future__ import annotations

from typing import List, Tuple

from .cancellation import ExtractionContext
from .errors import DocumentError, ErrorKind
from .normalize import normalize_whitespace
from .protocols import Extractor

RTF_HEADER = b"{\\rtf"
CHECKPOINT_EVERY_BYTES = 64 * 1024

DESTINATIONS = frozenset(
    {
        "fonttbl",
        "colortbl",
        "stylesheet",
        "info",
        "pict",
        "object",
        "header",
        "headerl",
        "headerr",
        "headerf",
        "footer",
        "footerl",
        "footerr",
        "footerf",
        "footnote",
        "fldinst",
        "listtable",
        "listoverridetable",
        "revtbl",
        "rsidtbl",
        "filetbl",
        "generator",
        "themedata",
        "colorschememapping",
        "datastore",
        "latentstyles",
        "xmlnstbl",
    }
)

WORD_TEXT = {
    "par": "\n",
    "line": "\n",
    "sect": "\n\n",
    "page": "\n\n",
    "row": "\n",
    "cell": " ",
    "tab": "\t",
    "emdash": "\u2014",
    "endash": "\u2013",
    "bullet": "\u2022",
    "lquote": "\u2018",
    "rquote": "\u2019",
    "ldblquote": "\u201c",
    "rdblquote": "\u201d",
    "emspace": " ",
    "enspace": " ",
    "qmspace": " ",
}

SYMBOL_TEXT = {
    ord("~"): " ",
    ord("-"): "-",
    ord("_"): "-",
    ord("\n"): "\n",
    ord("\r"): "\n",
}

_SPECIAL = frozenset(b"\\{}\r\n")


def _is_alpha(byte: int) -> bool:
    return 97 <= byte <= 122 or 65 <= byte <= 90


def _is_digit(byte: int) -> bool:
    return 48 <= byte <= 57


class RTFParser:
    """Single-pass RTF to text converter."""

    def __init__(self, data: bytes, ctx: ExtractionContext) -> None:
        self.data = data
        self.ctx = ctx
        self.out = ctx.builder()
        self.pos = 0
        self.skip = False
        self.uc = 1
        self.fallback = 0
        self.high_surrogate = 0
        self.stack: List[Tuple[bool, int]] = []

    def emit(self, text: str) -> None:
        if not self.skip:
            self.out.append(text)

    def parse(self) -> str:
        data = self.data
        end = len(data)
        next_checkpoint = CHECKPOINT_EVERY_BYTES

        while self.pos < end:
            if self.pos >= next_checkpoint:
                self.ctx.checkpoint(progress=f"byte {self.pos} of {end}")
                next_checkpoint += CHECKPOINT_EVERY_BYTES

            byte = data[self.pos]
            if byte == 0x7B:  # {
                self.stack.append((self.skip, self.uc))
                self.fallback = 0
                self.pos += 1
            elif byte == 0x7D:  # }
                if self.stack:
                    self.skip, self.uc = self.stack.pop()
                self.fallback = 0
                self.pos += 1
            elif byte == 0x5C:  # backslash
                self._control()
            elif byte in (0x0A, 0x0D):
                self.pos += 1
            else:
                self._text_run()

        return self.out.text()

    def _text_run(self) -> None:
        data = self.data
        start = self.pos
        while self.pos < len(data) and data[self.pos] not in _SPECIAL:
            self.pos += 1
        chunk = data[start : self.pos]
        if self.fallback:
            dropped = min(self.fallback, len(chunk))
            self.fallback -= dropped
            chunk = chunk[dropped:]
        if chunk:
            self.emit(chunk.decode("cp1252", errors="replace"))

    def _control(self) -> None:
        data = self.data
        if self.pos + 1 >= len(data):
            self.pos = len(data)
            return
        symbol = data[self.pos + 1]

        if symbol in (0x5C, 0x7B, 0x7D):
            self.pos += 2
            if self.fallback:
                self.fallback -= 1
            else:
                self.emit(chr(symbol))
            return

        if symbol == 0x27:  # \'hh
            hex_digits = data[self.pos + 2 : self.pos + 4]
            self.pos += 4
            try:
                char = bytes([int(hex_digits, 16)]).decode("cp1252", errors="replace")
            except ValueError:
                return
            if self.fallback:
                self.fallback -= 1
            else:
                self.emit(char)
            return

        if symbol == 0x2A:  # \*
            self.skip = True
            self.pos += 2
            return

        if _is_alpha(symbol):
            self._control_word()
            return

        self.pos += 2
        text = SYMBOL_TEXT.get(symbol)
        if text is not None:
            self.emit(text)

    def _control_word(self) -> None:
        data = self.data
        end = len(data)
        start = self.pos + 1
        pos = start
        while pos < end and _is_alpha(data[pos]):
            pos += 1
        word = data[start:pos].decode("ascii")

        param_start = pos
        if pos < end and data[pos] == 0x2D:  # -
            pos += 1
        while pos < end and _is_digit(data[pos]):
            pos += 1
        param = int(data[param_start:pos]) if pos > param_start and data[pos - 1 : pos] != b"-" else None

        # A single space delimits the control word and belongs to it.
        if pos < end and data[pos] == 0x20:
            pos += 1
        self.pos = pos
        self._handle_word(word, param)

    def _handle_word(self, word: str, param: int | None) -> None:
        if word in DESTINATIONS:
            self.skip = True
        elif word == "bin":
            self.pos += max(param or 0, 0)
        elif word == "u" and param is not None:
            code = param + 65536 if param < 0 else param
            if 0xD800 <= code < 0xDC00:
                self.high_surrogate = code
            elif 0xDC00 <= code < 0xE000 and self.high_surrogate:
                self.emit(chr(0x10000 + ((self.high_surrogate - 0xD800) << 10) + (code - 0xDC00)))
                self.high_surrogate = 0
            elif not 0xD800 <= code < 0xE000:
                self.emit(chr(code))
            self.fallback = self.uc
        elif word == "uc" and param is not None:
            self.uc = max(param, 0)
        else:
            text = WORD_TEXT.get(word)
            if text is not None:
                self.emit(text)


class RTFExtractor(Extractor):
    name = "rtf"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        if len(data) < 6 or not data.startswith(RTF_HEADER):
            raise DocumentError(
                ErrorKind.CORRUPTED_FILE,
                "invalid RTF header - file may be corrupted or not an RTF",
            )
        ctx.checkpoint()
        return normalize_whitespace(RTFParser(data, ctx).parse())
