"""
E-book (.epub) extractor: reads chapters in spine order and renders their markup.
"""

from __future__ import annotations

import io
import posixpath
import zipfile
import zlib
from typing import Dict, List, Optional
from urllib.parse import unquote

from bs4 import ParserRejectedMarkup
from lxml import etree

from .cancellation import ExtractionContext
from .errors import DocumentError, ErrorKind
from .html_extractor import render_html
from .normalize import normalize_whitespace
from .protocols import Extractor
from .validator import ZIP_MAGIC

CONTAINER_PATH = "META-INF/container.xml"

_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, recover=True)

# Failures that only lose one chapter.
_CHAPTER_ERRORS = (KeyError, zipfile.BadZipFile, RuntimeError, ValueError, OSError, zlib.error, ParserRejectedMarkup)


def _parse_xml(raw: bytes) -> Optional[etree._Element]:
    try:
        return etree.fromstring(raw, parser=_XML_PARSER)
    except etree.XMLSyntaxError:
        return None


def _local(root: etree._Element, path: str) -> List[etree._Element]:
    """Namespace-agnostic lookup of ``a/b`` style descendant paths."""
    steps = "/".join(f"*[local-name()='{step}']" for step in path.split("/"))
    return root.xpath(f".//{steps}")


class EPUBPackage:
    """Package document lookup over an open EPUB archive."""

    def __init__(self, archive: zipfile.ZipFile) -> None:
        self.archive = archive
        self.names = archive.namelist()

    def package_path(self) -> str:
        if CONTAINER_PATH in self.names:
            root = _parse_xml(self.archive.read(CONTAINER_PATH))
            if root is not None:
                for rootfile in _local(root, "rootfiles/rootfile"):
                    full_path = rootfile.get("full-path")
                    if full_path and full_path in self.names:
                        return full_path
        for name in self.names:
            if name.lower().endswith(".opf"):
                return name
        raise DocumentError(ErrorKind.CORRUPTED_FILE, "failed to find the EPUB package document (.opf)")

    def spine(self, opf_path: str) -> List[str]:
        """Archive paths of the spine items, in reading order."""
        root = _parse_xml(self.archive.read(opf_path))
        if root is None:
            raise DocumentError(ErrorKind.CORRUPTED_FILE, "failed to parse the EPUB package document")

        base = posixpath.dirname(opf_path)
        manifest: Dict[str, str] = {}
        for item in _local(root, "manifest/item"):
            item_id, href = item.get("id"), item.get("href")
            if item_id and href:
                manifest[item_id] = self.resolve(base, href)

        return [manifest[ref.get("idref")] for ref in _local(root, "spine/itemref") if ref.get("idref") in manifest]

    def resolve(self, base: str, href: str) -> str:
        target = unquote(href.split("#", 1)[0])
        path = posixpath.normpath(posixpath.join(base, target)) if base else posixpath.normpath(target)
        if path in self.names:
            return path
        suffix = "/" + target.lstrip("/")
        for name in self.names:
            if name.endswith(suffix) or name == target:
                return name
        return path


class EPUBExtractor(Extractor):
    """Chapters joined by a blank line.

    A chapter that cannot be read is skipped; only a book where every chapter fails
    is an error.
    """

    name = "epub"

    def extract(self, data: bytes, ctx: ExtractionContext) -> str:
        if len(data) < len(ZIP_MAGIC) or not data.startswith(ZIP_MAGIC):
            raise DocumentError(
                ErrorKind.CORRUPTED_FILE,
                "invalid EPUB header - file may be corrupted or not an EPUB",
            )
        ctx.checkpoint()

        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, zlib.error, ValueError) as e:
            raise DocumentError(ErrorKind.CORRUPTED_FILE, f"failed to open EPUB archive - {e}") from e

        with archive:
            package = EPUBPackage(archive)
            try:
                chapters = package.spine(package.package_path())
            except _CHAPTER_ERRORS as e:
                raise DocumentError(ErrorKind.CORRUPTED_FILE, f"failed to parse spine - {e}") from e

            if not chapters:
                return ""
            return self._read_chapters(archive, chapters, ctx)

    def _read_chapters(self, archive: zipfile.ZipFile, chapters: List[str], ctx: ExtractionContext) -> str:
        out = ctx.builder()
        failures: List[str] = []
        extracted = 0

        def partial() -> str:
            return normalize_whitespace(out.text())

        for index, path in enumerate(chapters):
            ctx.checkpoint(partial=partial, progress=f"extracted {index} of {len(chapters)} chapters")
            chapter = ctx.builder()
            try:
                render_html(archive.read(path), ctx, chapter, partial=partial)
            except _CHAPTER_ERRORS as e:
                failures.append(f"{path}: {e}")
                continue
            text = normalize_whitespace(chapter.text())
            extracted += 1
            if text:
                if len(out):
                    out.append("\n\n")
                out.append(text)

        if extracted == 0:
            raise DocumentError(
                ErrorKind.EXTRACTION_FAILED,
                f"failed to extract any chapter - errors: {'; '.join(failures)}",
            )
        return normalize_whitespace(out.text())
