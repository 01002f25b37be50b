"""
Test configuration for docquarry.

Fixtures build real sample documents in memory (python-docx, openpyxl,
python-pptx, zipfile for EPUB and a hand-assembled PDF) so extractors are exercised
against genuine files without binary fixtures in the repository.
"""

# Standard library imports
from typing import Dict, Generator, Tuple

# Third-party imports
import pytest

# Local imports
from docquarry.config import ExtractionConfig
from docquarry.extractor import ExtractionContext, ExtractionRouter
from docquarry.extractor.validator import DOCX, EPUB, PPTX, XLSX

from tests.helpers.documents import (
    build_docx,
    build_encrypted_ooxml,
    build_encrypted_pdf,
    build_epub,
    build_pdf,
    build_pptx,
    build_xlsx,
    chapter_xhtml,
)

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Tests that run the full router")
    config.addinivalue_line("markers", "slow: Tests that wait on real deadlines")


# ============================================================================
# Sample Document Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def sample_pdf() -> bytes:
    return build_pdf(["Hello from page one"])


@pytest.fixture(scope="session")
def multipage_pdf() -> bytes:
    return build_pdf(["First page text", "Second page text", "Third page text"])


@pytest.fixture(scope="session")
def encrypted_pdf() -> bytes:
    return build_encrypted_pdf()


@pytest.fixture(scope="session")
def sample_docx() -> bytes:
    return build_docx()


@pytest.fixture(scope="session")
def sample_xlsx() -> bytes:
    return build_xlsx(
        {
            "Scores": [["Name", "Score", "Passed"], ["Ada", 36, True], ["Bob", 41.0, False]],
            "Notes": [["reviewed"]],
        }
    )


@pytest.fixture(scope="session")
def sample_pptx() -> bytes:
    return build_pptx()


@pytest.fixture(scope="session")
def sample_epub() -> bytes:
    return build_epub(
        {
            "OEBPS/text/chapter1.xhtml": chapter_xhtml("Chapter One", "It was a dark night."),
            "OEBPS/text/chapter2.xhtml": chapter_xhtml("Prologue", "Before it all began."),
        }
    )


@pytest.fixture(scope="session")
def encrypted_ooxml() -> bytes:
    return build_encrypted_ooxml()


@pytest.fixture
def sample_html() -> bytes:
    """Provide sample HTML content for testing."""
    return b"""<!DOCTYPE html>
<html>
<head>
    <title>Test Article</title>
    <style>body { color: red; }</style>
</head>
<body>
    <!-- navigation removed -->
    <h1>Test Article Title</h1>
    <p>This is a sample paragraph.</p>
    <ul><li>First</li><li>Second</li></ul>
    <p>Line one<br>Line two</p>
    <script>var tracking = 1;</script>
</body>
</html>"""


@pytest.fixture(scope="session")
def sample_documents(sample_pdf, sample_docx, sample_xlsx, sample_pptx, sample_epub) -> Dict[str, Tuple[bytes, str]]:
    """One minimal, valid document per registered content type: (bytes, filename)."""
    return {
        "text/plain": (b"plain words\n", "notes.txt"),
        "text/markdown": (b"# Title\n\nSome *text*.\n", "readme.md"),
        "text/x-markdown": (b"- item\n", "list.md"),
        "text/html": (b"<html><body><p>Hello</p></body></html>", "page.html"),
        "application/xhtml+xml": (b"<html><body><p>Hello</p></body></html>", "page.xhtml"),
        "application/json": (b'{"a": 1}', "data.json"),
        "text/json": (b"[1, 2]", "data.json"),
        "text/csv": (b"name,age\nAda,36\n", "people.csv"),
        "application/pdf": (sample_pdf, "doc.pdf"),
        DOCX: (sample_docx, "doc.docx"),
        XLSX: (sample_xlsx, "book.xlsx"),
        PPTX: (sample_pptx, "deck.pptx"),
        EPUB: (sample_epub, "book.epub"),
        "application/rtf": (b"{\\rtf1\\ansi Hello RTF\\par}", "doc.rtf"),
        "text/rtf": (b"{\\rtf1 Hi}", "doc.rtf"),
    }


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def ctx() -> ExtractionContext:
    """Extraction context without deadline or memory ceiling."""
    return ExtractionContext.unbounded()


@pytest.fixture
def extraction_config() -> ExtractionConfig:
    return ExtractionConfig(max_file_size=1024 * 1024, max_concurrent=2, logging_enabled=False)


@pytest.fixture
def router(extraction_config) -> Generator[ExtractionRouter, None, None]:
    router = ExtractionRouter(extraction_config)
    yield router
    router.close()


@pytest.fixture
def default_router() -> Generator[ExtractionRouter, None, None]:
    router = ExtractionRouter()
    yield router
    router.close()
