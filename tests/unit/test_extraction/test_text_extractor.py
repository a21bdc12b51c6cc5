"""Unit tests for DefaultTextExtractor."""

from io import BytesIO

import pytest
from docx import Document
from pypdf import PdfWriter

from clerkbook.extraction.errors import ExtractionError, UnsupportedContentError
from clerkbook.extraction.extractor import DefaultTextExtractor, clean_text
from clerkbook.extraction.models import MIME_DOCX, MIME_PDF
from tests.helpers.fakes import article_html


@pytest.fixture
def extractor() -> DefaultTextExtractor:
    """Create an extractor."""
    return DefaultTextExtractor()


class TestCleanText:
    """Tests for clean_text."""

    def test_collapses_whitespace(self) -> None:
        """Inline runs and blank-line runs are collapsed."""
        assert clean_text("  a \t  b  \n\n\n\n c\u00a0d ") == "a b\n\nc d"


class TestHtml:
    """Tests for HTML extraction."""

    def test_article_text_and_title(self, extractor: DefaultTextExtractor) -> None:
        """Article text is kept and page chrome dropped."""
        html = article_html("Reading Notes", "The body paragraph.")

        result = extractor.extract(html.encode(), "text/html; charset=utf-8")

        assert result.title == "Reading Notes"
        assert "The body paragraph." in result.text
        assert "Home | About" not in result.text
        assert "Copyright" not in result.text
        assert "var x" not in result.text

    def test_og_title_preferred(self, extractor: DefaultTextExtractor) -> None:
        """og:title wins over the title element."""
        html = (
            '<html><head><meta property="og:title" content="OG Title">'
            "<title>Page</title></head><body><p>Text</p></body></html>"
        )

        assert extractor.extract_html(html).title == "OG Title"

    def test_main_used_without_article(self, extractor: DefaultTextExtractor) -> None:
        """<main> is preferred over the whole body."""
        html = "<html><body><div>Sidebar</div><main><p>Main text</p></main></body></html>"

        assert extractor.extract_html(html).text == "Main text"

    def test_empty_page(self, extractor: DefaultTextExtractor) -> None:
        """A page with no text extracts as empty rather than failing."""
        result = extractor.extract(b"<html><body><script>x()</script></body></html>", "text/html")

        assert result.is_empty


class TestPlainText:
    """Tests for text and markdown."""

    @pytest.mark.parametrize("mime_type", ["text/plain", "text/markdown"])
    def test_decoded_and_cleaned(self, extractor: DefaultTextExtractor, mime_type: str) -> None:
        """Plain text is decoded as UTF-8 and cleaned."""
        result = extractor.extract("# Notes\n\n\n\ncafé  au lait".encode(), mime_type)

        assert result.text == "# Notes\n\ncafé au lait"
        assert result.title is None


class TestPdf:
    """Tests for PDF extraction."""

    def test_metadata_title(self, extractor: DefaultTextExtractor) -> None:
        """The document title comes from the PDF metadata."""
        writer = PdfWriter()
        writer.add_blank_page(width=200, height=200)
        writer.add_metadata({"/Title": "Quarterly Report"})
        buffer = BytesIO()
        writer.write(buffer)

        result = extractor.extract(buffer.getvalue(), MIME_PDF)

        assert result.title == "Quarterly Report"
        assert result.is_empty

    def test_sniffed_from_bytes(self, extractor: DefaultTextExtractor) -> None:
        """PDF bytes served with a generic type are still parsed as PDF."""
        writer = PdfWriter()
        writer.add_blank_page(width=200, height=200)
        buffer = BytesIO()
        writer.write(buffer)

        result = extractor.extract(buffer.getvalue(), "application/octet-stream")

        assert result.is_empty

    def test_corrupt_pdf(self, extractor: DefaultTextExtractor) -> None:
        """Unparseable PDFs raise an ExtractionError with a paste hint."""
        with pytest.raises(ExtractionError, match="Could not parse PDF"):
            extractor.extract(b"%PDF-1.4\nthis is not really a pdf", MIME_PDF)


class TestDocx:
    """Tests for DOCX extraction."""

    def test_paragraphs_tables_and_title(self, extractor: DefaultTextExtractor) -> None:
        """Paragraphs, table cells and the core title are extracted."""
        document = Document()
        document.core_properties.title = "Meeting Notes"
        document.add_paragraph("First paragraph.")
        table = document.add_table(rows=1, cols=2)
        table.rows[0].cells[0].text = "left"
        table.rows[0].cells[1].text = "right"
        buffer = BytesIO()
        document.save(buffer)

        result = extractor.extract(buffer.getvalue(), MIME_DOCX)

        assert result.title == "Meeting Notes"
        assert "First paragraph." in result.text
        assert "left | right" in result.text

    def test_corrupt_docx(self, extractor: DefaultTextExtractor) -> None:
        """Unparseable DOCX files raise an ExtractionError."""
        with pytest.raises(ExtractionError, match="Could not parse DOCX"):
            extractor.extract(b"not a zip archive", MIME_DOCX)


class TestUnsupported:
    """Tests for unsupported types."""

    def test_image_rejected(self, extractor: DefaultTextExtractor) -> None:
        """Types without a parser raise UnsupportedContentError."""
        with pytest.raises(UnsupportedContentError, match="image/png") as exc_info:
            extractor.extract(b"\x89PNG", "image/png")

        assert "try pasting the text instead" in exc_info.value.message
