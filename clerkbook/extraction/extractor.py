"""Text extraction for HTML, PDF, DOCX and plain text sources.

Parsing itself is delegated to BeautifulSoup/lxml, pypdf and python-docx;
this module only picks the parser, collapses whitespace and maps parser
failures to user-facing ``ExtractionError`` messages.
"""

import re
import zipfile
from io import BytesIO
from typing import Protocol

import structlog
from bs4 import BeautifulSoup
from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from clerkbook.extraction.errors import ExtractionError, UnsupportedContentError
from clerkbook.extraction.models import (
    HTML_TYPES,
    MIME_DOCX,
    MIME_PDF,
    PLAIN_TYPES,
    ExtractedText,
    normalize_mime_type,
)


logger = structlog.get_logger()

MAX_TITLE_CHARS = 500

# Elements that never hold article text.
_NOISE_TAGS = (
    "script",
    "style",
    "noscript",
    "template",
    "svg",
    "iframe",
    "nav",
    "header",
    "footer",
    "aside",
    "form",
)

_BLANK_LINES = re.compile(r"\n{3,}")
_INLINE_SPACE = re.compile(r"[ \t\r\f\v\u00a0]+")


class TextExtractor(Protocol):
    """Turns raw source bytes into plain text."""

    def extract(self, raw: bytes, mime_type: str) -> ExtractedText:
        """Extract text from raw bytes.

        Raises:
            ExtractionError: If the content cannot be parsed.
            UnsupportedContentError: If the type is not handled.
        """
        ...


def clean_text(text: str) -> str:
    """Collapse runs of spaces and blank lines and trim each line."""
    lines = [_INLINE_SPACE.sub(" ", line).strip() for line in text.splitlines()]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


class DefaultTextExtractor:
    """Extractor for the content types the pipeline accepts."""

    def __init__(self) -> None:
        self._log = logger.bind(component="extraction")

    def extract(self, raw: bytes, mime_type: str) -> ExtractedText:
        """Extract text by MIME type, sniffing PDFs served with a generic type.

        Args:
            raw: Source bytes.
            mime_type: Declared MIME type (parameters are ignored).

        Returns:
            Extracted text and title. The text may be empty; callers decide
            whether that is a failure.

        Raises:
            ExtractionError: If the parser rejects the content.
            UnsupportedContentError: If the type is not handled.
        """
        kind = normalize_mime_type(mime_type)
        if kind != MIME_PDF and raw.startswith(b"%PDF-"):
            kind = MIME_PDF

        if kind in HTML_TYPES:
            result = self.extract_html(raw)
        elif kind == MIME_PDF:
            result = self.extract_pdf(raw)
        elif kind == MIME_DOCX:
            result = self.extract_docx(raw)
        elif kind in PLAIN_TYPES:
            result = ExtractedText(text=clean_text(raw.decode("utf-8", errors="replace")))
        else:
            raise UnsupportedContentError(kind)

        self._log.debug(
            "text_extracted",
            mime_type=kind,
            bytes=len(raw),
            chars=len(result.text),
            has_title=result.title is not None,
        )
        return result

    def extract_html(self, raw: bytes | str) -> ExtractedText:
        """Extract the readable body text and title of an HTML page.

        Prefers ``<article>`` then ``<main>`` over the whole body.
        """
        soup = BeautifulSoup(raw, "lxml")

        title = _html_title(soup)
        for tag in soup.find_all(list(_NOISE_TAGS)):
            tag.decompose()

        container = soup.find("article") or soup.find("main") or soup.body or soup
        text = clean_text(container.get_text("\n"))
        if not text and container is not soup:
            text = clean_text(soup.get_text("\n"))
        return ExtractedText(text=text, title=title)

    def extract_pdf(self, raw: bytes) -> ExtractedText:
        """Extract page text and the document title from a PDF."""
        try:
            reader = PdfReader(BytesIO(raw))
            pages = [page.extract_text() or "" for page in reader.pages]
            metadata = reader.metadata
            title = metadata.title if metadata is not None else None
        except (PyPdfError, ValueError, KeyError, TypeError, AttributeError) as e:
            self._log.warning("pdf_parse_failed", error=str(e))
            msg = "Could not parse PDF; try pasting the text instead"
            raise ExtractionError(msg) from e

        return ExtractedText(text=clean_text("\n\n".join(pages)), title=_clip_title(title))

    def extract_docx(self, raw: bytes) -> ExtractedText:
        """Extract paragraph and table text and the core title from a DOCX."""
        try:
            document = Document(BytesIO(raw))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
            self._log.warning("docx_parse_failed", error=str(e))
            msg = "Could not parse DOCX; try pasting the text instead"
            raise ExtractionError(msg) from e

        blocks = [p.text for p in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                blocks.append(" | ".join(cell.text for cell in row.cells))

        title = document.core_properties.title
        return ExtractedText(text=clean_text("\n".join(blocks)), title=_clip_title(title))


def _html_title(soup: BeautifulSoup) -> str | None:
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title is not None and og_title.get("content"):
        return _clip_title(str(og_title["content"]))
    if soup.title is not None and soup.title.string:
        return _clip_title(str(soup.title.string))
    h1 = soup.find("h1")
    if h1 is not None:
        return _clip_title(h1.get_text(" ", strip=True))
    return None


def _clip_title(title: str | None) -> str | None:
    if not title:
        return None
    cleaned = " ".join(title.split())
    return cleaned[:MAX_TITLE_CHARS] or None
