"""Data models and MIME constants for text extraction."""

from pydantic import BaseModel, ConfigDict


MIME_HTML = "text/html"
MIME_XHTML = "application/xhtml+xml"
MIME_PDF = "application/pdf"
MIME_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MIME_TEXT = "text/plain"
MIME_MARKDOWN = "text/markdown"

HTML_TYPES = frozenset({MIME_HTML, MIME_XHTML})
PLAIN_TYPES = frozenset({MIME_TEXT, MIME_MARKDOWN, "text/x-markdown"})

# Upload types accepted for file captures, keyed by extension.
FILE_TYPES_BY_EXTENSION: dict[str, str] = {
    ".pdf": MIME_PDF,
    ".docx": MIME_DOCX,
    ".txt": MIME_TEXT,
    ".md": MIME_MARKDOWN,
    ".markdown": MIME_MARKDOWN,
}


class ExtractedText(BaseModel):
    """Plain text pulled from a source, with the title if one was found."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    text: str
    title: str | None = None

    @property
    def is_empty(self) -> bool:
        """Whether no readable text was found."""
        return not self.text.strip()


def normalize_mime_type(value: str | None) -> str:
    """Lowercase a MIME type and drop parameters such as ``charset``."""
    if not value:
        return ""
    return value.split(";", 1)[0].strip().lower()
