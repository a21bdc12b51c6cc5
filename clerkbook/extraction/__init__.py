"""Extraction collaborator: raw bytes to plain text, plus upload storage."""

from clerkbook.extraction.content_store import (
    ContentStore,
    LocalContentStore,
    sanitize_filename,
)
from clerkbook.extraction.errors import (
    ContentNotFoundError,
    ExtractionError,
    UnsupportedContentError,
)
from clerkbook.extraction.extractor import DefaultTextExtractor, TextExtractor, clean_text
from clerkbook.extraction.models import (
    FILE_TYPES_BY_EXTENSION,
    MIME_DOCX,
    MIME_HTML,
    MIME_MARKDOWN,
    MIME_PDF,
    MIME_TEXT,
    ExtractedText,
    normalize_mime_type,
)


__all__ = [
    "FILE_TYPES_BY_EXTENSION",
    "MIME_DOCX",
    "MIME_HTML",
    "MIME_MARKDOWN",
    "MIME_PDF",
    "MIME_TEXT",
    "ContentNotFoundError",
    "ContentStore",
    "DefaultTextExtractor",
    "ExtractedText",
    "ExtractionError",
    "LocalContentStore",
    "TextExtractor",
    "UnsupportedContentError",
    "clean_text",
    "normalize_mime_type",
    "sanitize_filename",
]
