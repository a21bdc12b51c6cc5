"""Unit tests for capture input validation."""

import pytest

from clerkbook.capture.errors import CaptureValidationError
from clerkbook.capture.service import (
    FILE_TYPE_MESSAGE,
    MAX_URL_CHARS,
    resolve_file_type,
    validate_capture_url,
)
from clerkbook.extraction.models import MIME_DOCX, MIME_MARKDOWN, MIME_PDF, MIME_TEXT


class TestValidateCaptureUrl:
    """Tests for validate_capture_url."""

    def test_valid_url_stripped(self) -> None:
        """Valid URLs are returned without surrounding whitespace."""
        assert validate_capture_url("  https://example.com/a  ") == "https://example.com/a"

    @pytest.mark.parametrize("url", ["", "   "])
    def test_required(self, url: str) -> None:
        """Blank URLs are rejected."""
        with pytest.raises(CaptureValidationError, match="url is required") as exc_info:
            validate_capture_url(url)

        assert exc_info.value.field == "url"

    @pytest.mark.parametrize(
        "url",
        ["ftp://example.com/file", "example.com/page", "https:///path", "javascript:alert(1)"],
    )
    def test_scheme_and_host_required(self, url: str) -> None:
        """Only absolute http(s) URLs with a host are accepted."""
        with pytest.raises(CaptureValidationError, match="http\\(s\\) URL with a host"):
            validate_capture_url(url)

    def test_too_long(self) -> None:
        """URLs over the length cap are rejected."""
        url = "https://example.com/" + "a" * MAX_URL_CHARS

        with pytest.raises(CaptureValidationError, match="longer than"):
            validate_capture_url(url)


class TestResolveFileType:
    """Tests for resolve_file_type."""

    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("paper.pdf", MIME_PDF),
            ("Notes.DOCX", MIME_DOCX),
            ("readme.txt", MIME_TEXT),
            ("draft.md", MIME_MARKDOWN),
        ],
    )
    def test_inferred_from_extension(self, filename: str, expected: str) -> None:
        """A missing MIME type is inferred from the extension."""
        assert resolve_file_type(filename, None) == expected

    def test_generic_type_replaced(self) -> None:
        """application/octet-stream is replaced by the extension's type."""
        assert resolve_file_type("paper.pdf", "application/octet-stream") == MIME_PDF

    def test_declared_type_normalized(self) -> None:
        """Declared types are lowercased and stripped of parameters."""
        assert resolve_file_type("a.txt", "Text/Plain; charset=utf-8") == MIME_TEXT

    @pytest.mark.parametrize("filename", ["image.png", "archive.zip", "noextension"])
    def test_extension_not_allowed(self, filename: str) -> None:
        """Other extensions are rejected."""
        with pytest.raises(CaptureValidationError, match=FILE_TYPE_MESSAGE):
            resolve_file_type(filename, None)

    def test_disallowed_declared_type(self) -> None:
        """A disallowed declared type is rejected even with a good extension."""
        with pytest.raises(CaptureValidationError) as exc_info:
            resolve_file_type("paper.pdf", "image/png")

        assert exc_info.value.message == FILE_TYPE_MESSAGE
