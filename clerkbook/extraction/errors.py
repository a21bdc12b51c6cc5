"""Error types for text extraction and content storage."""

from clerkbook.jobs.runner import FailureKind, RunnerError


class ExtractionError(RunnerError):
    """Raised when no usable text can be produced from a source."""


class UnsupportedContentError(ExtractionError):
    """Raised for a content type the extractor does not handle."""

    def __init__(self, mime_type: str) -> None:
        """Initialize the error.

        Args:
            mime_type: The rejected MIME type.
        """
        super().__init__(
            f"Unsupported content type {mime_type or 'unknown'}; "
            "try pasting the text instead",
            kind=FailureKind.CONTENT,
        )
        self.mime_type = mime_type


class ContentNotFoundError(ExtractionError):
    """Raised when a stored file cannot be read back."""

    def __init__(self, key: str) -> None:
        """Initialize the error.

        Args:
            key: Content store key.
        """
        super().__init__(
            "Could not read the uploaded file; upload it again",
            kind=FailureKind.CONTENT,
        )
        self.key = key
