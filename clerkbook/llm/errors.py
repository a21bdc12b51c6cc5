"""Domain-specific error types for the LLM module."""


class LlmAuthError(Exception):
    """No usable model credentials were configured."""


class LlmApiError(Exception):
    """Model API call failure.

    Attributes:
        status_code: HTTP status code from the API response (0 if none).
    """

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """Whether retrying later may succeed (no response, 429 or 5xx)."""
        return self.status_code == 0 or self.status_code == 429 or self.status_code >= 500


class LlmProcessingError(Exception):
    """Response parsing or schema validation failure."""
