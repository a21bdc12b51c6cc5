"""Gemini API client using API key authentication."""

import random
import time
from http import HTTPStatus

import httpx
import structlog

from clerkbook.llm.errors import LlmApiError


logger = structlog.get_logger()

_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

DEFAULT_MODEL = "gemini-2.5-flash"
_RETRY_BASE_DELAY = 2.0
_RETRYABLE_STATUS_CODES = {
    HTTPStatus.TOO_MANY_REQUESTS,
    HTTPStatus.INTERNAL_SERVER_ERROR,
    HTTPStatus.SERVICE_UNAVAILABLE,
}


class GeminiApiKeyClient:
    """Client for the Gemini ``generateContent`` endpoint.

    Sends the key in an ``x-goog-api-key`` header and asks for a JSON
    response body. Spaces requests by ``min_request_interval`` seconds and
    retries 429/500/503 with exponential backoff.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout_seconds: float = 60.0,
        max_retries: int = 3,
        min_request_interval: float = 0.0,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Gemini API key.
            model: Gemini model identifier.
            timeout_seconds: Per-request timeout.
            max_retries: Retries after the first attempt for retryable statuses.
            min_request_interval: Minimum seconds between requests.
        """
        self._api_key = api_key
        self.model = model
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._min_request_interval = min_request_interval
        self._last_request_time: float = 0.0
        self._log = logger.bind(component="llm", subcomponent="gemini_api_key")

    def _rate_limit(self) -> None:
        """Enforce minimum interval between requests."""
        if self._min_request_interval <= 0:
            return
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self._min_request_interval:
            time.sleep(self._min_request_interval - elapsed)
        self._last_request_time = time.monotonic()

    def generate_content(
        self,
        prompt: str,
        system_instruction: str | None = None,
    ) -> str:
        """Send a generate content request to the Gemini API.

        Args:
            prompt: User prompt text.
            system_instruction: Optional system instruction.

        Returns:
            Generated text from the model response.

        Raises:
            LlmApiError: If the API call fails after all retries.
        """
        url = f"{_BASE_URL}/{self.model}:generateContent"

        request_body: dict[str, object] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        if system_instruction:
            request_body["systemInstruction"] = {
                "parts": [{"text": system_instruction}]
            }

        last_exc: LlmApiError | None = None

        for attempt in range(self._max_retries + 1):
            self._rate_limit()

            try:
                response = httpx.post(
                    url,
                    headers={
                        "x-goog-api-key": self._api_key,
                        "Content-Type": "application/json",
                    },
                    json=request_body,
                    timeout=self._timeout_seconds,
                )
            except httpx.HTTPError as exc:
                msg = f"Gemini API request failed: {exc}"
                raise LlmApiError(msg) from exc

            if response.status_code == HTTPStatus.OK:
                break

            if response.status_code in _RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                delay = _RETRY_BASE_DELAY * (2**attempt) + random.uniform(0, 1)  # noqa: S311
                self._log.warning(
                    "gemini_retryable_error",
                    status=response.status_code,
                    attempt=attempt + 1,
                    retry_delay=round(delay, 1),
                )
                time.sleep(delay)
                last_exc = LlmApiError(
                    f"Gemini API returned {response.status_code}",
                    status_code=response.status_code,
                )
                continue

            msg = f"Gemini API returned {response.status_code}"
            raise LlmApiError(msg, status_code=response.status_code)
        else:
            raise last_exc or LlmApiError("All retries exhausted")

        data = response.json()
        candidates = data.get("candidates", [])
        if not candidates:
            msg = "No candidates in Gemini API response"
            raise LlmApiError(msg, status_code=response.status_code)

        parts = candidates[0].get("content", {}).get("parts", [])
        if not parts:
            msg = "No parts in first candidate"
            raise LlmApiError(msg, status_code=response.status_code)

        text: str = parts[0].get("text", "")
        if not text:
            msg = "Empty text in response"
            raise LlmApiError(msg, status_code=response.status_code)

        return text
