"""Unit tests for Gemini API key client."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from clerkbook.llm.errors import LlmApiError
from clerkbook.llm.gemini_client import GeminiApiKeyClient


def _make_client(
    api_key: str = "test-api-key",  # noqa: S107
    model: str = "gemini-2.5-flash",
    max_retries: int = 3,
) -> GeminiApiKeyClient:
    """Create a test client."""
    return GeminiApiKeyClient(api_key=api_key, model=model, max_retries=max_retries)


def _ok_response(text: str = "ok") -> MagicMock:
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    return response


def _status_response(status_code: int) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    return response


class TestGeminiApiKeyClientGenerateContent:
    """Tests for GeminiApiKeyClient.generate_content."""

    @patch("clerkbook.llm.gemini_client.httpx.post")
    def test_success_returns_text(self, mock_post: MagicMock) -> None:
        """Should return text from model response."""
        mock_post.return_value = _ok_response('{"abstract": "x"}')

        result = _make_client().generate_content("Summarize")

        assert result == '{"abstract": "x"}'

    @patch("clerkbook.llm.gemini_client.httpx.post")
    def test_sends_api_key_header(self, mock_post: MagicMock) -> None:
        """Should send x-goog-api-key header."""
        mock_post.return_value = _ok_response()

        _make_client(api_key="my-key-123").generate_content("Test")

        headers = mock_post.call_args[1]["headers"]
        assert headers["x-goog-api-key"] == "my-key-123"

    @patch("clerkbook.llm.gemini_client.httpx.post")
    def test_uses_model_endpoint(self, mock_post: MagicMock) -> None:
        """Should call the generativelanguage endpoint with model name."""
        mock_post.return_value = _ok_response()

        _make_client(model="gemini-2.5-pro").generate_content("Test")

        url = mock_post.call_args[0][0]
        assert "generativelanguage.googleapis.com" in url
        assert url.endswith("gemini-2.5-pro:generateContent")

    @patch("clerkbook.llm.gemini_client.httpx.post")
    def test_requests_json_output(self, mock_post: MagicMock) -> None:
        """Should ask for a JSON response and pass the system instruction."""
        mock_post.return_value = _ok_response()

        _make_client().generate_content("Test", system_instruction="Be concise")

        body = mock_post.call_args[1]["json"]
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert body["systemInstruction"]["parts"][0]["text"] == "Be concise"
        assert body["contents"][0]["parts"][0]["text"] == "Test"

    @patch("clerkbook.llm.gemini_client.httpx.post")
    def test_omits_empty_system_instruction(self, mock_post: MagicMock) -> None:
        """Should not send systemInstruction when none is given."""
        mock_post.return_value = _ok_response()

        _make_client().generate_content("Test")

        assert "systemInstruction" not in mock_post.call_args[1]["json"]

    @patch("clerkbook.llm.gemini_client.httpx.post")
    def test_401_raises_api_error(self, mock_post: MagicMock) -> None:
        """Should raise a non-transient LlmApiError on 401."""
        mock_post.return_value = _status_response(401)

        with pytest.raises(LlmApiError, match="401") as exc_info:
            _make_client().generate_content("Test")

        assert exc_info.value.status_code == 401
        assert not exc_info.value.is_transient
        assert mock_post.call_count == 1

    @patch("clerkbook.llm.gemini_client.time.sleep")
    @patch("clerkbook.llm.gemini_client.httpx.post")
    def test_retries_503_then_succeeds(self, mock_post: MagicMock, mock_sleep: MagicMock) -> None:
        """Should retry retryable statuses with backoff."""
        mock_post.side_effect = [_status_response(503), _ok_response("done")]

        result = _make_client().generate_content("Test")

        assert result == "done"
        assert mock_post.call_count == 2
        assert mock_sleep.call_count == 1

    @patch("clerkbook.llm.gemini_client.time.sleep")
    @patch("clerkbook.llm.gemini_client.httpx.post")
    def test_retries_exhausted(self, mock_post: MagicMock, mock_sleep: MagicMock) -> None:
        """Should raise a transient error after the last retry."""
        mock_post.return_value = _status_response(429)

        with pytest.raises(LlmApiError) as exc_info:
            _make_client(max_retries=2).generate_content("Test")

        assert mock_post.call_count == 3
        assert exc_info.value.status_code == 429
        assert exc_info.value.is_transient

    @patch("clerkbook.llm.gemini_client.httpx.post")
    def test_network_error_raises_api_error(self, mock_post: MagicMock) -> None:
        """Should raise a transient LlmApiError on network failure."""
        mock_post.side_effect = httpx.ConnectError("Connection refused")

        with pytest.raises(LlmApiError, match="request failed") as exc_info:
            _make_client().generate_content("Test")

        assert exc_info.value.is_transient

    @patch("clerkbook.llm.gemini_client.httpx.post")
    def test_empty_candidates_raises_api_error(self, mock_post: MagicMock) -> None:
        """Should raise LlmApiError when response has no candidates."""
        response = _status_response(200)
        response.json.return_value = {"candidates": []}
        mock_post.return_value = response

        with pytest.raises(LlmApiError, match="No candidates"):
            _make_client().generate_content("Test")

    @patch("clerkbook.llm.gemini_client.httpx.post")
    def test_empty_text_raises_api_error(self, mock_post: MagicMock) -> None:
        """Should raise LlmApiError when the first part has no text."""
        mock_post.return_value = _ok_response("")

        with pytest.raises(LlmApiError, match="Empty text"):
            _make_client().generate_content("Test")
