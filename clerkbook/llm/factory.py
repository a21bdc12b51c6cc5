"""Factory for creating the LLM client from configured credentials."""

import structlog

from clerkbook.llm.errors import LlmAuthError
from clerkbook.llm.gemini_client import DEFAULT_MODEL, GeminiApiKeyClient
from clerkbook.llm.protocols import LlmClient


logger = structlog.get_logger()


def create_llm_client(
    *,
    api_key: str | None = None,
    model: str = DEFAULT_MODEL,
    timeout_seconds: float = 60.0,
) -> LlmClient:
    """Create an LLM client.

    Args:
        api_key: Gemini API key.
        model: Gemini model identifier.
        timeout_seconds: Per-request timeout.

    Returns:
        An LlmClient implementation ready for use.

    Raises:
        LlmAuthError: If no API key is provided.
    """
    if not api_key:
        msg = "No Gemini credentials configured (need GEMINI_API_KEY)"
        raise LlmAuthError(msg)

    logger.bind(component="llm", subcomponent="factory").info(
        "llm_client_created", auth_method="api_key", model=model
    )
    return GeminiApiKeyClient(api_key=api_key, model=model, timeout_seconds=timeout_seconds)
