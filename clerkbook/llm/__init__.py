"""LLM enrichment collaborator: Gemini client, prompts and output schema."""

from clerkbook.llm.enricher import LlmEnricher
from clerkbook.llm.errors import LlmApiError, LlmAuthError, LlmProcessingError
from clerkbook.llm.factory import create_llm_client
from clerkbook.llm.gemini_client import DEFAULT_MODEL, GeminiApiKeyClient
from clerkbook.llm.models import (
    EnrichmentResult,
    EnrichMode,
    EnrichOutcome,
    QuoteResult,
    validate_enrichment,
)
from clerkbook.llm.protocols import Enricher, LlmClient


__all__ = [
    "DEFAULT_MODEL",
    "EnrichMode",
    "EnrichOutcome",
    "Enricher",
    "EnrichmentResult",
    "GeminiApiKeyClient",
    "LlmApiError",
    "LlmAuthError",
    "LlmClient",
    "LlmEnricher",
    "LlmProcessingError",
    "QuoteResult",
    "create_llm_client",
    "validate_enrichment",
]
