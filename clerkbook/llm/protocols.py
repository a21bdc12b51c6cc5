"""Protocol interfaces for the enrichment collaborator."""

from typing import Any, Protocol, runtime_checkable

from clerkbook.llm.models import EnrichMode


@runtime_checkable
class LlmClient(Protocol):
    """Protocol for LLM content generation clients.

    Any client that implements ``generate_content`` with the matching
    signature can back an ``LlmEnricher``.
    """

    def generate_content(
        self,
        prompt: str,
        system_instruction: str | None = None,
    ) -> str:
        """Generate text from a prompt.

        Args:
            prompt: User prompt text.
            system_instruction: Optional system-level instruction.

        Returns:
            Generated text from the model.

        Raises:
            LlmApiError: If the API call fails.
        """
        ...


@runtime_checkable
class Enricher(Protocol):
    """Opaque enrichment function: text in, raw enrichment mapping out.

    The returned mapping is untrusted; callers validate it into an
    ``EnrichmentResult`` before storing anything.
    """

    def enrich(self, text: str, mode: EnrichMode, style: str | None = None) -> dict[str, Any]:
        """Produce abstract, bullets, quotes and tags for a text.

        Args:
            text: Cleaned source text.
            mode: Full enrichment or the tags-only pass.
            style: Optional summary style hint (e.g. "concise", "academic").

        Returns:
            Raw enrichment mapping.

        Raises:
            LlmApiError: If the model call fails.
            LlmProcessingError: If the response is not a JSON object.
        """
        ...
