"""Unit tests for LlmEnricher."""

from unittest.mock import MagicMock

import pytest

from clerkbook.llm.enricher import LlmEnricher
from clerkbook.llm.errors import LlmAuthError, LlmProcessingError
from clerkbook.llm.models import EnrichMode
from clerkbook.llm.prompts import SYSTEM_INSTRUCTION_FULL, SYSTEM_INSTRUCTION_TAGS_ONLY


def _client(response: str) -> MagicMock:
    client = MagicMock()
    client.generate_content.return_value = response
    return client


class TestLlmEnricher:
    """Tests for LlmEnricher.enrich."""

    def test_returns_parsed_object(self) -> None:
        """The model's JSON object is returned unvalidated."""
        client = _client('```json\n{"abstract": "A.", "tags": ["x"]}\n```')

        result = LlmEnricher(client=client).enrich("Some text", EnrichMode.TAGS_ONLY)

        assert result == {"abstract": "A.", "tags": ["x"]}

    def test_system_instruction_per_mode(self) -> None:
        """Each mode sends its own system instruction."""
        client = _client("{}")
        enricher = LlmEnricher(client=client)

        enricher.enrich("text", EnrichMode.FULL)
        enricher.enrich("text", EnrichMode.TAGS_ONLY)

        instructions = [
            c.kwargs["system_instruction"] for c in client.generate_content.call_args_list
        ]
        assert instructions == [SYSTEM_INSTRUCTION_FULL, SYSTEM_INSTRUCTION_TAGS_ONLY]

    def test_style_in_prompt(self) -> None:
        """The style hint reaches the prompt."""
        client = _client("{}")

        LlmEnricher(client=client).enrich("text", EnrichMode.FULL, style="concise")

        prompt = client.generate_content.call_args.args[0]
        assert prompt.startswith("Keep the abstract and bullets as short as possible.")

    def test_unparseable_response(self) -> None:
        """Responses without a JSON object raise LlmProcessingError."""
        client = _client("I cannot help with that.")

        with pytest.raises(LlmProcessingError):
            LlmEnricher(client=client).enrich("text", EnrichMode.FULL)

    def test_client_built_lazily(self) -> None:
        """The factory runs on the first enrichment, once."""
        client = _client("{}")
        factory = MagicMock(return_value=client)
        enricher = LlmEnricher(client_factory=factory)

        assert factory.call_count == 0
        enricher.enrich("a", EnrichMode.TAGS_ONLY)
        enricher.enrich("b", EnrichMode.TAGS_ONLY)

        assert factory.call_count == 1

    def test_factory_errors_propagate(self) -> None:
        """Missing credentials surface on the first enrichment."""
        factory = MagicMock(side_effect=LlmAuthError("no key"))

        with pytest.raises(LlmAuthError):
            LlmEnricher(client_factory=factory).enrich("a", EnrichMode.FULL)

    def test_requires_client_or_factory(self) -> None:
        """Constructing without a client source is an error."""
        with pytest.raises(ValueError, match="client"):
            LlmEnricher()
