"""LLM-backed implementation of the ``Enricher`` collaborator."""

from collections.abc import Callable
from typing import Any

import structlog

from clerkbook.llm.errors import LlmProcessingError
from clerkbook.llm.json_utils import parse_json_object
from clerkbook.llm.models import EnrichMode
from clerkbook.llm.prompts import build_enrich_prompt, system_instruction_for
from clerkbook.llm.protocols import LlmClient


logger = structlog.get_logger()


class LlmEnricher:
    """Turns item text into a raw enrichment mapping with one model call.

    The client can be given directly or built on first use from
    ``client_factory``, so processes that never enrich need no credentials.
    """

    def __init__(
        self,
        client: LlmClient | None = None,
        client_factory: Callable[[], LlmClient] | None = None,
    ) -> None:
        """Initialize the enricher.

        Args:
            client: LLM client used for generation.
            client_factory: Builds the client on first use when ``client``
                is not given.

        Raises:
            ValueError: If neither argument is given.
        """
        if client is None and client_factory is None:
            msg = "LlmEnricher needs a client or a client factory"
            raise ValueError(msg)
        self._client = client
        self._client_factory = client_factory
        self._log = logger.bind(component="llm", subcomponent="enricher")

    def _get_client(self) -> LlmClient:
        if self._client is not None:
            return self._client
        if self._client_factory is None:
            msg = "LlmEnricher needs a client or a client factory"
            raise ValueError(msg)
        self._client = self._client_factory()
        return self._client

    def enrich(self, text: str, mode: EnrichMode, style: str | None = None) -> dict[str, Any]:
        """Run enrichment for a text.

        Args:
            text: Cleaned source text.
            mode: Enrichment mode.
            style: Optional style hint.

        Returns:
            Parsed (unvalidated) JSON object from the model.

        Raises:
            LlmAuthError: If the client cannot be built.
            LlmApiError: If the model call fails.
            LlmProcessingError: If the response holds no JSON object.
        """
        prompt = build_enrich_prompt(text, mode, style)
        raw = self._get_client().generate_content(
            prompt, system_instruction=system_instruction_for(mode)
        )

        parsed = parse_json_object(raw)
        if parsed is None:
            self._log.warning(
                "enrich_parse_failed",
                mode=mode.value,
                response_preview=raw[:200],
            )
            msg = "Could not parse model response as a JSON object"
            raise LlmProcessingError(msg)

        self._log.debug("enrich_response_parsed", mode=mode.value, keys=sorted(parsed))
        return parsed
