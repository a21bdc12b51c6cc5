"""Enrichment output schema and outcome types."""

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError

from clerkbook.llm.errors import LlmProcessingError


MAX_BULLETS = 20
MAX_QUOTES = 12
MAX_TAGS = 20
MAX_QUOTE_CHARS = 5000
MAX_WHY_CHARS = 1000
MAX_TITLE_CHARS = 500


class EnrichMode(str, Enum):
    """Enrichment depth, chosen from the length of the source text."""

    FULL = "full"
    TAGS_ONLY = "tags_only"


class EnrichOutcome(str, Enum):
    """Three-way result of an enrichment run.

    - FULL: Abstract, bullets, quotes and tags stored
    - DEGRADED: Text too short; abstract and tags only, with a notice
    - FAILED: Model call or validation failed; item marked failed
    """

    FULL = "full"
    DEGRADED = "degraded"
    FAILED = "failed"


class QuoteResult(BaseModel):
    """A quote returned by the model with its significance."""

    model_config = ConfigDict(frozen=True, extra="forbid", strict=True)

    quote: Annotated[StrictStr, Field(min_length=1, max_length=MAX_QUOTE_CHARS)]
    why: Annotated[StrictStr, Field(max_length=MAX_WHY_CHARS)] = ""


class EnrichmentResult(BaseModel):
    """Validated model output.

    Types are not coerced: a number where a string belongs, or an unknown
    key, fails validation instead of being stored.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", strict=True)

    abstract: StrictStr = ""
    bullets: list[StrictStr] = Field(default_factory=list, max_length=MAX_BULLETS)
    quotes: list[QuoteResult] = Field(default_factory=list, max_length=MAX_QUOTES)
    tags: list[StrictStr] = Field(default_factory=list, max_length=MAX_TAGS)
    title: Annotated[StrictStr, Field(max_length=MAX_TITLE_CHARS)] | None = None


def validate_enrichment(raw: Any, mode: EnrichMode) -> EnrichmentResult:
    """Validate a raw enrichment mapping for the given mode.

    Full mode additionally requires a non-empty abstract.

    Args:
        raw: Untrusted mapping returned by an ``Enricher``.
        mode: Mode the enrichment ran in.

    Returns:
        The validated result.

    Raises:
        LlmProcessingError: If the mapping does not match the schema.
    """
    if not isinstance(raw, dict):
        msg = f"Enrichment output must be an object, got {type(raw).__name__}"
        raise LlmProcessingError(msg)
    try:
        result = EnrichmentResult.model_validate(raw)
    except ValidationError as e:
        msg = f"Enrichment output failed validation: {e.error_count()} error(s)"
        raise LlmProcessingError(msg) from e

    if mode == EnrichMode.FULL and not result.abstract.strip():
        msg = "Enrichment output is missing the abstract"
        raise LlmProcessingError(msg)
    return result
