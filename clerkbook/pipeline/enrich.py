"""Runner for ``enrich_item`` jobs."""

from typing import Any

import structlog

from clerkbook.items.models import Item, Quote
from clerkbook.items.repository import ItemRepository
from clerkbook.jobs.models import EnrichItemPayload, Job
from clerkbook.jobs.runner import FailureKind
from clerkbook.ledger.ledger import CreditLedger
from clerkbook.llm.errors import LlmApiError, LlmAuthError, LlmProcessingError
from clerkbook.llm.models import EnrichmentResult, EnrichMode, EnrichOutcome, validate_enrichment
from clerkbook.llm.protocols import Enricher
from clerkbook.pipeline.errors import EnrichmentError, ItemMissingError
from clerkbook.store.errors import ItemNotFoundError
from clerkbook.store.store import StateStore


logger = structlog.get_logger()

DEGRADED_NOTICE = (
    "Text was too short for a full summary; only a short abstract and tags were generated"
)
NO_TEXT_MESSAGE = "Item has no text to enrich; retry extraction or paste the text instead"
NOT_CONFIGURED_MESSAGE = "AI enrichment is not configured; retry later"
SERVICE_ERROR_MESSAGE = "AI enrichment service is unavailable; retry later"
REJECTED_MESSAGE = "AI enrichment request was rejected; retry later"
INVALID_OUTPUT_MESSAGE = "AI enrichment returned an unusable result; retry later"

# Fallback abstract length for degraded output with no abstract.
SNIPPET_CHARS = 280


def _squash(text: str) -> str:
    return " ".join(text.split())


def text_snippet(text: str, limit: int = SNIPPET_CHARS) -> str:
    """First ``limit`` characters of the text on one line, cut at a word."""
    flat = _squash(text)
    if len(flat) <= limit:
        return flat
    cut = flat[:limit].rsplit(" ", 1)[0] or flat[:limit]
    return cut + "..."


class EnrichItemRunner:
    """Calls the enricher, validates its output and stores it on the item.

    The job was paid for when it was enqueued. Any failure marks the item
    ``failed`` and refunds that charge.
    """

    def __init__(
        self,
        store: StateStore,
        items: ItemRepository,
        ledger: CreditLedger,
        enricher: Enricher,
    ) -> None:
        """Initialize the runner.

        Args:
            store: Connected state store.
            items: Item repository.
            ledger: Credit ledger (for refunds).
            enricher: Enrichment collaborator.
        """
        self._store = store
        self._items = items
        self._ledger = ledger
        self._enricher = enricher
        self._log = logger.bind(component="enrich_item")

    def run(self, job: Job) -> dict[str, Any]:
        """Run an ``enrich_item`` job.

        Args:
            job: Claimed job.

        Returns:
            Job result payload including the ``EnrichOutcome``.

        Raises:
            EnrichmentError: If the item has no text, or the enrichment call
                or its output fails.
        """
        payload = EnrichItemPayload.model_validate(job.payload)
        mode = EnrichMode(payload.mode)
        item = self._items.get(payload.item_id)
        if item is None:
            raise ItemMissingError(payload.item_id)

        text = (item.cleaned_text or "").strip()
        if not text:
            raise EnrichmentError(NO_TEXT_MESSAGE)

        result = self._call_enricher(item, text, mode, payload.style)
        if mode == EnrichMode.FULL:
            outcome = self._store_full(item, text, result)
        else:
            outcome = self._store_degraded(item, text, result)

        stored = self._items.get(item.id) or item
        self._log.info(
            "item_enriched",
            item_id=item.id,
            outcome=outcome.value,
            bullets=len(stored.bullets),
            quotes=len(stored.quotes),
            tags=len(stored.tags),
        )
        return {
            "item_id": item.id,
            "outcome": outcome.value,
            "bullets": len(stored.bullets),
            "quotes": len(stored.quotes),
            "tags": len(stored.tags),
        }

    def on_failure(self, job: Job, message: str) -> None:
        """Mark the item ``failed`` and refund the job's charge, together."""
        charge_ref = job.payload.get("charge_ref")
        with self._store.transaction("enrich_failed"):
            if job.item_id is not None:
                try:
                    self._items.mark_failed(job.item_id, message)
                except ItemNotFoundError:
                    self._log.warning("failed_item_missing", job_id=job.id, item_id=job.item_id)
            refunded = self._ledger.refund(charge_ref) if charge_ref else 0

        self._log.info(
            "enrich_failure_handled",
            job_id=job.id,
            item_id=job.item_id,
            outcome=EnrichOutcome.FAILED.value,
            refunded=refunded,
        )

    def _call_enricher(
        self,
        item: Item,
        text: str,
        mode: EnrichMode,
        style: str | None,
    ) -> EnrichmentResult:
        try:
            raw = self._enricher.enrich(text, mode, style)
        except LlmApiError as e:
            self._log.warning("enrich_call_failed", item_id=item.id, status_code=e.status_code)
            if e.is_transient:
                raise EnrichmentError(SERVICE_ERROR_MESSAGE, kind=FailureKind.TRANSIENT) from e
            raise EnrichmentError(REJECTED_MESSAGE, kind=FailureKind.CONTENT) from e
        except LlmAuthError as e:
            self._log.error("enrich_not_configured", item_id=item.id, error=str(e))
            raise EnrichmentError(NOT_CONFIGURED_MESSAGE, kind=FailureKind.TRANSIENT) from e
        except LlmProcessingError as e:
            self._log.warning("enrich_unparseable", item_id=item.id, error=str(e))
            raise EnrichmentError(INVALID_OUTPUT_MESSAGE) from e

        try:
            return validate_enrichment(raw, mode)
        except LlmProcessingError as e:
            self._log.warning("enrich_invalid", item_id=item.id, mode=mode.value, error=str(e))
            raise EnrichmentError(INVALID_OUTPUT_MESSAGE) from e

    def _store_full(self, item: Item, text: str, result: EnrichmentResult) -> EnrichOutcome:
        quotes = self._verbatim_quotes(item, text, result)
        self._items.mark_enriched(
            item.id,
            abstract=result.abstract.strip(),
            bullets=[b.strip() for b in result.bullets if b.strip()],
            quotes=quotes,
            tags=result.tags,
            generated_title=self._generated_title(item, result),
        )
        return EnrichOutcome.FULL

    def _store_degraded(self, item: Item, text: str, result: EnrichmentResult) -> EnrichOutcome:
        self._items.mark_enriched(
            item.id,
            abstract=result.abstract.strip() or text_snippet(text),
            bullets=[],
            quotes=[],
            tags=result.tags,
            generated_title=self._generated_title(item, result),
            notice=DEGRADED_NOTICE,
        )
        return EnrichOutcome.DEGRADED

    def _generated_title(self, item: Item, result: EnrichmentResult) -> str | None:
        if item.title or not result.title:
            return item.generated_title
        return _squash(result.title) or None

    def _verbatim_quotes(self, item: Item, text: str, result: EnrichmentResult) -> list[Quote]:
        """Keep only quotes that appear in the text (whitespace-insensitive)."""
        haystack = _squash(text).casefold()
        kept: list[Quote] = []
        for q in result.quotes:
            quote = _squash(q.quote)
            if quote and quote.casefold() in haystack:
                kept.append(Quote(quote=quote, why=q.why.strip() or None))
        dropped = len(result.quotes) - len(kept)
        if dropped:
            self._log.info("quotes_not_verbatim", item_id=item.id, dropped=dropped)
        return kept
