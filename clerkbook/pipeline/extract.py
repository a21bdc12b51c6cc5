"""Extraction runners for ``extract_url`` and ``extract_file`` jobs."""

from typing import Any

import structlog

from clerkbook.extraction.content_store import ContentStore
from clerkbook.extraction.errors import ExtractionError
from clerkbook.extraction.extractor import TextExtractor
from clerkbook.extraction.models import MIME_HTML, ExtractedText
from clerkbook.fetch.client import Fetcher
from clerkbook.fetch.redact import redact_url_credentials
from clerkbook.items.models import Item
from clerkbook.items.repository import ItemRepository
from clerkbook.jobs.models import ExtractFilePayload, ExtractUrlPayload, Job
from clerkbook.pipeline.enqueue import EnrichmentEnqueuer
from clerkbook.pipeline.errors import EMPTY_TEXT_MESSAGE, ItemMissingError, fetch_failure
from clerkbook.store.errors import ItemNotFoundError
from clerkbook.store.store import StateStore


logger = structlog.get_logger()


class _ExtractionRunner:
    """Shared success and failure handling for extraction runners."""

    component = "extract"

    def __init__(
        self,
        store: StateStore,
        items: ItemRepository,
        extractor: TextExtractor,
        enqueuer: EnrichmentEnqueuer,
    ) -> None:
        self._store = store
        self._items = items
        self._extractor = extractor
        self._enqueuer = enqueuer
        self._log = logger.bind(component=self.component)

    def _load_item(self, item_id: str) -> Item:
        item = self._items.get(item_id)
        if item is None:
            raise ItemMissingError(item_id)
        return item

    def _finish(self, job: Job, item: Item, extracted: ExtractedText) -> dict[str, Any]:
        """Store the text and request enrichment in one transaction."""
        if extracted.is_empty:
            raise ExtractionError(EMPTY_TEXT_MESSAGE)

        with self._store.transaction("finish_extraction"):
            updated = self._items.mark_extracted(item.id, extracted.text, title=extracted.title)
            outcome = self._enqueuer.enqueue(job.owner_id, item.id, updated.cleaned_text)

        self._log.info(
            "item_extracted",
            item_id=item.id,
            chars=len(updated.cleaned_text or ""),
            enrich_job_id=outcome.job_id,
            enrich_blocked=outcome.blocked,
        )
        return {
            "item_id": item.id,
            "chars": len(updated.cleaned_text or ""),
            "title": updated.title,
            "enrich_job_id": outcome.job_id,
            "enrich_mode": outcome.mode.value,
            "enrich_blocked": outcome.blocked,
        }

    def on_failure(self, job: Job, message: str) -> None:
        """Mark the job's item ``failed`` with the job's error message."""
        if job.item_id is None:
            return
        try:
            self._items.mark_failed(job.item_id, message)
        except ItemNotFoundError:
            self._log.warning("failed_item_missing", job_id=job.id, item_id=job.item_id)


class ExtractUrlRunner(_ExtractionRunner):
    """Fetches a URL, extracts its readable text and queues enrichment."""

    component = "extract_url"

    def __init__(
        self,
        store: StateStore,
        items: ItemRepository,
        fetcher: Fetcher,
        extractor: TextExtractor,
        enqueuer: EnrichmentEnqueuer,
    ) -> None:
        """Initialize the runner.

        Args:
            store: Connected state store.
            items: Item repository.
            fetcher: HTTP fetcher with a bounded timeout.
            extractor: Text extractor.
            enqueuer: Ledger-gated enrichment enqueuer.
        """
        super().__init__(store, items, extractor, enqueuer)
        self._fetcher = fetcher

    def run(self, job: Job) -> dict[str, Any]:
        """Run an ``extract_url`` job.

        Args:
            job: Claimed job.

        Returns:
            Job result payload.

        Raises:
            RunnerError: On fetch, parse or empty-text failures.
        """
        payload = ExtractUrlPayload.model_validate(job.payload)
        item = self._load_item(payload.item_id)

        result = self._fetcher.fetch(payload.url)
        if result.error is not None:
            self._log.warning(
                "url_fetch_failed",
                item_id=item.id,
                url=redact_url_credentials(payload.url),
                error_class=result.error.error_class.value,
                status_code=result.error.status_code,
            )
            raise fetch_failure(result.error)

        extracted = self._extractor.extract(result.body_bytes, result.content_type or MIME_HTML)
        summary = self._finish(job, item, extracted)
        summary["final_url"] = redact_url_credentials(result.final_url)
        return summary


class ExtractFileRunner(_ExtractionRunner):
    """Reads an uploaded file, extracts its text and queues enrichment."""

    component = "extract_file"

    def __init__(
        self,
        store: StateStore,
        items: ItemRepository,
        content_store: ContentStore,
        extractor: TextExtractor,
        enqueuer: EnrichmentEnqueuer,
    ) -> None:
        """Initialize the runner.

        Args:
            store: Connected state store.
            items: Item repository.
            content_store: Storage holding the uploaded bytes.
            extractor: Text extractor.
            enqueuer: Ledger-gated enrichment enqueuer.
        """
        super().__init__(store, items, extractor, enqueuer)
        self._content_store = content_store

    def run(self, job: Job) -> dict[str, Any]:
        """Run an ``extract_file`` job.

        Raises:
            RunnerError: On missing content, parse or empty-text failures.
        """
        payload = ExtractFilePayload.model_validate(job.payload)
        item = self._load_item(payload.item_id)

        raw = self._content_store.read(payload.file_path)
        extracted = self._extractor.extract(raw, payload.mime_type)
        return self._finish(job, item, extracted)
