"""Wiring of the pipeline components around one connected store."""

from dataclasses import dataclass

import structlog

from clerkbook.capture.service import CaptureService
from clerkbook.extraction.content_store import ContentStore, LocalContentStore
from clerkbook.extraction.extractor import DefaultTextExtractor, TextExtractor
from clerkbook.fetch.client import Fetcher, HttpFetcher
from clerkbook.idempotency.cache import IdempotencyCache
from clerkbook.items.dedup import DedupIndex
from clerkbook.items.repository import ItemRepository
from clerkbook.jobs.models import JobType
from clerkbook.jobs.queue import JobQueue
from clerkbook.jobs.runner import JobRunner
from clerkbook.ledger.ledger import CreditLedger
from clerkbook.llm.enricher import LlmEnricher
from clerkbook.llm.factory import create_llm_client
from clerkbook.llm.protocols import Enricher
from clerkbook.pipeline.enqueue import EnrichmentEnqueuer
from clerkbook.pipeline.enrich import EnrichItemRunner
from clerkbook.pipeline.extract import ExtractFileRunner, ExtractUrlRunner
from clerkbook.settings.app import AppSettings
from clerkbook.store.store import StateStore


logger = structlog.get_logger()


@dataclass
class App:
    """Components sharing one ``StateStore`` connection.

    A store connection belongs to one thread; build one ``App`` per worker.
    """

    store: StateStore
    items: ItemRepository
    dedup: DedupIndex
    queue: JobQueue
    ledger: CreditLedger
    idempotency: IdempotencyCache
    enqueuer: EnrichmentEnqueuer
    capture: CaptureService
    runner: JobRunner


def build_app(
    store: StateStore,
    settings: AppSettings | None = None,
    *,
    enricher: Enricher | None = None,
    extractor: TextExtractor | None = None,
    fetcher: Fetcher | None = None,
    content_store: ContentStore | None = None,
) -> App:
    """Build the component graph for a connected store.

    Collaborators not passed in are built from ``settings``. The default
    enricher builds its Gemini client on first use, so only enrichment
    jobs need ``GEMINI_API_KEY``.

    Args:
        store: Connected state store.
        settings: Application settings (defaults to the environment).
        enricher: Enrichment collaborator.
        extractor: Text extractor.
        fetcher: URL fetcher.
        content_store: Upload storage.

    Returns:
        The wired application.
    """
    settings = settings or AppSettings()

    items = ItemRepository(store)
    dedup = DedupIndex(items)
    queue = JobQueue(store)
    ledger = CreditLedger(
        store,
        plans=settings.plans(),
        default_plan=settings.default_plan,
        costs=settings.credit_costs(),
    )
    idempotency = IdempotencyCache(store)
    enqueuer = EnrichmentEnqueuer(store, items, queue, ledger)

    if enricher is None:
        enricher = LlmEnricher(
            client_factory=lambda: create_llm_client(
                api_key=settings.gemini_api_key,
                model=settings.gemini_model,
                timeout_seconds=settings.llm_timeout_seconds,
            )
        )
    extractor = extractor or DefaultTextExtractor()
    fetcher = fetcher or HttpFetcher(settings.fetch_config())
    content_store = content_store or LocalContentStore(settings.files_dir)

    runner = JobRunner(
        queue,
        {
            JobType.EXTRACT_URL: ExtractUrlRunner(store, items, fetcher, extractor, enqueuer),
            JobType.EXTRACT_FILE: ExtractFileRunner(
                store, items, content_store, extractor, enqueuer
            ),
            JobType.ENRICH_ITEM: EnrichItemRunner(store, items, ledger, enricher),
        },
    )
    capture = CaptureService(
        store,
        items,
        dedup,
        queue,
        enqueuer,
        idempotency,
        content_store,
        max_upload_bytes=settings.max_upload_bytes,
    )

    logger.debug("app_built", component="app", db_path=str(store.db_path))
    return App(
        store=store,
        items=items,
        dedup=dedup,
        queue=queue,
        ledger=ledger,
        idempotency=idempotency,
        enqueuer=enqueuer,
        capture=capture,
        runner=runner,
    )
