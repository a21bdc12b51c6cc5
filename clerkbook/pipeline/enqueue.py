"""Ledger-gated creation of enrichment jobs."""

import uuid
from datetime import datetime

import structlog
from pydantic import BaseModel, ConfigDict

from clerkbook.items.models import BlockedReason
from clerkbook.items.repository import ItemRepository
from clerkbook.jobs.models import EnrichItemPayload, JobType
from clerkbook.jobs.queue import JobQueue
from clerkbook.ledger.ledger import CreditLedger
from clerkbook.ledger.models import LedgerReason
from clerkbook.llm.models import EnrichMode
from clerkbook.store.store import StateStore
from clerkbook.store.timestamps import utc_now


logger = structlog.get_logger()

# Shorter texts get the cheaper tags-only pass.
MIN_ENRICH_CHARS = 500


def choose_mode(text: str | None) -> EnrichMode:
    """Pick the enrichment mode from the length of the stripped text."""
    if len((text or "").strip()) < MIN_ENRICH_CHARS:
        return EnrichMode.TAGS_ONLY
    return EnrichMode.FULL


def reason_for(mode: EnrichMode) -> LedgerReason:
    """Get the ledger reason charged for an enrichment mode."""
    if mode == EnrichMode.TAGS_ONLY:
        return LedgerReason.ENRICH_ITEM_TAGS_ONLY
    return LedgerReason.ENRICH_ITEM_FULL


def insufficient_notice(required: int, balance: int) -> str:
    """User-facing notice stored on an item blocked by its balance."""
    return (
        f"Not enough credits to enrich (needs {required}, balance {balance}); "
        "add credits or wait for the monthly reset, then re-enrich"
    )


class EnqueueOutcome(BaseModel):
    """Result of asking for an enrichment job.

    Exactly one of ``job_id``, ``skipped`` or ``blocked`` describes what
    happened. ``blocked`` is the accounting rejection: no job was created
    and ``required``/``balance`` give the shortfall.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: EnrichMode
    job_id: str | None = None
    skipped: bool = False
    blocked: bool = False
    required: int = 0
    balance: int | None = None

    @property
    def enqueued(self) -> bool:
        """Whether a job was created."""
        return self.job_id is not None


class EnrichmentEnqueuer:
    """Debits the ledger and enqueues an ``enrich_item`` job atomically."""

    def __init__(
        self,
        store: StateStore,
        items: ItemRepository,
        queue: JobQueue,
        ledger: CreditLedger,
    ) -> None:
        """Initialize the enqueuer.

        Args:
            store: Connected state store (shared by the collaborators).
            items: Item repository.
            queue: Job queue.
            ledger: Credit ledger.
        """
        self._store = store
        self._items = items
        self._queue = queue
        self._ledger = ledger
        self._log = logger.bind(component="enqueue_enrich")

    def enqueue(
        self,
        owner_id: str,
        item_id: str,
        text: str | None,
        *,
        force: bool = False,
        style: str | None = None,
        now: datetime | None = None,
    ) -> EnqueueOutcome:
        """Charge for and enqueue enrichment of an item.

        The debit, the job row and the ledger entry referencing the job are
        written in one transaction; on an insufficient balance none of them
        exist and the item is flagged ``insufficient_credits`` instead.

        Args:
            owner_id: Item owner, whose balance is charged.
            item_id: Item to enrich.
            text: The item's cleaned text (decides the mode).
            force: Enqueue even if an enrichment job is already pending.
            style: Optional summary style passed to the enricher.
            now: Clock override.

        Returns:
            What happened.
        """
        now = now or utc_now()
        mode = choose_mode(text)
        log = self._log.bind(owner_id=owner_id, item_id=item_id, mode=mode.value)

        with self._store.transaction("enqueue_enrich"):
            if not force and self._queue.has_pending(item_id, JobType.ENRICH_ITEM):
                log.info("enrich_enqueue_skipped", reason="already_pending")
                return EnqueueOutcome(mode=mode, skipped=True)

            job_id = str(uuid.uuid4())
            debit = self._ledger.try_debit(
                owner_id,
                reason_for(mode),
                job_id=job_id,
                item_id=item_id,
                now=now,
            )
            if not debit.ok:
                self._items.mark_blocked(
                    item_id,
                    BlockedReason.INSUFFICIENT_CREDITS,
                    insufficient_notice(debit.required, debit.balance),
                    now=now,
                )
                log.info(
                    "enrich_blocked",
                    required=debit.required,
                    balance=debit.balance,
                )
                return EnqueueOutcome(
                    mode=mode,
                    blocked=True,
                    required=debit.required,
                    balance=debit.balance,
                )

            self._queue.enqueue(
                JobType.ENRICH_ITEM,
                EnrichItemPayload(
                    item_id=item_id,
                    mode=mode.value,
                    style=style,
                    charge_ref=job_id,
                ),
                owner_id=owner_id,
                item_id=item_id,
                job_id=job_id,
                now=now,
            )
            self._items.clear_blocked(item_id, now=now)

        return EnqueueOutcome(
            mode=mode,
            job_id=job_id,
            required=debit.required,
            balance=debit.balance,
        )
