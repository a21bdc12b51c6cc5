"""Capture operations: URL, paste and file intake plus manual retries.

Every capture follows the same path: validate, look up the dedup index,
then create the item and its first job in one transaction. A lost insert
race on the fingerprint index is answered as a dedup hit for the winner.
"""

from collections.abc import Callable
from datetime import datetime
from pathlib import PurePath
from urllib.parse import urlsplit

import structlog

from clerkbook.capture.errors import CaptureValidationError, InsufficientCreditsError
from clerkbook.capture.models import (
    HTTP_CREATED,
    HTTP_OK,
    CaptureResponse,
    CaptureResult,
    CreditsInfo,
)
from clerkbook.extraction.content_store import ContentStore, sanitize_filename
from clerkbook.extraction.models import (
    FILE_TYPES_BY_EXTENSION,
    normalize_mime_type,
)
from clerkbook.idempotency.cache import IdempotencyCache, sanitize_idempotency_key
from clerkbook.items.dedup import DedupIndex
from clerkbook.items.fingerprint import file_fingerprint, paste_fingerprint, url_fingerprint
from clerkbook.items.models import Item, SourceType
from clerkbook.items.repository import MAX_CLEANED_TEXT_CHARS, ItemRepository
from clerkbook.jobs.models import ExtractFilePayload, ExtractUrlPayload, JobType
from clerkbook.jobs.queue import JobQueue
from clerkbook.pipeline.enqueue import EnqueueOutcome, EnrichmentEnqueuer
from clerkbook.settings.app import DEFAULT_MAX_UPLOAD_BYTES
from clerkbook.store.errors import DuplicateFingerprintError
from clerkbook.store.store import StateStore
from clerkbook.store.timestamps import utc_now
from clerkbook.store.url import extract_domain


logger = structlog.get_logger()

MAX_URL_CHARS = 2048
MAX_TITLE_CHARS = 500
ALLOWED_SCHEMES = frozenset({"http", "https"})
GENERIC_MIME_TYPES = frozenset({"", "application/octet-stream"})
FILE_TYPE_MESSAGE = "File type not allowed. Use PDF, DOCX, TXT, or MD."


def validate_capture_url(url: str) -> str:
    """Check that a URL is an absolute http(s) URL with a host.

    Args:
        url: Client-supplied URL.

    Returns:
        The stripped URL.

    Raises:
        CaptureValidationError: If the URL is unusable.
    """
    cleaned = (url or "").strip()
    if not cleaned:
        raise CaptureValidationError("url", "url is required")
    if len(cleaned) > MAX_URL_CHARS:
        raise CaptureValidationError("url", f"url is longer than {MAX_URL_CHARS} characters")
    parts = urlsplit(cleaned)
    if parts.scheme.lower() not in ALLOWED_SCHEMES or not parts.hostname:
        raise CaptureValidationError("url", "url must be an http(s) URL with a host")
    return cleaned


def resolve_file_type(filename: str, mime_type: str | None) -> str:
    """Check an upload's extension and MIME type against the allowed types.

    A missing or generic MIME type is inferred from the extension.

    Args:
        filename: Client-supplied filename.
        mime_type: Client-supplied MIME type.

    Returns:
        The MIME type to store.

    Raises:
        CaptureValidationError: If the type is not allowed.
    """
    extension = PurePath(filename).suffix.lower()
    expected = FILE_TYPES_BY_EXTENSION.get(extension)
    if expected is None:
        raise CaptureValidationError("file", FILE_TYPE_MESSAGE)

    kind = normalize_mime_type(mime_type)
    if kind in GENERIC_MIME_TYPES:
        return expected
    if kind not in FILE_TYPES_BY_EXTENSION.values():
        raise CaptureValidationError("file", FILE_TYPE_MESSAGE)
    return kind


def _clean_title(title: str | None) -> str | None:
    if title is None:
        return None
    cleaned = " ".join(title.split())[:MAX_TITLE_CHARS]
    return cleaned or None


class CaptureService:
    """Entry point for captures and manual pipeline re-entry."""

    def __init__(
        self,
        store: StateStore,
        items: ItemRepository,
        dedup: DedupIndex,
        queue: JobQueue,
        enqueuer: EnrichmentEnqueuer,
        idempotency: IdempotencyCache,
        content_store: ContentStore,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        """Initialize the service.

        Args:
            store: Connected state store shared by all collaborators.
            items: Item repository.
            dedup: Dedup index.
            queue: Job queue.
            enqueuer: Ledger-gated enrichment enqueuer.
            idempotency: Idempotency cache.
            content_store: Storage for uploaded files.
            max_upload_bytes: Largest accepted file upload.
        """
        self._store = store
        self._items = items
        self._dedup = dedup
        self._queue = queue
        self._enqueuer = enqueuer
        self._idempotency = idempotency
        self._content_store = content_store
        self._max_upload_bytes = max_upload_bytes
        self._log = logger.bind(component="capture")

    # ===== Captures =====

    def capture_url(
        self,
        owner_id: str,
        url: str,
        *,
        title: str | None = None,
        collection_id: str | None = None,
        idempotency_key: str | None = None,
        now: datetime | None = None,
    ) -> CaptureResponse:
        """Capture a web page and queue its extraction.

        Args:
            owner_id: Capturing user.
            url: Page URL.
            title: Optional user title (wins over the extracted one).
            collection_id: Collection to add the item to.
            idempotency_key: Optional client key for safe retries.
            now: Clock override.

        Returns:
            201 with the new item and job, or 200 for a dedup hit.

        Raises:
            CaptureValidationError: If the URL is unusable.
            InvalidIdempotencyKeyError: If the key is malformed.
            CollectionNotFoundError: If the collection is not the owner's.
        """
        cleaned = validate_capture_url(url)
        key = sanitize_idempotency_key(idempotency_key)
        fingerprint = url_fingerprint(cleaned)

        def create() -> tuple[int, CaptureResult]:
            existing = self._dedup.find_existing(owner_id, SourceType.URL, fingerprint)
            if existing is not None:
                return self._dedup_hit(existing, collection_id, now)
            try:
                with self._store.transaction("capture_url"):
                    item = self._items.create(
                        owner_id,
                        SourceType.URL,
                        fingerprint,
                        url=cleaned,
                        domain=extract_domain(fingerprint),
                        title=_clean_title(title),
                        now=now,
                    )
                    self._attach(item, collection_id, now)
                    job_id = self._queue.enqueue(
                        JobType.EXTRACT_URL,
                        ExtractUrlPayload(item_id=item.id, url=cleaned),
                        owner_id=owner_id,
                        item_id=item.id,
                        now=now,
                    )
            except DuplicateFingerprintError:
                return self._race_lost(owner_id, SourceType.URL, fingerprint, collection_id, now)
            return HTTP_CREATED, CaptureResult(item_id=item.id, job_id=job_id, status=item.status)

        return self._idempotent(owner_id, "url", key, create, now)

    def capture_paste(
        self,
        owner_id: str,
        text: str,
        *,
        title: str | None = None,
        collection_id: str | None = None,
        idempotency_key: str | None = None,
        now: datetime | None = None,
    ) -> CaptureResponse:
        """Capture pasted text and queue its enrichment directly.

        The enrichment is paid for up front; when the balance is short the
        item is still created, flagged ``insufficient_credits``, and the
        response carries the shortfall in ``credits``.

        Args:
            owner_id: Capturing user.
            text: Pasted text.
            title: Optional user title.
            collection_id: Collection to add the item to.
            idempotency_key: Optional client key for safe retries.
            now: Clock override.

        Returns:
            201 with the new item (and job when paid for), or 200 for a dedup hit.

        Raises:
            CaptureValidationError: If the text is empty.
            InvalidIdempotencyKeyError: If the key is malformed.
            CollectionNotFoundError: If the collection is not the owner's.
        """
        cleaned = (text or "").strip()
        if not cleaned:
            raise CaptureValidationError("text", "text is required")
        key = sanitize_idempotency_key(idempotency_key)
        fingerprint = paste_fingerprint(cleaned)

        def create() -> tuple[int, CaptureResult]:
            existing = self._dedup.find_existing(owner_id, SourceType.PASTE, fingerprint)
            if existing is not None:
                return self._dedup_hit(existing, collection_id, now)
            try:
                with self._store.transaction("capture_paste"):
                    item = self._items.create(
                        owner_id,
                        SourceType.PASTE,
                        fingerprint,
                        title=_clean_title(title),
                        raw_text=text,
                        cleaned_text=cleaned[:MAX_CLEANED_TEXT_CHARS],
                        now=now,
                    )
                    self._attach(item, collection_id, now)
                    outcome = self._enqueuer.enqueue(owner_id, item.id, cleaned, now=now)
            except DuplicateFingerprintError:
                return self._race_lost(owner_id, SourceType.PASTE, fingerprint, collection_id, now)
            return HTTP_CREATED, CaptureResult(
                item_id=item.id,
                job_id=outcome.job_id,
                status=item.status,
                credits=_credits_info(outcome),
            )

        return self._idempotent(owner_id, "paste", key, create, now)

    def capture_file(
        self,
        owner_id: str,
        content: bytes,
        filename: str,
        mime_type: str | None = None,
        *,
        title: str | None = None,
        collection_id: str | None = None,
        idempotency_key: str | None = None,
        now: datetime | None = None,
    ) -> CaptureResponse:
        """Store an uploaded file and queue its extraction.

        Args:
            owner_id: Capturing user.
            content: File bytes.
            filename: Client-supplied filename.
            mime_type: Client-supplied MIME type.
            title: Optional user title.
            collection_id: Collection to add the item to.
            idempotency_key: Optional client key for safe retries.
            now: Clock override.

        Returns:
            201 with the new item and job, or 200 for a dedup hit.

        Raises:
            CaptureValidationError: If the file is empty, too large or of a
                type that is not allowed.
            InvalidIdempotencyKeyError: If the key is malformed.
            CollectionNotFoundError: If the collection is not the owner's.
        """
        name = (filename or "").strip() or "file"
        kind = resolve_file_type(name, mime_type)
        if not content:
            raise CaptureValidationError("file", "file is empty")
        if len(content) > self._max_upload_bytes:
            limit_mib = self._max_upload_bytes / (1024 * 1024)
            raise CaptureValidationError("file", f"file is larger than {limit_mib:g} MiB")
        key = sanitize_idempotency_key(idempotency_key)
        fingerprint = file_fingerprint(content)

        def create() -> tuple[int, CaptureResult]:
            existing = self._dedup.find_existing(owner_id, SourceType.FILE, fingerprint)
            if existing is not None:
                return self._dedup_hit(existing, collection_id, now)

            file_key = self._content_store.save(owner_id, fingerprint, name, content)
            try:
                with self._store.transaction("capture_file"):
                    item = self._items.create(
                        owner_id,
                        SourceType.FILE,
                        fingerprint,
                        title=_clean_title(title),
                        file_path=file_key,
                        mime_type=kind,
                        original_filename=sanitize_filename(name),
                        now=now,
                    )
                    self._attach(item, collection_id, now)
                    job_id = self._queue.enqueue(
                        JobType.EXTRACT_FILE,
                        ExtractFilePayload(item_id=item.id, file_path=file_key, mime_type=kind),
                        owner_id=owner_id,
                        item_id=item.id,
                        now=now,
                    )
            except DuplicateFingerprintError:
                status, result = self._race_lost(
                    owner_id, SourceType.FILE, fingerprint, collection_id, now
                )
                winner = self._items.get(result.item_id)
                if winner is not None and winner.file_path != file_key:
                    self._content_store.delete(file_key)
                return status, result
            except Exception:
                self._content_store.delete(file_key)
                raise
            return HTTP_CREATED, CaptureResult(item_id=item.id, job_id=job_id, status=item.status)

        return self._idempotent(owner_id, "file", key, create, now)

    # ===== Re-entry =====

    def retry_item(
        self,
        owner_id: str,
        item_id: str,
        now: datetime | None = None,
    ) -> CaptureResult:
        """Re-run the step an item is missing after a failure.

        Queues extraction when the item has no text yet, otherwise an
        enrichment (skipped if one is already pending).

        Raises:
            ItemNotFoundError: If the owner has no such item.
            InsufficientCreditsError: If the enrichment cannot be paid for.
        """
        return self._reenter(owner_id, item_id, force=False, style=None, now=now)

    def re_enrich(
        self,
        owner_id: str,
        item_id: str,
        style: str | None = None,
        now: datetime | None = None,
    ) -> CaptureResult:
        """Enrich an item again, replacing its previous enrichment.

        Args:
            owner_id: Item owner.
            item_id: Item to re-enrich.
            style: Optional summary style.
            now: Clock override.

        Returns:
            The item and the new job.

        Raises:
            ItemNotFoundError: If the owner has no such item.
            InsufficientCreditsError: If the enrichment cannot be paid for.
        """
        return self._reenter(owner_id, item_id, force=True, style=style, now=now)

    def _reenter(
        self,
        owner_id: str,
        item_id: str,
        *,
        force: bool,
        style: str | None,
        now: datetime | None,
    ) -> CaptureResult:
        now = now or utc_now()
        with self._store.transaction("reenter_item"):
            item = self._items.get_for_owner(owner_id, item_id)
            item = self._items.reenter(item.id, now=now)

            if not item.has_text:
                job_id = self._enqueue_extraction(item, now)
                self._log.info("item_reentered", item_id=item.id, job_id=job_id, step="extract")
                return CaptureResult(item_id=item.id, job_id=job_id, status=item.status)

            outcome = self._enqueuer.enqueue(
                owner_id, item.id, item.cleaned_text, force=force, style=style, now=now
            )

        if outcome.blocked:
            raise InsufficientCreditsError(item.id, outcome.required, outcome.balance or 0)

        self._log.info(
            "item_reentered",
            item_id=item.id,
            job_id=outcome.job_id,
            step="enrich",
            skipped=outcome.skipped,
        )
        refreshed = self._items.get(item.id) or item
        return CaptureResult(
            item_id=item.id,
            job_id=outcome.job_id,
            status=refreshed.status,
            credits=_credits_info(outcome),
        )

    def _enqueue_extraction(self, item: Item, now: datetime) -> str | None:
        if item.source_type == SourceType.URL and item.url:
            job_type = JobType.EXTRACT_URL
            payload: ExtractUrlPayload | ExtractFilePayload = ExtractUrlPayload(
                item_id=item.id, url=item.url
            )
        elif item.source_type == SourceType.FILE and item.file_path and item.mime_type:
            job_type = JobType.EXTRACT_FILE
            payload = ExtractFilePayload(
                item_id=item.id, file_path=item.file_path, mime_type=item.mime_type
            )
        else:
            return None

        if self._queue.has_pending(item.id, job_type):
            return None
        return self._queue.enqueue(
            job_type, payload, owner_id=item.owner_id, item_id=item.id, now=now
        )

    # ===== Helpers =====

    def _idempotent(
        self,
        owner_id: str,
        operation: str,
        key: str | None,
        create: Callable[[], tuple[int, CaptureResult]],
        now: datetime | None,
    ) -> CaptureResponse:
        """Run a capture once per idempotency key, replaying stored responses.

        Keys are stored as ``<operation>:<key>`` so a client key reused for a
        different kind of capture never replays the other operation's response.
        """
        if key is not None:
            key = f"{operation}:{key}"
            cached = self._idempotency.get(owner_id, key)
            if cached is not None:
                self._log.info("idempotent_replay", owner_id=owner_id, key=key)
                return CaptureResponse(
                    status_code=cached.status_code, body=cached.body, replayed=True
                )

        status_code, result = create()
        body = result.model_dump_json()

        if key is not None and not self._idempotency.put(
            owner_id, key, status_code, body, now=now
        ):
            cached = self._idempotency.get(owner_id, key)
            if cached is not None:
                return CaptureResponse(
                    status_code=cached.status_code, body=cached.body, replayed=True
                )
        return CaptureResponse(status_code=status_code, body=body)

    def _attach(self, item: Item, collection_id: str | None, now: datetime | None) -> None:
        if collection_id is not None:
            self._items.attach_to_collection(item.owner_id, collection_id, item.id, now=now)

    def _dedup_hit(
        self,
        item: Item,
        collection_id: str | None,
        now: datetime | None,
    ) -> tuple[int, CaptureResult]:
        refreshed = self._dedup.record_hit(item, collection_id=collection_id, now=now)
        return HTTP_OK, CaptureResult(
            item_id=refreshed.id, deduped=True, status=refreshed.status
        )

    def _race_lost(
        self,
        owner_id: str,
        source_type: SourceType,
        fingerprint: str,
        collection_id: str | None,
        now: datetime | None,
    ) -> tuple[int, CaptureResult]:
        winner = self._dedup.find_existing(owner_id, source_type, fingerprint)
        if winner is None:
            raise DuplicateFingerprintError(owner_id, source_type.value, fingerprint)
        self._log.info("capture_race_lost", item_id=winner.id, source_type=source_type.value)
        return self._dedup_hit(winner, collection_id, now)


def _credits_info(outcome: EnqueueOutcome) -> CreditsInfo | None:
    if outcome.skipped:
        return None
    return CreditsInfo(
        mode=outcome.mode.value,
        required=outcome.required,
        balance=outcome.balance,
        insufficient=outcome.blocked,
    )
