"""Item persistence with status transitions guarded in SQL."""

import json
import sqlite3
import uuid
from collections.abc import Sequence
from datetime import datetime

import structlog

from clerkbook.items.models import BlockedReason, Item, ItemStatus, Quote, SourceType
from clerkbook.items.state_machine import ItemStateError, ItemStateMachine
from clerkbook.store.errors import (
    CollectionNotFoundError,
    DuplicateFingerprintError,
    ItemNotFoundError,
)
from clerkbook.store.metrics import StoreMetrics
from clerkbook.store.store import StateStore
from clerkbook.store.timestamps import format_ts, parse_ts, utc_now


logger = structlog.get_logger()

MAX_CLEANED_TEXT_CHARS = 500_000
MAX_TAG_LENGTH = 64

_FINGERPRINT_CONFLICT = "items.fingerprint"


def normalize_tags(tags: Sequence[str], limit: int = 20) -> list[str]:
    """Lowercase, trim and de-duplicate tag names, keeping first-seen order.

    Args:
        tags: Raw tag names.
        limit: Maximum number of tags kept.

    Returns:
        Normalized tag names.
    """
    seen: list[str] = []
    for tag in tags:
        name = " ".join(tag.split()).lower()[:MAX_TAG_LENGTH]
        if name and name not in seen:
            seen.append(name)
        if len(seen) >= limit:
            break
    return seen


class ItemRepository:
    """Reads and writes items, their quotes, tags and collection links.

    Every status change is validated by ``ItemStateMachine`` and written
    with ``WHERE status = <expected>`` so a concurrent writer cannot be
    silently overwritten.
    """

    def __init__(self, store: StateStore) -> None:
        """Initialize the repository.

        Args:
            store: Connected state store.
        """
        self._store = store
        self._metrics = StoreMetrics.get_instance()
        self._log = logger.bind(component="items")

    # ===== Creation and lookup =====

    def create(
        self,
        owner_id: str,
        source_type: SourceType,
        fingerprint: str,
        *,
        url: str | None = None,
        domain: str | None = None,
        title: str | None = None,
        raw_text: str | None = None,
        cleaned_text: str | None = None,
        file_path: str | None = None,
        mime_type: str | None = None,
        original_filename: str | None = None,
        now: datetime | None = None,
    ) -> Item:
        """Insert a new item in ``captured``.

        Args:
            owner_id: Item owner.
            source_type: Capture source type.
            fingerprint: Dedup fingerprint.
            url: Original URL (url sources).
            domain: Display domain (url sources).
            title: User-supplied title.
            raw_text: Pasted text (paste sources).
            cleaned_text: Text ready for enrichment (paste sources).
            file_path: Content store key (file sources).
            mime_type: File MIME type (file sources).
            original_filename: Uploaded filename (file sources).
            now: Clock override.

        Returns:
            The created item.

        Raises:
            DuplicateFingerprintError: If the owner already has an item with
                this source type and fingerprint.
        """
        item_id = str(uuid.uuid4())
        ts = format_ts(now or utc_now())

        with self._store.transaction("create_item") as ctx:
            try:
                self._store.connection.execute(
                    """
                    INSERT INTO items (
                        id, owner_id, source_type, status, fingerprint,
                        url, domain, title, raw_text, cleaned_text,
                        file_path, mime_type, original_filename,
                        created_at, updated_at, last_saved_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        item_id,
                        owner_id,
                        source_type.value,
                        ItemStatus.CAPTURED.value,
                        fingerprint,
                        url,
                        domain,
                        title,
                        raw_text,
                        cleaned_text,
                        file_path,
                        mime_type,
                        original_filename,
                        ts,
                        ts,
                        ts,
                    ),
                )
            except sqlite3.IntegrityError as e:
                if _FINGERPRINT_CONFLICT not in str(e):
                    raise
                self._metrics.record_dedup_conflict()
                self._log.info(
                    "item_fingerprint_conflict",
                    owner_id=owner_id,
                    source_type=source_type.value,
                )
                raise DuplicateFingerprintError(
                    owner_id, source_type.value, fingerprint
                ) from e
            ctx.add_affected_rows(1)

        self._log.info(
            "item_captured",
            item_id=item_id,
            owner_id=owner_id,
            source_type=source_type.value,
        )
        return self._require(item_id)

    def get(self, item_id: str) -> Item | None:
        """Get an item by ID.

        Args:
            item_id: Item identifier.

        Returns:
            The item with quotes and tags, or None if not found.
        """
        row = self._store.connection.execute(
            "SELECT * FROM items WHERE id = ?",
            (item_id,),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    def get_for_owner(self, owner_id: str, item_id: str) -> Item:
        """Get an item that must belong to ``owner_id``.

        Raises:
            ItemNotFoundError: If missing or owned by someone else.
        """
        item = self.get(item_id)
        if item is None or item.owner_id != owner_id:
            raise ItemNotFoundError(item_id)
        return item

    def find_by_fingerprint(
        self,
        owner_id: str,
        source_type: SourceType,
        fingerprint: str,
    ) -> Item | None:
        """Find the owner's item with this fingerprint, if any."""
        row = self._store.connection.execute(
            """
            SELECT * FROM items
            WHERE owner_id = ? AND source_type = ? AND fingerprint = ?
            """,
            (owner_id, source_type.value, fingerprint),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    def list_for_owner(
        self,
        owner_id: str,
        status: ItemStatus | None = None,
        limit: int = 50,
    ) -> list[Item]:
        """List the owner's items, most recently saved first.

        Args:
            owner_id: Item owner.
            status: Optional status filter.
            limit: Maximum items, clamped to 1..100.

        Returns:
            Items.
        """
        limit = max(1, min(limit, 100))
        if status is None:
            cursor = self._store.connection.execute(
                """
                SELECT * FROM items WHERE owner_id = ?
                ORDER BY last_saved_at DESC LIMIT ?
                """,
                (owner_id, limit),
            )
        else:
            cursor = self._store.connection.execute(
                """
                SELECT * FROM items WHERE owner_id = ? AND status = ?
                ORDER BY last_saved_at DESC LIMIT ?
                """,
                (owner_id, status.value, limit),
            )
        return [self._row_to_item(row) for row in cursor.fetchall()]

    def touch_saved(self, item_id: str, now: datetime | None = None) -> None:
        """Record a repeat capture of an existing item."""
        ts = format_ts(now or utc_now())
        with self._store.transaction("touch_saved"):
            self._store.connection.execute(
                "UPDATE items SET last_saved_at = ?, updated_at = ? WHERE id = ?",
                (ts, ts, item_id),
            )

    # ===== Status transitions =====

    def mark_extracted(
        self,
        item_id: str,
        cleaned_text: str,
        title: str | None = None,
        now: datetime | None = None,
    ) -> Item:
        """Store extracted text and move the item to ``extracted``.

        The user-supplied title wins over the extracted one.

        Args:
            item_id: Item identifier.
            cleaned_text: Extracted plain text (truncated to the storage cap).
            title: Title found during extraction.
            now: Clock override.

        Returns:
            The updated item.
        """
        ts = format_ts(now or utc_now())
        with self._store.transaction("mark_extracted"):
            item = self._require(item_id)
            self._check(item, ItemStatus.EXTRACTED)
            self._guarded_update(
                item,
                """
                UPDATE items SET
                    status = ?, cleaned_text = ?,
                    title = COALESCE(NULLIF(title, ''), ?),
                    error = NULL, extracted_at = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    ItemStatus.EXTRACTED.value,
                    cleaned_text[:MAX_CLEANED_TEXT_CHARS],
                    title,
                    ts,
                    ts,
                    item.id,
                    item.status.value,
                ),
                ItemStatus.EXTRACTED,
            )
        return self._require(item_id)

    def mark_enriched(
        self,
        item_id: str,
        *,
        abstract: str,
        bullets: Sequence[str],
        quotes: Sequence[Quote],
        tags: Sequence[str],
        generated_title: str | None = None,
        notice: str | None = None,
        now: datetime | None = None,
    ) -> Item:
        """Store enrichment output, replacing any previous quotes and tags.

        Args:
            item_id: Item identifier.
            abstract: Abstract text.
            bullets: Key-point bullets.
            quotes: Verbatim quotes in display order.
            tags: Tag names.
            generated_title: Model-suggested title.
            notice: Non-fatal notice kept in ``error`` (degraded enrichment).
            now: Clock override.

        Returns:
            The updated item.
        """
        now = now or utc_now()
        ts = format_ts(now)
        with self._store.transaction("mark_enriched"):
            item = self._require(item_id)
            self._check(item, ItemStatus.ENRICHED)
            self._guarded_update(
                item,
                """
                UPDATE items SET
                    status = ?, abstract = ?, bullets = ?, generated_title = ?,
                    error = ?, blocked_reason = NULL,
                    enriched_at = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    ItemStatus.ENRICHED.value,
                    abstract,
                    json.dumps(list(bullets)),
                    generated_title,
                    notice,
                    ts,
                    ts,
                    item.id,
                    item.status.value,
                ),
                ItemStatus.ENRICHED,
            )
            self._replace_quotes(item, quotes, ts)
            self._replace_tags(item, tags, ts)
        return self._require(item_id)

    def mark_failed(self, item_id: str, error: str, now: datetime | None = None) -> Item:
        """Move the item to ``failed`` with a user-facing error.

        An already failed item only has its error message updated.

        Args:
            item_id: Item identifier.
            error: User-facing failure message.
            now: Clock override.

        Returns:
            The updated item.
        """
        ts = format_ts(now or utc_now())
        with self._store.transaction("mark_failed"):
            item = self._require(item_id)
            if item.status == ItemStatus.FAILED:
                self._store.connection.execute(
                    "UPDATE items SET error = ?, updated_at = ? WHERE id = ?",
                    (error, ts, item.id),
                )
            else:
                self._check(item, ItemStatus.FAILED)
                self._guarded_update(
                    item,
                    """
                    UPDATE items SET status = ?, error = ?, updated_at = ?
                    WHERE id = ? AND status = ?
                    """,
                    (ItemStatus.FAILED.value, error, ts, item.id, item.status.value),
                    ItemStatus.FAILED,
                )
        self._log.info("item_failed", item_id=item_id, error=error)
        return self._require(item_id)

    def reenter(self, item_id: str, now: datetime | None = None) -> Item:
        """Move a failed item back into the pipeline, clearing its error.

        Non-failed items are returned unchanged apart from clearing the error.

        Args:
            item_id: Item identifier.
            now: Clock override.

        Returns:
            The updated item.
        """
        ts = format_ts(now or utc_now())
        with self._store.transaction("reenter_item"):
            item = self._require(item_id)
            if item.status != ItemStatus.FAILED:
                self._store.connection.execute(
                    """
                    UPDATE items SET error = NULL, blocked_reason = NULL, updated_at = ?
                    WHERE id = ?
                    """,
                    (ts, item.id),
                )
            else:
                machine = ItemStateMachine(item.id, item.status, item.source_type)
                target = machine.retry_target(item.has_text)
                machine.transition(target)
                self._guarded_update(
                    item,
                    """
                    UPDATE items SET
                        status = ?, error = NULL, blocked_reason = NULL, updated_at = ?
                    WHERE id = ? AND status = ?
                    """,
                    (target.value, ts, item.id, item.status.value),
                    target,
                )
        return self._require(item_id)

    def mark_blocked(
        self,
        item_id: str,
        reason: BlockedReason,
        notice: str,
        now: datetime | None = None,
    ) -> None:
        """Flag an item as waiting on something outside the queue.

        The status is left unchanged.
        """
        ts = format_ts(now or utc_now())
        with self._store.transaction("mark_blocked"):
            self._store.connection.execute(
                """
                UPDATE items SET blocked_reason = ?, error = ?, updated_at = ?
                WHERE id = ?
                """,
                (reason.value, notice, ts, item_id),
            )
        self._log.info("item_blocked", item_id=item_id, reason=reason.value)

    def clear_blocked(self, item_id: str, now: datetime | None = None) -> None:
        """Clear a block flag and its notice, if set."""
        ts = format_ts(now or utc_now())
        with self._store.transaction("clear_blocked"):
            self._store.connection.execute(
                """
                UPDATE items SET blocked_reason = NULL, error = NULL, updated_at = ?
                WHERE id = ? AND blocked_reason IS NOT NULL
                """,
                (ts, item_id),
            )

    # ===== Collections =====

    def create_collection(self, owner_id: str, name: str, now: datetime | None = None) -> str:
        """Create a collection and return its ID."""
        collection_id = str(uuid.uuid4())
        with self._store.transaction("create_collection"):
            self._store.connection.execute(
                """
                INSERT INTO collections (id, owner_id, name, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (collection_id, owner_id, name, format_ts(now or utc_now())),
            )
        return collection_id

    def attach_to_collection(
        self,
        owner_id: str,
        collection_id: str,
        item_id: str,
        now: datetime | None = None,
    ) -> bool:
        """Add an item to one of the owner's collections (idempotent).

        Returns:
            True if the link was created, False if it already existed.

        Raises:
            CollectionNotFoundError: If the owner has no such collection.
        """
        with self._store.transaction("attach_to_collection"):
            conn = self._store.connection
            row = conn.execute(
                "SELECT 1 FROM collections WHERE id = ? AND owner_id = ?",
                (collection_id, owner_id),
            ).fetchone()
            if row is None:
                raise CollectionNotFoundError(collection_id)
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO collection_items (collection_id, item_id, added_at)
                VALUES (?, ?, ?)
                """,
                (collection_id, item_id, format_ts(now or utc_now())),
            )
            return cursor.rowcount == 1

    def collection_item_ids(self, collection_id: str) -> list[str]:
        """List item IDs in a collection, oldest link first."""
        cursor = self._store.connection.execute(
            """
            SELECT item_id FROM collection_items
            WHERE collection_id = ? ORDER BY added_at, item_id
            """,
            (collection_id,),
        )
        return [row["item_id"] for row in cursor.fetchall()]

    # ===== Helpers =====

    def _require(self, item_id: str) -> Item:
        item = self.get(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def _check(self, item: Item, to_state: ItemStatus) -> None:
        ItemStateMachine(item.id, item.status, item.source_type).transition(to_state)

    def _guarded_update(
        self,
        item: Item,
        sql: str,
        params: tuple[object, ...],
        to_state: ItemStatus,
    ) -> None:
        cursor = self._store.connection.execute(sql, params)
        if cursor.rowcount == 0:
            current = self._require(item.id).status
            self._log.error(
                "invariant_violation",
                error_type="concurrent_item_update",
                item_id=item.id,
                expected_state=item.status.value,
                actual_state=current.value,
            )
            raise ItemStateError(item.id, current, to_state)

    def _replace_quotes(self, item: Item, quotes: Sequence[Quote], ts: str) -> None:
        conn = self._store.connection
        conn.execute("DELETE FROM quotes WHERE item_id = ?", (item.id,))
        conn.executemany(
            """
            INSERT INTO quotes (id, item_id, owner_id, position, quote, why, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (str(uuid.uuid4()), item.id, item.owner_id, position, q.quote, q.why, ts)
                for position, q in enumerate(quotes)
            ],
        )

    def _replace_tags(self, item: Item, tags: Sequence[str], ts: str) -> None:
        conn = self._store.connection
        conn.execute("DELETE FROM item_tags WHERE item_id = ?", (item.id,))
        for name in normalize_tags(tags):
            conn.execute(
                """
                INSERT OR IGNORE INTO tags (id, owner_id, name, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (str(uuid.uuid4()), item.owner_id, name, ts),
            )
            conn.execute(
                """
                INSERT OR IGNORE INTO item_tags (item_id, tag_id)
                SELECT ?, id FROM tags WHERE owner_id = ? AND name = ?
                """,
                (item.id, item.owner_id, name),
            )

    def _load_quotes(self, item_id: str) -> list[Quote]:
        cursor = self._store.connection.execute(
            "SELECT quote, why FROM quotes WHERE item_id = ? ORDER BY position",
            (item_id,),
        )
        return [Quote(quote=row["quote"], why=row["why"]) for row in cursor.fetchall()]

    def _load_tags(self, item_id: str) -> list[str]:
        cursor = self._store.connection.execute(
            """
            SELECT t.name FROM tags t
            JOIN item_tags it ON it.tag_id = t.id
            WHERE it.item_id = ?
            ORDER BY t.name
            """,
            (item_id,),
        )
        return [row["name"] for row in cursor.fetchall()]

    def _row_to_item(self, row: sqlite3.Row) -> Item:
        """Convert a database row to an Item.

        Args:
            row: Database row.

        Returns:
            Item instance with quotes and tags loaded.
        """
        blocked = row["blocked_reason"]
        return Item(
            id=row["id"],
            owner_id=row["owner_id"],
            source_type=SourceType(row["source_type"]),
            status=ItemStatus(row["status"]),
            fingerprint=row["fingerprint"],
            url=row["url"],
            domain=row["domain"],
            title=row["title"],
            generated_title=row["generated_title"],
            raw_text=row["raw_text"],
            cleaned_text=row["cleaned_text"],
            file_path=row["file_path"],
            mime_type=row["mime_type"],
            original_filename=row["original_filename"],
            abstract=row["abstract"],
            bullets=json.loads(row["bullets"] or "[]"),
            quotes=self._load_quotes(row["id"]),
            tags=self._load_tags(row["id"]),
            error=row["error"],
            blocked_reason=BlockedReason(blocked) if blocked else None,
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
            extracted_at=parse_ts(row["extracted_at"]),
            enriched_at=parse_ts(row["enriched_at"]),
            last_saved_at=parse_ts(row["last_saved_at"]),
        )
