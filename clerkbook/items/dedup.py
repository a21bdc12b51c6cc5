"""Dedup index over (owner, source type, fingerprint)."""

from datetime import datetime

import structlog

from clerkbook.items.models import Item, SourceType
from clerkbook.items.repository import ItemRepository


logger = structlog.get_logger()


class DedupIndex:
    """Resolves repeat captures to the owner's existing item.

    The unique index on ``items`` is the source of truth; this class is the
    read side used before insert and after a lost insert race.
    """

    def __init__(self, items: ItemRepository) -> None:
        """Initialize the index.

        Args:
            items: Item repository.
        """
        self._items = items
        self._log = logger.bind(component="dedup")

    def find_existing(
        self,
        owner_id: str,
        source_type: SourceType,
        fingerprint: str,
    ) -> Item | None:
        """Find the owner's item for a fingerprint.

        Args:
            owner_id: Capture owner.
            source_type: Capture source type.
            fingerprint: Fingerprint of the capture payload.

        Returns:
            The existing item, or None.
        """
        return self._items.find_by_fingerprint(owner_id, source_type, fingerprint)

    def record_hit(
        self,
        item: Item,
        collection_id: str | None = None,
        now: datetime | None = None,
    ) -> Item:
        """Apply the side effects of a dedup hit.

        Bumps the item's saved timestamp and, when requested, links it to the
        owner's collection. No item or job is created.

        Args:
            item: Existing item.
            collection_id: Collection to attach the item to.
            now: Clock override.

        Returns:
            The refreshed item.

        Raises:
            CollectionNotFoundError: If the collection is not the owner's.
        """
        self._items.touch_saved(item.id, now=now)
        if collection_id is not None:
            self._items.attach_to_collection(item.owner_id, collection_id, item.id, now=now)
        self._log.info(
            "dedup_hit",
            item_id=item.id,
            owner_id=item.owner_id,
            source_type=item.source_type.value,
        )
        return self._items.get(item.id) or item
