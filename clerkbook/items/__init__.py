"""Captured items: lifecycle, persistence and deduplication."""

from clerkbook.items.dedup import DedupIndex
from clerkbook.items.fingerprint import (
    file_fingerprint,
    paste_fingerprint,
    url_fingerprint,
)
from clerkbook.items.models import BlockedReason, Item, ItemStatus, Quote, SourceType
from clerkbook.items.repository import (
    MAX_CLEANED_TEXT_CHARS,
    ItemRepository,
    normalize_tags,
)
from clerkbook.items.state_machine import ItemStateError, ItemStateMachine


__all__ = [
    "MAX_CLEANED_TEXT_CHARS",
    "BlockedReason",
    "DedupIndex",
    "Item",
    "ItemRepository",
    "ItemStateError",
    "ItemStateMachine",
    "ItemStatus",
    "Quote",
    "SourceType",
    "file_fingerprint",
    "normalize_tags",
    "paste_fingerprint",
    "url_fingerprint",
]
