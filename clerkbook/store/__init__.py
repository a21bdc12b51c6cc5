"""SQLite state store shared by the capture pipeline.

This package provides:
- The connection, migrations and re-entrant write transactions
- URL canonicalization and content hashing used for fingerprints
- Timestamp helpers for persisted rows
"""

from clerkbook.store.errors import (
    CollectionNotFoundError,
    ConnectionError,
    DuplicateFingerprintError,
    ItemNotFoundError,
    JobNotFoundError,
    MigrationError,
    StateStoreError,
)
from clerkbook.store.hash import compute_content_hash, compute_text_hash
from clerkbook.store.metrics import StoreMetrics, TransactionContext
from clerkbook.store.store import StateStore
from clerkbook.store.timestamps import (
    format_ts,
    parse_ts,
    start_of_next_month,
    utc_now,
)
from clerkbook.store.url import canonicalize_url, extract_domain


__all__ = [
    # Errors
    "CollectionNotFoundError",
    "ConnectionError",
    "DuplicateFingerprintError",
    "ItemNotFoundError",
    "JobNotFoundError",
    "MigrationError",
    "StateStoreError",
    # Hash utilities
    "compute_content_hash",
    "compute_text_hash",
    # Metrics
    "StoreMetrics",
    "TransactionContext",
    # Store
    "StateStore",
    # Timestamps
    "format_ts",
    "parse_ts",
    "start_of_next_month",
    "utc_now",
    # URL utilities
    "canonicalize_url",
    "extract_domain",
]
