"""Pipeline runners and the ledger-gated enrichment enqueue."""

from clerkbook.pipeline.enqueue import (
    MIN_ENRICH_CHARS,
    EnqueueOutcome,
    EnrichmentEnqueuer,
    choose_mode,
)
from clerkbook.pipeline.enrich import DEGRADED_NOTICE, EnrichItemRunner
from clerkbook.pipeline.errors import (
    EMPTY_TEXT_MESSAGE,
    EnrichmentError,
    ItemMissingError,
    fetch_failure,
)
from clerkbook.pipeline.extract import ExtractFileRunner, ExtractUrlRunner


__all__ = [
    "DEGRADED_NOTICE",
    "EMPTY_TEXT_MESSAGE",
    "MIN_ENRICH_CHARS",
    "EnqueueOutcome",
    "EnrichItemRunner",
    "EnrichmentEnqueuer",
    "EnrichmentError",
    "ExtractFileRunner",
    "ExtractUrlRunner",
    "ItemMissingError",
    "choose_mode",
    "fetch_failure",
]
