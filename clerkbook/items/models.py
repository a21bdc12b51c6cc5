"""Data models for captured items."""

from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class SourceType(str, Enum):
    """How an item entered the library. Immutable after capture."""

    URL = "url"
    PASTE = "paste"
    FILE = "file"


class ItemStatus(str, Enum):
    """Item lifecycle status.

    - captured: Stored, waiting for extraction (or enrichment for pastes)
    - extracted: Plain text available, waiting for enrichment
    - enriched: Abstract, bullets, quotes and tags available
    - failed: Last pipeline step failed; see ``error``
    """

    CAPTURED = "captured"
    EXTRACTED = "extracted"
    ENRICHED = "enriched"
    FAILED = "failed"


class BlockedReason(str, Enum):
    """Why an item is waiting on something other than the job queue."""

    INSUFFICIENT_CREDITS = "insufficient_credits"


class Quote(BaseModel):
    """A verbatim quote pulled from the item text."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    quote: Annotated[str, Field(min_length=1)]
    why: str | None = None


class Item(BaseModel):
    """Stored capture with its extracted text and enrichment."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1)]
    owner_id: Annotated[str, Field(min_length=1)]
    source_type: SourceType
    status: ItemStatus
    fingerprint: Annotated[str, Field(min_length=1)]
    url: str | None = None
    domain: str | None = None
    title: str | None = None
    generated_title: str | None = None
    raw_text: str | None = None
    cleaned_text: str | None = None
    file_path: str | None = None
    mime_type: str | None = None
    original_filename: str | None = None
    abstract: str | None = None
    bullets: list[str] = Field(default_factory=list)
    quotes: list[Quote] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    error: str | None = None
    blocked_reason: BlockedReason | None = None
    created_at: datetime
    updated_at: datetime
    extracted_at: datetime | None = None
    enriched_at: datetime | None = None
    last_saved_at: datetime

    @property
    def display_title(self) -> str:
        """Best available title for listings."""
        return (
            self.title
            or self.generated_title
            or self.original_filename
            or self.url
            or "Untitled"
        )

    @property
    def has_text(self) -> bool:
        """Whether extracted text is available for enrichment."""
        return bool(self.cleaned_text and self.cleaned_text.strip())
