"""Data models for the job queue."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class JobType(str, Enum):
    """Kinds of background work."""

    EXTRACT_URL = "extract_url"
    EXTRACT_FILE = "extract_file"
    ENRICH_ITEM = "enrich_item"


class JobStatus(str, Enum):
    """Job status. Moves forward only; re-running creates a new job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ExtractUrlPayload(BaseModel):
    """Payload snapshot for an ``extract_url`` job."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    item_id: Annotated[str, Field(min_length=1)]
    url: Annotated[str, Field(min_length=1)]


class ExtractFilePayload(BaseModel):
    """Payload snapshot for an ``extract_file`` job."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    item_id: Annotated[str, Field(min_length=1)]
    file_path: Annotated[str, Field(min_length=1, description="Content store key")]
    mime_type: Annotated[str, Field(min_length=1)]


class EnrichItemPayload(BaseModel):
    """Payload snapshot for an ``enrich_item`` job.

    ``charge_ref`` is the job ID the ledger debit was recorded against, so a
    failed enrichment can be refunded exactly once.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    item_id: Annotated[str, Field(min_length=1)]
    mode: Literal["full", "tags_only"]
    style: str | None = None
    charge_ref: str | None = None


JobPayload = ExtractUrlPayload | ExtractFilePayload | EnrichItemPayload

PAYLOAD_MODELS: dict[JobType, type[BaseModel]] = {
    JobType.EXTRACT_URL: ExtractUrlPayload,
    JobType.EXTRACT_FILE: ExtractFilePayload,
    JobType.ENRICH_ITEM: EnrichItemPayload,
}


class Job(BaseModel):
    """A stored job row."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1)]
    owner_id: Annotated[str, Field(min_length=1)]
    item_id: str | None = None
    type: JobType
    status: JobStatus
    payload: dict[str, Any]
    result: dict[str, Any] | None = None
    error: str | None = None
    run_after: datetime | None = None
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def parsed_payload(self) -> JobPayload:
        """Validate the payload against the model for this job type."""
        return PAYLOAD_MODELS[self.type].model_validate(self.payload)  # type: ignore[return-value]


class JobSummary(BaseModel):
    """Per-job outcome reported by a batch run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    job_id: str
    type: JobType
    status: JobStatus
    error: str | None = None


class BatchResult(BaseModel):
    """Outcome of one ``JobRunner.run_due`` call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    claimed: int = 0
    succeeded: int = 0
    failed: int = 0
    jobs: list[JobSummary] = Field(default_factory=list)
