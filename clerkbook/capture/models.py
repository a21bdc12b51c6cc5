"""Response models for capture operations."""

from pydantic import BaseModel, ConfigDict

from clerkbook.items.models import ItemStatus


HTTP_CREATED = 201
HTTP_OK = 200


class CreditsInfo(BaseModel):
    """Ledger outcome of the enrichment requested by an operation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: str
    required: int
    balance: int | None = None
    insufficient: bool = False


class CaptureResult(BaseModel):
    """Body returned by capture, retry and re-enrich operations.

    ``job_id`` is None for dedup hits, and when the enrichment of a new
    paste could not be paid for (see ``credits``).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    item_id: str
    job_id: str | None = None
    deduped: bool = False
    status: ItemStatus
    credits: CreditsInfo | None = None


class CaptureResponse(BaseModel):
    """Status code and exact JSON body of a capture call.

    ``replayed`` is True when the body came from the idempotency cache.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status_code: int
    body: str
    replayed: bool = False

    def result(self) -> CaptureResult:
        """Parse the body back into a ``CaptureResult``."""
        return CaptureResult.model_validate_json(self.body)
