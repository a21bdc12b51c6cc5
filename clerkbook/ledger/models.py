"""Data models for credit accounts and the append-only ledger."""

from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class LedgerReason(str, Enum):
    """Reason recorded on each ledger entry.

    Debits carry the metered operation; credits carry the grant source.
    """

    ENRICH_ITEM_FULL = "enrich_item_full"
    ENRICH_ITEM_TAGS_ONLY = "enrich_item_tags_only"
    COMPARE_ITEMS = "compare_items"
    MONTHLY_GRANT = "monthly_grant"
    ADMIN_GRANT = "admin_grant"
    CREDIT_PACK = "credit_pack"
    REFUND = "refund"


DEBIT_REASONS: frozenset[LedgerReason] = frozenset(
    {
        LedgerReason.ENRICH_ITEM_FULL,
        LedgerReason.ENRICH_ITEM_TAGS_ONLY,
        LedgerReason.COMPARE_ITEMS,
    }
)

GRANT_REASONS: frozenset[LedgerReason] = frozenset(
    {LedgerReason.ADMIN_GRANT, LedgerReason.CREDIT_PACK}
)


class PlanConfig(BaseModel):
    """A subscription plan and its monthly credit grant."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Annotated[str, Field(min_length=1, description="Plan identifier")]
    monthly_grant: Annotated[
        int, Field(ge=0, description="Credits restored at each monthly reset")
    ]


DEFAULT_PLANS: dict[str, PlanConfig] = {
    "free": PlanConfig(name="free", monthly_grant=50),
    "pro": PlanConfig(name="pro", monthly_grant=100),
}


class CreditCosts(BaseModel):
    """Credit cost per metered operation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enrich_item_full: Annotated[int, Field(ge=1)] = 2
    enrich_item_tags_only: Annotated[int, Field(ge=1)] = 1
    compare_items: Annotated[int, Field(ge=1)] = 3

    def cost_for(self, reason: LedgerReason) -> int:
        """Get the cost of a debit reason.

        Args:
            reason: A debit reason.

        Returns:
            Number of credits to charge.

        Raises:
            ValueError: If the reason is not a debit reason.
        """
        if reason not in DEBIT_REASONS:
            msg = f"Not a debit reason: {reason.value}"
            raise ValueError(msg)
        return int(getattr(self, reason.value))


class Balance(BaseModel):
    """Current balance of a credit account after any due reset."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    owner_id: str
    plan: str
    balance: Annotated[int, Field(ge=0)]
    monthly_grant: Annotated[int, Field(ge=0)]
    reset_at: datetime


class DebitResult(BaseModel):
    """Outcome of ``CreditLedger.try_debit``.

    ``ok`` is False when the balance could not cover ``required``; nothing
    was mutated in that case and ``balance`` is the balance that fell short.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    ok: bool
    required: Annotated[int, Field(ge=1)]
    balance: Annotated[int, Field(ge=0)]
    entry_id: int | None = None

    @property
    def deficit(self) -> int:
        """Credits missing to cover the debit (0 when ``ok``)."""
        return 0 if self.ok else max(0, self.required - self.balance)


class LedgerEntry(BaseModel):
    """A single append-only ledger row."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int
    owner_id: str
    delta: int
    reason: LedgerReason
    job_id: str | None = None
    item_id: str | None = None
    comparison_id: str | None = None
    created_at: datetime


class Usage(BaseModel):
    """Balance and recent ledger activity for display."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    balance: Annotated[int, Field(ge=0, description="Balance floored at zero")]
    monthly_grant: int
    plan: str
    reset_at: datetime
    used_this_period: Annotated[
        int, Field(ge=0, description="Credits debited since the last reset")
    ]
    ledger: list[LedgerEntry] = Field(default_factory=list)
