"""Credit accounts, monthly resets and the append-only usage ledger."""

from clerkbook.ledger.ledger import CreditLedger, clamp_limit
from clerkbook.ledger.metrics import LedgerMetrics
from clerkbook.ledger.models import (
    DEBIT_REASONS,
    DEFAULT_PLANS,
    GRANT_REASONS,
    Balance,
    CreditCosts,
    DebitResult,
    LedgerEntry,
    LedgerReason,
    PlanConfig,
    Usage,
)


__all__ = [
    "DEBIT_REASONS",
    "DEFAULT_PLANS",
    "GRANT_REASONS",
    "Balance",
    "CreditCosts",
    "CreditLedger",
    "DebitResult",
    "LedgerEntry",
    "LedgerMetrics",
    "LedgerReason",
    "PlanConfig",
    "Usage",
    "clamp_limit",
]
