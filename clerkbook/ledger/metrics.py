"""Metrics for credit accounting."""

from dataclasses import dataclass
from typing import ClassVar


@dataclass
class LedgerMetrics:
    """Counters for ledger operations."""

    debits_total: int = 0
    credits_debited_total: int = 0
    insufficient_total: int = 0
    resets_total: int = 0
    grants_total: int = 0
    refunds_total: int = 0

    _instance: ClassVar["LedgerMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "LedgerMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_debit(self, amount: int) -> None:
        """Record a successful debit."""
        self.debits_total += 1
        self.credits_debited_total += amount

    def record_insufficient(self) -> None:
        """Record a debit rejected for insufficient balance."""
        self.insufficient_total += 1

    def record_reset(self) -> None:
        """Record an applied monthly reset."""
        self.resets_total += 1

    def record_grant(self) -> None:
        """Record a manual grant."""
        self.grants_total += 1

    def record_refund(self) -> None:
        """Record a refunded charge."""
        self.refunds_total += 1

    def to_dict(self) -> dict[str, int]:
        """Convert metrics to dictionary."""
        return {
            "debits_total": self.debits_total,
            "credits_debited_total": self.credits_debited_total,
            "insufficient_total": self.insufficient_total,
            "resets_total": self.resets_total,
            "grants_total": self.grants_total,
            "refunds_total": self.refunds_total,
        }
