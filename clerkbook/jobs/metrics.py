"""Metrics for the job queue."""

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class QueueMetrics:
    """Counters for queue operations.

    Attributes:
        enqueued_total: Jobs enqueued by type.
        claimed_total: Successful claims.
        claim_conflicts_total: Claims lost to another worker.
        succeeded_total: Jobs completed.
        failed_total: Jobs failed by type.
        stale_requeued_total: Running jobs failed by the staleness sweep.
    """

    enqueued_total: dict[str, int] = field(default_factory=dict)
    claimed_total: int = 0
    claim_conflicts_total: int = 0
    succeeded_total: int = 0
    failed_total: dict[str, int] = field(default_factory=dict)
    stale_requeued_total: int = 0

    _instance: ClassVar["QueueMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "QueueMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_enqueued(self, job_type: str) -> None:
        """Record an enqueued job."""
        self.enqueued_total[job_type] = self.enqueued_total.get(job_type, 0) + 1

    def record_claimed(self) -> None:
        """Record a successful claim."""
        self.claimed_total += 1

    def record_claim_conflict(self) -> None:
        """Record a claim lost to another worker."""
        self.claim_conflicts_total += 1

    def record_succeeded(self) -> None:
        """Record a completed job."""
        self.succeeded_total += 1

    def record_failed(self, job_type: str) -> None:
        """Record a failed job."""
        self.failed_total[job_type] = self.failed_total.get(job_type, 0) + 1

    def record_stale(self, count: int) -> None:
        """Record jobs failed by the staleness sweep."""
        self.stale_requeued_total += count
