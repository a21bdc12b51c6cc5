"""Batch dispatcher: claims due jobs and runs the matching handler.

Handler failures are isolated per job. Whatever a handler raises ends up
as ``fail(job_id, message)``; the batch itself never raises for a job error.
"""

import time
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

import structlog

from clerkbook.jobs.models import BatchResult, Job, JobStatus, JobSummary, JobType
from clerkbook.jobs.queue import JobQueue
from clerkbook.store.timestamps import utc_now


logger = structlog.get_logger()

MAX_BATCH_SIZE = 20
UNEXPECTED_ERROR_MESSAGE = "Unexpected error while processing; retry later"


class FailureKind(str, Enum):
    """Classification of runner failures.

    - TRANSIENT: Timeouts, connection errors, 5xx, store errors; retrying may help
    - CONTENT: Unparseable or empty content, unsupported type; retrying will not help
    """

    TRANSIENT = "transient"
    CONTENT = "content"


class RunnerError(Exception):
    """Base exception raised by pipeline runners.

    ``message`` is user-facing and includes a retry hint.
    """

    def __init__(self, message: str, kind: FailureKind = FailureKind.CONTENT) -> None:
        """Initialize the runner error.

        Args:
            message: User-facing message.
            kind: Failure classification.
        """
        super().__init__(message)
        self.message = message
        self.kind = kind


class JobHandler(Protocol):
    """A runner for one job type."""

    def run(self, job: Job) -> dict[str, Any]:
        """Execute the job and return its result payload.

        Raises:
            RunnerError: On an expected failure.
        """
        ...

    def on_failure(self, job: Job, message: str) -> None:
        """Apply item-side effects of a failed job (status, refunds)."""
        ...


class JobRunner:
    """Runs a batch of due jobs with failure isolation."""

    def __init__(self, queue: JobQueue, handlers: Mapping[JobType, JobHandler]) -> None:
        """Initialize the runner.

        Args:
            queue: Job queue to claim from.
            handlers: Handler per job type.
        """
        self._queue = queue
        self._handlers = dict(handlers)
        self._log = logger.bind(component="job_runner")

    def run_due(self, limit: int = 5, now: datetime | None = None) -> BatchResult:
        """Claim up to ``limit`` due jobs and run each one.

        Args:
            limit: Batch size, clamped to 1..20.
            now: Clock override for claiming.

        Returns:
            Aggregated batch result.
        """
        limit = max(1, min(limit, MAX_BATCH_SIZE))
        jobs = self._queue.claim_due(limit, now=now or utc_now())

        summaries = [self._run_one(job) for job in jobs]
        succeeded = sum(1 for s in summaries if s.status == JobStatus.SUCCEEDED)

        result = BatchResult(
            claimed=len(jobs),
            succeeded=succeeded,
            failed=len(summaries) - succeeded,
            jobs=summaries,
        )
        if jobs:
            self._log.info(
                "batch_complete",
                claimed=result.claimed,
                succeeded=result.succeeded,
                failed=result.failed,
            )
        return result

    def _run_one(self, job: Job) -> JobSummary:
        start = time.perf_counter()
        log = self._log.bind(job_id=job.id, job_type=job.type.value, item_id=job.item_id)
        handler = self._handlers.get(job.type)

        if handler is None:
            message = f"No handler for job type {job.type.value}"
            log.error("job_handler_missing")
            return self._record_failure(job, None, message)

        try:
            result = handler.run(job)
        except RunnerError as e:
            log.warning("job_failed", error=e.message, failure_kind=e.kind.value)
            return self._record_failure(job, handler, e.message)
        except Exception as e:  # noqa: BLE001
            log.exception("job_crashed", error=str(e))
            return self._record_failure(job, handler, UNEXPECTED_ERROR_MESSAGE)

        try:
            self._queue.complete(job.id, result)
        except Exception as e:  # noqa: BLE001
            log.exception("job_complete_failed", error=str(e))
            return self._record_failure(job, handler, UNEXPECTED_ERROR_MESSAGE)

        log.info(
            "job_succeeded",
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return JobSummary(job_id=job.id, type=job.type, status=JobStatus.SUCCEEDED)

    def _record_failure(
        self,
        job: Job,
        handler: JobHandler | None,
        message: str,
    ) -> JobSummary:
        if handler is not None:
            try:
                handler.on_failure(job, message)
            except Exception as e:  # noqa: BLE001
                self._log.exception("job_failure_hook_failed", job_id=job.id, error=str(e))

        try:
            self._queue.fail(job.id, message)
        except Exception as e:  # noqa: BLE001
            self._log.exception("job_fail_failed", job_id=job.id, error=str(e))

        return JobSummary(job_id=job.id, type=job.type, status=JobStatus.FAILED, error=message)
