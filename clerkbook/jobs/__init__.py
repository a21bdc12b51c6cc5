"""Durable job queue and the batch dispatcher that runs it."""

from clerkbook.jobs.metrics import QueueMetrics
from clerkbook.jobs.models import (
    PAYLOAD_MODELS,
    BatchResult,
    EnrichItemPayload,
    ExtractFilePayload,
    ExtractUrlPayload,
    Job,
    JobPayload,
    JobStatus,
    JobSummary,
    JobType,
)
from clerkbook.jobs.queue import STALE_JOB_ERROR, JobQueue
from clerkbook.jobs.runner import (
    MAX_BATCH_SIZE,
    FailureKind,
    JobHandler,
    JobRunner,
    RunnerError,
)
from clerkbook.jobs.state_machine import JobStateError, JobStateMachine


__all__ = [
    "MAX_BATCH_SIZE",
    "PAYLOAD_MODELS",
    "STALE_JOB_ERROR",
    "BatchResult",
    "EnrichItemPayload",
    "ExtractFilePayload",
    "ExtractUrlPayload",
    "FailureKind",
    "Job",
    "JobHandler",
    "JobPayload",
    "JobQueue",
    "JobRunner",
    "JobStateError",
    "JobStateMachine",
    "JobStatus",
    "JobSummary",
    "JobType",
    "QueueMetrics",
    "RunnerError",
]
