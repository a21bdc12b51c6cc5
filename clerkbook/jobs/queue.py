"""SQLite-backed job queue with claim-based concurrency.

Workers never hold a lock while a job runs. A job is owned by whichever
worker's guarded ``UPDATE ... WHERE status = 'queued'`` matched it, so two
workers can never both move the same job to ``running``.
"""

import json
import sqlite3
import uuid
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

import structlog
from pydantic import BaseModel

from clerkbook.jobs.metrics import QueueMetrics
from clerkbook.jobs.models import PAYLOAD_MODELS, Job, JobStatus, JobType
from clerkbook.jobs.state_machine import JobStateError, JobStateMachine
from clerkbook.store.errors import JobNotFoundError
from clerkbook.store.store import StateStore
from clerkbook.store.timestamps import format_ts, parse_ts, utc_now


logger = structlog.get_logger()

STALE_JOB_ERROR = "Job timed out"
MAX_LIST_LIMIT = 100


class JobQueue:
    """Durable queue of pipeline jobs."""

    def __init__(self, store: StateStore) -> None:
        """Initialize the queue.

        Args:
            store: Connected state store.
        """
        self._store = store
        self._metrics = QueueMetrics.get_instance()
        self._log = logger.bind(component="jobs")

    def enqueue(
        self,
        job_type: JobType,
        payload: BaseModel | Mapping[str, Any],
        owner_id: str,
        item_id: str | None = None,
        run_after: datetime | None = None,
        job_id: str | None = None,
        now: datetime | None = None,
    ) -> str:
        """Insert a queued job.

        Args:
            job_type: Kind of work.
            payload: Payload model or mapping; validated for the job type.
            owner_id: Owner the job runs on behalf of.
            item_id: Item the job works on.
            run_after: Earliest time the job may be claimed.
            job_id: Pre-generated ID (lets callers reference the job in the
                same transaction, e.g. from a ledger entry).
            now: Clock override.

        Returns:
            The job ID.
        """
        model = PAYLOAD_MODELS[job_type]
        data = payload.model_dump() if isinstance(payload, BaseModel) else dict(payload)
        validated = model.model_validate(data)
        job_id = job_id or str(uuid.uuid4())

        with self._store.transaction("enqueue_job") as ctx:
            self._store.connection.execute(
                """
                INSERT INTO jobs (
                    id, owner_id, item_id, type, status, payload,
                    run_after, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job_id,
                    owner_id,
                    item_id,
                    job_type.value,
                    JobStatus.QUEUED.value,
                    validated.model_dump_json(),
                    format_ts(run_after) if run_after else None,
                    format_ts(now or utc_now()),
                ),
            )
            ctx.add_affected_rows(1)

        self._metrics.record_enqueued(job_type.value)
        self._log.info(
            "job_enqueued",
            job_id=job_id,
            job_type=job_type.value,
            item_id=item_id,
            owner_id=owner_id,
        )
        return job_id

    def claim(self, job_id: str, now: datetime | None = None) -> Job | None:
        """Atomically move one queued job to ``running``.

        Args:
            job_id: Candidate job.
            now: Clock override.

        Returns:
            The claimed job, or None if another worker got it first.
        """
        with self._store.transaction("claim_job"):
            rows = self._store.connection.execute(
                """
                UPDATE jobs SET status = ?, started_at = ?
                WHERE id = ? AND status = ?
                RETURNING *
                """,
                (
                    JobStatus.RUNNING.value,
                    format_ts(now or utc_now()),
                    job_id,
                    JobStatus.QUEUED.value,
                ),
            ).fetchall()

        if not rows:
            self._metrics.record_claim_conflict()
            self._log.debug("job_claim_lost", job_id=job_id)
            return None

        job = self._row_to_job(rows[0])
        self._metrics.record_claimed()
        self._log.info("job_claimed", job_id=job.id, job_type=job.type.value)
        return job

    def claim_due(self, limit: int = 5, now: datetime | None = None) -> list[Job]:
        """Claim up to ``limit`` due jobs, oldest first.

        Candidates that another worker claims in between are dropped.

        Args:
            limit: Maximum jobs to claim.
            now: Clock override.

        Returns:
            Jobs now owned by the caller.
        """
        now = now or utc_now()
        cursor = self._store.connection.execute(
            """
            SELECT id FROM jobs
            WHERE status = ? AND (run_after IS NULL OR run_after <= ?)
            ORDER BY created_at, rowid
            LIMIT ?
            """,
            (JobStatus.QUEUED.value, format_ts(now), max(1, limit)),
        )
        candidates = [row["id"] for row in cursor.fetchall()]

        claimed: list[Job] = []
        for job_id in candidates:
            job = self.claim(job_id, now=now)
            if job is not None:
                claimed.append(job)
        return claimed

    def complete(
        self,
        job_id: str,
        result: Mapping[str, Any],
        now: datetime | None = None,
    ) -> None:
        """Mark a running job ``succeeded`` with its result.

        Raises:
            JobNotFoundError: If the job does not exist.
            JobStateError: If the job is not running.
        """
        self._finish(
            job_id,
            JobStatus.SUCCEEDED,
            result=json.dumps(dict(result)),
            error=None,
            now=now,
        )
        self._metrics.record_succeeded()

    def fail(self, job_id: str, error: str, now: datetime | None = None) -> None:
        """Mark a running job ``failed`` with an error message.

        Raises:
            JobNotFoundError: If the job does not exist.
            JobStateError: If the job is not running.
        """
        job_type = self._finish(job_id, JobStatus.FAILED, result=None, error=error, now=now)
        self._metrics.record_failed(job_type)

    def _finish(
        self,
        job_id: str,
        status: JobStatus,
        result: str | None,
        error: str | None,
        now: datetime | None,
    ) -> str:
        with self._store.transaction(f"finish_job_{status.value}"):
            conn = self._store.connection
            rows = conn.execute(
                """
                UPDATE jobs SET status = ?, result = ?, error = ?, finished_at = ?
                WHERE id = ? AND status = ?
                RETURNING type
                """,
                (
                    status.value,
                    result,
                    error,
                    format_ts(now or utc_now()),
                    job_id,
                    JobStatus.RUNNING.value,
                ),
            ).fetchall()
            if not rows:
                current = conn.execute(
                    "SELECT status FROM jobs WHERE id = ?", (job_id,)
                ).fetchone()
                if current is None:
                    raise JobNotFoundError(job_id)
                # Not running: the machine rejects the move and logs it.
                JobStateMachine(job_id, JobStatus(current["status"])).transition(status)
                raise JobStateError(job_id, JobStatus(current["status"]), status)

        self._log.info(
            "job_finished",
            job_id=job_id,
            status=status.value,
            error=error,
        )
        return str(rows[0]["type"])

    def requeue_stale(
        self,
        older_than: timedelta,
        now: datetime | None = None,
    ) -> list[str]:
        """Fail jobs stuck in ``running`` and enqueue fresh copies.

        The stale job keeps its history (``failed`` with "Job timed out");
        the copy carries the same payload, so a prepaid enrichment keeps its
        original charge reference.

        Args:
            older_than: Running time after which a job counts as stale.
            now: Clock override.

        Returns:
            IDs of the newly enqueued jobs.
        """
        now = now or utc_now()
        cutoff = format_ts(now - older_than)
        new_ids: list[str] = []

        with self._store.transaction("requeue_stale"):
            conn = self._store.connection
            stale = conn.execute(
                """
                SELECT * FROM jobs
                WHERE status = ? AND started_at <= ?
                ORDER BY started_at
                """,
                (JobStatus.RUNNING.value, cutoff),
            ).fetchall()

            for row in stale:
                cursor = conn.execute(
                    """
                    UPDATE jobs SET status = ?, error = ?, finished_at = ?
                    WHERE id = ? AND status = ?
                    """,
                    (
                        JobStatus.FAILED.value,
                        STALE_JOB_ERROR,
                        format_ts(now),
                        row["id"],
                        JobStatus.RUNNING.value,
                    ),
                )
                if cursor.rowcount == 0:
                    continue
                job = self._row_to_job(row)
                new_ids.append(
                    self.enqueue(
                        job.type,
                        job.payload,
                        owner_id=job.owner_id,
                        item_id=job.item_id,
                        now=now,
                    )
                )
                self._log.warning(
                    "stale_job_requeued",
                    job_id=job.id,
                    job_type=job.type.value,
                    started_at=row["started_at"],
                )

        if new_ids:
            self._metrics.record_stale(len(new_ids))
        return new_ids

    def get_job(self, job_id: str) -> Job | None:
        """Get a job by ID."""
        row = self._store.connection.execute(
            "SELECT * FROM jobs WHERE id = ?", (job_id,)
        ).fetchone()
        return self._row_to_job(row) if row is not None else None

    def get_job_for_owner(self, owner_id: str, job_id: str) -> Job:
        """Get a job that must belong to ``owner_id``.

        Raises:
            JobNotFoundError: If missing or owned by someone else.
        """
        job = self.get_job(job_id)
        if job is None or job.owner_id != owner_id:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(
        self,
        owner_id: str,
        status: JobStatus | None = None,
        limit: int = 20,
    ) -> list[Job]:
        """List the owner's jobs, newest first.

        Args:
            owner_id: Job owner.
            status: Optional status filter.
            limit: Maximum jobs, clamped to 1..100.

        Returns:
            Jobs.
        """
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        sql = "SELECT * FROM jobs WHERE owner_id = ?"
        params: list[Any] = [owner_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)
        cursor = self._store.connection.execute(sql, params)
        return [self._row_to_job(row) for row in cursor.fetchall()]

    def has_pending(self, item_id: str, job_type: JobType) -> bool:
        """Check for a queued or running job of a type for an item."""
        row = self._store.connection.execute(
            """
            SELECT 1 FROM jobs
            WHERE item_id = ? AND type = ? AND status IN (?, ?)
            LIMIT 1
            """,
            (item_id, job_type.value, JobStatus.QUEUED.value, JobStatus.RUNNING.value),
        ).fetchone()
        return row is not None

    def count_by_status(self) -> dict[str, int]:
        """Count jobs per status."""
        cursor = self._store.connection.execute(
            "SELECT status, COUNT(*) AS n FROM jobs GROUP BY status"
        )
        counts = {status.value: 0 for status in JobStatus}
        for row in cursor.fetchall():
            counts[row["status"]] = row["n"]
        return counts

    def _row_to_job(self, row: sqlite3.Row) -> Job:
        """Convert a database row to a Job.

        Args:
            row: Database row.

        Returns:
            Job instance.
        """
        return Job(
            id=row["id"],
            owner_id=row["owner_id"],
            item_id=row["item_id"],
            type=JobType(row["type"]),
            status=JobStatus(row["status"]),
            payload=json.loads(row["payload"]),
            result=json.loads(row["result"]) if row["result"] else None,
            error=row["error"],
            run_after=parse_ts(row["run_after"]),
            created_at=parse_ts(row["created_at"]),
            started_at=parse_ts(row["started_at"]),
            finished_at=parse_ts(row["finished_at"]),
        )
