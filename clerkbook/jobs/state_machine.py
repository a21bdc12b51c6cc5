"""Job status state machine implementation."""

from typing import ClassVar

import structlog

from clerkbook.jobs.models import JobStatus


logger = structlog.get_logger()


class JobStateError(Exception):
    """Raised when a job status would move backwards or skip a step."""

    def __init__(self, job_id: str, from_state: JobStatus | None, to_state: JobStatus) -> None:
        """Initialize the error.

        Args:
            job_id: The job being transitioned.
            from_state: The current status (None if unknown).
            to_state: The attempted target status.
        """
        self.job_id = job_id
        self.from_state = from_state
        self.to_state = to_state
        current = from_state.value if from_state else "unknown"
        super().__init__(
            f"Invalid job transition for {job_id}: {current} -> {to_state.value}"
        )


class JobStateMachine:
    """State machine for job status.

    State transitions:
        queued -> running: Claimed by a worker
        running -> succeeded: Runner returned a result
        running -> failed: Runner raised, or the job went stale
    """

    VALID_TRANSITIONS: ClassVar[dict[JobStatus, set[JobStatus]]] = {
        JobStatus.QUEUED: {JobStatus.RUNNING},
        JobStatus.RUNNING: {JobStatus.SUCCEEDED, JobStatus.FAILED},
        JobStatus.SUCCEEDED: set(),  # Terminal state
        JobStatus.FAILED: set(),  # Terminal state
    }

    def __init__(self, job_id: str, status: JobStatus) -> None:
        """Initialize the state machine at the job's stored status.

        Args:
            job_id: Job identifier for logging.
            status: Current stored status.
        """
        self._job_id = job_id
        self._state = status
        self._log = logger.bind(component="jobs", job_id=job_id)

    @property
    def state(self) -> JobStatus:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: JobStatus) -> bool:
        """Check if a transition to the given state is valid."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: JobStatus) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            JobStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.value,
                to_state=to_state.value,
            )
            raise JobStateError(self._job_id, self._state, to_state)
        self._state = to_state

    def is_terminal(self) -> bool:
        """Check if the current state is terminal."""
        return self._state in (JobStatus.SUCCEEDED, JobStatus.FAILED)
