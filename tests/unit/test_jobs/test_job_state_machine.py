"""Unit tests for the job status state machine."""

import pytest

from clerkbook.jobs.models import JobStatus
from clerkbook.jobs.state_machine import JobStateError, JobStateMachine


class TestJobStateMachine:
    """Tests for JobStateMachine."""

    def test_happy_path(self) -> None:
        """queued -> running -> succeeded."""
        machine = JobStateMachine("job-1", JobStatus.QUEUED)
        machine.transition(JobStatus.RUNNING)
        machine.transition(JobStatus.SUCCEEDED)
        assert machine.is_terminal()

    def test_running_can_fail(self) -> None:
        """A running job can fail."""
        machine = JobStateMachine("job-1", JobStatus.RUNNING)
        machine.transition(JobStatus.FAILED)
        assert machine.state == JobStatus.FAILED

    def test_queued_cannot_finish(self) -> None:
        """A job must be claimed before it finishes."""
        machine = JobStateMachine("job-1", JobStatus.QUEUED)
        with pytest.raises(JobStateError, match="queued -> succeeded"):
            machine.transition(JobStatus.SUCCEEDED)

    @pytest.mark.parametrize("terminal", [JobStatus.SUCCEEDED, JobStatus.FAILED])
    @pytest.mark.parametrize("target", list(JobStatus))
    def test_terminal_states_are_final(self, terminal: JobStatus, target: JobStatus) -> None:
        """Finished jobs never move again; re-running creates a new job."""
        assert not JobStateMachine("job-1", terminal).can_transition(target)

    def test_running_cannot_requeue(self) -> None:
        """Status moves forward only."""
        assert not JobStateMachine("job-1", JobStatus.RUNNING).can_transition(JobStatus.QUEUED)
