"""Integration tests for the command line interface."""

import json
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from click.testing import CliRunner, Result

from clerkbook.cli.main import cli
from clerkbook.fetch.metrics import FetchMetrics
from clerkbook.jobs.metrics import QueueMetrics
from clerkbook.ledger.metrics import LedgerMetrics
from clerkbook.pipeline.enrich import NOT_CONFIGURED_MESSAGE
from clerkbook.store.metrics import StoreMetrics


Invoke = Callable[..., Result]


@pytest.fixture
def tmp_dir() -> Generator[Path]:
    """Create a temporary directory."""
    StoreMetrics.reset()
    QueueMetrics.reset()
    LedgerMetrics.reset()
    FetchMetrics.reset()
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def invoke(tmp_dir: Path) -> Invoke:
    """Invoke the CLI against a temporary database without model credentials."""
    runner = CliRunner()
    db_path = tmp_dir / "state.sqlite"
    env = {
        "CLERKBOOK_FILES_DIR": str(tmp_dir / "files"),
        "GEMINI_API_KEY": None,
    }

    def _invoke(*args: str, input: str | None = None) -> Result:  # noqa: A002
        return runner.invoke(cli, ["--db", str(db_path), *args], input=input, env=env)

    return _invoke


class TestSetup:
    """Tests for database commands."""

    def test_init_db(self, invoke: Invoke, tmp_dir: Path) -> None:
        """init-db creates the database at the given path."""
        result = invoke("init-db")

        assert result.exit_code == 0, result.output
        assert "Database ready" in result.output
        assert (tmp_dir / "state.sqlite").exists()

    def test_db_stats_json(self, invoke: Invoke) -> None:
        """db-stats reports table counts and jobs per status."""
        invoke("capture-url", "https://example.com/a", "--owner", "alice")

        result = invoke("db-stats", "--json")

        assert result.exit_code == 0, result.output
        stats = json.loads(result.output)
        assert stats["tables"]["items"] == 1
        assert stats["jobs"]["queued"] == 1
        assert stats["schema_version"] >= 1


class TestCaptureCommands:
    """Tests for capture commands."""

    def test_capture_url_prints_body(self, invoke: Invoke) -> None:
        """capture-url prints the JSON capture result."""
        result = invoke("capture-url", "https://example.com/a", "--owner", "alice")

        assert result.exit_code == 0, result.output
        body = json.loads(result.output)
        assert body["status"] == "captured"
        assert body["job_id"] is not None

    def test_capture_url_rejects_bad_url(self, invoke: Invoke) -> None:
        """Validation errors exit with code 1 and a one-line message."""
        result = invoke("capture-url", "ftp://example.com/a", "--owner", "alice")

        assert result.exit_code == 1
        assert "Error: url must be an http(s) URL with a host" in result.output

    def test_capture_paste_from_stdin(self, invoke: Invoke) -> None:
        """capture-paste reads stdin and charges the enrichment."""
        result = invoke("capture-paste", "--owner", "alice", input="A pasted note.\n")

        assert result.exit_code == 0, result.output
        assert '"mode":"tags_only"' in result.output
        assert '"balance":49' in result.output

    def test_capture_file(self, invoke: Invoke, tmp_dir: Path) -> None:
        """capture-file stores the upload and queues extraction."""
        path = tmp_dir / "notes.md"
        path.write_text("# Notes\n\nSome text.", encoding="utf-8")

        result = invoke("capture-file", str(path), "--owner", "alice")

        assert result.exit_code == 0, result.output
        assert '"status":"captured"' in result.output
        assert (tmp_dir / "files" / "alice").is_dir()


class TestWorkerCommands:
    """Tests for run-jobs and jobs."""

    def test_run_jobs_without_credentials(self, invoke: Invoke) -> None:
        """Enrichment without an API key fails with a configuration message."""
        invoke("capture-paste", "--owner", "alice", input="A pasted note.")

        result = invoke("run-jobs", "--limit", "5")

        assert result.exit_code == 0, result.output
        assert '"failed": 1' in result.output

        listed = invoke("jobs", "--owner", "alice", "--status", "failed")
        assert "enrich_item" in listed.output
        assert NOT_CONFIGURED_MESSAGE in listed.output

        balance = invoke("balance", "--owner", "alice")
        assert "Balance: 50 / 50" in balance.output

    def test_sweep_stale_with_nothing_running(self, invoke: Invoke) -> None:
        """sweep-stale reports zero when no job is stuck."""
        result = invoke("sweep-stale")

        assert result.exit_code == 0, result.output
        assert "Requeued 0 stale jobs" in result.output


class TestCreditCommands:
    """Tests for balance and grant."""

    def test_balance_for_new_owner(self, invoke: Invoke) -> None:
        """A new owner starts on the default plan with a full balance."""
        result = invoke("balance", "--owner", "alice")

        assert result.exit_code == 0, result.output
        assert "Plan: free" in result.output
        assert "Balance: 50 / 50" in result.output

    def test_grant_then_balance_json(self, invoke: Invoke) -> None:
        """Granted credits show up in the balance and the ledger."""
        granted = invoke("grant", "5", "--owner", "alice", "--reason", "credit_pack")
        assert "balance 55" in granted.output

        result = invoke("balance", "--owner", "alice", "--json")

        usage = json.loads(result.output)
        assert usage["balance"] == 55
        assert usage["ledger"][0]["reason"] == "credit_pack"
        assert usage["ledger"][0]["delta"] == 5
