"""CLI commands for the capture pipeline."""

import json
import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import TextIO

import click
import structlog

from clerkbook import __version__
from clerkbook.app import App, build_app
from clerkbook.capture.errors import CaptureValidationError, InsufficientCreditsError
from clerkbook.capture.models import CaptureResponse, CaptureResult
from clerkbook.idempotency.cache import InvalidIdempotencyKeyError
from clerkbook.jobs.models import JobStatus
from clerkbook.ledger.models import LedgerReason
from clerkbook.observability.logging import (
    bind_worker_context,
    clear_worker_context,
    configure_logging,
)
from clerkbook.settings.app import AppSettings, get_settings
from clerkbook.settings.plans import PlanCatalogError
from clerkbook.store.errors import StateStoreError
from clerkbook.store.store import StateStore


logger = structlog.get_logger()

COMPONENT_CLI = "cli"

# Errors reported to the user as a one-line message with exit code 1.
USER_ERRORS = (
    CaptureValidationError,
    InsufficientCreditsError,
    InvalidIdempotencyKeyError,
    PlanCatalogError,
    StateStoreError,
)


@dataclass
class CliOptions:
    """Options shared by every command."""

    settings: AppSettings
    db_path: Path
    json_logs: bool
    verbose: bool


@contextmanager
def _open_app(options: CliOptions) -> Iterator[App]:
    """Connect the store and build the app, reporting user errors.

    Args:
        options: Shared CLI options.

    Yields:
        The wired application.
    """
    try:
        with StateStore(db_path=options.db_path) as store:
            yield build_app(store, options.settings)
    except USER_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _echo_response(response: CaptureResponse) -> None:
    click.echo(response.body)
    if response.replayed:
        click.echo("(replayed from idempotency cache)", err=True)


def _echo_result(result: CaptureResult) -> None:
    click.echo(result.model_dump_json())


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to SQLite state database (default: CLERKBOOK_DB_PATH).",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=False,
    help="Use JSON format for logs (default: false).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)
@click.pass_context
def cli(ctx: click.Context, db_path: Path | None, json_logs: bool, verbose: bool) -> None:
    """Clerkbook capture pipeline CLI."""
    configure_logging(
        level=logging.DEBUG if verbose else logging.INFO,
        json_format=json_logs,
    )
    settings = get_settings()
    ctx.obj = CliOptions(
        settings=settings,
        db_path=db_path or settings.db_path,
        json_logs=json_logs,
        verbose=verbose,
    )


@cli.command("init-db")
@click.pass_obj
def init_db(options: CliOptions) -> None:
    """Create the database and apply migrations."""
    with _open_app(options) as app:
        click.echo(
            f"Database ready at {app.store.db_path} "
            f"(schema version {app.store.get_schema_version()})"
        )


# ===== Captures =====


@cli.command("capture-url")
@click.argument("url")
@click.option("--owner", "owner_id", required=True, help="Owner ID.")
@click.option("--title", default=None, help="Title to use instead of the extracted one.")
@click.option("--collection", "collection_id", default=None, help="Collection ID.")
@click.option("--idempotency-key", default=None, help="Client key for safe retries.")
@click.pass_obj
def capture_url(
    options: CliOptions,
    url: str,
    owner_id: str,
    title: str | None,
    collection_id: str | None,
    idempotency_key: str | None,
) -> None:
    """Capture a web page and queue its extraction."""
    with _open_app(options) as app:
        response = app.capture.capture_url(
            owner_id,
            url,
            title=title,
            collection_id=collection_id,
            idempotency_key=idempotency_key,
        )
        _echo_response(response)


@cli.command("capture-paste")
@click.option("--owner", "owner_id", required=True, help="Owner ID.")
@click.option(
    "--file",
    "text_file",
    type=click.File("r", encoding="utf-8"),
    default="-",
    help="Text file to capture (default: stdin).",
)
@click.option("--title", default=None, help="Item title.")
@click.option("--collection", "collection_id", default=None, help="Collection ID.")
@click.option("--idempotency-key", default=None, help="Client key for safe retries.")
@click.pass_obj
def capture_paste(  # noqa: PLR0913
    options: CliOptions,
    owner_id: str,
    text_file: TextIO,
    title: str | None,
    collection_id: str | None,
    idempotency_key: str | None,
) -> None:
    """Capture pasted text and queue its enrichment."""
    text = text_file.read()
    with _open_app(options) as app:
        response = app.capture.capture_paste(
            owner_id,
            text,
            title=title,
            collection_id=collection_id,
            idempotency_key=idempotency_key,
        )
        _echo_response(response)
        credits = response.result().credits
        if credits is not None and credits.insufficient:
            click.echo(
                f"Warning: enrichment not queued; requires {credits.required} "
                f"credits, balance {credits.balance}",
                err=True,
            )


@cli.command("capture-file")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--owner", "owner_id", required=True, help="Owner ID.")
@click.option("--mime-type", default=None, help="MIME type (default: from the extension).")
@click.option("--title", default=None, help="Item title.")
@click.option("--collection", "collection_id", default=None, help="Collection ID.")
@click.option("--idempotency-key", default=None, help="Client key for safe retries.")
@click.pass_obj
def capture_file(  # noqa: PLR0913
    options: CliOptions,
    path: Path,
    owner_id: str,
    mime_type: str | None,
    title: str | None,
    collection_id: str | None,
    idempotency_key: str | None,
) -> None:
    """Upload a PDF, DOCX, TXT or MD file and queue its extraction."""
    content = path.read_bytes()
    with _open_app(options) as app:
        response = app.capture.capture_file(
            owner_id,
            content,
            path.name,
            mime_type,
            title=title,
            collection_id=collection_id,
            idempotency_key=idempotency_key,
        )
        _echo_response(response)


@cli.command()
@click.argument("item_id")
@click.option("--owner", "owner_id", required=True, help="Owner ID.")
@click.pass_obj
def retry(options: CliOptions, item_id: str, owner_id: str) -> None:
    """Retry the missing step of a failed item."""
    with _open_app(options) as app:
        _echo_result(app.capture.retry_item(owner_id, item_id))


@cli.command("re-enrich")
@click.argument("item_id")
@click.option("--owner", "owner_id", required=True, help="Owner ID.")
@click.option(
    "--style",
    type=click.Choice(["concise", "detailed", "academic", "plain"]),
    default=None,
    help="Summary style.",
)
@click.pass_obj
def re_enrich(options: CliOptions, item_id: str, owner_id: str, style: str | None) -> None:
    """Enrich an item again, replacing its previous summary."""
    with _open_app(options) as app:
        _echo_result(app.capture.re_enrich(owner_id, item_id, style=style))


# ===== Worker =====


@cli.command("run-jobs")
@click.option(
    "--limit",
    type=click.IntRange(1, 20),
    default=5,
    help="Jobs to claim per batch (default: 5).",
)
@click.option("--loop", "loop_forever", is_flag=True, help="Keep polling for due jobs.")
@click.option(
    "--interval",
    "interval_seconds",
    type=click.FloatRange(min=0.1),
    default=2.0,
    help="Seconds between polls when idle (default: 2).",
)
@click.pass_obj
def run_jobs(
    options: CliOptions, limit: int, loop_forever: bool, interval_seconds: float
) -> None:
    """Claim and run due jobs.

    Without --loop, runs one batch and prints its summary as JSON. With
    --loop, also requeues stale jobs before each batch and runs until
    interrupted.
    """
    worker_id = f"worker-{uuid.uuid4().hex[:8]}"
    stale_after = timedelta(minutes=options.settings.stale_job_minutes)
    log = logger.bind(component=COMPONENT_CLI, command="run-jobs", worker_id=worker_id)

    with _open_app(options) as app:
        if not loop_forever:
            bind_worker_context(worker_id, batch_id=uuid.uuid4().hex[:8])
            try:
                result = app.runner.run_due(limit)
            finally:
                clear_worker_context()
            click.echo(result.model_dump_json(indent=2))
            return

        log.info("worker_started", limit=limit, interval_seconds=interval_seconds)
        try:
            while True:
                app.queue.requeue_stale(stale_after)
                bind_worker_context(worker_id, batch_id=uuid.uuid4().hex[:8])
                try:
                    result = app.runner.run_due(limit)
                finally:
                    clear_worker_context()
                if result.claimed == 0:
                    time.sleep(interval_seconds)
        except KeyboardInterrupt:
            log.info("worker_stopped")


@cli.command("sweep-stale")
@click.option(
    "--minutes",
    type=click.IntRange(min=1),
    default=None,
    help="Running time after which a job is stale (default: CLERKBOOK_STALE_JOB_MINUTES).",
)
@click.pass_obj
def sweep_stale(options: CliOptions, minutes: int | None) -> None:
    """Fail jobs stuck in running and queue fresh copies."""
    minutes = minutes or options.settings.stale_job_minutes
    with _open_app(options) as app:
        new_ids = app.queue.requeue_stale(timedelta(minutes=minutes))
        click.echo(f"Requeued {len(new_ids)} stale jobs")
        for job_id in new_ids:
            click.echo(f"  {job_id}")


@cli.command()
@click.option("--owner", "owner_id", required=True, help="Owner ID.")
@click.option(
    "--status",
    type=click.Choice([status.value for status in JobStatus]),
    default=None,
    help="Only show jobs with this status.",
)
@click.option("--limit", type=click.IntRange(1, 100), default=20, help="Maximum jobs.")
@click.pass_obj
def jobs(options: CliOptions, owner_id: str, status: str | None, limit: int) -> None:
    """List an owner's jobs, newest first."""
    with _open_app(options) as app:
        listed = app.queue.list_jobs(
            owner_id,
            status=JobStatus(status) if status else None,
            limit=limit,
        )
        for job in listed:
            line = f"{job.id}  {job.type.value:<12}  {job.status.value:<9}  {job.item_id or '-'}"
            if job.error:
                line += f"  {job.error}"
            click.echo(line)


# ===== Credits =====


@cli.command()
@click.option("--owner", "owner_id", required=True, help="Owner ID.")
@click.option("--limit", type=click.IntRange(1, 100), default=20, help="Ledger entries.")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.pass_obj
def balance(options: CliOptions, owner_id: str, limit: int, json_output: bool) -> None:
    """Show an owner's credit balance and recent ledger entries."""
    with _open_app(options) as app:
        usage = app.ledger.get_usage(owner_id, ledger_limit=limit)

    if json_output:
        click.echo(usage.model_dump_json(indent=2))
        return

    click.echo(f"Plan: {usage.plan}")
    click.echo(f"Balance: {usage.balance} / {usage.monthly_grant}")
    click.echo(f"Used this period: {usage.used_this_period}")
    click.echo(f"Next reset: {usage.reset_at.isoformat()}")
    if usage.ledger:
        click.echo("")
        click.echo("Recent entries:")
        for entry in usage.ledger:
            click.echo(
                f"  {entry.created_at.isoformat()}  {entry.delta:+d}  {entry.reason.value}"
            )


@cli.command()
@click.argument("amount", type=click.IntRange(min=1))
@click.option("--owner", "owner_id", required=True, help="Owner ID.")
@click.option(
    "--reason",
    type=click.Choice([LedgerReason.ADMIN_GRANT.value, LedgerReason.CREDIT_PACK.value]),
    default=LedgerReason.ADMIN_GRANT.value,
    help="Ledger reason (default: admin_grant).",
)
@click.pass_obj
def grant(options: CliOptions, amount: int, owner_id: str, reason: str) -> None:
    """Add credits to an owner's balance."""
    with _open_app(options) as app:
        result = app.ledger.grant(owner_id, amount, reason=LedgerReason(reason))
        click.echo(f"Granted {amount} credits to {owner_id}; balance {result.balance}")


@cli.command("db-stats")
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output as JSON.",
)
@click.pass_obj
def db_stats(options: CliOptions, json_output: bool) -> None:
    """Display state database statistics.

    Shows row counts for all tables, schema version, and jobs per status.
    """
    with _open_app(options) as app:
        stats = app.store.get_stats()
        schema_version = app.store.get_schema_version()
        job_counts = app.queue.count_by_status()

    if json_output:
        output = {
            "schema_version": schema_version,
            "tables": stats,
            "jobs": job_counts,
        }
        click.echo(json.dumps(output, indent=2))
        return

    click.echo("State Database Statistics")
    click.echo("=" * 40)
    click.echo(f"  Schema Version: {schema_version}")
    click.echo("")
    click.echo("Table Row Counts:")
    for table, count in sorted(stats.items()):
        click.echo(f"  {table}: {count}")
    click.echo("")
    click.echo("Jobs By Status:")
    for status, count in sorted(job_counts.items()):
        click.echo(f"  {status}: {count}")
