"""SQLite schema migrations for the state store."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from clerkbook.store.errors import MigrationError


logger = structlog.get_logger()

# Current schema version
CURRENT_VERSION = 3


@dataclass(frozen=True)
class Migration:
    """A database migration.

    Attributes:
        version: Target version after applying this migration.
        description: Human-readable description.
        up_sql: SQL to apply the migration.
        down_sql: SQL to rollback the migration.
    """

    version: int
    description: str
    up_sql: str
    down_sql: str


# All migrations in order
MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Items with fingerprint index, quotes, tags and collections",
        up_sql="""
CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    source_type TEXT NOT NULL CHECK (source_type IN ('url', 'paste', 'file')),
    status TEXT NOT NULL
        CHECK (status IN ('captured', 'extracted', 'enriched', 'failed')),
    fingerprint TEXT NOT NULL,
    url TEXT,
    domain TEXT,
    title TEXT,
    generated_title TEXT,
    raw_text TEXT,
    cleaned_text TEXT,
    file_path TEXT,
    mime_type TEXT,
    original_filename TEXT,
    abstract TEXT,
    bullets TEXT NOT NULL DEFAULT '[]',
    error TEXT,
    blocked_reason TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    extracted_at TEXT,
    enriched_at TEXT,
    last_saved_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_items_fingerprint
    ON items(owner_id, source_type, fingerprint);
CREATE INDEX IF NOT EXISTS idx_items_owner_saved ON items(owner_id, last_saved_at);
CREATE INDEX IF NOT EXISTS idx_items_status ON items(status);

CREATE TABLE IF NOT EXISTS quotes (
    id TEXT PRIMARY KEY,
    item_id TEXT NOT NULL REFERENCES items(id) ON DELETE CASCADE,
    owner_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    quote TEXT NOT NULL,
    why TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_quotes_item ON quotes(item_id, position);

CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (owner_id, name)
);

CREATE TABLE IF NOT EXISTS item_tags (
    item_id TEXT NOT NULL REFERENCES items(id) ON DELETE CASCADE,
    tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (item_id, tag_id)
);

CREATE TABLE IF NOT EXISTS collections (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_collections_owner ON collections(owner_id);

CREATE TABLE IF NOT EXISTS collection_items (
    collection_id TEXT NOT NULL REFERENCES collections(id) ON DELETE CASCADE,
    item_id TEXT NOT NULL REFERENCES items(id) ON DELETE CASCADE,
    added_at TEXT NOT NULL,
    PRIMARY KEY (collection_id, item_id)
);
""",
        down_sql="""
DROP TABLE IF EXISTS collection_items;
DROP INDEX IF EXISTS idx_collections_owner;
DROP TABLE IF EXISTS collections;
DROP TABLE IF EXISTS item_tags;
DROP TABLE IF EXISTS tags;
DROP INDEX IF EXISTS idx_quotes_item;
DROP TABLE IF EXISTS quotes;
DROP INDEX IF EXISTS idx_items_status;
DROP INDEX IF EXISTS idx_items_owner_saved;
DROP INDEX IF EXISTS idx_items_fingerprint;
DROP TABLE IF EXISTS items;
""",
    ),
    Migration(
        version=2,
        description="Job queue",
        up_sql="""
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    item_id TEXT REFERENCES items(id) ON DELETE SET NULL,
    type TEXT NOT NULL
        CHECK (type IN ('extract_url', 'extract_file', 'enrich_item')),
    status TEXT NOT NULL
        CHECK (status IN ('queued', 'running', 'succeeded', 'failed')),
    payload TEXT NOT NULL,
    result TEXT,
    error TEXT,
    run_after TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    finished_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_jobs_due ON jobs(status, run_after, created_at);
CREATE INDEX IF NOT EXISTS idx_jobs_item ON jobs(item_id, type, status);
CREATE INDEX IF NOT EXISTS idx_jobs_owner ON jobs(owner_id, created_at);
""",
        down_sql="""
DROP INDEX IF EXISTS idx_jobs_owner;
DROP INDEX IF EXISTS idx_jobs_item;
DROP INDEX IF EXISTS idx_jobs_due;
DROP TABLE IF EXISTS jobs;
""",
    ),
    Migration(
        version=3,
        description="Credit accounts, append-only ledger and idempotency keys",
        up_sql="""
CREATE TABLE IF NOT EXISTS credit_accounts (
    owner_id TEXT PRIMARY KEY,
    plan TEXT NOT NULL,
    balance INTEGER NOT NULL CHECK (balance >= 0),
    monthly_grant INTEGER NOT NULL CHECK (monthly_grant >= 0),
    reset_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS credit_ledger (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id TEXT NOT NULL REFERENCES credit_accounts(owner_id),
    delta INTEGER NOT NULL,
    reason TEXT NOT NULL,
    job_id TEXT,
    item_id TEXT,
    comparison_id TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_credit_ledger_owner ON credit_ledger(owner_id, id);
CREATE INDEX IF NOT EXISTS idx_credit_ledger_job ON credit_ledger(job_id, reason);

CREATE TABLE IF NOT EXISTS idempotency_keys (
    owner_id TEXT NOT NULL,
    key TEXT NOT NULL,
    status_code INTEGER NOT NULL,
    body TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (owner_id, key)
);
""",
        down_sql="""
DROP TABLE IF EXISTS idempotency_keys;
DROP INDEX IF EXISTS idx_credit_ledger_job;
DROP INDEX IF EXISTS idx_credit_ledger_owner;
DROP TABLE IF EXISTS credit_ledger;
DROP TABLE IF EXISTS credit_accounts;
""",
    ),
]


def get_migrations_to_apply(current_version: int) -> list[Migration]:
    """Get migrations that need to be applied.

    Args:
        current_version: The current schema version.

    Returns:
        List of migrations to apply in order.
    """
    return [m for m in MIGRATIONS if m.version > current_version]


def get_migration(version: int) -> Migration | None:
    """Look up a migration by its target version.

    Args:
        version: Version number.

    Returns:
        The migration, or None if unknown.
    """
    for migration in MIGRATIONS:
        if migration.version == version:
            return migration
    return None


class MigrationManager:
    """Manages SQLite schema migrations.

    The connection is expected to run in autocommit mode
    (``isolation_level=None``); each migration script is idempotent so a
    partially applied script can be re-run.
    """

    VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
);
"""

    def __init__(self, connection: sqlite3.Connection) -> None:
        """Initialize the migration manager.

        Args:
            connection: SQLite connection to manage.
        """
        self._conn = connection
        self._log = logger.bind(component="store", operation="migration")

    def ensure_version_table(self) -> None:
        """Ensure the schema_version table exists."""
        self._conn.execute(self.VERSION_TABLE_SQL)

    def get_current_version(self) -> int:
        """Get the current schema version.

        Returns:
            Current version number, or 0 if no migrations applied.
        """
        self.ensure_version_table()
        row = self._conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def apply_migrations(self) -> list[int]:
        """Apply all pending migrations.

        Returns:
            List of version numbers that were applied.

        Raises:
            MigrationError: If a migration script fails.
        """
        current = self.get_current_version()
        pending = get_migrations_to_apply(current)

        if not pending:
            self._log.debug("no_migrations_pending", current_version=current)
            return []

        applied: list[int] = []

        for migration in pending:
            self._log.info(
                "applying_migration",
                version=migration.version,
                description=migration.description,
            )

            try:
                self._conn.executescript(migration.up_sql)
                self._conn.execute(
                    """
                    INSERT OR IGNORE INTO schema_version (version, applied_at, description)
                    VALUES (?, ?, ?)
                    """,
                    (
                        migration.version,
                        datetime.now(UTC).isoformat(),
                        migration.description,
                    ),
                )
            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed",
                    version=migration.version,
                    error=str(e),
                )
                raise MigrationError(migration.version, str(e)) from e

            applied.append(migration.version)
            self._log.info("migration_applied", version=migration.version)

        return applied

    def rollback_to(self, target_version: int) -> list[int]:
        """Rollback to a specific version.

        Args:
            target_version: The version to rollback to.

        Returns:
            List of version numbers that were rolled back.

        Raises:
            ValueError: If target version is invalid.
        """
        if target_version < 0:
            msg = f"Invalid target version: {target_version}"
            raise ValueError(msg)

        rolled_back: list[int] = []

        while (current := self.get_current_version()) > target_version:
            migration = get_migration(current)
            if migration is None:
                break

            self._log.info(
                "rolling_back_migration",
                version=migration.version,
                description=migration.description,
            )
            self._conn.executescript(migration.down_sql)
            self._conn.execute(
                "DELETE FROM schema_version WHERE version = ?",
                (migration.version,),
            )
            rolled_back.append(migration.version)
            self._log.info("migration_rolled_back", version=migration.version)

        return rolled_back

    def get_applied_migrations(self) -> list[dict[str, str | int]]:
        """Get list of applied migrations.

        Returns:
            List of dicts with version, applied_at, and description.
        """
        self.ensure_version_table()
        cursor = self._conn.execute(
            """
            SELECT version, applied_at, description
            FROM schema_version
            ORDER BY version
            """
        )
        return [
            {
                "version": row[0],
                "applied_at": row[1],
                "description": row[2],
            }
            for row in cursor.fetchall()
        ]
