"""SQLite state store implementation."""

import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from clerkbook.store.errors import ConnectionError as StoreConnectionError
from clerkbook.store.metrics import StoreMetrics, TransactionContext
from clerkbook.store.migrations import CURRENT_VERSION, MigrationManager


logger = structlog.get_logger()

STATS_TABLES = (
    "items",
    "jobs",
    "credit_accounts",
    "credit_ledger",
    "idempotency_keys",
    "collections",
    "tags",
    "quotes",
)


class StateStore:
    """SQLite store shared by the ledger, queue, item and idempotency layers.

    Uses WAL mode and ``BEGIN IMMEDIATE`` write transactions so that
    concurrent worker processes serialize on the write lock instead of
    failing mid-transaction. A connection belongs to the thread that opened
    it; each worker thread or process opens its own ``StateStore``.
    """

    def __init__(
        self,
        db_path: Path | str,
        busy_timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize the state store.

        Args:
            db_path: Path to SQLite database file.
            busy_timeout_seconds: How long to wait for the write lock.
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._busy_timeout = busy_timeout_seconds
        self._conn: sqlite3.Connection | None = None
        self._tx: TransactionContext | None = None
        self._metrics = StoreMetrics.get_instance()
        self._log = logger.bind(component="store", db_path=str(self._db_path))

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        """Check whether a transaction opened by ``transaction`` is active."""
        return self._tx is not None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the open connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        return self._conn

    def connect(self) -> None:
        """Open connection to database and apply migrations.

        Creates the database file and parent directories if they don't exist.
        """
        if self._conn is not None:
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._log.debug("connecting_to_database")

        # Autocommit mode; write transactions are opened explicitly.
        self._conn = sqlite3.connect(
            str(self._db_path),
            timeout=self._busy_timeout,
            isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        migration_mgr = MigrationManager(self._conn)
        old_version = migration_mgr.get_current_version()
        applied = migration_mgr.apply_migrations()

        self._log.info(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._tx = None
            self._log.debug("database_closed")

    def __enter__(self) -> "StateStore":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    @contextmanager
    def transaction(self, operation: str) -> Iterator[TransactionContext]:
        """Run a block inside one IMMEDIATE write transaction.

        Nested calls join the outermost transaction, so composite operations
        (debit, job insert, ledger entry) commit or roll back together.

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context with timing information.
        """
        if self._tx is not None:
            yield self._tx
            return

        conn = self.connection
        tx_id = str(uuid.uuid4())[:8]
        start_ns = time.perf_counter_ns()
        ctx = TransactionContext(tx_id=tx_id, start_time_ns=start_ns, operation=operation)

        conn.execute("BEGIN IMMEDIATE")
        self._tx = ctx
        self._log.debug("transaction_started", tx_id=tx_id, op=operation)

        try:
            yield ctx
        except BaseException:
            self._tx = None
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            self._metrics.record_rollback()
            self._log.warning(
                "transaction_failed",
                tx_id=tx_id,
                op=operation,
                duration_ms=round(duration_ms, 2),
            )
            raise

        self._tx = None
        conn.execute("COMMIT")
        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        self._metrics.record_tx_duration(duration_ms)

        self._log.debug(
            "transaction_complete",
            tx_id=tx_id,
            op=operation,
            affected_rows=ctx.affected_rows,
            duration_ms=round(duration_ms, 2),
        )

    def get_stats(self) -> dict[str, int]:
        """Get row counts for all tables.

        Returns:
            Dictionary mapping table name to row count.
        """
        conn = self.connection

        stats: dict[str, int] = {}

        for table in STATS_TABLES:
            cursor = conn.execute(f"SELECT COUNT(*) FROM {table}")  # noqa: S608
            stats[table] = cursor.fetchone()[0]

        return stats

    def get_schema_version(self) -> int:
        """Get current schema version.

        Returns:
            Current schema version number.
        """
        return MigrationManager(self.connection).get_current_version()
