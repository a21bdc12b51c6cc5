"""Credit ledger: the only writer of account balances.

Every balance change is a single guarded statement executed in the same
IMMEDIATE transaction as the ledger entry that explains it, so the sum of
an owner's ledger deltas always equals the account balance.
"""

import sqlite3
from collections.abc import Mapping
from datetime import datetime

import structlog

from clerkbook.ledger.metrics import LedgerMetrics
from clerkbook.ledger.models import (
    DEBIT_REASONS,
    DEFAULT_PLANS,
    GRANT_REASONS,
    Balance,
    CreditCosts,
    DebitResult,
    LedgerEntry,
    LedgerReason,
    PlanConfig,
    Usage,
)
from clerkbook.store.store import StateStore
from clerkbook.store.timestamps import format_ts, parse_ts, start_of_next_month, utc_now


logger = structlog.get_logger()

MAX_LIST_LIMIT = 100


def clamp_limit(limit: int, upper: int = MAX_LIST_LIMIT) -> int:
    """Clamp a list limit to ``[1, upper]``."""
    return max(1, min(limit, upper))


class CreditLedger:
    """Per-owner credit accounts with monthly reset and metered debits."""

    def __init__(
        self,
        store: StateStore,
        plans: Mapping[str, PlanConfig] | None = None,
        default_plan: str = "free",
        costs: CreditCosts | None = None,
    ) -> None:
        """Initialize the ledger.

        Args:
            store: Connected state store.
            plans: Plan catalog keyed by plan name.
            default_plan: Plan assigned to lazily created accounts.
            costs: Credit cost table.

        Raises:
            ValueError: If the default plan is not in the catalog.
        """
        self._store = store
        self._plans = dict(plans) if plans is not None else dict(DEFAULT_PLANS)
        if default_plan not in self._plans:
            msg = f"Unknown default plan: {default_plan}"
            raise ValueError(msg)
        self._default_plan = default_plan
        self._costs = costs or CreditCosts()
        self._metrics = LedgerMetrics.get_instance()
        self._log = logger.bind(component="ledger")

    @property
    def costs(self) -> CreditCosts:
        """Get the credit cost table."""
        return self._costs

    # ===== Account lifecycle =====

    def _ensure_account(self, conn: sqlite3.Connection, owner_id: str, now: datetime) -> None:
        """Create the owner's account with its opening grant if missing."""
        plan = self._plans[self._default_plan]
        ts = format_ts(now)
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO credit_accounts (
                owner_id, plan, balance, monthly_grant, reset_at,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                owner_id,
                plan.name,
                plan.monthly_grant,
                plan.monthly_grant,
                format_ts(start_of_next_month(now)),
                ts,
                ts,
            ),
        )
        if cursor.rowcount == 1:
            conn.execute(
                """
                INSERT INTO credit_ledger (owner_id, delta, reason, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (owner_id, plan.monthly_grant, LedgerReason.MONTHLY_GRANT.value, ts),
            )
            self._log.info(
                "credit_account_created",
                owner_id=owner_id,
                plan=plan.name,
                monthly_grant=plan.monthly_grant,
            )

    def _apply_due_reset(self, conn: sqlite3.Connection, owner_id: str, now: datetime) -> bool:
        """Restore the monthly grant if the reset instant has passed.

        The grant entry records ``monthly_grant - balance`` so the ledger sum
        still equals the balance after the reset. Both statements are guarded
        by ``reset_at <= now`` so only one caller applies a given reset.

        Returns:
            True if a reset was applied.
        """
        ts = format_ts(now)
        cursor = conn.execute(
            """
            INSERT INTO credit_ledger (owner_id, delta, reason, created_at)
            SELECT owner_id, monthly_grant - balance, ?, ?
            FROM credit_accounts
            WHERE owner_id = ? AND reset_at <= ?
            """,
            (LedgerReason.MONTHLY_GRANT.value, ts, owner_id, ts),
        )
        if cursor.rowcount == 0:
            return False

        conn.execute(
            """
            UPDATE credit_accounts
            SET balance = monthly_grant, reset_at = ?, updated_at = ?
            WHERE owner_id = ? AND reset_at <= ?
            """,
            (format_ts(start_of_next_month(now)), ts, owner_id, ts),
        )
        self._metrics.record_reset()
        self._log.info("monthly_reset_applied", owner_id=owner_id)
        return True

    def _prepare(self, conn: sqlite3.Connection, owner_id: str, now: datetime) -> None:
        self._ensure_account(conn, owner_id, now)
        self._apply_due_reset(conn, owner_id, now)

    def _read_balance(self, conn: sqlite3.Connection, owner_id: str) -> Balance:
        row = conn.execute(
            """
            SELECT owner_id, plan, balance, monthly_grant, reset_at
            FROM credit_accounts WHERE owner_id = ?
            """,
            (owner_id,),
        ).fetchone()
        return Balance(
            owner_id=row["owner_id"],
            plan=row["plan"],
            balance=row["balance"],
            monthly_grant=row["monthly_grant"],
            reset_at=parse_ts(row["reset_at"]),
        )

    # ===== Public API =====

    def get_balance(self, owner_id: str, now: datetime | None = None) -> Balance:
        """Get the owner's balance, applying a due monthly reset first.

        Args:
            owner_id: Account owner.
            now: Clock override.

        Returns:
            Current balance.
        """
        now = now or utc_now()
        with self._store.transaction("get_balance"):
            conn = self._store.connection
            self._prepare(conn, owner_id, now)
            return self._read_balance(conn, owner_id)

    def try_debit(
        self,
        owner_id: str,
        reason: LedgerReason,
        *,
        amount: int | None = None,
        job_id: str | None = None,
        item_id: str | None = None,
        comparison_id: str | None = None,
        now: datetime | None = None,
    ) -> DebitResult:
        """Debit credits if the balance covers them.

        The decrement is one conditional ``UPDATE``; when it matches no row
        the balance is insufficient and nothing is written.

        Args:
            owner_id: Account owner.
            reason: Debit reason.
            amount: Credits to charge (defaults to the reason's cost).
            job_id: Job the charge pays for.
            item_id: Item the charge pays for.
            comparison_id: Comparison the charge pays for.
            now: Clock override.

        Returns:
            Debit outcome.

        Raises:
            ValueError: If the reason is not a debit or the amount is not positive.
        """
        if reason not in DEBIT_REASONS:
            msg = f"Not a debit reason: {reason.value}"
            raise ValueError(msg)
        required = amount if amount is not None else self._costs.cost_for(reason)
        if required < 1:
            msg = f"Debit amount must be positive: {required}"
            raise ValueError(msg)

        now = now or utc_now()
        with self._store.transaction("try_debit") as ctx:
            conn = self._store.connection
            self._prepare(conn, owner_id, now)

            cursor = conn.execute(
                """
                UPDATE credit_accounts
                SET balance = balance - ?, updated_at = ?
                WHERE owner_id = ? AND balance >= ?
                """,
                (required, format_ts(now), owner_id, required),
            )
            if cursor.rowcount == 0:
                balance = self._read_balance(conn, owner_id).balance
                self._metrics.record_insufficient()
                self._log.info(
                    "credit_insufficient",
                    owner_id=owner_id,
                    reason=reason.value,
                    required=required,
                    balance=balance,
                )
                return DebitResult(ok=False, required=required, balance=balance)

            entry_id = self._insert_entry(
                conn,
                owner_id,
                -required,
                reason,
                now,
                job_id=job_id,
                item_id=item_id,
                comparison_id=comparison_id,
            )
            ctx.add_affected_rows(2)
            balance = self._read_balance(conn, owner_id).balance

        self._metrics.record_debit(required)
        self._log.info(
            "credit_debited",
            owner_id=owner_id,
            reason=reason.value,
            amount=required,
            balance=balance,
            job_id=job_id,
        )
        return DebitResult(ok=True, required=required, balance=balance, entry_id=entry_id)

    def grant(
        self,
        owner_id: str,
        amount: int,
        reason: LedgerReason = LedgerReason.ADMIN_GRANT,
        now: datetime | None = None,
    ) -> Balance:
        """Add credits outside the monthly cycle.

        Args:
            owner_id: Account owner.
            amount: Credits to add.
            reason: ``admin_grant`` or ``credit_pack``.
            now: Clock override.

        Returns:
            Balance after the grant.

        Raises:
            ValueError: If the reason is not a grant or the amount is not positive.
        """
        if reason not in GRANT_REASONS:
            msg = f"Not a grant reason: {reason.value}"
            raise ValueError(msg)
        if amount < 1:
            msg = f"Grant amount must be positive: {amount}"
            raise ValueError(msg)

        now = now or utc_now()
        with self._store.transaction("grant_credits"):
            conn = self._store.connection
            self._prepare(conn, owner_id, now)
            conn.execute(
                """
                UPDATE credit_accounts
                SET balance = balance + ?, updated_at = ?
                WHERE owner_id = ?
                """,
                (amount, format_ts(now), owner_id),
            )
            self._insert_entry(conn, owner_id, amount, reason, now)
            balance = self._read_balance(conn, owner_id)

        self._metrics.record_grant()
        self._log.info(
            "credit_granted",
            owner_id=owner_id,
            amount=amount,
            reason=reason.value,
            balance=balance.balance,
        )
        return balance

    def refund(self, job_id: str, now: datetime | None = None) -> int:
        """Reverse the charge made for a job, at most once.

        Args:
            job_id: Job whose debit should be returned.
            now: Clock override.

        Returns:
            Credits refunded (0 if there was no charge or it was already refunded).
        """
        now = now or utc_now()
        debit_reasons = tuple(r.value for r in DEBIT_REASONS)
        placeholders = ", ".join("?" for _ in debit_reasons)

        with self._store.transaction("refund_charge"):
            conn = self._store.connection
            rows = conn.execute(
                f"""
                INSERT INTO credit_ledger (owner_id, delta, reason, job_id, item_id, created_at)
                SELECT owner_id, -delta, ?, job_id, item_id, ?
                FROM credit_ledger
                WHERE job_id = ? AND delta < 0 AND reason IN ({placeholders})
                  AND NOT EXISTS (
                      SELECT 1 FROM credit_ledger WHERE job_id = ? AND reason = ?
                  )
                LIMIT 1
                RETURNING owner_id, delta
                """,  # noqa: S608
                (
                    LedgerReason.REFUND.value,
                    format_ts(now),
                    job_id,
                    *debit_reasons,
                    job_id,
                    LedgerReason.REFUND.value,
                ),
            ).fetchall()
            if not rows:
                return 0

            owner_id, amount = rows[0]["owner_id"], rows[0]["delta"]
            conn.execute(
                """
                UPDATE credit_accounts
                SET balance = balance + ?, updated_at = ?
                WHERE owner_id = ?
                """,
                (amount, format_ts(now), owner_id),
            )

        self._metrics.record_refund()
        self._log.info("credit_refunded", owner_id=owner_id, job_id=job_id, amount=amount)
        return amount

    def list_entries(self, owner_id: str, limit: int = 50) -> list[LedgerEntry]:
        """List the owner's ledger entries, newest first.

        Args:
            owner_id: Account owner.
            limit: Maximum entries, clamped to 1..100.

        Returns:
            Ledger entries.
        """
        cursor = self._store.connection.execute(
            """
            SELECT * FROM credit_ledger
            WHERE owner_id = ?
            ORDER BY id DESC
            LIMIT ?
            """,
            (owner_id, clamp_limit(limit)),
        )
        return [self._row_to_entry(row) for row in cursor.fetchall()]

    def sum_entries(self, owner_id: str) -> int:
        """Sum every ledger delta for the owner (equals the balance)."""
        row = self._store.connection.execute(
            "SELECT COALESCE(SUM(delta), 0) FROM credit_ledger WHERE owner_id = ?",
            (owner_id,),
        ).fetchone()
        return int(row[0])

    def sum_since_last_reset(self, owner_id: str) -> int:
        """Net delta of the entries written after the latest monthly grant.

        Args:
            owner_id: Account owner.

        Returns:
            Signed sum; negative when more was spent than granted since.
        """
        row = self._store.connection.execute(
            """
            SELECT COALESCE(SUM(delta), 0) FROM credit_ledger
            WHERE owner_id = ? AND id > (
                SELECT COALESCE(MAX(id), 0) FROM credit_ledger
                WHERE owner_id = ? AND reason = ?
            )
            """,
            (owner_id, owner_id, LedgerReason.MONTHLY_GRANT.value),
        ).fetchone()
        return int(row[0])

    def get_usage(
        self,
        owner_id: str,
        ledger_limit: int = 20,
        now: datetime | None = None,
    ) -> Usage:
        """Get the balance summary shown to the user.

        Args:
            owner_id: Account owner.
            ledger_limit: Number of recent entries to include.
            now: Clock override.

        Returns:
            Usage summary with the balance floored at zero.
        """
        balance = self.get_balance(owner_id, now=now)
        net = self.sum_since_last_reset(owner_id)
        return Usage(
            balance=max(0, balance.balance),
            monthly_grant=balance.monthly_grant,
            plan=balance.plan,
            reset_at=balance.reset_at,
            used_this_period=max(0, -net),
            ledger=self.list_entries(owner_id, limit=ledger_limit),
        )

    # ===== Helpers =====

    def _insert_entry(
        self,
        conn: sqlite3.Connection,
        owner_id: str,
        delta: int,
        reason: LedgerReason,
        now: datetime,
        job_id: str | None = None,
        item_id: str | None = None,
        comparison_id: str | None = None,
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO credit_ledger (
                owner_id, delta, reason, job_id, item_id, comparison_id, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (owner_id, delta, reason.value, job_id, item_id, comparison_id, format_ts(now)),
        )
        return int(cursor.lastrowid)

    def _row_to_entry(self, row: sqlite3.Row) -> LedgerEntry:
        return LedgerEntry(
            id=row["id"],
            owner_id=row["owner_id"],
            delta=row["delta"],
            reason=LedgerReason(row["reason"]),
            job_id=row["job_id"],
            item_id=row["item_id"],
            comparison_id=row["comparison_id"],
            created_at=parse_ts(row["created_at"]),
        )
