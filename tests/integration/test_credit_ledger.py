"""Integration tests for the credit ledger."""

import tempfile
from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from clerkbook.ledger.ledger import CreditLedger
from clerkbook.ledger.metrics import LedgerMetrics
from clerkbook.ledger.models import CreditCosts, LedgerReason, PlanConfig
from clerkbook.store.metrics import StoreMetrics
from clerkbook.store.store import StateStore
from tests.helpers.time import FIXED_NOW, NEXT_RESET


@pytest.fixture
def store() -> Generator[StateStore]:
    """Create a connected state store in a temporary directory."""
    StoreMetrics.reset()
    LedgerMetrics.reset()
    with tempfile.TemporaryDirectory() as tmpdir:
        store = StateStore(Path(tmpdir) / "state.sqlite")
        store.connect()
        yield store
        store.close()


@pytest.fixture
def ledger(store: StateStore) -> CreditLedger:
    """Create a ledger with the built-in plans."""
    return CreditLedger(store)


def _assert_consistent(ledger: CreditLedger, owner_id: str) -> None:
    balance = ledger.get_balance(owner_id, now=FIXED_NOW).balance
    assert ledger.sum_entries(owner_id) == balance


def _period_sum(ledger: CreditLedger, owner_id: str, now: datetime) -> int:
    balance = ledger.get_balance(owner_id, now=now)
    period_sum = ledger.sum_since_last_reset(owner_id)
    assert period_sum == balance.balance - balance.monthly_grant
    return period_sum


class TestAccounts:
    """Tests for lazy account creation."""

    def test_opening_grant(self, ledger: CreditLedger) -> None:
        """A new owner starts with the default plan's grant."""
        balance = ledger.get_balance("alice", now=FIXED_NOW)

        assert balance.plan == "free"
        assert balance.balance == 50
        assert balance.monthly_grant == 50
        assert balance.reset_at == NEXT_RESET

        entries = ledger.list_entries("alice")
        assert [(e.delta, e.reason) for e in entries] == [(50, LedgerReason.MONTHLY_GRANT)]

    def test_account_created_once(self, ledger: CreditLedger) -> None:
        """Repeated reads do not grant again."""
        ledger.get_balance("alice", now=FIXED_NOW)
        ledger.get_balance("alice", now=FIXED_NOW)
        assert len(ledger.list_entries("alice")) == 1

    def test_custom_plan_catalog(self, store: StateStore) -> None:
        """The default plan is looked up in the configured catalog."""
        ledger = CreditLedger(
            store,
            plans={"team": PlanConfig(name="team", monthly_grant=500)},
            default_plan="team",
        )
        assert ledger.get_balance("alice", now=FIXED_NOW).balance == 500

    def test_unknown_default_plan(self, store: StateStore) -> None:
        """A default plan missing from the catalog is a configuration error."""
        with pytest.raises(ValueError, match="Unknown default plan"):
            CreditLedger(store, default_plan="enterprise")


class TestDebits:
    """Tests for try_debit."""

    def test_debit_reduces_balance(self, ledger: CreditLedger) -> None:
        """A covered debit lowers the balance and is recorded."""
        result = ledger.try_debit(
            "alice", LedgerReason.ENRICH_ITEM_FULL, job_id="job-1", item_id="item-1", now=FIXED_NOW
        )

        assert result.ok
        assert result.required == 2
        assert result.balance == 48
        assert result.entry_id is not None

        latest = ledger.list_entries("alice")[0]
        assert latest.delta == -2
        assert latest.reason == LedgerReason.ENRICH_ITEM_FULL
        assert latest.job_id == "job-1"
        assert latest.item_id == "item-1"
        _assert_consistent(ledger, "alice")

    def test_costs_per_reason(self, ledger: CreditLedger) -> None:
        """Each metered operation has its own default cost."""
        tags = ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_TAGS_ONLY, now=FIXED_NOW)
        compare = ledger.try_debit(
            "alice", LedgerReason.COMPARE_ITEMS, comparison_id="cmp-1", now=FIXED_NOW
        )
        assert tags.required == 1
        assert compare.required == 3
        assert compare.balance == 46

    def test_configured_costs(self, store: StateStore) -> None:
        """Costs come from the cost table."""
        ledger = CreditLedger(store, costs=CreditCosts(enrich_item_full=5))
        assert ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_FULL, now=FIXED_NOW).required == 5

    def test_insufficient_leaves_no_trace(self, ledger: CreditLedger) -> None:
        """A debit the balance cannot cover writes nothing."""
        ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_FULL, amount=49, now=FIXED_NOW)
        before = ledger.list_entries("alice")

        result = ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_FULL, now=FIXED_NOW)

        assert not result.ok
        assert result.required == 2
        assert result.balance == 1
        assert result.deficit == 1
        assert result.entry_id is None
        assert ledger.list_entries("alice") == before
        assert LedgerMetrics.get_instance().insufficient_total == 1
        _assert_consistent(ledger, "alice")

    def test_exact_balance_can_be_spent(self, ledger: CreditLedger) -> None:
        """The balance may reach zero but never below."""
        assert ledger.try_debit("alice", LedgerReason.COMPARE_ITEMS, amount=50, now=FIXED_NOW).ok
        assert ledger.get_balance("alice", now=FIXED_NOW).balance == 0
        assert not ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_TAGS_ONLY, now=FIXED_NOW).ok

    def test_grant_reason_rejected(self, ledger: CreditLedger) -> None:
        """Only debit reasons can be debited."""
        with pytest.raises(ValueError, match="Not a debit reason"):
            ledger.try_debit("alice", LedgerReason.ADMIN_GRANT, now=FIXED_NOW)

    def test_non_positive_amount_rejected(self, ledger: CreditLedger) -> None:
        """Zero-credit debits are rejected."""
        with pytest.raises(ValueError, match="must be positive"):
            ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_FULL, amount=0, now=FIXED_NOW)


class TestGrants:
    """Tests for grant."""

    def test_grant_adds_credits(self, ledger: CreditLedger) -> None:
        """Grants raise the balance and are recorded."""
        balance = ledger.grant("alice", 25, reason=LedgerReason.CREDIT_PACK, now=FIXED_NOW)

        assert balance.balance == 75
        assert ledger.list_entries("alice")[0].reason == LedgerReason.CREDIT_PACK
        _assert_consistent(ledger, "alice")

    def test_debit_reason_rejected(self, ledger: CreditLedger) -> None:
        """Only grant reasons can be granted."""
        with pytest.raises(ValueError, match="Not a grant reason"):
            ledger.grant("alice", 5, reason=LedgerReason.ENRICH_ITEM_FULL, now=FIXED_NOW)

    def test_non_positive_grant_rejected(self, ledger: CreditLedger) -> None:
        """Grants must add at least one credit."""
        with pytest.raises(ValueError, match="must be positive"):
            ledger.grant("alice", 0, now=FIXED_NOW)


class TestMonthlyReset:
    """Tests for the monthly reset."""

    def test_reset_restores_grant(self, ledger: CreditLedger) -> None:
        """After reset_at the balance returns to the monthly grant."""
        ledger.try_debit("alice", LedgerReason.COMPARE_ITEMS, amount=30, now=FIXED_NOW)

        balance = ledger.get_balance("alice", now=NEXT_RESET + timedelta(hours=1))

        assert balance.balance == 50
        assert balance.reset_at == NEXT_RESET.replace(month=5)
        latest = ledger.list_entries("alice")[0]
        assert latest.reason == LedgerReason.MONTHLY_GRANT
        assert latest.delta == 30
        assert ledger.sum_entries("alice") == 50

    def test_reset_drops_unused_extra_credits(self, ledger: CreditLedger) -> None:
        """A balance above the grant is brought back down to it."""
        ledger.grant("alice", 20, now=FIXED_NOW)

        balance = ledger.get_balance("alice", now=NEXT_RESET)

        assert balance.balance == 50
        assert ledger.list_entries("alice")[0].delta == -20
        assert ledger.sum_entries("alice") == 50

    def test_reset_applied_once(self, ledger: CreditLedger) -> None:
        """A second read after the reset does not reset again."""
        ledger.get_balance("alice", now=FIXED_NOW)
        later = NEXT_RESET + timedelta(days=1)
        ledger.get_balance("alice", now=later)
        ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_FULL, now=later)

        assert ledger.get_balance("alice", now=later).balance == 48
        assert LedgerMetrics.get_instance().resets_total == 1

    def test_debit_after_reset_uses_new_balance(self, ledger: CreditLedger) -> None:
        """A debit due after reset_at sees the restored balance."""
        ledger.try_debit("alice", LedgerReason.COMPARE_ITEMS, amount=50, now=FIXED_NOW)

        result = ledger.try_debit(
            "alice", LedgerReason.ENRICH_ITEM_FULL, now=NEXT_RESET + timedelta(minutes=1)
        )

        assert result.ok
        assert result.balance == 48

    def test_period_sum_tracks_balance(self, ledger: CreditLedger) -> None:
        """Entries since the latest reset always net to balance minus grant."""
        later = NEXT_RESET + timedelta(hours=1)

        ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_FULL, job_id="job-old", now=FIXED_NOW)
        assert _period_sum(ledger, "alice", FIXED_NOW) == -2

        ledger.try_debit("alice", LedgerReason.COMPARE_ITEMS, job_id="job-new", now=later)
        assert _period_sum(ledger, "alice", later) == -3

        assert ledger.refund("job-old", now=later) == 2
        assert _period_sum(ledger, "alice", later) == -1

        ledger.grant("alice", 10, now=later)
        assert _period_sum(ledger, "alice", later) == 9
        assert ledger.get_balance("alice", now=later).balance == 59
        assert ledger.sum_entries("alice") == 59


class TestRefunds:
    """Tests for refund."""

    def test_refund_returns_charge(self, ledger: CreditLedger) -> None:
        """The debit recorded for a job is returned in full."""
        ledger.try_debit(
            "alice", LedgerReason.ENRICH_ITEM_FULL, job_id="job-1", item_id="item-1", now=FIXED_NOW
        )

        refunded = ledger.refund("job-1", now=FIXED_NOW)

        assert refunded == 2
        assert ledger.get_balance("alice", now=FIXED_NOW).balance == 50
        latest = ledger.list_entries("alice")[0]
        assert latest.reason == LedgerReason.REFUND
        assert latest.job_id == "job-1"
        assert latest.item_id == "item-1"
        _assert_consistent(ledger, "alice")

    def test_refund_at_most_once(self, ledger: CreditLedger) -> None:
        """A second refund for the same job is a no-op."""
        ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_FULL, job_id="job-1", now=FIXED_NOW)

        assert ledger.refund("job-1", now=FIXED_NOW) == 2
        assert ledger.refund("job-1", now=FIXED_NOW) == 0
        assert ledger.get_balance("alice", now=FIXED_NOW).balance == 50
        assert LedgerMetrics.get_instance().refunds_total == 1

    def test_refund_unknown_job(self, ledger: CreditLedger) -> None:
        """Jobs that were never charged refund nothing."""
        assert ledger.refund("missing", now=FIXED_NOW) == 0


class TestUsage:
    """Tests for get_usage."""

    def test_usage_summary(self, ledger: CreditLedger) -> None:
        """Usage reports the balance and what was spent since the reset."""
        ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_FULL, now=FIXED_NOW)
        ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_TAGS_ONLY, now=FIXED_NOW)

        usage = ledger.get_usage("alice", now=FIXED_NOW)

        assert usage.balance == 47
        assert usage.monthly_grant == 50
        assert usage.used_this_period == 3
        assert usage.plan == "free"
        assert len(usage.ledger) == 3
        assert usage.ledger[0].reason == LedgerReason.ENRICH_ITEM_TAGS_ONLY

    def test_usage_ledger_limit(self, ledger: CreditLedger) -> None:
        """The ledger excerpt honors the limit."""
        for _ in range(5):
            ledger.try_debit("alice", LedgerReason.ENRICH_ITEM_TAGS_ONLY, now=FIXED_NOW)
        assert len(ledger.get_usage("alice", ledger_limit=2, now=FIXED_NOW).ledger) == 2
