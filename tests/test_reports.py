"""
Tests for reports

Member balances, the ledger summary and actor scoping.
"""
from datetime import date

import pytest

from coop_ledger.records import Loan, LoanStatus, Member, Transaction, TransactionKind
from coop_ledger.reports import (
    Actor,
    ledger_summary,
    member_balances,
    visible_loans,
    visible_members,
    visible_transactions,
)

TODAY = date(2026, 3, 14)


@pytest.fixture
def members():
    return [
        Member(id="M-1", name="Siti", principal_savings=100_000, mandatory_savings=50_000,
               voluntary_savings=250_000, accumulated_profit_share=20_000, sponsor_id="coord-1"),
        Member(id="M-2", name="Budi", principal_savings=100_000, mandatory_savings=50_000,
               voluntary_savings=0, sponsor_id="coord-2"),
        Member(id="M-3", name="Wati", voluntary_savings=75_000),
    ]


@pytest.fixture
def loans():
    return [
        # Half repaid: 620,000 of 1,240,000 paid
        Loan(id="LN-1", member_id="M-2", principal=1_000_000, monthly_interest_rate_percent=2,
             term_months=12, monthly_installment=103_334, outstanding_balance=620_000),
        # Settled: 330,000 paid in full
        Loan(id="LN-2", member_id="M-1", principal=300_000, monthly_interest_rate_percent=1,
             term_months=10, monthly_installment=33_000, outstanding_balance=0,
             status=LoanStatus.SETTLED),
    ]


def _trx(trx_id, member_id, kind, amount, timestamp="2026-03-14T08:00:00+00:00"):
    return Transaction(id=trx_id, timestamp=timestamp, member_id=member_id,
                       kind=kind, amount=amount)


@pytest.fixture
def transactions():
    return [
        _trx("T-1", "M-1", TransactionKind.VOLUNTARY_DEPOSIT, 250_000),
        _trx("T-2", "M-2", TransactionKind.LOAN_REPAYMENT, 620_000),
        _trx("T-3", "M-1", TransactionKind.WITHDRAWAL, -40_000),
        _trx("T-4", "M-1", TransactionKind.PROFIT_SHARE, -20_000),
        _trx("T-5", "M-3", TransactionKind.VOLUNTARY_DEPOSIT, 75_000,
             timestamp="2026-03-13T23:59:00+00:00"),
    ]


class TestMemberBalances:
    """Test the per-member balance sheet."""

    def test_balances(self, members, loans):
        """Test savings, debt, net worth and total assets per member."""
        rows = {row["member_id"]: row for row in member_balances(members, loans)}

        assert rows["M-1"]["savings_total"] == 400_000
        assert rows["M-1"]["outstanding_loan"] == 0
        assert rows["M-1"]["net_worth"] == 400_000
        assert rows["M-1"]["total_assets"] == 420_000

        assert rows["M-2"]["outstanding_loan"] == 620_000
        assert rows["M-2"]["net_worth"] == 150_000 - 620_000

    def test_settled_loans_not_counted(self, members, loans):
        """Test that only active loans count as debt."""
        rows = member_balances(members, loans)
        assert sum(row["outstanding_loan"] for row in rows) == 620_000


class TestLedgerSummary:
    """Test cooperative-wide totals."""

    def test_totals(self, members, transactions, loans):
        """Test the summary figures."""
        summary = ledger_summary(members, transactions, loans, today=TODAY)

        assert summary["member_count"] == 3
        assert summary["total_savings"] == 625_000
        assert summary["total_outstanding_loans"] == 620_000
        assert summary["net_balance"] == 5_000
        # 120,000 from the half-repaid loan, 30,000 from the settled one
        assert summary["gross_interest_earned"] == 150_000
        assert summary["profit_distributed"] == 20_000
        assert summary["net_interest_revenue"] == 130_000

    def test_liquid_balance(self, members, transactions, loans):
        """Test savings minus lent principal plus repayments minus profit paid."""
        summary = ledger_summary(members, transactions, loans, today=TODAY)
        # 625,000 - 1,300,000 + (620,000 + 330,000) - 20,000
        assert summary["liquid_balance"] == 255_000

    def test_today(self, members, transactions, loans):
        """Test today's count, inflow and outflow."""
        today = ledger_summary(members, transactions, loans, today=TODAY)["today"]

        assert today["date"] == "2026-03-14"
        assert today["transaction_count"] == 4
        assert today["inflow"] == 250_000 + 620_000
        assert today["outflow"] == 40_000 + 20_000

    def test_net_interest_never_negative(self, members, loans):
        """Test that over-distribution floors net interest revenue at zero."""
        paid_out = [_trx("T-9", "M-1", TransactionKind.PROFIT_SHARE, -1_000_000)]
        summary = ledger_summary(members, paid_out, loans, today=TODAY)
        assert summary["net_interest_revenue"] == 0

    def test_empty_ledger(self):
        """Test the summary of an empty ledger."""
        summary = ledger_summary([], [], [], today=TODAY)
        assert summary["member_count"] == 0
        assert summary["liquid_balance"] == 0
        assert summary["today"]["transaction_count"] == 0


class TestScoping:
    """Test what each role may see."""

    def test_admin_sees_all(self, members, transactions, loans):
        """Test that admins see everything."""
        admin = Actor(id="admin", role="admin")
        assert len(visible_members(admin, members)) == 3
        assert len(visible_transactions(admin, members, transactions)) == 5
        assert len(visible_loans(admin, members, loans)) == 2

    def test_coordinator_sees_sponsored(self, members, transactions, loans):
        """Test that coordinators see the members they sponsor."""
        coordinator = Actor(id="coord-1", role="coordinator")

        assert [m.id for m in visible_members(coordinator, members)] == ["M-1"]
        assert {t.member_id for t in visible_transactions(coordinator, members, transactions)} == {"M-1"}
        assert [l.id for l in visible_loans(coordinator, members, loans)] == ["LN-2"]

    def test_member_sees_self(self, members, transactions):
        """Test that a member sees only their own record."""
        actor = Actor(id="user-17", role="member", member_id="M-3")

        assert [m.id for m in visible_members(actor, members)] == ["M-3"]
        assert [t.id for t in visible_transactions(actor, members, transactions)] == ["T-5"]

    def test_member_id_defaults_to_actor_id(self, members):
        """Test that a member actor without a link is matched by its own id."""
        actor = Actor(id="M-2", role="member")
        assert [m.id for m in visible_members(actor, members)] == ["M-2"]

    def test_unknown_role_sees_nothing(self, members, transactions):
        """Test that unknown roles are denied."""
        actor = Actor(id="x", role="auditor")
        assert visible_members(actor, members) == []
        assert visible_transactions(actor, members, transactions) == []

    def test_actor_from_dict(self):
        """Test building an actor from a JSON object."""
        actor = Actor.from_dict({"id": "coord-1", "role": "coordinator"})
        assert actor == Actor(id="coord-1", role="coordinator")
