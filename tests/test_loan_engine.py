"""
Tests for the Loan Engine

Flat-interest terms, disbursement, repayment and interest accounting.
"""
from decimal import Decimal

import pytest

from coop_ledger.errors import (
    ActiveLoanExists,
    InvalidAmount,
    InvalidLoanTerms,
    NoSuchLoan,
    NoSuchMember,
)
from coop_ledger.loan_engine import (
    flat_interest_terms,
    interest_earned,
    repayment_progress,
)
from coop_ledger.records import Loan, LoanStatus


@pytest.fixture
def engine(service):
    return service.loan_engine


@pytest.fixture
def loan(engine, member):
    """1,000,000 at 2% a month for 12 months."""
    return engine.disburse(member["id"], 1_000_000, 2, 12, "admin")


class TestFlatInterestTerms:
    """Test the pure terms computation."""

    def test_reference_loan(self):
        """Test 1,000,000 at 2% for 12 months."""
        terms = flat_interest_terms(1_000_000, 2, 12)

        assert terms.total_interest == 240_000
        assert terms.total_debt == 1_240_000
        assert terms.monthly_installment == 103_334

    def test_installment_rounds_up(self):
        """Test that the installment is rounded up."""
        terms = flat_interest_terms(100_000, 0, 3)
        assert terms.monthly_installment == 33_334

    def test_zero_rate(self):
        """Test that a zero rate is allowed."""
        terms = flat_interest_terms(600_000, 0, 6)
        assert terms.total_interest == 0
        assert terms.total_debt == 600_000
        assert terms.monthly_installment == 100_000

    @pytest.mark.parametrize("principal, rate, term", [
        (0, 2, 12),
        (-1, 2, 12),
        (1_000_000, -1, 12),
        (1_000_000, 2, 0),
        (1_000_000, 2, 4),
        (1_000_000, 2, -3),
        ("abc", 2, 12),
    ])
    def test_invalid_terms(self, principal, rate, term):
        """Test that out-of-range inputs are rejected."""
        with pytest.raises(InvalidLoanTerms):
            flat_interest_terms(principal, rate, term)


class TestDisburse:
    """Test loan disbursement."""

    def test_creates_active_loan(self, loan, service):
        """Test that a new loan starts at the total debt."""
        assert loan.status is LoanStatus.ACTIVE
        assert loan.outstanding_balance == 1_240_000
        assert loan.monthly_installment == 103_334
        assert loan.id.startswith("LN-")

        stored = service.repository.list_loans()
        assert [l.id for l in stored] == [loan.id]

    def test_unknown_member(self, engine):
        """Test that disbursing to an unknown member fails."""
        with pytest.raises(NoSuchMember):
            engine.disburse("M-404", 1_000_000, 2, 12, "admin")

    def test_second_active_loan_rejected(self, engine, loan, member):
        """Test that a member cannot hold two open loans."""
        with pytest.raises(ActiveLoanExists):
            engine.disburse(member["id"], 500_000, 2, 6, "admin")

    def test_new_loan_after_settlement(self, engine, loan, member):
        """Test that a settled loan does not block a new one."""
        engine.apply_repayment(member["id"], 1_240_000)
        second = engine.disburse(member["id"], 500_000, 2, 6, "admin")
        assert second.status is LoanStatus.ACTIVE

    def test_disbursement_is_audited(self, loan, service):
        """Test that disbursement writes an activity log entry."""
        descriptions = [e.description for e in service.repository.list_activity()]
        assert any(loan.id in d for d in descriptions)


class TestRepayment:
    """Test applying repayments."""

    def test_partial_repayment(self, engine, loan, member):
        """Test that a repayment reduces the balance."""
        updated = engine.apply_repayment(member["id"], 103_334)

        assert updated.outstanding_balance == 1_136_666
        assert updated.status is LoanStatus.ACTIVE

    def test_full_repayment_settles(self, engine, loan, member, service):
        """Test that paying the full debt settles the loan."""
        engine.apply_repayment(member["id"], 1_240_000)

        stored = service.repository.list_loans()[0]
        assert stored.outstanding_balance == 0
        assert stored.status is LoanStatus.SETTLED

    def test_overpayment_floors_at_zero(self, engine, loan, member, service):
        """Test that an overpayment is absorbed and the balance stays at zero."""
        engine.apply_repayment(member["id"], 2_000_000)
        assert service.repository.list_loans()[0].outstanding_balance == 0

    def test_repaying_settled_loan(self, engine, loan, member, service):
        """Test that a second repayment finds no open loan and leaves it at zero."""
        engine.apply_repayment(member["id"], 1_240_000)

        with pytest.raises(NoSuchLoan):
            engine.apply_repayment(member["id"], 1000)
        assert service.repository.list_loans()[0].outstanding_balance == 0

    def test_no_loan(self, engine, member):
        """Test repayment without any loan."""
        with pytest.raises(NoSuchLoan):
            engine.apply_repayment(member["id"], 1000)

    @pytest.mark.parametrize("payment", [0, -5, "lots", True, None])
    def test_invalid_payment(self, engine, loan, member, payment):
        """Test that non-positive or non-numeric payments are rejected."""
        with pytest.raises(InvalidAmount):
            engine.apply_repayment(member["id"], payment)

    @pytest.mark.parametrize("payment", [Decimal("103334"), "103334", 103_334.0])
    def test_numeric_payment_types(self, engine, loan, member, payment):
        """Test that any numeric payment is accepted and stored as a plain number."""
        updated = engine.apply_repayment(member["id"], payment)

        assert updated.outstanding_balance == 1_136_666
        assert type(updated.outstanding_balance) is int


class TestInterestAccounting:
    """Test interest earned and repayment progress."""

    def _loan(self, outstanding):
        return Loan(
            id="LN-1", member_id="M-1", principal=1_000_000,
            monthly_interest_rate_percent=2, term_months=12,
            monthly_installment=103_334, outstanding_balance=outstanding,
        )

    def test_nothing_paid(self):
        """Test that an untouched loan has earned nothing."""
        loan = self._loan(1_240_000)
        assert interest_earned(loan) == 0
        assert repayment_progress(loan) == 0

    def test_fully_paid(self):
        """Test that a settled loan has earned all its interest."""
        loan = self._loan(0)
        assert interest_earned(loan) == 240_000
        assert repayment_progress(loan) == 100

    def test_half_paid(self):
        """Test proportional interest on a half-repaid loan."""
        loan = self._loan(620_000)
        assert interest_earned(loan) == 120_000
        assert repayment_progress(loan) == 50

    def test_negative_balance_is_clamped(self):
        """Test that a negative stored balance counts as fully paid."""
        loan = self._loan(-10)
        assert interest_earned(loan) == 240_000
        assert repayment_progress(loan) == 100

    def test_zero_rate_earns_nothing(self):
        """Test that a zero-rate loan never earns interest."""
        loan = Loan(
            id="LN-2", member_id="M-1", principal=300_000,
            monthly_interest_rate_percent=0, term_months=3,
            monthly_installment=100_000, outstanding_balance=0,
        )
        assert interest_earned(loan) == 0
