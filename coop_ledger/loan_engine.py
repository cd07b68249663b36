"""
Loan Engine

Flat-interest loans: interest is charged once on the original principal for
the whole term, never on a declining balance.

    total_interest      = principal * (monthly_rate_percent / 100) * term_months
    total_debt          = principal + total_interest
    monthly_installment = ceil(total_debt / term_months)

A loan starts with outstanding_balance = total_debt. Repayments decrement it,
floored at zero; at zero the loan is settled. Any overpayment is absorbed and
credited nowhere.

Interest earned so far assumes each repayment retires principal and interest
in proportion to their share of the total debt:

    paid_so_far     = total_debt - outstanding_balance
    interest_earned = paid_so_far * total_interest / total_debt
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

from .errors import ActiveLoanExists, InvalidAmount, InvalidLoanTerms, NoSuchLoan
from .records import Loan, LoanStatus, Number, magnitude, new_id, to_number
from .repository import LedgerRepository

logger = logging.getLogger(__name__)

TERM_STEP_MONTHS = 3


@dataclass
class LoanTerms:
    principal: Number
    monthly_interest_rate_percent: Number
    term_months: int
    total_interest: Number
    total_debt: Number
    monthly_installment: int


def flat_interest_terms(principal, monthly_interest_rate_percent, term_months) -> LoanTerms:
    """
    Compute flat-interest loan terms.

    Args:
        principal: Amount disbursed, > 0
        monthly_interest_rate_percent: Interest per month in percent, >= 0
        term_months: Positive multiple of 3 (3, 6, 9, 12, ...)

    Returns:
        LoanTerms with total interest, total debt and the monthly installment

    Raises:
        InvalidLoanTerms: If any input is out of range or not a number

    Example:
        >>> flat_interest_terms(1_000_000, 2, 12).monthly_installment
        103334
    """
    try:
        principal = to_number(principal)
        rate = to_number(monthly_interest_rate_percent)
        term = to_number(term_months)
    except (TypeError, ValueError) as e:
        raise InvalidLoanTerms(f"Loan terms must be numeric: {e}") from e

    if principal <= 0:
        raise InvalidLoanTerms(f"Principal must be positive, got {principal}")
    if rate < 0:
        raise InvalidLoanTerms(f"Interest rate cannot be negative, got {rate}")
    if not isinstance(term, int) or term <= 0 or term % TERM_STEP_MONTHS != 0:
        raise InvalidLoanTerms(
            f"Term must be a positive multiple of {TERM_STEP_MONTHS} months, got {term}"
        )

    # Multiply before dividing so whole-number inputs stay exact
    interest = to_number(principal * rate * term / 100)
    total_debt = principal + interest
    monthly_installment = math.ceil(total_debt / term)

    return LoanTerms(
        principal=principal,
        monthly_interest_rate_percent=rate,
        term_months=term,
        total_interest=interest,
        total_debt=total_debt,
        monthly_installment=monthly_installment,
    )


def total_interest(loan: Loan) -> Number:
    return loan.principal * loan.monthly_interest_rate_percent * loan.term_months / 100


def interest_earned(loan: Loan) -> float:
    """Interest portion of everything repaid on a loan so far."""
    interest = total_interest(loan)
    total_debt = loan.principal + interest
    if total_debt <= 0:
        return 0
    paid_so_far = total_debt - max(0, loan.outstanding_balance)
    return paid_so_far * interest / total_debt


def total_interest_earned(loans: Iterable[Loan]) -> float:
    return sum(interest_earned(loan) for loan in loans)


def repayment_progress(loan: Loan) -> float:
    """Percentage of the total debt repaid, clamped to [0, 100]."""
    total_debt = loan.principal + total_interest(loan)
    if total_debt <= 0:
        return 100.0
    paid = total_debt - max(0, loan.outstanding_balance)
    return min(max(paid / total_debt * 100, 0.0), 100.0)


class LoanEngine:
    """Disburses loans and applies repayments against the outstanding balance."""

    def __init__(self, repository: LedgerRepository):
        self.repository = repository

    def find_open_loan(self, member_id: str) -> Optional[Loan]:
        """Return the member's loan with an outstanding balance, if any.

        At most one open loan per member is expected; disburse() refuses a
        second one.
        """
        for loan in self.repository.list_loans(member_id=member_id):
            if loan.outstanding_balance > 0:
                return loan
        return None

    def disburse(self, member_id: str, principal, monthly_interest_rate_percent,
                 term_months, actor: str) -> Loan:
        """
        Create a new active loan for a member.

        Raises:
            InvalidLoanTerms: If the terms are out of range
            NoSuchMember: If the member does not exist
            ActiveLoanExists: If the member still owes on another loan
        """
        terms = flat_interest_terms(principal, monthly_interest_rate_percent, term_months)
        member = self.repository.require_member(member_id)

        existing = self.find_open_loan(member.id)
        if existing is not None:
            raise ActiveLoanExists(
                f"Member {member.id} still owes {existing.outstanding_balance} on {existing.id}"
            )

        loan = Loan(
            id=new_id("LN"),
            member_id=member.id,
            principal=terms.principal,
            monthly_interest_rate_percent=terms.monthly_interest_rate_percent,
            term_months=terms.term_months,
            monthly_installment=terms.monthly_installment,
            outstanding_balance=terms.total_debt,
            status=LoanStatus.ACTIVE,
        )
        self.repository.create_loan(loan)

        logger.info(
            f"Loan {loan.id} disbursed to {member.id}",
            extra={
                "member_id": member.id,
                "principal": terms.principal,
                "total_debt": terms.total_debt,
            },
        )
        self.repository.audit(actor, f"Disbursed loan {loan.id} to {member.id}: {terms.principal}")
        return loan

    def apply_repayment(self, member_id: str, payment) -> Loan:
        """
        Apply a repayment to the member's open loan.

        The balance is floored at zero; reaching zero settles the loan.

        Args:
            member_id: Borrowing member
            payment: Amount paid, > 0

        Returns:
            The loan with its new balance and status

        Raises:
            InvalidAmount: If payment is not a positive number
            NoSuchLoan: If the member has no loan with an outstanding balance
        """
        amount = magnitude(payment)
        if to_number(payment) < 0:
            raise InvalidAmount(f"Repayment must be positive, got {payment!r}")

        loan = self.find_open_loan(member_id)
        if loan is None:
            raise NoSuchLoan(f"No outstanding loan for member {member_id}")

        new_balance = to_number(max(0, loan.outstanding_balance - amount))
        status = LoanStatus.SETTLED if new_balance == 0 else LoanStatus.ACTIVE

        if amount > loan.outstanding_balance:
            logger.info(
                f"Overpayment on {loan.id} absorbed",
                extra={"loan_id": loan.id, "excess": amount - loan.outstanding_balance},
            )

        self.repository.update_loan_balance(loan.id, new_balance, status)
        loan.outstanding_balance = new_balance
        loan.status = status
        return loan
