"""
Read-only views over ledger state: per-member balances, the cooperative-wide
summary, and actor scoping of what each role may see.

Everything here is a pure function of already-loaded records.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .loan_engine import total_interest, total_interest_earned
from .records import Loan, LoanStatus, Member, Transaction, TransactionKind

ROLE_ADMIN = "admin"
ROLE_COORDINATOR = "coordinator"
ROLE_MEMBER = "member"

ROLES = (ROLE_ADMIN, ROLE_COORDINATOR, ROLE_MEMBER)

OUTFLOW_KINDS = frozenset({TransactionKind.WITHDRAWAL, TransactionKind.PROFIT_SHARE})


@dataclass
class Actor:
    """An already-authenticated user.

    member_id links a member-role user to their own member record; when it
    is not set the actor id itself is taken as the member id.
    """
    id: str
    role: str
    member_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Actor":
        return cls(
            id=str(data["id"]),
            role=str(data.get("role", "")),
            member_id=data.get("member_id"),
        )

    @property
    def own_member_id(self) -> str:
        return self.member_id or self.id


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------

def outstanding_by_member(loans: Iterable[Loan]) -> Dict[str, Any]:
    outstanding: Dict[str, Any] = {}
    for loan in loans:
        if loan.status is LoanStatus.ACTIVE:
            outstanding[loan.member_id] = outstanding.get(loan.member_id, 0) + loan.outstanding_balance
    return outstanding


def member_balances(members: Iterable[Member], loans: Iterable[Loan]) -> List[Dict[str, Any]]:
    """
    Balance sheet per member.

    Returns:
        One dict per member with savings_total, outstanding_loan (active
        loans only), net_worth (savings minus debt) and total_assets
        (savings plus accumulated profit share)
    """
    outstanding = outstanding_by_member(loans)
    rows = []
    for member in members:
        owed = outstanding.get(member.id, 0)
        rows.append({
            "member_id": member.id,
            "name": member.name,
            "savings_total": member.savings_total,
            "accumulated_profit_share": member.accumulated_profit_share,
            "outstanding_loan": owed,
            "net_worth": member.savings_total - owed,
            "total_assets": member.savings_total + member.accumulated_profit_share,
        })
    return rows


def ledger_summary(members: List[Member], transactions: List[Transaction],
                   loans: List[Loan], today: Optional[date] = None) -> Dict[str, Any]:
    """
    Cooperative-wide totals.

    Liquid balance follows the cash: savings paid in, minus principal lent
    out, plus everything repaid (principal and interest), minus profit paid
    out. Today's inflow counts every kind except Withdrawal and ProfitShare,
    which make up the outflow.
    """
    today = today or datetime.now(timezone.utc).date()
    today_prefix = today.isoformat()

    total_savings = sum(m.savings_total for m in members)
    total_outstanding = sum(outstanding_by_member(loans).values())

    principal_disbursed = 0
    repayments_received = 0
    for loan in loans:
        total_debt = loan.principal + total_interest(loan)
        principal_disbursed += loan.principal
        repayments_received += total_debt - max(0, loan.outstanding_balance)

    gross_interest = total_interest_earned(loans)
    distributed = sum(
        t.magnitude for t in transactions if t.kind is TransactionKind.PROFIT_SHARE
    )

    todays = [t for t in transactions if t.timestamp.startswith(today_prefix)]
    inflow = sum(t.magnitude for t in todays if t.kind not in OUTFLOW_KINDS)
    outflow = sum(t.magnitude for t in todays if t.kind in OUTFLOW_KINDS)

    return {
        "member_count": len(members),
        "total_savings": total_savings,
        "total_outstanding_loans": total_outstanding,
        "net_balance": total_savings - total_outstanding,
        "gross_interest_earned": gross_interest,
        "profit_distributed": distributed,
        "net_interest_revenue": max(0, gross_interest - distributed),
        "liquid_balance": total_savings - principal_disbursed + repayments_received - distributed,
        "today": {
            "date": today_prefix,
            "transaction_count": len(todays),
            "inflow": inflow,
            "outflow": outflow,
        },
    }


# ---------------------------------------------------------------------------
# Actor scoping
# ---------------------------------------------------------------------------

def visible_member_ids(actor: Actor, members: Iterable[Member]) -> set:
    if actor.role == ROLE_ADMIN:
        return {m.id for m in members}
    if actor.role == ROLE_COORDINATOR:
        return {m.id for m in members if m.sponsor_id == actor.id}
    if actor.role == ROLE_MEMBER:
        return {m.id for m in members if m.id == actor.own_member_id}
    return set()


def visible_members(actor: Actor, members: List[Member]) -> List[Member]:
    """Members the actor may see: all (admin), sponsored (coordinator) or self (member)."""
    allowed = visible_member_ids(actor, members)
    return [m for m in members if m.id in allowed]


def visible_transactions(actor: Actor, members: List[Member],
                         transactions: List[Transaction]) -> List[Transaction]:
    if actor.role == ROLE_ADMIN:
        return list(transactions)
    allowed = visible_member_ids(actor, members)
    return [t for t in transactions if t.member_id in allowed]


def visible_loans(actor: Actor, members: List[Member], loans: List[Loan]) -> List[Loan]:
    if actor.role == ROLE_ADMIN:
        return list(loans)
    allowed = visible_member_ids(actor, members)
    return [loan for loan in loans if loan.member_id in allowed]
