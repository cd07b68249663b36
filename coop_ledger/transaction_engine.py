"""
Transaction Engine

Records savings movements against a member and reverses them.

## Sign convention

Callers always pass a magnitude; only abs(amount) is used for balance math.
Withdrawal and ProfitShare rows are stored negative, every other kind
positive. The stored sign is informational and never read back into a balance.

## Handler tables

APPLY_HANDLERS and REVERT_HANDLERS map every TransactionKind to a pure
function (Member, magnitude) -> Member. Handlers never touch storage; the
engine persists only the attributes a handler actually changed.

LoanRepayment leaves member fields untouched: the engine applies it to the
member's open loan instead. Reversing a LoanRepayment does not restore the
loan balance.
"""

import logging
from dataclasses import fields, replace
from typing import Any, Callable, Dict, Optional

from .errors import InsufficientFunds, RecordValidationError
from .loan_engine import LoanEngine
from .records import (
    Member,
    Number,
    Transaction,
    TransactionKind,
    magnitude,
    new_id,
    utc_now_iso,
)
from .repository import LedgerRepository

logger = logging.getLogger(__name__)

Handler = Callable[[Member, Number], Member]

NEGATIVE_KINDS = frozenset({TransactionKind.WITHDRAWAL, TransactionKind.PROFIT_SHARE})


def _withdraw(member: Member, m: Number) -> Member:
    if member.voluntary_savings < m:
        raise InsufficientFunds(member.id, member.voluntary_savings, m)
    return replace(member, voluntary_savings=member.voluntary_savings - m)


APPLY_HANDLERS: Dict[TransactionKind, Handler] = {
    TransactionKind.PRINCIPAL_DEPOSIT:
        lambda member, m: replace(member, principal_savings=member.principal_savings + m),
    TransactionKind.MANDATORY_DEPOSIT:
        lambda member, m: replace(member, mandatory_savings=member.mandatory_savings + m),
    TransactionKind.VOLUNTARY_DEPOSIT:
        lambda member, m: replace(member, voluntary_savings=member.voluntary_savings + m),
    TransactionKind.WITHDRAWAL: _withdraw,
    TransactionKind.PROFIT_SHARE:
        lambda member, m: replace(
            member, accumulated_profit_share=member.accumulated_profit_share + m
        ),
    TransactionKind.LOAN_REPAYMENT: lambda member, m: member,
}

REVERT_HANDLERS: Dict[TransactionKind, Handler] = {
    TransactionKind.PRINCIPAL_DEPOSIT:
        lambda member, m: replace(member, principal_savings=max(0, member.principal_savings - m)),
    TransactionKind.MANDATORY_DEPOSIT:
        lambda member, m: replace(member, mandatory_savings=max(0, member.mandatory_savings - m)),
    TransactionKind.VOLUNTARY_DEPOSIT:
        lambda member, m: replace(member, voluntary_savings=max(0, member.voluntary_savings - m)),
    TransactionKind.WITHDRAWAL:
        lambda member, m: replace(member, voluntary_savings=member.voluntary_savings + m),
    TransactionKind.PROFIT_SHARE:
        lambda member, m: replace(
            member, accumulated_profit_share=max(0, member.accumulated_profit_share - m)
        ),
    TransactionKind.LOAN_REPAYMENT: lambda member, m: member,
}


def signed_amount(kind: TransactionKind, m: Number) -> Number:
    return -m if kind in NEGATIVE_KINDS else m


def parse_kind(kind: Any) -> TransactionKind:
    try:
        return TransactionKind(kind)
    except ValueError as e:
        raise RecordValidationError(f"Unknown transaction kind: {kind!r}") from e


def changed_fields(before: Member, after: Member) -> Dict[str, Any]:
    """Logical attributes whose value differs between two member states."""
    return {
        f.name: getattr(after, f.name)
        for f in fields(Member)
        if getattr(before, f.name) != getattr(after, f.name)
    }


class TransactionEngine:
    """Applies and reverses transactions against member balances."""

    def __init__(self, repository: LedgerRepository, loan_engine: LoanEngine):
        self.repository = repository
        self.loan_engine = loan_engine

    def record(self, member_id: str, kind, amount, actor: str,
               note: str = "") -> Transaction:
        """
        Record a transaction and update the member's balances.

        Steps, in order: resolve the member, compute the new balances,
        apply a loan repayment, persist the transaction, persist the member,
        audit. Validation errors abort before anything is written. If
        persisting the member fails, the transaction row is deleted again
        and the error re-raised.

        Args:
            member_id: Owning member
            kind: TransactionKind (or its string value)
            amount: Magnitude; the sign is ignored
            actor: Id of the user recording the transaction
            note: Free-text note

        Returns:
            The persisted Transaction (amount carries the stored sign)

        Raises:
            InvalidAmount: If amount is zero or not a number
            NoSuchMember: If the member does not exist
            InsufficientFunds: If a withdrawal exceeds voluntary savings
            NoSuchLoan: If a loan repayment has no open loan to apply to
        """
        kind = parse_kind(kind)
        m = magnitude(amount)

        member = self.repository.require_member(member_id)
        updated = APPLY_HANDLERS[kind](member, m)

        if kind is TransactionKind.LOAN_REPAYMENT:
            self.loan_engine.apply_repayment(member.id, m)

        transaction = Transaction(
            id=new_id("TRX"),
            timestamp=utc_now_iso(),
            member_id=member.id,
            kind=kind,
            amount=signed_amount(kind, m),
            recorded_by=actor or "",
            note=note or "",
        )
        self.repository.create_transaction(transaction)

        changes = changed_fields(member, updated)
        if changes:
            try:
                self.repository.update_member(member.id, changes)
            except Exception as e:
                logger.error(
                    f"Member update failed, removing transaction {transaction.id}: {e}",
                    extra={"member_id": member.id, "kind": kind.value, "amount": m},
                )
                self.repository.delete_transaction(transaction.id)
                raise

        logger.info(
            f"Recorded {kind.value} of {m} for {member.id}",
            extra={"member_id": member.id, "kind": kind.value, "amount": m},
        )
        self.repository.audit(
            actor, f"Recorded {kind.value} {m} for {member.name} ({member.id})"
        )
        return transaction

    def reverse(self, transaction_id: str, actor: str) -> Optional[Member]:
        """
        Delete a transaction and undo its effect on the member's balances.

        Deposits and profit shares are subtracted back, floored at zero;
        withdrawals are added back. Loan repayments change no member field
        and the loan balance stays as it is.

        Returns:
            The member's reverted state, or None if the member no longer exists

        Raises:
            NoSuchTransaction: If the transaction does not exist
        """
        transaction = self.repository.get_transaction(transaction_id)
        m = transaction.magnitude

        member = self.repository.get_member(transaction.member_id)
        reverted = None
        if member is None:
            logger.warning(
                f"Member {transaction.member_id} not found, deleting {transaction.id} without revert",
                extra={"transaction_id": transaction.id},
            )
        else:
            reverted = REVERT_HANDLERS[transaction.kind](member, m)
            changes = changed_fields(member, reverted)
            if changes:
                self.repository.update_member(member.id, changes)

        self.repository.delete_transaction(transaction.id)

        logger.info(
            f"Reversed {transaction.kind.value} {transaction.id}",
            extra={"member_id": transaction.member_id, "amount": m},
        )
        self.repository.audit(
            actor,
            f"Deleted {transaction.kind.value} {m} for {transaction.member_id} ({transaction.id})",
        )
        return reverted
