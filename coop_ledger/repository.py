"""
Ledger Repository

Typed read/write operations for Member, Transaction, Loan and ActivityLog,
built on the store adapter. The repository knows collection names, id
columns and row schemas; it holds no business rules. Balance semantics live
in the transaction, loan and distribution engines.

Reads always go back to the store (no in-memory caching) so that every
read-modify-write starts from the current state.
"""

import logging
from typing import Any, Dict, List, Optional

from .errors import (
    DuplicateRecord,
    NoSuchMember,
    NoSuchTransaction,
    RecordValidationError,
)
from .records import (
    MEMBER_COLUMNS,
    ActivityLog,
    Loan,
    LoanStatus,
    Member,
    Transaction,
    TransactionKind,
    validate_row,
)
from .store import StoreAdapter, WriteAck

logger = logging.getLogger(__name__)


class LedgerRepository:
    """Typed access to the four ledger collections."""

    def __init__(self, store: StoreAdapter, collections: Dict[str, str]):
        """
        Initialize repository.

        Args:
            store: Store adapter (remote with local failover)
            collections: Collection names keyed by record kind:
                         members, transactions, loans, logs
        """
        self.store = store
        self.collections = collections

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def list_members(self) -> List[Member]:
        rows = self.store.read_all(self.collections["members"])
        return [Member.from_row(row) for row in rows]

    def get_member(self, member_id: str) -> Optional[Member]:
        for member in self.list_members():
            if member.id == str(member_id):
                return member
        return None

    def require_member(self, member_id: str) -> Member:
        """Return the member's current state or raise NoSuchMember."""
        member = self.get_member(member_id)
        if member is None:
            raise NoSuchMember(f"Member not found: {member_id}")
        return member

    def create_member(self, member: Member) -> WriteAck:
        if self.get_member(member.id) is not None:
            raise DuplicateRecord(f"Member already exists: {member.id}")

        row = member.to_row()
        validate_row("member", row)
        return self.store.write(
            "create", self.collections["members"], row, id_field=Member.ID_FIELD
        )

    def update_member(self, member_id: str, changes: Dict[str, Any]) -> WriteAck:
        """
        Persist changed member attributes.

        Args:
            member_id: Member to update
            changes: Logical attribute name -> new value (only changed fields)

        Raises:
            RecordValidationError: If an attribute is unknown, is the id, or
                                   the resulting columns fail the schema
        """
        columns = {}
        for name, value in changes.items():
            if name not in MEMBER_COLUMNS or name == "id":
                raise RecordValidationError(f"Cannot update member attribute: {name}")
            if name == "sponsor_id":
                value = value or ""
            columns[MEMBER_COLUMNS[name]] = value

        validate_row("member", columns, partial=True)
        return self.store.write(
            "update", self.collections["members"], columns,
            record_id=member_id, id_field=Member.ID_FIELD,
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def list_transactions(self, member_id: Optional[str] = None,
                          kind: Optional[TransactionKind] = None) -> List[Transaction]:
        rows = self.store.read_all(self.collections["transactions"])
        transactions = [Transaction.from_row(row) for row in rows]
        if member_id is not None:
            transactions = [t for t in transactions if t.member_id == str(member_id)]
        if kind is not None:
            transactions = [t for t in transactions if t.kind is kind]
        return transactions

    def get_transaction(self, transaction_id: str) -> Transaction:
        for transaction in self.list_transactions():
            if transaction.id == str(transaction_id):
                return transaction
        raise NoSuchTransaction(f"Transaction not found: {transaction_id}")

    def create_transaction(self, transaction: Transaction) -> WriteAck:
        row = transaction.to_row()
        validate_row("transaction", row)
        return self.store.write(
            "create", self.collections["transactions"], row,
            id_field=Transaction.ID_FIELD,
        )

    def delete_transaction(self, transaction_id: str) -> WriteAck:
        return self.store.write(
            "delete", self.collections["transactions"],
            record_id=transaction_id, id_field=Transaction.ID_FIELD,
        )

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    def list_loans(self, member_id: Optional[str] = None,
                   status: Optional[LoanStatus] = None) -> List[Loan]:
        rows = self.store.read_all(self.collections["loans"])
        loans = [Loan.from_row(row) for row in rows]
        if member_id is not None:
            loans = [loan for loan in loans if loan.member_id == str(member_id)]
        if status is not None:
            loans = [loan for loan in loans if loan.status is status]
        return loans

    def create_loan(self, loan: Loan) -> WriteAck:
        row = loan.to_row()
        validate_row("loan", row)
        return self.store.write(
            "create", self.collections["loans"], row, id_field=Loan.ID_FIELD
        )

    def update_loan_balance(self, loan_id: str, outstanding_balance,
                            status: LoanStatus) -> WriteAck:
        columns = {"outstanding_balance": outstanding_balance, "status": status.value}
        validate_row("loan", columns, partial=True)
        return self.store.write(
            "update", self.collections["loans"], columns,
            record_id=loan_id, id_field=Loan.ID_FIELD,
        )

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    def list_activity(self) -> List[ActivityLog]:
        rows = self.store.read_all(self.collections["logs"])
        return [ActivityLog.from_row(row) for row in rows]

    def audit(self, actor: str, description: str) -> None:
        """
        Append an activity log entry.

        Audit is a side effect: any failure is logged and swallowed so it can
        never abort the operation being audited.
        """
        if self.store.offline:
            description = f"{description} (local)"
        entry = ActivityLog(actor=actor or "", description=description)
        try:
            row = entry.to_row()
            validate_row("activity_log", row)
            self.store.write("create", self.collections["logs"], row,
                             id_field=ActivityLog.ID_FIELD)
        except Exception as e:
            logger.warning(
                f"Failed to write activity log: {e}",
                extra={"actor": actor, "description": description},
            )
