"""
Public API for coop-ledger

This is the "front door" - the main entry point for all ledger operations.
Everything returned from here is plain JSON-ready data (dicts, lists, numbers,
strings).
"""

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from .config_loader import ConfigLoader
from .distribution_engine import DistributionEngine
from .errors import RecordValidationError
from .loan_engine import LoanEngine, flat_interest_terms, interest_earned, repayment_progress
from .local_cache import LocalCache
from .records import LoanStatus, Member, new_id
from .remote_client import RemoteTableClient
from .reports import (
    ROLE_COORDINATOR,
    Actor,
    ledger_summary,
    member_balances,
    visible_loans,
    visible_members,
    visible_transactions,
)
from .repository import LedgerRepository
from .store import StoreAdapter
from .transaction_engine import TransactionEngine, parse_kind

logger = logging.getLogger(__name__)

ActorLike = Union[Actor, Dict[str, Any]]

# Member attributes that may be edited after registration. Balances only move
# through transactions and distributions.
EDITABLE_MEMBER_FIELDS = ("name", "national_id", "address", "phone", "sponsor_id")


def _actor(actor: ActorLike) -> Actor:
    if isinstance(actor, Actor):
        return actor
    return Actor.from_dict(actor)


class LedgerService:
    """
    Main ledger service class.

    Wires configuration, the remote client, the local cache, the store
    adapter, the repository and the three engines together.

    Example:
        from coop_ledger import LedgerService

        service = LedgerService()
        admin = {"id": "admin", "role": "admin"}

        member = service.add_member(admin, name="Siti")
        service.record_transaction(admin, member["id"], "voluntary_deposit", 50000)

        plan = service.preview_distribution(manual_profit=0, member_share_percent=70)
        service.execute_distribution(admin, manual_profit=0, member_share_percent=70)

        service.close()
    """

    def __init__(self, config_uri: Optional[str] = None,
                 offline: Optional[bool] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize ledger service.

        Args:
            config_uri: Operator config override (path, file:// or http(s)://).
                        Falls back to COOP_LEDGER_CONFIG, then bundled defaults.
            offline: Force offline mode (local cache only) from the start
            session: Optional requests session for the remote client

        Raises:
            RuntimeError: If a remote config cannot be fetched
        """
        self.config_loader = ConfigLoader(config_uri)

        self.remote = RemoteTableClient(self.config_loader.get_remote_config(), session=session)
        self.cache = LocalCache(self.config_loader.get_cache_dir())
        self.store = StoreAdapter(
            self.remote,
            self.cache,
            offline=bool(offline),
            mirror_remote_reads=self.config_loader.get_mirror_remote_reads(),
        )

        self.collections = self.config_loader.get_collections()
        self.repository = LedgerRepository(self.store, self.collections)

        self.ledger_config = self.config_loader.get_ledger_config()
        self.system_actor = self.ledger_config["system_actor"]

        self.loan_engine = LoanEngine(self.repository)
        self.transaction_engine = TransactionEngine(self.repository, self.loan_engine)
        self.distribution_engine = DistributionEngine(
            self.repository, self.transaction_engine, self.ledger_config
        )

        logger.info(
            "Ledger service initialized",
            extra={"mode": self.store.mode.value, "cache_dir": str(self.cache.cache_dir)},
        )

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def add_member(self, actor: ActorLike, name: str, national_id: str = "",
                   address: str = "", phone: str = "",
                   member_id: Optional[str] = None,
                   sponsor_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Register a new member with zero balances.

        A coordinator registering a member becomes its sponsor unless a
        sponsor is given explicitly.

        Raises:
            DuplicateRecord: If member_id is already taken
            RecordValidationError: If the row does not conform to the schema
        """
        actor = _actor(actor)
        if sponsor_id is None and actor.role == ROLE_COORDINATOR:
            sponsor_id = actor.id

        member = Member(
            id=member_id or new_id("M"),
            name=name,
            national_id=national_id,
            address=address,
            phone=phone,
            sponsor_id=sponsor_id,
        )
        self.repository.create_member(member)
        self.repository.audit(actor.id, f"Registered member {member.name} ({member.id})")
        logger.info(f"Member {member.id} registered", extra={"member_id": member.id})
        return member.to_dict()

    def update_member(self, actor: ActorLike, member_id: str, **changes) -> Dict[str, Any]:
        """
        Edit a member's identity fields.

        Only name, national_id, address, phone and sponsor_id can be changed.

        Raises:
            NoSuchMember: If the member does not exist
            RecordValidationError: If any other field is named
        """
        actor = _actor(actor)
        rejected = sorted(set(changes) - set(EDITABLE_MEMBER_FIELDS))
        if rejected:
            raise RecordValidationError(f"Member fields cannot be edited: {', '.join(rejected)}")

        member = self.repository.require_member(member_id)
        if changes:
            self.repository.update_member(member.id, changes)
            self.repository.audit(
                actor.id, f"Updated member {member.id}: {', '.join(sorted(changes))}"
            )
        return self.repository.require_member(member.id).to_dict()

    def get_member(self, member_id: str) -> Dict[str, Any]:
        return self.repository.require_member(member_id).to_dict()

    def list_members(self, actor: Optional[ActorLike] = None) -> List[Dict[str, Any]]:
        """List members, scoped to what the actor may see when an actor is given."""
        members = self.repository.list_members()
        if actor is not None:
            members = visible_members(_actor(actor), members)
        return [m.to_dict() for m in members]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def record_transaction(self, actor: ActorLike, member_id: str, kind: str,
                           amount, note: str = "") -> Dict[str, Any]:
        """
        Record a deposit, withdrawal, loan repayment or profit share.

        Args:
            actor: Acting user
            member_id: Owning member
            kind: Transaction kind value, e.g. "voluntary_deposit"
            amount: Magnitude (the sign is ignored)
            note: Free-text note

        Returns:
            The stored transaction (withdrawals and profit shares negative)
        """
        actor = _actor(actor)
        transaction = self.transaction_engine.record(member_id, kind, amount, actor.id, note)
        return transaction.to_dict()

    def delete_transaction(self, actor: ActorLike, transaction_id: str) -> Dict[str, Any]:
        """
        Delete a transaction and revert its effect on the member.

        Returns:
            Dict with the transaction_id and the member's reverted state
            (None if the member no longer exists)
        """
        actor = _actor(actor)
        member = self.transaction_engine.reverse(transaction_id, actor.id)
        return {
            "transaction_id": transaction_id,
            "member": member.to_dict() if member else None,
        }

    def list_transactions(self, actor: Optional[ActorLike] = None,
                          member_id: Optional[str] = None,
                          kind: Optional[str] = None) -> List[Dict[str, Any]]:
        transactions = self.repository.list_transactions(
            member_id=member_id,
            kind=parse_kind(kind) if kind else None,
        )
        if actor is not None:
            transactions = visible_transactions(
                _actor(actor), self.repository.list_members(), transactions
            )
        return [t.to_dict() for t in transactions]

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    def loan_terms(self, principal, monthly_interest_rate_percent, term_months) -> Dict[str, Any]:
        """Preview flat-interest terms without creating a loan."""
        terms = flat_interest_terms(principal, monthly_interest_rate_percent, term_months)
        return {
            "principal": terms.principal,
            "monthly_interest_rate_percent": terms.monthly_interest_rate_percent,
            "term_months": terms.term_months,
            "total_interest": terms.total_interest,
            "total_debt": terms.total_debt,
            "monthly_installment": terms.monthly_installment,
        }

    def disburse_loan(self, actor: ActorLike, member_id: str, principal,
                      monthly_interest_rate_percent, term_months) -> Dict[str, Any]:
        actor = _actor(actor)
        loan = self.loan_engine.disburse(
            member_id, principal, monthly_interest_rate_percent, term_months, actor.id
        )
        return loan.to_dict()

    def list_loans(self, actor: Optional[ActorLike] = None,
                   member_id: Optional[str] = None,
                   status: Optional[str] = None) -> List[Dict[str, Any]]:
        """List loans with their repayment progress and interest earned so far."""
        try:
            status_filter = LoanStatus(status) if status else None
        except ValueError as e:
            raise RecordValidationError(f"Unknown loan status: {status!r}") from e

        loans = self.repository.list_loans(member_id=member_id, status=status_filter)
        if actor is not None:
            loans = visible_loans(_actor(actor), self.repository.list_members(), loans)

        results = []
        for loan in loans:
            data = loan.to_dict()
            data["repayment_progress"] = repayment_progress(loan)
            data["interest_earned"] = interest_earned(loan)
            results.append(data)
        return results

    # ------------------------------------------------------------------
    # Profit distribution
    # ------------------------------------------------------------------

    def available_profit(self) -> Dict[str, Any]:
        return {
            "available_real": self.distribution_engine.available_real_profit(),
            "already_distributed": self.distribution_engine.total_distributed(),
        }

    def preview_distribution(self, manual_profit=0, member_share_percent=70) -> Dict[str, Any]:
        """
        Compute a distribution plan without writing anything.

        Returns:
            Plan dict; allocations are ranked by full nominal, largest first
        """
        plan = self.distribution_engine.plan(manual_profit, member_share_percent)
        data = plan.to_dict()
        data["allocations"] = [
            {
                "member_id": a.member_id,
                "name": a.name,
                "savings": a.savings,
                "real_nominal": a.real_nominal,
                "full_nominal": a.full_nominal,
            }
            for a in plan.ranked()
        ]
        return data

    def execute_distribution(self, actor: ActorLike, manual_profit=0,
                             member_share_percent=70,
                             on_progress: Optional[Callable[[int, int], None]] = None
                             ) -> Dict[str, Any]:
        """
        Close the books: plan and apply a profit distribution.

        Raises:
            InvalidDistributionParameters: If an input is out of range
            PartialDistributionFailure: If the run stops part way through
        """
        actor = _actor(actor)
        plan = self.distribution_engine.plan(manual_profit, member_share_percent)
        result = self.distribution_engine.execute(plan, actor.id, on_progress=on_progress)
        return result.to_dict()

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def member_balances(self, actor: Optional[ActorLike] = None) -> List[Dict[str, Any]]:
        members = self.repository.list_members()
        if actor is not None:
            members = visible_members(_actor(actor), members)
        return member_balances(members, self.repository.list_loans())

    def ledger_summary(self, actor: Optional[ActorLike] = None,
                       today: Optional[date] = None) -> Dict[str, Any]:
        """Cooperative-wide totals, restricted to the actor's members when given."""
        members = self.repository.list_members()
        transactions = self.repository.list_transactions()
        loans = self.repository.list_loans()

        if actor is not None:
            actor = _actor(actor)
            transactions = visible_transactions(actor, members, transactions)
            loans = visible_loans(actor, members, loans)
            members = visible_members(actor, members)

        return ledger_summary(members, transactions, loans, today=today)

    def list_activity(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.repository.list_activity()]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def store_status(self) -> Dict[str, Any]:
        """
        Get store status (useful for monitoring).

        Returns:
            Dict with mode ("remote" or "offline"), remote_enabled, cache_dir,
            cache_age_seconds per collection and config_age_seconds
        """
        status = self.store.status(list(self.collections.values()))
        status["config_age_seconds"] = self.config_loader.get_config_age()
        return status

    def close(self) -> None:
        """Release the HTTP session."""
        self.remote.close()
