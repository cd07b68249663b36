"""
Distribution Engine

Splits the period's profit between members (pro rata to savings) and the
cooperative reserve account.

Two amounts are computed for every share:

- real: backed by loan interest actually collected and not yet distributed.
  Recorded as ProfitShare transactions, which keeps the cash position honest.
- full: real profit plus a manually declared extra. Credited to each
  member's accumulated profit share; the part above real is a direct balance
  adjustment with no transaction behind it, recorded only in the activity
  log.

Planning is pure and can be previewed. Execution writes through the
transaction engine and repository, and is not rolled back on failure.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .errors import InvalidDistributionParameters, PartialDistributionFailure
from .loan_engine import total_interest_earned
from .records import Member, Number, TransactionKind, to_number
from .repository import LedgerRepository
from .transaction_engine import TransactionEngine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class Allocation:
    member_id: str
    name: str
    savings: Number
    real_nominal: int
    full_nominal: int


@dataclass
class DistributionPlan:
    available_real: Number
    manual_profit: Number
    member_share_percent: Number
    real_member_pool: int
    real_reserve_pool: Number
    full_profit: Number
    full_member_pool: int
    full_reserve_pool: Number
    savings_basis: Number
    allocations: List[Allocation] = field(default_factory=list)

    def ranked(self) -> List[Allocation]:
        """Allocations ordered by full nominal, largest first."""
        return sorted(self.allocations, key=lambda a: a.full_nominal, reverse=True)

    def eligible(self) -> List[Allocation]:
        return [a for a in self.allocations if a.full_nominal > 0]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DistributionResult:
    plan: DistributionPlan
    processed: int
    total: int
    transaction_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan.to_dict(),
            "processed": self.processed,
            "total": self.total,
            "transaction_ids": list(self.transaction_ids),
        }


def _check_parameters(manual_profit, member_share_percent):
    try:
        manual = to_number(manual_profit)
        pct = to_number(member_share_percent)
    except (TypeError, ValueError) as e:
        raise InvalidDistributionParameters(f"Distribution parameters must be numeric: {e}") from e

    if manual < 0:
        raise InvalidDistributionParameters(f"Manual profit cannot be negative, got {manual}")
    if not 0 <= pct <= 100:
        raise InvalidDistributionParameters(
            f"Member share percent must be between 0 and 100, got {pct}"
        )
    return manual, pct


class DistributionEngine:
    """Plans and executes profit distributions."""

    def __init__(self, repository: LedgerRepository,
                 transaction_engine: TransactionEngine,
                 ledger_config: Dict[str, Any]):
        """
        Initialize distribution engine.

        Args:
            repository: Ledger repository
            transaction_engine: Engine used to record ProfitShare transactions
            ledger_config: The "ledger" config section (reserve account id and
                           name, system actor)
        """
        self.repository = repository
        self.transaction_engine = transaction_engine
        self.reserve_account_id = ledger_config.get("reserve_account_id", "RESERVE")
        self.reserve_account_name = ledger_config.get("reserve_account_name", "Cooperative Reserve")
        self.system_actor = ledger_config.get("system_actor", "system")

    def total_distributed(self) -> Number:
        """Sum of magnitudes of every ProfitShare transaction on record."""
        shares = self.repository.list_transactions(kind=TransactionKind.PROFIT_SHARE)
        return sum(t.magnitude for t in shares)

    def available_real_profit(self) -> Number:
        """
        Interest earned on all loans minus what was already distributed.

        Never negative; a second run with no new interest in between sees 0.
        """
        earned = total_interest_earned(self.repository.list_loans())
        return to_number(max(0, earned - self.total_distributed()))

    def plan(self, manual_profit=0, member_share_percent=70) -> DistributionPlan:
        """
        Compute a distribution without writing anything.

        Args:
            manual_profit: Extra profit declared on top of real profit, >= 0
            member_share_percent: Share of profit going to members, 0-100

        Returns:
            DistributionPlan with both real and full pools and one
            allocation per member

        Raises:
            InvalidDistributionParameters: If an input is out of range
        """
        manual, pct = _check_parameters(manual_profit, member_share_percent)

        available_real = self.available_real_profit()
        real_member_pool = math.floor(available_real * pct / 100)
        real_reserve_pool = to_number(available_real - real_member_pool)

        full_profit = to_number(available_real + manual)
        full_member_pool = math.floor(full_profit * pct / 100)
        full_reserve_pool = to_number(full_profit - full_member_pool)

        members = self.repository.list_members()
        shareholders = [m for m in members if m.id != self.reserve_account_id]
        basis = sum(m.savings_total for m in shareholders)

        allocations = []
        for member in shareholders:
            savings = member.savings_total
            ratio = savings / basis if basis > 0 else 0
            allocations.append(Allocation(
                member_id=member.id,
                name=member.name,
                savings=savings,
                real_nominal=math.floor(ratio * real_member_pool),
                full_nominal=math.floor(ratio * full_member_pool),
            ))

        logger.debug(
            "Distribution planned",
            extra={
                "available_real": available_real,
                "full_profit": full_profit,
                "member_share_percent": pct,
                "members": len(allocations),
            },
        )

        return DistributionPlan(
            available_real=available_real,
            manual_profit=manual,
            member_share_percent=pct,
            real_member_pool=real_member_pool,
            real_reserve_pool=real_reserve_pool,
            full_profit=full_profit,
            full_member_pool=full_member_pool,
            full_reserve_pool=full_reserve_pool,
            savings_basis=basis,
            allocations=allocations,
        )

    def ensure_reserve_account(self) -> Member:
        reserve = self.repository.get_member(self.reserve_account_id)
        if reserve is not None:
            return reserve

        reserve = Member(id=self.reserve_account_id, name=self.reserve_account_name)
        self.repository.create_member(reserve)
        self.repository.audit(
            self.system_actor, f"Created reserve account {reserve.id}"
        )
        logger.info(f"Reserve account {reserve.id} created")
        return reserve

    def _credit_difference(self, member_id: str, diff: Number) -> None:
        # Re-read: the ProfitShare transaction just moved this balance
        current = self.repository.require_member(member_id)
        self.repository.update_member(
            member_id,
            {"accumulated_profit_share": current.accumulated_profit_share + diff},
        )
        self.repository.audit(
            self.system_actor, f"Credited manual profit share {diff} to {member_id}"
        )

    def _record_share(self, member_id: str, amount: Number, note: str) -> str:
        transaction = self.transaction_engine.record(
            member_id, TransactionKind.PROFIT_SHARE, amount, self.system_actor, note
        )
        return transaction.id

    def execute(self, plan: DistributionPlan, actor: str,
                on_progress: Optional[ProgressCallback] = None) -> DistributionResult:
        """
        Apply a distribution plan.

        For every allocation with a positive full nominal, the real nominal
        becomes a ProfitShare transaction and the rest of the full nominal is
        added straight onto the member's accumulated profit share. The
        reserve account is then credited the same way. Progress is reported
        as (processed, total) where total counts eligible allocations plus
        one step for the reserve.

        Args:
            plan: Plan from plan()
            actor: User closing the books
            on_progress: Optional progress callback

        Returns:
            DistributionResult

        Raises:
            PartialDistributionFailure: If any step fails; steps already
                                        applied stay applied
        """
        eligible = plan.eligible()
        total = len(eligible) + 1
        processed = 0
        transaction_ids = []

        logger.info(
            "Distribution started",
            extra={"actor": actor, "eligible": len(eligible), "full_profit": plan.full_profit},
        )

        try:
            self.ensure_reserve_account()

            for allocation in eligible:
                if self.repository.get_member(allocation.member_id) is None:
                    logger.warning(
                        f"Member {allocation.member_id} no longer exists, allocation skipped",
                        extra={"member_id": allocation.member_id},
                    )
                    continue

                if allocation.real_nominal > 0:
                    transaction_ids.append(self._record_share(
                        allocation.member_id, allocation.real_nominal, "Member profit share"
                    ))

                diff = allocation.full_nominal - allocation.real_nominal
                if diff > 0:
                    self._credit_difference(allocation.member_id, diff)

                processed += 1
                if on_progress:
                    on_progress(processed, total)

            if plan.real_reserve_pool > 0:
                transaction_ids.append(self._record_share(
                    self.reserve_account_id, plan.real_reserve_pool, "Reserve profit share"
                ))

            reserve_diff = plan.full_reserve_pool - plan.real_reserve_pool
            if reserve_diff > 0:
                self._credit_difference(self.reserve_account_id, reserve_diff)

            processed += 1
            if on_progress:
                on_progress(processed, total)

        except Exception as e:
            logger.error(
                f"Distribution failed after {processed} of {total} steps: {e}",
                extra={"processed": processed, "total": total},
            )
            raise PartialDistributionFailure(processed, total, str(e)) from e

        self.repository.audit(
            actor,
            f"Books closed. Real total {plan.available_real}, full total {plan.full_profit}",
        )
        logger.info(
            "Distribution completed",
            extra={"processed": processed, "transactions": len(transaction_ids)},
        )

        return DistributionResult(
            plan=plan,
            processed=processed,
            total=total,
            transaction_ids=transaction_ids,
        )
