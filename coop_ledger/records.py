"""
Record types for the four ledger collections.

Each record has a stable, logical Python interface and maps to a flat physical
row as stored by the remote tabular service and the local cache. Rows coming
back from a spreadsheet backend are loosely typed (numbers as strings, blank
cells), so from_row() coerces them; to_row() output is checked against the
collection's JSON schema before every write.

LOGICAL -> PHYSICAL MAPPING:

Member
- id -> member_id
- name -> name
- national_id -> national_id
- address -> address
- phone -> phone
- principal_savings -> principal_savings
- mandatory_savings -> mandatory_savings
- voluntary_savings -> voluntary_savings
- accumulated_profit_share -> profit_share
- sponsor_id -> sponsor

Transaction
- id -> transaction_id
- timestamp -> timestamp
- member_id -> member_id
- kind -> kind
- amount -> amount (signed, see transaction_engine)
- recorded_by -> recorded_by
- note -> note

Loan
- id -> loan_id
- member_id -> member_id
- principal -> principal
- monthly_interest_rate_percent -> interest_rate_percent
- term_months -> term_months
- monthly_installment -> monthly_installment
- outstanding_balance -> outstanding_balance
- status -> status

ActivityLog
- id -> log_id
- timestamp -> timestamp
- actor -> actor
- description -> description
"""

import json
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Optional, Union

from importlib.resources import files
from jsonschema import Draft7Validator

from .errors import InvalidAmount, RecordValidationError

Number = Union[int, float]


class TransactionKind(str, Enum):
    PRINCIPAL_DEPOSIT = "principal_deposit"
    MANDATORY_DEPOSIT = "mandatory_deposit"
    VOLUNTARY_DEPOSIT = "voluntary_deposit"
    WITHDRAWAL = "withdrawal"
    LOAN_REPAYMENT = "loan_repayment"
    PROFIT_SHARE = "profit_share"


class LoanStatus(str, Enum):
    ACTIVE = "active"
    SETTLED = "settled"


def new_id(prefix: str) -> str:
    """Generate a unique record id, e.g. 'TRX-3f9a0c1b22de'."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_number(value: Any) -> Number:
    """
    Coerce a loosely typed cell into a number.

    None and blank strings become 0. Other numeric types such as Decimal
    become float. Integral floats collapse to int so that amounts round-trip
    through JSON without a trailing '.0'.

    Raises:
        ValueError: If the value is not numeric
        TypeError: If the value has no float conversion
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, str):
        value = float(value.strip())
    elif not isinstance(value, (int, float)):
        value = float(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def magnitude(amount: Any) -> Number:
    """
    Normalize a caller-supplied amount to its magnitude.

    Raises:
        InvalidAmount: If amount is not a number or is zero
    """
    if isinstance(amount, bool):
        raise InvalidAmount(f"Amount must be a number, got {amount!r}")
    try:
        m = abs(to_number(amount))
    except (TypeError, ValueError) as e:
        raise InvalidAmount(f"Amount must be a number, got {amount!r}") from e
    if m == 0:
        raise InvalidAmount("Amount must be non-zero")
    return m


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass
class Member:
    id: str
    name: str
    national_id: str = ""
    address: str = ""
    phone: str = ""
    principal_savings: Number = 0
    mandatory_savings: Number = 0
    voluntary_savings: Number = 0
    accumulated_profit_share: Number = 0
    sponsor_id: Optional[str] = None

    ID_FIELD = "member_id"

    @property
    def savings_total(self) -> Number:
        """Principal + mandatory + voluntary; the basis for profit sharing."""
        return self.principal_savings + self.mandatory_savings + self.voluntary_savings

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Member":
        sponsor = row.get("sponsor")
        return cls(
            id=_text(row.get("member_id")),
            name=_text(row.get("name")),
            national_id=_text(row.get("national_id")),
            address=_text(row.get("address")),
            phone=_text(row.get("phone")),
            principal_savings=to_number(row.get("principal_savings")),
            mandatory_savings=to_number(row.get("mandatory_savings")),
            voluntary_savings=to_number(row.get("voluntary_savings")),
            accumulated_profit_share=to_number(row.get("profit_share")),
            sponsor_id=_text(sponsor) if sponsor not in (None, "") else None,
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "member_id": self.id,
            "name": self.name,
            "national_id": self.national_id,
            "address": self.address,
            "phone": self.phone,
            "principal_savings": self.principal_savings,
            "mandatory_savings": self.mandatory_savings,
            "voluntary_savings": self.voluntary_savings,
            "profit_share": self.accumulated_profit_share,
            "sponsor": self.sponsor_id or "",
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Logical member attribute -> physical column, for partial updates.
MEMBER_COLUMNS = {
    "id": "member_id",
    "name": "name",
    "national_id": "national_id",
    "address": "address",
    "phone": "phone",
    "principal_savings": "principal_savings",
    "mandatory_savings": "mandatory_savings",
    "voluntary_savings": "voluntary_savings",
    "accumulated_profit_share": "profit_share",
    "sponsor_id": "sponsor",
}


@dataclass
class Transaction:
    id: str
    timestamp: str
    member_id: str
    kind: TransactionKind
    amount: Number
    recorded_by: str = ""
    note: str = ""

    ID_FIELD = "transaction_id"

    @property
    def magnitude(self) -> Number:
        """Unsigned amount; balance math never uses the stored sign."""
        return abs(self.amount)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Transaction":
        return cls(
            id=_text(row.get("transaction_id")),
            timestamp=_text(row.get("timestamp")),
            member_id=_text(row.get("member_id")),
            kind=TransactionKind(row.get("kind")),
            amount=to_number(row.get("amount")),
            recorded_by=_text(row.get("recorded_by")),
            note=_text(row.get("note")),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.id,
            "timestamp": self.timestamp,
            "member_id": self.member_id,
            "kind": self.kind.value,
            "amount": self.amount,
            "recorded_by": self.recorded_by,
            "note": self.note,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


@dataclass
class Loan:
    id: str
    member_id: str
    principal: Number
    monthly_interest_rate_percent: Number
    term_months: int
    monthly_installment: Number
    outstanding_balance: Number
    status: LoanStatus = LoanStatus.ACTIVE

    ID_FIELD = "loan_id"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Loan":
        outstanding = to_number(row.get("outstanding_balance"))
        raw_status = row.get("status")
        if raw_status in (None, ""):
            # Older rows were written without a status column
            status = LoanStatus.ACTIVE if outstanding > 0 else LoanStatus.SETTLED
        else:
            status = LoanStatus(raw_status)
        return cls(
            id=_text(row.get("loan_id")),
            member_id=_text(row.get("member_id")),
            principal=to_number(row.get("principal")),
            monthly_interest_rate_percent=to_number(row.get("interest_rate_percent")),
            term_months=int(to_number(row.get("term_months"))),
            monthly_installment=to_number(row.get("monthly_installment")),
            outstanding_balance=outstanding,
            status=status,
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "loan_id": self.id,
            "member_id": self.member_id,
            "principal": self.principal,
            "interest_rate_percent": self.monthly_interest_rate_percent,
            "term_months": self.term_months,
            "monthly_installment": self.monthly_installment,
            "outstanding_balance": self.outstanding_balance,
            "status": self.status.value,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class ActivityLog:
    actor: str
    description: str
    id: str = field(default_factory=lambda: new_id("LOG"))
    timestamp: str = field(default_factory=utc_now_iso)

    ID_FIELD = "log_id"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ActivityLog":
        return cls(
            id=_text(row.get("log_id")),
            timestamp=_text(row.get("timestamp")),
            actor=_text(row.get("actor")),
            description=_text(row.get("description")),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "log_id": self.id,
            "timestamp": self.timestamp,
            "actor": self.actor,
            "description": self.description,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Schema validation
# ---------------------------------------------------------------------------

@lru_cache(maxsize=None)
def _validator(schema_name: str) -> Draft7Validator:
    schema_file = files("coop_ledger").joinpath("schemas").joinpath(f"{schema_name}.schema.json")
    with schema_file.open("r") as f:
        schema = json.load(f)
    return Draft7Validator(schema)


def validate_row(schema_name: str, row: Dict[str, Any], partial: bool = False) -> None:
    """
    Validate a physical row against its collection schema.

    Args:
        schema_name: "member", "transaction", "loan" or "activity_log"
        row: Physical row dict
        partial: When True (update payloads), missing required columns are
                 tolerated and only the supplied columns are checked

    Raises:
        RecordValidationError: If the row does not conform
    """
    validator = _validator(schema_name)
    for error in sorted(validator.iter_errors(row), key=lambda e: list(e.path)):
        if partial and error.validator == "required":
            continue
        error_path = " -> ".join(str(p) for p in error.path) if error.path else "root"
        raise RecordValidationError(
            f"{schema_name} row failed schema validation at {error_path}: {error.message}"
        )
