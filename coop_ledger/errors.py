"""
Exception taxonomy for coop-ledger.

Every error the engines surface derives from LedgerError. RemoteUnavailable is
the one exception that never reaches callers: the store adapter catches it and
fails over to the local cache.
"""


class LedgerError(Exception):
    """Base exception for ledger operations"""
    pass


class RemoteUnavailable(LedgerError):
    """Raised when the remote tabular service fails at transport or protocol level"""
    pass


class InvalidAmount(LedgerError, ValueError):
    """Raised when an amount is zero, negative where a payment is required, or not a number"""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a withdrawal exceeds the member's voluntary savings"""

    def __init__(self, member_id: str, available: float, requested: float):
        self.member_id = member_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient voluntary savings for {member_id}: "
            f"available {available}, requested {requested}"
        )


class NoSuchMember(LedgerError, LookupError):
    """Raised when a member id does not resolve"""
    pass


class NoSuchLoan(LedgerError, LookupError):
    """Raised when a member has no loan with an outstanding balance"""
    pass


class NoSuchTransaction(LedgerError, LookupError):
    """Raised when a transaction id does not resolve"""
    pass


class ActiveLoanExists(LedgerError):
    """Raised when disbursing to a member who still owes on another loan"""
    pass


class InvalidLoanTerms(LedgerError, ValueError):
    """Raised when principal, rate or term are out of range"""
    pass


class InvalidDistributionParameters(LedgerError, ValueError):
    """Raised when the member share percent or manual profit is out of range"""
    pass


class DuplicateRecord(LedgerError):
    """Raised when creating a record whose id already exists"""
    pass


class RecordValidationError(LedgerError, ValueError):
    """Raised when a row does not conform to its collection schema"""
    pass


class PartialDistributionFailure(LedgerError):
    """
    Raised when a distribution run fails part way through.

    Allocations applied before the failure stay applied; the run is not
    rolled back. The original exception is chained as __cause__.
    """

    def __init__(self, processed: int, total: int, message: str):
        self.processed = processed
        self.total = total
        super().__init__(
            f"Distribution stopped after {processed} of {total} steps: {message}"
        )
