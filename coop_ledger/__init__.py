"""
coop-ledger: Cooperative savings, loan and profit-distribution ledger

This library provides the ledger core of a savings-and-loan cooperative:
- Member savings accounts (principal, mandatory, voluntary)
- Deposits, withdrawals and their reversal
- Flat-interest loans with repayment tracking
- Profit distribution with real and manually declared profit
- Remote tabular storage with sticky failover to a local cache
- JSON-RPC 2.0 server for non-Python front ends

Example:
    from coop_ledger import LedgerService

    service = LedgerService(offline=True)
    member = service.add_member({"id": "admin", "role": "admin"}, name="Siti")
"""

from .api import LedgerService

__version__ = "0.1.0"
__all__ = ["LedgerService"]
