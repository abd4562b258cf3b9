"""Ledger package.

Public API:
- TransactionLog: append-only trades plus cash balance with atomic mutations.
- aggregate: collapse the log into open positions (average-cost basis).
- Transaction, Position, EquityHistoryPoint, LedgerSnapshot, EditPermission.
"""

from .errors import (  # re-export
    InsufficientFunds,
    LedgerError,
    PermissionDenied,
    PersistenceFailure,
    QuoteUnavailable,
    ValidationError,
)
from .log import INITIAL_CASH, TransactionLog
from .model import EditPermission, EquityHistoryPoint, LedgerSnapshot, Position, Transaction, new_id
from .positions import aggregate
