"""Ledger error taxonomy.

Every failure a ledger operation can report derives from ``LedgerError`` so
callers can handle the whole family with one ``except`` clause. None of these
are fatal: a rejected command leaves the ledger exactly as it was.
"""

from __future__ import annotations

from typing import Iterable, List


class LedgerError(Exception):
    """Base class for recoverable ledger errors."""

    reason = "ledger_error"


class ValidationError(LedgerError, ValueError):
    """Missing/invalid ticker, zero quantity, non-positive price or leverage."""

    reason = "validation"


class InsufficientFunds(LedgerError):
    """A buy costs more than the available cash."""

    reason = "insufficient_funds"

    def __init__(self, cost: float, cash: float):
        super().__init__(f"Not enough cash: cost {cost:.2f} exceeds available {cash:.2f}")
        self.cost = float(cost)
        self.cash = float(cash)


class QuoteUnavailable(LedgerError):
    """No usable price for one or more tickers."""

    reason = "quote_unavailable"

    def __init__(self, tickers: Iterable[str]):
        self.tickers: List[str] = list(tickers)
        super().__init__(f"Price unavailable for: {', '.join(self.tickers)}")


class PersistenceFailure(LedgerError):
    """The external store could not be read or written."""

    reason = "persistence"


class PermissionDenied(LedgerError):
    """A mutation was attempted without edit rights."""

    reason = "permission_denied"
