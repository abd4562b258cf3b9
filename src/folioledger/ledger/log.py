from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Iterable, List, Optional, Tuple
import logging
import math
import threading

from .errors import InsufficientFunds, ValidationError
from .model import LedgerSnapshot, Transaction
from ..metrics.ledger import set_cash

logger = logging.getLogger(__name__)

INITIAL_CASH = 10_000.0


def validate_transaction(tx: Transaction) -> None:
    """Raise ValidationError unless the transaction can be booked."""
    if not tx.ticker or not tx.ticker.strip():
        raise ValidationError("ticker is required")
    for name in ("qty", "price", "leverage"):
        if not math.isfinite(getattr(tx, name)):
            raise ValidationError(f"{name} must be a finite number")
    if tx.qty == 0:
        raise ValidationError("qty must be non-zero")
    if tx.price <= 0:
        raise ValidationError("price must be positive")
    if tx.leverage <= 0:
        raise ValidationError("leverage must be positive")


class TransactionLog:
    """Append-only trade log plus the scalar cash balance.

    Every mutation validates first, then swaps the transaction tuple and the
    cash figure together under a lock, so readers never observe one updated
    without the other. ``version`` increases on each successful mutation and
    can be used to invalidate anything derived from the log.
    """

    def __init__(
        self,
        initial_cash: float = INITIAL_CASH,
        transactions: Iterable[Transaction] = (),
        cash: Optional[float] = None,
    ):
        if initial_cash <= 0:
            raise ValidationError("initial_cash must be positive")
        self.initial_cash = float(initial_cash)
        self._lock = threading.RLock()
        self._transactions: Tuple[Transaction, ...] = tuple(transactions)
        self._cash = float(initial_cash if cash is None else cash)
        self.version = 0

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        return self._transactions

    @property
    def cash(self) -> float:
        return self._cash

    def __len__(self) -> int:
        return len(self._transactions)

    def dates(self) -> List[date]:
        return sorted({tx.date for tx in self._transactions})

    def _commit(self, transactions: Tuple[Transaction, ...], cash: float) -> None:
        self._transactions = transactions
        self._cash = cash
        self.version += 1
        set_cash(cash)

    def append(self, tx: Transaction) -> Transaction:
        validate_transaction(tx)
        if tx.ticker != tx.ticker.strip().upper():
            tx = replace(tx, ticker=tx.ticker.strip().upper())
        with self._lock:
            if tx.qty > 0 and tx.notional > self._cash:
                raise InsufficientFunds(cost=tx.notional, cash=self._cash)
            self._commit(self._transactions + (tx,), self._cash + tx.cash_delta)
        logger.info(f"booked {tx.side} {abs(tx.qty):g} {tx.ticker} @ {tx.price:.2f} (cash {self._cash:.2f})")
        return tx

    def remove_by_date(self, day: date) -> List[Transaction]:
        """Drop every transaction dated ``day`` and reverse its cash effect."""
        with self._lock:
            removed = [tx for tx in self._transactions if tx.date == day]
            if not removed:
                return []
            keep = tuple(tx for tx in self._transactions if tx.date != day)
            # buy cost is refunded, sell proceeds are taken back
            refund = sum(tx.notional * (1 if tx.qty > 0 else -1) for tx in removed)
            self._commit(keep, self._cash + refund)
        logger.info(f"removed {len(removed)} transactions dated {day.isoformat()} (refund {refund:.2f})")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._commit((), self.initial_cash)
        logger.info(f"ledger cleared; cash reset to {self.initial_cash:.2f}")

    def restore(self, transactions: Iterable[Transaction], cash: float) -> None:
        """Replace the in-memory state with a persisted one."""
        txs = tuple(transactions)
        for tx in txs:
            validate_transaction(tx)
        with self._lock:
            self._commit(txs, float(cash))

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(transactions=list(self._transactions), cash=self._cash)
