"""Collapse the transaction log into net positions per ticker.

Average-cost model: the per-unit basis is the average price of the legs on
the same side as the net quantity, so reducing a position (selling part of a
long, covering part of a short) changes the quantity but not the basis. This
is a deliberate simplification, not FIFO/LIFO lot accounting.

Flat tickers (net quantity 0) are excluded from the result: their average
price is undefined, and they still show up in the raw log.
"""

from __future__ import annotations

from typing import Dict, Iterable, List

from .model import Position, Transaction

FLAT_EPSILON = 1e-9


class _Acc:
    __slots__ = ("net_qty", "total_cost", "long_qty", "long_cost", "short_qty", "short_cost", "lev_weight", "lev_qty")

    def __init__(self) -> None:
        self.net_qty = 0.0
        self.total_cost = 0.0
        self.long_qty = 0.0
        self.long_cost = 0.0
        self.short_qty = 0.0
        self.short_cost = 0.0
        self.lev_weight = 0.0
        self.lev_qty = 0.0

    def add(self, tx: Transaction) -> None:
        self.net_qty += tx.qty
        self.total_cost += tx.qty * tx.price
        if tx.qty > 0:
            self.long_qty += tx.qty
            self.long_cost += tx.qty * tx.price
        else:
            self.short_qty += tx.qty
            self.short_cost += tx.qty * tx.price
        self.lev_weight += abs(tx.qty) * tx.leverage
        self.lev_qty += abs(tx.qty)


def _accumulate(transactions: Iterable[Transaction]) -> Dict[str, _Acc]:
    acc: Dict[str, _Acc] = {}
    for tx in transactions:
        acc.setdefault(tx.ticker, _Acc()).add(tx)
    return acc


def is_flat(net_qty: float) -> bool:
    return abs(net_qty) < FLAT_EPSILON


def aggregate(transactions: Iterable[Transaction]) -> Dict[str, Position]:
    """Return open positions keyed by ticker, in first-seen order."""
    out: Dict[str, Position] = {}
    for ticker, a in _accumulate(transactions).items():
        if is_flat(a.net_qty):
            continue
        if a.net_qty > 0:
            avg = a.long_cost / a.long_qty
        else:
            avg = a.short_cost / a.short_qty
        out[ticker] = Position(
            ticker=ticker,
            net_qty=a.net_qty,
            avg_price=avg,
            leverage=a.lev_weight / a.lev_qty if a.lev_qty else 1.0,
            total_cost=a.total_cost,
        )
    return out


def flat_tickers(transactions: Iterable[Transaction]) -> List[str]:
    """Tickers that were traded but whose net quantity is back to zero."""
    return [t for t, a in _accumulate(transactions).items() if is_flat(a.net_qty)]


def partially_closed_tickers(transactions: Iterable[Transaction]) -> List[str]:
    """Open tickers that also carry legs on the opposite side of their net quantity."""
    out: List[str] = []
    for t, a in _accumulate(transactions).items():
        if is_flat(a.net_qty):
            continue
        if (a.net_qty > 0 and a.short_qty) or (a.net_qty < 0 and a.long_qty):
            out.append(t)
    return out
