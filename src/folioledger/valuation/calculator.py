"""Mark positions to market and derive P/L, equity and insights.

Leverage scales the displayed P/L of a position only. Equity is cash plus the
plain mark-to-market value of open positions, so a 2x position reports twice
the P/L while equity moves by the unlevered amount.

A ticker without a usable quote is never silently valued at zero: its row is
flagged ``quote_status="missing"``, reports zero P/L, and is marked at its
average cost for equity. ``Valuation.complete`` is False whenever that happens.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional
import math

from ..ledger.model import Position, Transaction
from ..ledger.positions import flat_tickers, partially_closed_tickers
from ..metrics.ledger import inc_quote_missing, set_valuation_gauges

QUOTE_OK = "ok"
QUOTE_MISSING = "missing"


@dataclass
class PositionValuation:
    ticker: str
    net_qty: float
    avg_price: float
    leverage: float
    current_price: Optional[float]
    quote_status: str
    market_value: float
    unrealized_pl: float
    unrealized_pl_pct: float

    @property
    def has_quote(self) -> bool:
        return self.quote_status == QUOTE_OK


@dataclass
class Insights:
    top_gainer: Optional[PositionValuation] = None
    top_loser: Optional[PositionValuation] = None
    largest_position: Optional[PositionValuation] = None
    most_impactful: Optional[PositionValuation] = None


@dataclass
class RealizedPL:
    """Realized P/L of closed tickers.

    For a fully closed ticker ``Σ qty*(ref - price)`` equals the net cash
    result whatever reference price is used, because ``Σ qty == 0``. Partial
    closes of still-open tickers stay inside the average-cost basis and are
    not counted, which is why ``approximate`` is raised when any exist.
    """

    amount: float
    tickers: List[str] = field(default_factory=list)
    approximate: bool = False


@dataclass
class Valuation:
    rows: List[PositionValuation]
    cash: float
    equity: float
    initial_cash: float
    total_return_pct: float
    total_unrealized_pl: float
    missing_quotes: List[str]
    insights: Insights

    @property
    def complete(self) -> bool:
        return not self.missing_quotes

    def row(self, ticker: str) -> Optional[PositionValuation]:
        for r in self.rows:
            if r.ticker == ticker:
                return r
        return None


def _usable(price: Optional[float]) -> bool:
    return price is not None and math.isfinite(price) and price > 0


def unrealized_pl_pct(pl: float, net_qty: float, avg_price: float) -> float:
    """P/L as a percentage of the position's cost; 0 when the cost is 0."""
    basis = abs(net_qty) * avg_price
    if net_qty == 0 or avg_price == 0 or not math.isfinite(basis) or basis == 0:
        return 0.0
    pct = pl / basis * 100.0
    return pct if math.isfinite(pct) else 0.0


def value_position(pos: Position, quote: Optional[float], leverage: Optional[float] = None) -> PositionValuation:
    lev = float(leverage if leverage is not None else pos.leverage)
    if not _usable(quote):
        return PositionValuation(
            ticker=pos.ticker,
            net_qty=pos.net_qty,
            avg_price=pos.avg_price,
            leverage=lev,
            current_price=None,
            quote_status=QUOTE_MISSING,
            market_value=pos.net_qty * pos.avg_price,
            unrealized_pl=0.0,
            unrealized_pl_pct=0.0,
        )
    cur = float(quote)
    pl = pos.net_qty * (cur - pos.avg_price) * lev
    return PositionValuation(
        ticker=pos.ticker,
        net_qty=pos.net_qty,
        avg_price=pos.avg_price,
        leverage=lev,
        current_price=cur,
        quote_status=QUOTE_OK,
        market_value=pos.net_qty * cur,
        unrealized_pl=pl,
        unrealized_pl_pct=unrealized_pl_pct(pl, pos.net_qty, pos.avg_price),
    )


def _pick(rows: List[PositionValuation], key: Callable[[PositionValuation], float], largest: bool) -> Optional[PositionValuation]:
    best: Optional[PositionValuation] = None
    for r in rows:
        if best is None:
            best = r
            continue
        # strict comparison keeps the first row on ties
        if (key(r) > key(best)) if largest else (key(r) < key(best)):
            best = r
    return best


def insights(rows: Iterable[PositionValuation]) -> Insights:
    """Rank positions; rows without a live quote are left out."""
    priced = [r for r in rows if r.has_quote]
    return Insights(
        top_gainer=_pick(priced, lambda r: r.unrealized_pl_pct, largest=True),
        top_loser=_pick(priced, lambda r: r.unrealized_pl_pct, largest=False),
        largest_position=_pick(priced, lambda r: abs(r.net_qty * (r.current_price or 0.0)), largest=True),
        most_impactful=_pick(priced, lambda r: abs(r.unrealized_pl), largest=True),
    )


def value_portfolio(
    positions: Mapping[str, Position],
    quotes: Mapping[str, float],
    cash: float,
    initial_cash: float,
    leverage: Optional[Mapping[str, float]] = None,
) -> Valuation:
    """Value every open position against ``quotes``.

    Args:
        positions: Output of ``ledger.positions.aggregate``.
        quotes: Ticker -> latest price; missing tickers are flagged, not fatal.
        cash: Current ledger cash.
        initial_cash: Starting capital used for the total return.
        leverage: Optional per-ticker override of the position's leverage.
    """
    lev = leverage or {}
    rows: List[PositionValuation] = []
    missing: List[str] = []
    for ticker, pos in positions.items():
        row = value_position(pos, quotes.get(ticker), lev.get(ticker))
        if not row.has_quote:
            missing.append(ticker)
            inc_quote_missing(ticker)
        rows.append(row)
    equity = float(cash) + sum(r.market_value for r in rows)
    total_return = (equity / initial_cash - 1.0) * 100.0 if initial_cash else 0.0
    set_valuation_gauges(equity, {"portfolio": total_return})
    return Valuation(
        rows=rows,
        cash=float(cash),
        equity=equity,
        initial_cash=float(initial_cash),
        total_return_pct=total_return,
        total_unrealized_pl=sum(r.unrealized_pl for r in rows),
        missing_quotes=missing,
        insights=insights(rows),
    )


def realized_pl(transactions: Iterable[Transaction], quotes: Mapping[str, float]) -> RealizedPL:
    txs = list(transactions)
    closed = flat_tickers(txs)
    amount = 0.0
    for tx in txs:
        if tx.ticker not in closed:
            continue
        ref = quotes.get(tx.ticker)
        ref = float(ref) if _usable(ref) else 0.0
        amount += tx.qty * (ref - tx.price)
    return RealizedPL(
        amount=amount,
        tickers=closed,
        approximate=bool(partially_closed_tickers(txs)),
    )


SORT_KEYS: Dict[str, Callable[[PositionValuation], float]] = {
    "plPct": lambda r: r.unrealized_pl_pct,
    "pl": lambda r: r.unrealized_pl,
    "qty": lambda r: r.net_qty,
    "value": lambda r: abs(r.market_value),
}


def sort_rows(rows: Iterable[PositionValuation], by: str, descending: bool = True) -> List[PositionValuation]:
    if by not in SORT_KEYS:
        raise ValueError(f"unknown sort key {by!r}; expected one of {sorted(SORT_KEYS)}")
    return sorted(rows, key=SORT_KEYS[by], reverse=descending)


def filter_rows(rows: Iterable[PositionValuation], ticker: str = "") -> List[PositionValuation]:
    """Keep rows for ``ticker``; an empty ticker keeps everything."""
    if not ticker:
        return list(rows)
    t = ticker.upper()
    return [r for r in rows if r.ticker == t]
