"""
Quote provider contract.

What it does:
- Defines the `QuoteProvider` protocol: `get_quotes(tickers) -> {ticker: price}`.
  A provider may return a partial map; a missing ticker means "no usable
  price right now" and must never raise for a single bad symbol.
- Ships `StaticQuoteProvider`, a fixed price map for offline runs and tests.

Where it is used:
- `folioledger.engine.PortfolioEngine` asks a provider for execution prices
  on `add` and for marks on `valuation`/`record_daily`.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Protocol


class QuoteProvider(Protocol):
    def get_quotes(self, tickers: Iterable[str]) -> Dict[str, float]:
        ...


def normalize_tickers(tickers: Iterable[str]) -> List[str]:
    """Upper-case, strip and de-duplicate while keeping the caller's order."""
    out: List[str] = []
    for t in tickers:
        s = str(t or "").strip().upper()
        if s and s not in out:
            out.append(s)
    return out


class StaticQuoteProvider:
    """Serve prices from a fixed map; unknown tickers are omitted."""

    def __init__(self, prices: Optional[Mapping[str, float]] = None):
        self.prices: Dict[str, float] = {str(k).upper(): float(v) for k, v in (prices or {}).items()}

    def set(self, ticker: str, price: float) -> None:
        self.prices[ticker.upper()] = float(price)

    def get_quotes(self, tickers: Iterable[str]) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for t in normalize_tickers(tickers):
            px = self.prices.get(t)
            if px is not None and px > 0:
                out[t] = px
        return out
