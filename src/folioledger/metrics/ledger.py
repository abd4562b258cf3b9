from __future__ import annotations

from typing import Dict, Optional
import os
from prometheus_client import Counter, Gauge, REGISTRY

_transactions_appended: Optional[Counter] = None
_transactions_rejected: Optional[Counter] = None
_day_resets: Optional[Counter] = None
_quotes_missing: Optional[Counter] = None
_persistence_failures: Optional[Counter] = None
_history_points_recorded: Optional[Counter] = None
_cash_gauge: Optional[Gauge] = None
_equity_gauge: Optional[Gauge] = None
_return_pct_gauge: Optional[Gauge] = None
_events_total: Optional[Counter] = None


class _NoOp:
    def labels(self, *args, **kwargs):
        return self
    def inc(self, *args, **kwargs):
        return None
    def set(self, *args, **kwargs):
        return None


def _disabled() -> bool:
    return os.getenv("DISABLE_PROMETHEUS", "0") == "1"


def _find_existing(name: str):
    # Re-registration happens when modules are reloaded (tests); reuse the collector
    try:
        coll = getattr(REGISTRY, "_names_to_collectors", {}).get(name)
        if coll is not None:
            return coll
        for coll in list(getattr(REGISTRY, "_collector_to_names", {}).keys()):  # type: ignore[attr-defined]
            if getattr(coll, "_name", None) == name:
                return coll
    except Exception:
        pass
    return None


def _safe_counter(name: str, doc: str, labelnames):
    if _disabled():
        return _NoOp()
    try:
        return Counter(name, doc, labelnames)
    except ValueError:
        coll = _find_existing(name)
        return coll if coll is not None else _NoOp()


def _safe_gauge(name: str, doc: str, labelnames=()):
    if _disabled():
        return _NoOp()
    try:
        return Gauge(name, doc, labelnames)
    except ValueError:
        coll = _find_existing(name)
        return coll if isinstance(coll, Gauge) else _NoOp()


def get_transactions_appended_total():
    global _transactions_appended
    if _transactions_appended is None:
        _transactions_appended = _safe_counter(
            "ledger_transactions_appended_total", "Transactions appended to the ledger", ["side", "ticker"]
        )
    return _transactions_appended


def get_transactions_rejected_total():
    global _transactions_rejected
    if _transactions_rejected is None:
        _transactions_rejected = _safe_counter(
            "ledger_transactions_rejected_total", "Ledger commands rejected", ["reason"]
        )
    return _transactions_rejected


def get_day_resets_total():
    global _day_resets
    if _day_resets is None:
        _day_resets = _safe_counter("ledger_day_resets_total", "Reset-day operations", [])
    return _day_resets


def get_quotes_missing_total():
    """Counter: quote_missing_total{ticker}, tickers valued without a live price."""
    global _quotes_missing
    if _quotes_missing is None:
        _quotes_missing = _safe_counter("quote_missing_total", "Tickers without a usable quote", ["ticker"])
    return _quotes_missing


def get_persistence_failures_total():
    global _persistence_failures
    if _persistence_failures is None:
        _persistence_failures = _safe_counter(
            "ledger_persistence_failures_total", "Failed storage operations", ["op"]
        )
    return _persistence_failures


def get_history_points_recorded_total():
    global _history_points_recorded
    if _history_points_recorded is None:
        _history_points_recorded = _safe_counter(
            "equity_history_points_recorded_total", "Equity history upserts", []
        )
    return _history_points_recorded


def get_cash_gauge():
    global _cash_gauge
    if _cash_gauge is None:
        _cash_gauge = _safe_gauge("ledger_cash_balance", "Ledger cash balance")
    return _cash_gauge


def get_equity_gauge():
    global _equity_gauge
    if _equity_gauge is None:
        _equity_gauge = _safe_gauge("portfolio_equity", "Cash plus mark-to-market value of open positions")
    return _equity_gauge


def get_return_pct_gauge():
    """Gauge: portfolio_return_pct{series} with series=portfolio|benchmark."""
    global _return_pct_gauge
    if _return_pct_gauge is None:
        _return_pct_gauge = _safe_gauge("portfolio_return_pct", "Return since inception in percent", ["series"])
    return _return_pct_gauge


def set_cash(cash: float) -> None:
    try:
        get_cash_gauge().set(float(cash))
    except Exception:
        pass


def set_return_gauges(returns: Dict[str, float]) -> None:
    g = get_return_pct_gauge()
    for series, val in returns.items():
        try:
            g.labels(series=str(series)).set(float(val))
        except Exception:
            # Metrics are optional in constrained environments
            continue


def set_valuation_gauges(equity: float, returns: Dict[str, float]) -> None:
    """Set the equity gauge and one return gauge per series."""
    try:
        get_equity_gauge().set(float(equity))
    except Exception:
        pass
    set_return_gauges(returns)


def inc_rejected(reason: str) -> None:
    try:
        get_transactions_rejected_total().labels(reason).inc()
    except Exception:
        pass


def inc_quote_missing(ticker: str) -> None:
    try:
        get_quotes_missing_total().labels(ticker).inc()
    except Exception:
        pass


def inc_persistence_failure(op: str) -> None:
    try:
        get_persistence_failures_total().labels(op).inc()
    except Exception:
        pass


def get_events_total():
    global _events_total
    if _events_total is None:
        _events_total = _safe_counter("ledger_events_total", "Ledger events published", ["type"])
    return _events_total
