"""Valuation package: P/L, equity, realized P/L estimate and insights."""

from .calculator import (  # re-export
    Insights,
    PositionValuation,
    RealizedPL,
    Valuation,
    realized_pl,
    value_portfolio,
)
