from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional
import logging
import math

import pandas as pd

from ..ledger.model import EquityHistoryPoint
from ..metrics.ledger import get_history_points_recorded_total, set_return_gauges

logger = logging.getLogger(__name__)


class EquityHistoryRecorder:
    """One performance point per calendar day, benchmarked against a fixed base.

    The first positive benchmark price observed becomes ``benchmark_base`` and
    stays fixed until ``reset()``; benchmark returns are always measured from
    it, never from a rolling window.
    """

    def __init__(self, points: Iterable[EquityHistoryPoint] = (), benchmark_base: Optional[float] = None):
        self._points: Dict[date, EquityHistoryPoint] = {}
        for p in points:
            self._points[p.date] = p
        self._benchmark_base = float(benchmark_base) if benchmark_base else None
        self._recorded = get_history_points_recorded_total()

    @property
    def benchmark_base(self) -> Optional[float]:
        return self._benchmark_base

    def __len__(self) -> int:
        return len(self._points)

    def benchmark_pct(self, price: Optional[float]) -> float:
        """Benchmark return in percent relative to the fixed base."""
        if price is None or not math.isfinite(price) or price <= 0:
            return 0.0
        if self._benchmark_base is None:
            self._benchmark_base = float(price)
            logger.info(f"benchmark base set to {price:.2f}")
        return (float(price) / self._benchmark_base - 1.0) * 100.0

    def record(self, day: date, port_pct: float, benchmark_pct: float) -> EquityHistoryPoint:
        """Upsert the point for ``day``; repeated calls keep only the latest values."""
        point = EquityHistoryPoint(date=day, port=float(port_pct), sp=float(benchmark_pct))
        self._points[day] = point
        try:
            self._recorded.inc()
        except Exception:
            pass
        set_return_gauges({"portfolio": point.port, "benchmark": point.sp})
        return point

    def get(self, day: date) -> Optional[EquityHistoryPoint]:
        return self._points.get(day)

    def series(self) -> List[EquityHistoryPoint]:
        return [self._points[d] for d in sorted(self._points)]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [{"date": p.date, "port": p.port, "sp": p.sp} for p in self.series()],
            columns=["date", "port", "sp"],
        )

    def reset(self) -> None:
        self._points.clear()
        self._benchmark_base = None

