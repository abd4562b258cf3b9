"""
Tick-driven random-walk price simulator for the trading-arena game.

Each tick draws a uniform delta in [-1, 1), rounded to cents, and moves the
price to `max(0, round(prev + delta, 2))`. Seeding makes runs reproducible.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional
import time

import numpy as np
import pandas as pd


@dataclass
class Tick:
    i: int
    time: int  # ms since epoch
    delta: float
    price: float


class TickSimulator:
    def __init__(self, start_price: float = 100.0, seed: Optional[int] = None):
        if start_price < 0:
            raise ValueError("start_price must be non-negative")
        self._rng = np.random.default_rng(seed)
        self.start_price = round(float(start_price), 2)
        self.price = self.start_price
        self.ticks: List[Tick] = []

    def reset(self, start_price: Optional[float] = None) -> None:
        if start_price is not None:
            if start_price < 0:
                raise ValueError("start_price must be non-negative")
            self.start_price = round(float(start_price), 2)
        self.price = self.start_price
        self.ticks = []

    def _delta(self) -> float:
        return round(float(self._rng.uniform(-1.0, 1.0)), 2)

    def tick(self, now_ms: Optional[int] = None) -> Tick:
        delta = self._delta()
        self.price = max(0.0, round(self.price + delta, 2))
        t = Tick(
            i=len(self.ticks),
            time=int(now_ms if now_ms is not None else time.time() * 1000),
            delta=delta,
            price=self.price,
        )
        self.ticks.append(t)
        return t

    def run(self, n: int, interval_ms: int = 500, start_ms: Optional[int] = None) -> List[Tick]:
        """Generate ``n`` ticks with synthetic timestamps ``interval_ms`` apart."""
        t0 = int(start_ms if start_ms is not None else time.time() * 1000)
        return [self.tick(t0 + k * interval_ms) for k in range(n)]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([t.__dict__ for t in self.ticks], columns=["i", "time", "delta", "price"])
