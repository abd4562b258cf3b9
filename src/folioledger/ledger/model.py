from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional
import uuid


def new_id() -> str:
    return uuid.uuid4().hex


def parse_date(value: Any) -> date:
    """Coerce a persisted date (``YYYY-MM-DD`` string, date or datetime) to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()


@dataclass(frozen=True)
class Transaction:
    """A single trade recorded in the ledger.

    Attributes:
        id: Opaque unique identifier (uuid4 hex for locally created trades)
        ticker: Upper-case instrument symbol (e.g., "AAPL")
        qty: Signed quantity; positive = buy/long, negative = sell/short
        price: Execution price captured when the trade was added
        leverage: P/L multiplier for the position (1, 2, 3 or 4 in practice)
        note: Free-text annotation
        date: Calendar day the trade belongs to
    """

    id: str
    ticker: str
    qty: float
    price: float
    date: date
    leverage: float = 1.0
    note: str = ""

    @property
    def side(self) -> str:
        return "buy" if self.qty > 0 else "sell"

    @property
    def notional(self) -> float:
        return abs(self.qty) * self.price

    @property
    def cash_delta(self) -> float:
        # buys debit cash, sells/shorts credit the proceeds
        return -self.notional if self.qty > 0 else self.notional

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ticker": self.ticker,
            "qty": self.qty,
            "price": self.price,
            "leverage": self.leverage,
            "note": self.note,
            "date": self.date.isoformat(),
        }

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "Transaction":
        return cls(
            id=str(rec.get("id") or new_id()),
            ticker=str(rec.get("ticker", "")).upper(),
            qty=float(rec.get("qty", 0.0)),
            price=float(rec.get("price", 0.0)),
            leverage=float(rec.get("leverage") or 1.0),
            note=str(rec.get("note") or ""),
            date=parse_date(rec["date"]),
        )


@dataclass
class Position:
    """Net exposure per ticker, derived from the transaction log."""

    ticker: str
    net_qty: float
    avg_price: float
    leverage: float = 1.0
    total_cost: float = 0.0


@dataclass
class EquityHistoryPoint:
    """Daily performance snapshot; ``port`` and ``sp`` are percentages."""

    date: date
    port: float
    sp: float

    def to_record(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "port": self.port, "sp": self.sp}

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "EquityHistoryPoint":
        return cls(
            date=parse_date(rec["date"]),
            port=float(rec.get("port") or 0.0),
            sp=float(rec.get("sp") or 0.0),
        )


@dataclass
class LedgerSnapshot:
    """Everything a storage backend needs to persist or restore a ledger."""

    transactions: List[Transaction] = field(default_factory=list)
    cash: float = 0.0
    history: List[EquityHistoryPoint] = field(default_factory=list)
    benchmark_base: Optional[float] = None


@dataclass(frozen=True)
class EditPermission:
    """Whether the current caller may mutate the ledger (owner/editor role)."""

    can_edit: bool = False

    @classmethod
    def owner(cls) -> "EditPermission":
        return cls(can_edit=True)

    @classmethod
    def viewer(cls) -> "EditPermission":
        return cls(can_edit=False)
