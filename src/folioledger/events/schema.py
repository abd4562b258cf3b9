from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, SerializeAsAny


# ---- Base + envelope ----

class BaseEvent(BaseModel):
    event_type: str
    ts: int
    ticker: Optional[str] = None
    tags: List[str] = []


class EventEnvelope(BaseModel):
    schema_version: str = "v1"
    correlation_id: str
    sequence: int = 0
    # subclass fields must survive model_dump on the envelope
    event: SerializeAsAny[BaseEvent]


# ---- Event types ----

class TransactionAppended(BaseEvent):
    event_type: Literal["transaction_appended"] = "transaction_appended"
    transaction_id: str
    qty: float
    price: float
    leverage: float = 1.0
    cash_after: float


class TransactionRejected(BaseEvent):
    event_type: Literal["transaction_rejected"] = "transaction_rejected"
    reason: str
    detail: str = ""


class DayReset(BaseEvent):
    event_type: Literal["day_reset"] = "day_reset"
    day: str
    removed: int
    cash_after: float


class LedgerReset(BaseEvent):
    event_type: Literal["ledger_reset"] = "ledger_reset"
    cash_after: float


class EquityRecorded(BaseEvent):
    event_type: Literal["equity_recorded"] = "equity_recorded"
    day: str
    port: float
    sp: float
    equity: float


class QuoteMissing(BaseEvent):
    event_type: Literal["quote_missing"] = "quote_missing"


class PersistenceFailed(BaseEvent):
    event_type: Literal["persistence_failed"] = "persistence_failed"
    op: str
    error: str

