"""
Portfolio engine: commands over an in-memory ledger, persistence on demand.

What it does:
- Owns a `TransactionLog`, an `EquityHistoryRecorder` and the collaborators
  passed in at construction (quote provider, optional storage, edit
  permission). There are no module-level clients or flags.
- Ledger commands (`add`, `reset_day`, `reset_all`) mutate memory only and
  either succeed completely or raise a `LedgerError` leaving state untouched.
- `persist()` / `load()` are separate, explicit side effects. They report
  success or failure through `PersistResult` and never roll back or corrupt
  the in-memory ledger.
- Every command publishes a ledger event and updates Prometheus metrics,
  both best-effort.

Where it is used:
- `folioledger.main` (CLI) and any embedding application.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional
import logging
import time

from .events.bus import publish as publish_event
from .events.schema import (
    DayReset,
    EquityRecorded,
    EventEnvelope,
    LedgerReset,
    PersistenceFailed,
    QuoteMissing,
    TransactionAppended,
    TransactionRejected,
)
from .history.recorder import EquityHistoryRecorder
from .ledger.errors import LedgerError, PermissionDenied, PersistenceFailure, QuoteUnavailable, ValidationError
from .ledger.log import INITIAL_CASH, TransactionLog
from .ledger.model import EditPermission, EquityHistoryPoint, LedgerSnapshot, Position, Transaction, new_id
from .ledger.positions import aggregate
from .metrics.ledger import (
    get_day_resets_total,
    get_transactions_appended_total,
    inc_persistence_failure,
    inc_rejected,
)
from .quotes.provider import QuoteProvider, normalize_tickers
from .storage.base import StorageClient
from .valuation.calculator import RealizedPL, Valuation, realized_pl, value_portfolio

logger = logging.getLogger(__name__)


@dataclass
class PersistResult:
    ok: bool
    op: str
    error: Optional[str] = None


def _now_ms() -> int:
    return int(time.time() * 1000)


def _number(name: str, value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be a number, got {value!r}") from e


def _emit(event, correlation_id: str = "ledger") -> None:
    try:
        publish_event(EventEnvelope(correlation_id=correlation_id, event=event))
    except Exception:
        pass


class PortfolioEngine:
    def __init__(
        self,
        quotes: QuoteProvider,
        storage: Optional[StorageClient] = None,
        permission: EditPermission = EditPermission(False),
        initial_cash: float = INITIAL_CASH,
        benchmark: str = "SPY",
        today: Callable[[], date] = date.today,
    ):
        self.quotes = quotes
        self.storage = storage
        self.permission = permission
        self.benchmark = benchmark.upper()
        self.log = TransactionLog(initial_cash=initial_cash)
        self.recorder = EquityHistoryRecorder()
        self._today = today

    # ---- state ----

    @property
    def cash(self) -> float:
        return self.log.cash

    @property
    def initial_cash(self) -> float:
        return self.log.initial_cash

    def today(self) -> date:
        return self._today()

    def snapshot(self) -> LedgerSnapshot:
        snap = self.log.snapshot()
        snap.history = self.recorder.series()
        snap.benchmark_base = self.recorder.benchmark_base
        return snap

    def _require_edit(self, command: str) -> None:
        if not self.permission.can_edit:
            inc_rejected(PermissionDenied.reason)
            raise PermissionDenied(f"{command} requires edit permission")

    # ---- commands ----

    def add(
        self,
        ticker: str,
        qty: float,
        note: str = "",
        leverage: float = 1.0,
        price: Optional[float] = None,
    ) -> Transaction:
        """Book a trade dated today.

        When ``price`` is None the execution price is fetched from the quote
        provider; ``QuoteUnavailable`` is raised if none can be obtained.
        """
        self._require_edit("add")
        symbol = (ticker or "").strip().upper()
        try:
            qty = _number("qty", qty)
            leverage = _number("leverage", leverage)
            if price is not None:
                price = _number("price", price)
            if not symbol or not qty:
                raise ValidationError("ticker and non-zero qty are required")
            if price is None:
                price = self.fetch_quotes([symbol]).get(symbol)
                if not price:
                    raise QuoteUnavailable([symbol])
            tx = Transaction(
                id=new_id(),
                ticker=symbol,
                qty=qty,
                price=price,
                leverage=leverage,
                note=note or "",
                date=self.today(),
            )
            tx = self.log.append(tx)
        except LedgerError as e:
            inc_rejected(e.reason)
            _emit(TransactionRejected(ts=_now_ms(), ticker=symbol or None, reason=e.reason, detail=str(e)))
            logger.warning(f"add {symbol or '?'} rejected: {e}")
            raise
        try:
            get_transactions_appended_total().labels(tx.side, tx.ticker).inc()
        except Exception:
            pass
        _emit(
            TransactionAppended(
                ts=_now_ms(),
                ticker=tx.ticker,
                transaction_id=tx.id,
                qty=tx.qty,
                price=tx.price,
                leverage=tx.leverage,
                cash_after=self.log.cash,
            ),
            correlation_id=tx.id,
        )
        return tx

    def reset_day(self, day: Optional[date] = None) -> List[Transaction]:
        """Remove the trades of ``day`` (default today) and refund their cash."""
        self._require_edit("reset_day")
        target = day or self.today()
        removed = self.log.remove_by_date(target)
        try:
            get_day_resets_total().inc()
        except Exception:
            pass
        _emit(DayReset(ts=_now_ms(), day=target.isoformat(), removed=len(removed), cash_after=self.log.cash))
        return removed

    def reset_all(self) -> None:
        """Empty the ledger, restore initial cash and forget history and benchmark base."""
        self._require_edit("reset_all")
        self.log.clear()
        self.recorder.reset()
        _emit(LedgerReset(ts=_now_ms(), cash_after=self.log.cash))

    # ---- derived views ----

    def positions(self) -> Dict[str, Position]:
        return aggregate(self.log.transactions)

    def fetch_quotes(self, tickers) -> Dict[str, float]:
        """Ask the provider for prices; a provider failure degrades to an empty map."""
        wanted = normalize_tickers(tickers)
        if not wanted:
            return {}
        try:
            return dict(self.quotes.get_quotes(wanted))
        except Exception as e:
            logger.warning(f"quote provider failed for {wanted}: {e}")
            return {}

    def valuation(self, quotes: Optional[Mapping[str, float]] = None) -> Valuation:
        positions = self.positions()
        if quotes is None:
            quotes = self.fetch_quotes(positions.keys())
        val = value_portfolio(positions, quotes, cash=self.log.cash, initial_cash=self.log.initial_cash)
        for ticker in val.missing_quotes:
            _emit(QuoteMissing(ts=_now_ms(), ticker=ticker))
        if val.missing_quotes:
            logger.warning(f"valuation incomplete; no quote for {', '.join(val.missing_quotes)}")
        return val

    def realized(self, quotes: Optional[Mapping[str, float]] = None) -> RealizedPL:
        """Realized P/L of closed tickers (see ``RealizedPL`` for the approximation)."""
        txs = self.log.transactions
        if quotes is None:
            quotes = self.fetch_quotes({tx.ticker for tx in txs})
        return realized_pl(txs, quotes)

    def record_daily(self, valuation: Optional[Valuation] = None) -> Optional[EquityHistoryPoint]:
        """Upsert today's history point; skipped when the benchmark has no quote."""
        self._require_edit("record_daily")
        bench = self.fetch_quotes([self.benchmark]).get(self.benchmark)
        if not bench:
            logger.warning(f"benchmark {self.benchmark} unavailable; history point not recorded")
            return None
        val = valuation or self.valuation()
        sp = self.recorder.benchmark_pct(bench)
        point = self.recorder.record(self.today(), val.total_return_pct, sp)
        _emit(
            EquityRecorded(
                ts=_now_ms(),
                ticker=self.benchmark,
                day=point.date.isoformat(),
                port=point.port,
                sp=point.sp,
                equity=val.equity,
            )
        )
        return point

    def history(self) -> List[EquityHistoryPoint]:
        return self.recorder.series()

    # ---- persistence ----

    def _failed(self, op: str, e: Exception) -> PersistResult:
        inc_persistence_failure(op)
        _emit(PersistenceFailed(ts=_now_ms(), op=op, error=str(e)))
        logger.error(f"storage {op} failed: {e}")
        return PersistResult(ok=False, op=op, error=str(e))

    def load(self) -> PersistResult:
        """Replace in-memory state with the stored snapshot, if any."""
        if self.storage is None:
            return PersistResult(ok=True, op="load")
        try:
            snap = self.storage.load()
            if snap is None:
                return PersistResult(ok=True, op="load")
            # build first so a bad row leaves the current state untouched
            recorder = EquityHistoryRecorder(snap.history, snap.benchmark_base)
            self.log.restore(snap.transactions, snap.cash)
        except (PersistenceFailure, LedgerError) as e:
            return self._failed("load", e)
        self.recorder = recorder
        logger.info(f"loaded {len(self.log)} transactions, cash {self.log.cash:.2f}")
        return PersistResult(ok=True, op="load")

    def persist(self) -> PersistResult:
        """Write the current snapshot to storage; failures are reported, not raised.

        Writing requires edit rights; a viewer gets ``PermissionDenied``.
        """
        self._require_edit("persist")
        if self.storage is None:
            return PersistResult(ok=True, op="save")
        try:
            self.storage.save(self.snapshot())
        except PersistenceFailure as e:
            return self._failed("save", e)
        logger.info(f"persisted ledger at {datetime.now(timezone.utc).isoformat()}")
        return PersistResult(ok=True, op="save")
