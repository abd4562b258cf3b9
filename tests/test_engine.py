import sqlite3
from datetime import date

import pytest

from folioledger.engine import PortfolioEngine
from folioledger.ledger.errors import InsufficientFunds, PermissionDenied, QuoteUnavailable, ValidationError
from folioledger.ledger.model import EditPermission, LedgerSnapshot, Transaction
from folioledger.quotes.provider import StaticQuoteProvider
from folioledger.storage.base import MemoryStorage
from folioledger.storage.sqlite_store import SQLiteStorage

D1 = date(2025, 6, 2)
D2 = date(2025, 6, 3)


class Clock:
    def __init__(self, day: date):
        self.day = day

    def __call__(self) -> date:
        return self.day


def make_engine(prices=None, storage=None, permission=None, day=D1):
    quotes = StaticQuoteProvider(prices if prices is not None else {"AAPL": 150.0, "SPY": 400.0})
    clock = Clock(day)
    eng = PortfolioEngine(
        quotes=quotes,
        storage=storage,
        permission=permission or EditPermission.owner(),
        today=clock,
    )
    return eng, quotes, clock


@pytest.fixture
def events(monkeypatch):
    captured = []
    monkeypatch.setattr("folioledger.engine.publish_event", lambda env: captured.append(env.event))
    return captured


def test_add_and_value_end_to_end(events):
    eng, quotes, _ = make_engine()
    tx = eng.add("aapl", 10, note="first")
    assert tx.ticker == "AAPL"
    assert tx.price == 150.0
    assert tx.date == D1
    assert eng.cash == pytest.approx(8_500.0)

    quotes.set("AAPL", 160.0)
    val = eng.valuation()
    assert val.row("AAPL").unrealized_pl == pytest.approx(100.0)
    assert val.equity == pytest.approx(10_100.0)
    assert val.total_return_pct == pytest.approx(1.0)
    assert [e.event_type for e in events] == ["transaction_appended"]


def test_explicit_price_skips_the_quote_provider():
    eng, _, _ = make_engine(prices={})
    tx = eng.add("NVDA", 2, price=500.0)
    assert tx.price == 500.0
    assert eng.cash == pytest.approx(9_000.0)


def test_viewer_cannot_mutate():
    store = MemoryStorage()
    eng, _, _ = make_engine(storage=store, permission=EditPermission.viewer())
    with pytest.raises(PermissionDenied):
        eng.add("AAPL", 1)
    with pytest.raises(PermissionDenied):
        eng.reset_day()
    with pytest.raises(PermissionDenied):
        eng.reset_all()
    with pytest.raises(PermissionDenied):
        eng.record_daily()
    with pytest.raises(PermissionDenied):
        eng.persist()
    assert len(eng.log) == 0
    assert eng.history() == []
    assert eng.recorder.benchmark_base is None
    assert store.saves == 0
    # reads stay available
    assert eng.load().ok
    assert eng.valuation().equity == pytest.approx(10_000.0)


def test_missing_quote_rejects_add(events):
    eng, _, _ = make_engine()
    with pytest.raises(QuoteUnavailable) as exc:
        eng.add("ZZZZ", 1)
    assert exc.value.tickers == ["ZZZZ"]
    assert eng.cash == pytest.approx(10_000.0)
    assert events[-1].event_type == "transaction_rejected"
    assert events[-1].reason == "quote_unavailable"


def test_rejections_leave_state_untouched():
    eng, _, _ = make_engine()
    with pytest.raises(InsufficientFunds):
        eng.add("AAPL", 100)
    with pytest.raises(ValidationError):
        eng.add("", 1)
    with pytest.raises(ValidationError):
        eng.add("AAPL", 0)
    assert len(eng.log) == 0
    assert eng.cash == pytest.approx(10_000.0)


def test_provider_failure_degrades_to_missing_quotes():
    class Broken:
        def get_quotes(self, tickers):
            raise RuntimeError("down")

    eng = PortfolioEngine(quotes=Broken(), permission=EditPermission.owner(), today=Clock(D1))
    eng.add("AAPL", 10, price=150.0)
    val = eng.valuation()
    assert val.missing_quotes == ["AAPL"]
    assert not val.complete
    assert val.equity == pytest.approx(10_000.0)


def test_reset_day_refunds_only_that_day(events):
    eng, _, clock = make_engine()
    eng.add("AAPL", 10)
    clock.day = D2
    eng.add("AAPL", 5)
    eng.add("AAPL", -3)
    assert eng.cash == pytest.approx(10_000 - 1_500 - 750 + 450)

    removed = eng.reset_day()
    assert len(removed) == 2
    assert eng.cash == pytest.approx(8_500.0)
    assert [t.date for t in eng.log.transactions] == [D1]
    assert events[-1].event_type == "day_reset"
    assert events[-1].removed == 2

    assert eng.reset_day(date(2020, 1, 1)) == []
    assert eng.cash == pytest.approx(8_500.0)


def test_reset_all_clears_ledger_and_history():
    eng, _, _ = make_engine()
    eng.add("AAPL", 10)
    eng.record_daily()
    eng.reset_all()
    assert len(eng.log) == 0
    assert eng.cash == pytest.approx(10_000.0)
    assert eng.history() == []
    assert eng.recorder.benchmark_base is None


def test_record_daily_upserts_against_fixed_base():
    eng, quotes, clock = make_engine()
    eng.add("AAPL", 10)
    p1 = eng.record_daily()
    assert p1.date == D1
    assert p1.sp == 0.0
    assert p1.port == pytest.approx(0.0)

    quotes.set("SPY", 440.0)
    quotes.set("AAPL", 160.0)
    p2 = eng.record_daily()
    assert len(eng.history()) == 1
    assert p2.sp == pytest.approx(10.0)
    assert p2.port == pytest.approx(1.0)

    clock.day = D2
    eng.record_daily()
    assert [p.date for p in eng.history()] == [D1, D2]
    assert eng.recorder.benchmark_base == 400.0


def test_record_daily_skipped_without_benchmark_quote():
    eng, _, _ = make_engine(prices={"AAPL": 150.0})
    assert eng.record_daily() is None
    assert eng.history() == []


def test_realized_pl_of_round_trip():
    eng, quotes, _ = make_engine()
    eng.add("AAPL", 10)
    quotes.set("AAPL", 170.0)
    eng.add("AAPL", -10)
    r = eng.realized()
    assert r.amount == pytest.approx(200.0)
    assert r.tickers == ["AAPL"]
    assert not r.approximate
    assert eng.positions() == {}


def test_persist_failure_keeps_memory_state(events):
    store = MemoryStorage()
    eng, _, _ = make_engine(storage=store)
    eng.add("AAPL", 10)
    store.fail_next = True
    res = eng.persist()
    assert not res.ok
    assert res.op == "save"
    assert "unavailable" in res.error
    assert eng.cash == pytest.approx(8_500.0)
    assert len(eng.log) == 1
    assert events[-1].event_type == "persistence_failed"

    assert eng.persist().ok
    assert store.saves == 1


def test_load_round_trips_through_storage():
    store = MemoryStorage()
    eng, _, _ = make_engine(storage=store)
    eng.add("AAPL", 10)
    eng.record_daily()
    assert eng.persist().ok

    fresh, _, _ = make_engine(storage=store)
    assert fresh.load().ok
    assert fresh.cash == pytest.approx(8_500.0)
    assert [t.ticker for t in fresh.log.transactions] == ["AAPL"]
    assert len(fresh.history()) == 1
    assert fresh.recorder.benchmark_base == 400.0


def test_load_failure_and_empty_store():
    store = MemoryStorage()
    eng, _, _ = make_engine(storage=store)
    assert eng.load().ok
    assert eng.cash == pytest.approx(10_000.0)

    eng.add("AAPL", 1)
    store.fail_next = True
    res = eng.load()
    assert not res.ok
    assert res.op == "load"
    assert len(eng.log) == 1


def test_load_rejects_corrupt_snapshot_without_touching_state():
    bad = Transaction(id="x", ticker="AAPL", qty=1, price=-5.0, date=D1)
    store = MemoryStorage(LedgerSnapshot(transactions=[bad], cash=1.0))
    eng, _, _ = make_engine(storage=store)
    res = eng.load()
    assert not res.ok
    assert eng.cash == pytest.approx(10_000.0)
    assert len(eng.log) == 0


def test_engine_without_storage_persists_trivially():
    eng, _, _ = make_engine()
    assert eng.persist().ok
    assert eng.load().ok


@pytest.mark.parametrize(
    "kwargs",
    [
        {"qty": "ten"},
        {"qty": None},
        {"qty": 1, "leverage": "2x"},
        {"qty": 1, "price": "cheap"},
    ],
)
def test_non_numeric_input_is_a_counted_validation_error(events, kwargs):
    eng, _, _ = make_engine()
    with pytest.raises(ValidationError):
        eng.add("AAPL", **kwargs)
    assert len(eng.log) == 0
    assert events[-1].event_type == "transaction_rejected"
    assert events[-1].reason == "validation"


def test_corrupt_sqlite_row_reports_failed_load(tmp_path):
    path = str(tmp_path / "ledger.sqlite")
    store = SQLiteStorage(path)
    owner, _, _ = make_engine(storage=store)
    owner.add("AAPL", 10)
    assert owner.persist().ok
    with sqlite3.connect(path) as con:
        con.execute("UPDATE portfolio_history SET date = 'garbage'")

    eng, _, _ = make_engine(storage=store)
    res = eng.load()
    assert not res.ok
    assert res.op == "load"
    assert len(eng.log) == 0
    assert eng.cash == pytest.approx(10_000.0)
