"""
Main entrypoint for folioledger.

What it does:
- Loads runtime settings from `config/config.yaml` plus environment variables
  (`FINNHUB_API_KEY`, `SUPABASE_*`, `PORTFOLIO_ENABLE_EDIT`).
- Builds the quote provider and storage backend named in config and loads
  the persisted ledger into a `PortfolioEngine`.
- Runs one command and persists the ledger after every mutation:
    show | add TICKER QTY [--note] [--leverage] [--price] | reset-day [--day]
    | reset-all | record | export [--dir] | arena [--ticks] [--start] [--seed]

Where it is used:
- Invoked by `python -m folioledger.main <command>` or the `folioledger`
  console script.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
from datetime import date
from typing import Any, Dict, List, Optional

from folioledger.arena.simulator import TickSimulator
from folioledger.config.loader import Settings, load_settings
from folioledger.engine import PortfolioEngine
from folioledger.ledger.errors import LedgerError
from folioledger.metrics.core import start_metrics_server
from folioledger.quotes.provider import QuoteProvider, StaticQuoteProvider
from folioledger.storage.base import MemoryStorage, StorageClient
from folioledger.storage.parquet import write_parquet
from folioledger.storage.sqlite_store import SQLiteStorage
from folioledger.valuation.calculator import Valuation


def build_quote_provider(settings: Settings) -> QuoteProvider:
    q = settings.quotes
    if q.provider == "static":
        return StaticQuoteProvider(q.prices)
    if q.provider == "ccxt":
        from folioledger.quotes.ccxt_provider import CcxtQuoteProvider

        return CcxtQuoteProvider(exchange=q.exchange, quote_currency=q.quote_currency)
    from folioledger.quotes.finnhub import FinnhubQuoteProvider

    return FinnhubQuoteProvider(
        q.api_key,
        timeout_ms=q.fetch.timeout_ms,
        max_retries=q.fetch.max_retries,
        backoff_initial_ms=q.fetch.backoff_initial_ms,
        backoff_max_ms=q.fetch.backoff_max_ms,
    )


def build_storage(settings: Settings) -> StorageClient:
    s = settings.storage
    if s.backend == "memory":
        return MemoryStorage()
    if s.backend == "supabase":
        from folioledger.storage.supabase import SupabaseStorage

        return SupabaseStorage(s.supabase_url, s.supabase_key)
    return SQLiteStorage(s.sqlite_path)


def build_engine(settings: Settings) -> PortfolioEngine:
    return PortfolioEngine(
        quotes=build_quote_provider(settings),
        storage=build_storage(settings),
        permission=settings.permission,
        initial_cash=settings.initial_cash,
        benchmark=settings.benchmark,
    )


def valuation_summary(val: Valuation) -> Dict[str, Any]:
    def _name(row):
        return row.ticker if row is not None else None

    return {
        "cash": round(val.cash, 2),
        "equity": round(val.equity, 2),
        "total_return_pct": round(val.total_return_pct, 4),
        "total_unrealized_pl": round(val.total_unrealized_pl, 2),
        "missing_quotes": val.missing_quotes,
        "positions": [
            {
                "ticker": r.ticker,
                "qty": r.net_qty,
                "avg": round(r.avg_price, 4),
                "current": r.current_price,
                "leverage": r.leverage,
                "pl": round(r.unrealized_pl, 2),
                "pl_pct": round(r.unrealized_pl_pct, 4),
                "quote": r.quote_status,
            }
            for r in val.rows
        ],
        "insights": {
            "top_gainer": _name(val.insights.top_gainer),
            "top_loser": _name(val.insights.top_loser),
            "largest_position": _name(val.insights.largest_position),
            "most_impactful": _name(val.insights.most_impactful),
        },
    }


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="folioledger", description="Simulated portfolio ledger")
    p.add_argument("--config", default=os.getenv("FOLIOLEDGER_CONFIG", "config/config.yaml"))
    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("show", help="print positions, equity and insights as JSON")
    add = sub.add_parser("add", help="book a trade at the current quote (negative qty = short)")
    add.add_argument("ticker")
    add.add_argument("qty", type=float)
    add.add_argument("--note", default="")
    add.add_argument("--leverage", type=float, default=1.0, choices=[1.0, 2.0, 3.0, 4.0])
    add.add_argument("--price", type=float, default=None)
    rd = sub.add_parser("reset-day", help="remove a day's trades and refund their cash")
    rd.add_argument("--day", type=date.fromisoformat, default=None)
    sub.add_parser("reset-all", help="clear the ledger and history")
    sub.add_parser("record", help="upsert today's portfolio vs benchmark point")
    ex = sub.add_parser("export", help="write parquet files of transactions and history")
    ex.add_argument("--dir", default=None)
    ar = sub.add_parser("arena", help="run the trading-arena tick simulator")
    ar.add_argument("--ticks", type=int, default=20)
    ar.add_argument("--start", type=float, default=100.0)
    ar.add_argument("--seed", type=int, default=None)
    return p


def _persist(engine: PortfolioEngine) -> bool:
    res = engine.persist()
    if not res.ok:
        logging.error(f"ledger kept in memory only; persistence failed: {res.error}")
    return res.ok


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = _parser().parse_args(argv)

    if args.command == "arena":
        sim = TickSimulator(start_price=args.start, seed=args.seed)
        for t in sim.run(args.ticks):
            logging.info(f"tick {t.i}: {t.delta:+.2f} -> {t.price:.2f}")
        return 0

    settings = load_settings(args.config)
    prom_port = os.getenv("PROMETHEUS_PORT")
    if prom_port:
        start_metrics_server(int(prom_port))

    engine = build_engine(settings)
    loaded = engine.load()
    if not loaded.ok:
        logging.error(f"could not load ledger: {loaded.error}")
        return 1

    try:
        if args.command == "add":
            tx = engine.add(args.ticker, args.qty, note=args.note, leverage=args.leverage, price=args.price)
            logging.info(f"added {tx.ticker} {tx.qty:g} @ {tx.price:.2f}; cash {engine.cash:.2f}")
            return 0 if _persist(engine) else 2
        if args.command == "reset-day":
            removed = engine.reset_day(args.day)
            logging.info(f"reset day: removed {len(removed)} transactions; cash {engine.cash:.2f}")
            return 0 if _persist(engine) else 2
        if args.command == "reset-all":
            engine.reset_all()
            logging.info(f"ledger reset; cash {engine.cash:.2f}")
            return 0 if _persist(engine) else 2
        if args.command == "record":
            point = engine.record_daily()
            if point is None:
                return 1
            logging.info(f"recorded {point.date.isoformat()}: portfolio {point.port:.2f}% vs benchmark {point.sp:.2f}%")
            return 0 if _persist(engine) else 2
    except LedgerError as e:
        logging.error(f"{args.command} rejected: {e}")
        return 1

    if args.command == "export":
        paths = write_parquet(engine.snapshot(), args.dir or settings.storage.export_dir)
        logging.info(f"export written: {paths}")
        return 0

    print(json.dumps(valuation_summary(engine.valuation()), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
