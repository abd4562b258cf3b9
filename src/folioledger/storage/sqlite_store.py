from __future__ import annotations

import os
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from ..ledger.errors import PersistenceFailure
from ..ledger.model import EquityHistoryPoint, LedgerSnapshot, Transaction


DDL = """
CREATE TABLE IF NOT EXISTS portfolio_history (
  seq INTEGER PRIMARY KEY AUTOINCREMENT,
  id TEXT NOT NULL UNIQUE,
  ticker TEXT NOT NULL,
  qty REAL NOT NULL,
  price REAL NOT NULL,
  leverage REAL NOT NULL DEFAULT 1,
  note TEXT,
  date TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS portfolio_cash (
  amount REAL NOT NULL,
  updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS equity_history (
  date TEXT PRIMARY KEY,
  port REAL NOT NULL,
  sp REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS portfolio_settings (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);
"""

BENCHMARK_BASE_KEY = "benchmark_base"


class SQLiteStorage:
    """Ledger snapshot store on a local SQLite file.

    ``save`` rewrites the snapshot inside a single SQL transaction, so a
    failure leaves the previously saved state intact.
    """

    def __init__(self, path: str = "data/portfolio.sqlite"):
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        self.path = path
        try:
            with sqlite3.connect(self.path) as con:
                con.executescript(DDL)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"cannot initialise {path}: {e}") from e

    def load(self) -> Optional[LedgerSnapshot]:
        try:
            with sqlite3.connect(self.path) as con:
                con.row_factory = sqlite3.Row
                cash_row = con.execute(
                    "SELECT amount FROM portfolio_cash ORDER BY updated_at DESC, rowid DESC LIMIT 1"
                ).fetchone()
                if cash_row is None:
                    return None
                tx_rows = [
                    dict(r)
                    for r in con.execute(
                        "SELECT id, ticker, qty, price, leverage, note, date FROM portfolio_history ORDER BY seq"
                    )
                ]
                hist_rows = [dict(r) for r in con.execute("SELECT date, port, sp FROM equity_history ORDER BY date")]
                base_row = con.execute(
                    "SELECT value FROM portfolio_settings WHERE key = ?", (BENCHMARK_BASE_KEY,)
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"cannot read {self.path}: {e}") from e
        try:
            return LedgerSnapshot(
                transactions=[Transaction.from_record(r) for r in tx_rows],
                cash=float(cash_row["amount"]),
                history=[EquityHistoryPoint.from_record(r) for r in hist_rows],
                benchmark_base=float(base_row["value"]) if base_row else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"corrupt row in {self.path}: {e}") from e

    def save(self, snapshot: LedgerSnapshot) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            with sqlite3.connect(self.path) as con:
                con.execute("DELETE FROM portfolio_history")
                con.executemany(
                    "INSERT INTO portfolio_history(id,ticker,qty,price,leverage,note,date) VALUES (?,?,?,?,?,?,?)",
                    [
                        (tx.id, tx.ticker, tx.qty, tx.price, tx.leverage, tx.note, tx.date.isoformat())
                        for tx in snapshot.transactions
                    ],
                )
                con.execute("INSERT INTO portfolio_cash(amount, updated_at) VALUES (?, ?)", (float(snapshot.cash), now))
                con.execute("DELETE FROM equity_history")
                con.executemany(
                    "INSERT INTO equity_history(date, port, sp) VALUES (?, ?, ?)",
                    [(p.date.isoformat(), p.port, p.sp) for p in snapshot.history],
                )
                if snapshot.benchmark_base:
                    con.execute(
                        "INSERT INTO portfolio_settings(key, value) VALUES (?, ?) "
                        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                        (BENCHMARK_BASE_KEY, repr(float(snapshot.benchmark_base))),
                    )
                else:
                    con.execute("DELETE FROM portfolio_settings WHERE key = ?", (BENCHMARK_BASE_KEY,))
        except sqlite3.Error as e:
            raise PersistenceFailure(f"cannot write {self.path}: {e}") from e
