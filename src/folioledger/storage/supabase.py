"""
Supabase (PostgREST) ledger store.

What it does:
- Reads/writes the hosted tables `portfolio_history` (transactions, kept in
  ledger order by an integer `seq` column),
  `portfolio_cash` (latest row by `updated_at` is the balance),
  `equity_history` (one row per date) and `portfolio_settings` (benchmark base).
- Authenticates with the service-role key passed in at construction; there is
  no module-level client.

Writes go through several REST calls and are not atomic across tables. Any
HTTP or transport error surfaces as `PersistenceFailure`; the caller's
in-memory ledger is never touched by this module.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

import httpx

from ..ledger.errors import PersistenceFailure
from ..ledger.model import EquityHistoryPoint, LedgerSnapshot, Transaction

logger = logging.getLogger(__name__)

BENCHMARK_BASE_KEY = "benchmark_base"


class SupabaseStorage:
    def __init__(self, url: str, key: str, *, client: Optional[httpx.Client] = None, timeout_ms: int = 10_000):
        if not url or not key:
            raise ValueError("Supabase storage needs SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
        headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        self.client = client or httpx.Client(
            base_url=url.rstrip("/") + "/rest/v1", headers=headers, timeout=timeout_ms / 1000.0
        )

    def _request(self, method: str, table: str, **kwargs) -> Any:
        try:
            resp = self.client.request(method, f"/{table}", **kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise PersistenceFailure(f"supabase {method} {table} failed: {e}") from e
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise PersistenceFailure(f"supabase {method} {table} returned invalid JSON") from e

    def load(self) -> Optional[LedgerSnapshot]:
        cash_rows = self._request(
            "GET", "portfolio_cash", params={"select": "amount", "order": "updated_at.desc", "limit": "1"}
        ) or []
        if not cash_rows:
            return None
        tx_rows: List[Dict[str, Any]] = self._request(
            "GET", "portfolio_history", params={"select": "id,ticker,qty,price,leverage,note,date", "order": "seq.asc"}
        ) or []
        hist_rows: List[Dict[str, Any]] = self._request(
            "GET", "equity_history", params={"select": "date,port,sp", "order": "date.asc"}
        ) or []
        base_rows = self._request(
            "GET", "portfolio_settings", params={"select": "value", "key": f"eq.{BENCHMARK_BASE_KEY}"}
        ) or []
        try:
            return LedgerSnapshot(
                transactions=[Transaction.from_record(r) for r in tx_rows],
                cash=float(cash_rows[0]["amount"]),
                history=[EquityHistoryPoint.from_record(r) for r in hist_rows],
                benchmark_base=float(base_rows[0]["value"]) if base_rows else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"supabase rows could not be parsed: {e}") from e

    def save(self, snapshot: LedgerSnapshot) -> None:
        now = datetime.now(timezone.utc).isoformat()
        keep_ids = [tx.id for tx in snapshot.transactions]
        if keep_ids:
            self._request(
                "POST",
                "portfolio_history",
                json=[dict(tx.to_record(), seq=i) for i, tx in enumerate(snapshot.transactions)],
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            )
            self._request("DELETE", "portfolio_history", params={"id": f"not.in.({','.join(keep_ids)})"})
        else:
            self._request("DELETE", "portfolio_history", params={"id": "not.is.null"})
        self._request(
            "POST",
            "portfolio_cash",
            json={"amount": float(snapshot.cash), "updated_at": now},
            headers={"Prefer": "return=minimal"},
        )
        if snapshot.history:
            self._request(
                "POST",
                "equity_history",
                json=[p.to_record() for p in snapshot.history],
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            )
            keep_dates = ",".join(p.date.isoformat() for p in snapshot.history)
            self._request("DELETE", "equity_history", params={"date": f"not.in.({keep_dates})"})
        else:
            self._request("DELETE", "equity_history", params={"date": "not.is.null"})
        if snapshot.benchmark_base:
            self._request(
                "POST",
                "portfolio_settings",
                json={"key": BENCHMARK_BASE_KEY, "value": repr(float(snapshot.benchmark_base))},
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            )
        else:
            self._request("DELETE", "portfolio_settings", params={"key": f"eq.{BENCHMARK_BASE_KEY}"})
        logger.info(f"saved {len(snapshot.transactions)} transactions and {len(snapshot.history)} history points")

    def close(self) -> None:
        self.client.close()
