"""Finnhub quote provider (https://finnhub.io/docs/api/quote).

One GET per ticker; the last price ``c`` is used, falling back to the
previous close ``pc``. Transport errors, 429 and 5xx responses are retried
with exponential backoff; a ticker that still has no positive price is
omitted from the result instead of failing the whole batch.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional
import logging
import time

import httpx

from .provider import normalize_tickers

BASE_URL = "https://finnhub.io/api/v1"

logger = logging.getLogger(__name__)


class FinnhubQuoteProvider:
    def __init__(
        self,
        api_key: str,
        *,
        client: Optional[httpx.Client] = None,
        timeout_ms: int = 5_000,
        max_retries: int = 2,
        backoff_initial_ms: int = 250,
        backoff_max_ms: int = 2_000,
        sleep=time.sleep,
    ):
        if not api_key:
            raise ValueError("Finnhub API key missing (FINNHUB_API_KEY)")
        self.api_key = api_key
        self.client = client or httpx.Client(base_url=BASE_URL, timeout=timeout_ms / 1000.0)
        self.max_retries = max(0, int(max_retries))
        self.backoff_initial_ms = backoff_initial_ms
        self.backoff_max_ms = backoff_max_ms
        self._sleep = sleep

    def _backoff(self, attempt: int) -> None:
        delay_ms = min(self.backoff_initial_ms * (2 ** attempt), self.backoff_max_ms)
        self._sleep(delay_ms / 1000.0)

    def fetch_one(self, symbol: str) -> Optional[float]:
        """Return the latest price for ``symbol`` or None when unavailable."""
        params = {"symbol": symbol, "token": self.api_key}
        for attempt in range(self.max_retries + 1):
            try:
                resp = self.client.get("/quote", params=params)
            except httpx.HTTPError as e:
                logger.warning(f"quote request for {symbol} failed (attempt {attempt + 1}): {e}")
                if attempt < self.max_retries:
                    self._backoff(attempt)
                continue
            if resp.status_code == 429 or resp.status_code >= 500:
                logger.warning(f"quote request for {symbol} returned {resp.status_code} (attempt {attempt + 1})")
                if attempt < self.max_retries:
                    self._backoff(attempt)
                continue
            if resp.status_code != 200:
                logger.warning(f"quote request for {symbol} rejected with {resp.status_code}")
                return None
            try:
                data = resp.json()
            except ValueError:
                logger.warning(f"quote response for {symbol} is not JSON")
                return None
            price = data.get("c") or data.get("pc") or 0
            try:
                price = float(price)
            except (TypeError, ValueError):
                return None
            return price if price > 0 else None
        return None

    def get_quotes(self, tickers: Iterable[str]) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for symbol in normalize_tickers(tickers):
            price = self.fetch_one(symbol)
            if price is None:
                logger.info(f"no quote for {symbol}; omitting")
                continue
            out[symbol] = price
        return out

    def close(self) -> None:
        self.client.close()
