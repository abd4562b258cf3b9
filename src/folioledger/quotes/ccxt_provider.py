"""
Crypto quote provider backed by ccxt.

What it does:
- Initializes a public (credential-less unless provided) ccxt exchange client.
- Enables sandbox mode for testnet-like environments when supported.
- Maps ledger tickers to exchange pairs (`BTC` -> `BTC/USDT` by default) and
  returns the last traded price per ticker.

Where it is used:
- Built by `folioledger.main` when `quotes.provider` is `ccxt` in config.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

import ccxt

from .provider import normalize_tickers

logger = logging.getLogger(__name__)


class CcxtQuoteProvider:
    """Thin wrapper around ccxt `fetch_ticker` honoring the QuoteProvider contract."""

    def __init__(
        self,
        exchange: str = "binance",
        quote_currency: str = "USDT",
        environment: str = "",
        api_key: str = "",
        api_secret: str = "",
        client=None,
    ):
        self.exchange_id = exchange
        self.quote_currency = quote_currency.upper()
        self.environment = environment
        self.exchange = client or self._init_exchange(api_key, api_secret)

    def _init_exchange(self, api_key: str, api_secret: str):
        exchange_class = getattr(ccxt, self.exchange_id)
        params = {"enableRateLimit": True}
        if api_key and api_secret:
            params.update({"apiKey": api_key, "secret": api_secret})
        exchange = exchange_class(params)
        if "TESTNET" in self.environment.upper() and hasattr(exchange, "set_sandbox_mode"):
            exchange.set_sandbox_mode(True)
        return exchange

    def pair_for(self, ticker: str) -> str:
        return ticker if "/" in ticker else f"{ticker}/{self.quote_currency}"

    def fetch_one(self, ticker: str) -> Optional[float]:
        pair = self.pair_for(ticker)
        try:
            data = self.exchange.fetch_ticker(pair)
        except ccxt.BaseError as e:
            logger.warning(f"ccxt ticker fetch for {pair} failed: {e}")
            return None
        price = data.get("last") or data.get("close")
        if price is None:
            return None
        price = float(price)
        return price if price > 0 else None

    def get_quotes(self, tickers: Iterable[str]) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for ticker in normalize_tickers(tickers):
            price = self.fetch_one(ticker)
            if price is not None:
                out[ticker] = price
        return out
