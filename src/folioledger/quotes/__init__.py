"""Quote providers: static map, Finnhub (stocks/ETFs) and ccxt (crypto)."""

from .provider import QuoteProvider, StaticQuoteProvider, normalize_tickers  # re-export
