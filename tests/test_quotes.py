import ccxt
import httpx
import pytest

from folioledger.quotes.ccxt_provider import CcxtQuoteProvider
from folioledger.quotes.finnhub import BASE_URL, FinnhubQuoteProvider
from folioledger.quotes.provider import StaticQuoteProvider, normalize_tickers


def test_normalize_tickers_dedupes_in_order():
    assert normalize_tickers([" aapl", "MSFT", "AAPL", "", None]) == ["AAPL", "MSFT"]


def test_static_provider_omits_unknown_and_non_positive():
    p = StaticQuoteProvider({"aapl": 150.0, "DEAD": 0.0})
    assert p.get_quotes(["AAPL", "DEAD", "ZZZZ"]) == {"AAPL": 150.0}
    p.set("zzzz", 3.5)
    assert p.get_quotes(["zzzz"]) == {"ZZZZ": 3.5}


def _finnhub(handler, **kwargs):
    client = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    sleeps = []
    provider = FinnhubQuoteProvider("test-key", client=client, sleep=sleeps.append, **kwargs)
    return provider, sleeps


def test_finnhub_returns_partial_map():
    prices = {"AAPL": {"c": 161.5, "pc": 160.0}, "OLD": {"c": 0, "pc": 12.0}, "NOPE": {"c": 0, "pc": 0}}

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/quote"
        assert request.url.params["token"] == "test-key"
        return httpx.Response(200, json=prices[request.url.params["symbol"]])

    provider, _ = _finnhub(handler)
    assert provider.get_quotes(["aapl", "OLD", "NOPE"]) == {"AAPL": 161.5, "OLD": 12.0}


def test_finnhub_retries_server_errors_with_backoff():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"c": 99.0})

    provider, sleeps = _finnhub(handler, max_retries=2, backoff_initial_ms=100, backoff_max_ms=150)
    assert provider.fetch_one("AAPL") == 99.0
    assert calls["n"] == 3
    assert sleeps == [0.1, 0.15]


def test_finnhub_gives_up_after_retries_and_on_client_errors():
    def always_down(request):
        raise httpx.ConnectError("refused", request=request)

    provider, sleeps = _finnhub(always_down, max_retries=1)
    assert provider.get_quotes(["AAPL"]) == {}
    assert len(sleeps) == 1

    provider, sleeps = _finnhub(lambda request: httpx.Response(403), max_retries=3)
    assert provider.fetch_one("AAPL") is None
    assert sleeps == []


def test_finnhub_requires_key():
    with pytest.raises(ValueError):
        FinnhubQuoteProvider("")


class FakeExchange:
    def __init__(self, tickers):
        self.tickers = tickers
        self.requested = []

    def fetch_ticker(self, pair):
        self.requested.append(pair)
        if pair not in self.tickers:
            raise ccxt.BadSymbol(f"{pair} not listed")
        return self.tickers[pair]


def test_ccxt_provider_maps_pairs_and_skips_failures():
    ex = FakeExchange({"BTC/USDT": {"last": 65000.0}, "ETH/USDT": {"last": None, "close": 3100.0}})
    p = CcxtQuoteProvider(client=ex)
    assert p.get_quotes(["btc", "ETH", "DOGE"]) == {"BTC": 65000.0, "ETH": 3100.0}
    assert ex.requested == ["BTC/USDT", "ETH/USDT", "DOGE/USDT"]
    assert p.pair_for("SOL/EUR") == "SOL/EUR"
