import pytest
import os
import sys
from datetime import datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd
from unittest.mock import AsyncMock, MagicMock, patch
from data.yahoo_provider import YahooQuoteProvider, QuoteUnavailable
from data.coingecko_provider import CoinGeckoProvider
from data.cache import cache


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


def _ticker(info=None, frame=None, news=None):
    t = MagicMock()
    t.info = info or {}
    t.history.return_value = frame if frame is not None else pd.DataFrame()
    t.news = news or []
    return t


@pytest.mark.asyncio
async def test_current_quote():
    info = {
        "longName": "Tata Consultancy Services Limited",
        "regularMarketPrice": 3500.5,
        "regularMarketChange": -12.0,
        "regularMarketChangePercent": -0.34,
        "marketCap": 1.2e13,
        "currency": "INR",
    }
    with patch("data.yahoo_provider.yf.Ticker", return_value=_ticker(info)):
        quote = await YahooQuoteProvider().current_quote("TCS.NS")

    assert quote["symbol"] == "TCS.NS"
    assert quote["name"] == "Tata Consultancy Services Limited"
    assert quote["current_price"] == 3500.5
    assert quote["change"] == -12.0
    assert quote["currency"] == "INR"


@pytest.mark.asyncio
async def test_quote_without_price_is_unavailable():
    with patch("data.yahoo_provider.yf.Ticker", return_value=_ticker({"longName": "Delisted"})):
        with pytest.raises(QuoteUnavailable):
            await YahooQuoteProvider().current_quote("GONE.NS")


@pytest.mark.asyncio
async def test_upstream_exception_is_wrapped():
    with patch("data.yahoo_provider.yf.Ticker", side_effect=RuntimeError("network")):
        with pytest.raises(QuoteUnavailable, match="network"):
            await YahooQuoteProvider().current_quote("TCS.NS")


@pytest.mark.asyncio
async def test_historical_series_sorted_points():
    index = pd.to_datetime(["2025-01-03", "2025-01-02", "2025-01-06"])
    frame = pd.DataFrame({"Close": [102.0, 101.0, float("nan")], "Volume": [1000, 900, 0]}, index=index)
    with patch("data.yahoo_provider.yf.Ticker", return_value=_ticker(frame=frame)):
        points = await YahooQuoteProvider().historical_series("TCS.NS", datetime(2025, 1, 1), datetime(2025, 1, 7))

    assert points == [
        {"date": "2025-01-02", "price": 101.0, "volume": 900},
        {"date": "2025-01-03", "price": 102.0, "volume": 1000},
    ]


@pytest.mark.asyncio
async def test_news_handles_both_payload_shapes():
    news = [
        {"content": {
            "title": "New shape",
            "provider": {"displayName": "Reuters"},
            "canonicalUrl": {"url": "https://example.com/a"},
            "pubDate": "2025-01-02T10:00:00Z",
        }},
        {"title": "Old shape", "publisher": "Mint", "link": "https://example.com/b", "providerPublishTime": 0},
    ]
    with patch("data.yahoo_provider.yf.Ticker", return_value=_ticker(news=news)):
        items = await YahooQuoteProvider().recent_news("TCS.NS", 5)

    assert items[0] == {
        "title": "New shape", "publisher": "Reuters",
        "link": "https://example.com/a", "published": "2025-01-02T10:00:00Z",
    }
    assert items[1]["publisher"] == "Mint"
    assert items[1]["link"] == "https://example.com/b"


@pytest.mark.asyncio
async def test_usd_inr_rate_is_cached():
    ticker = _ticker({"regularMarketPrice": 83.2})
    with patch("data.yahoo_provider.yf.Ticker", return_value=ticker) as mock_ticker:
        provider = YahooQuoteProvider()
        assert await provider.usd_inr_rate() == 83.2
        assert await provider.usd_inr_rate() == 83.2
    mock_ticker.assert_called_once_with("USDINR=X")


@pytest.mark.asyncio
@pytest.mark.parametrize("info", [
    {"regularMarketPrice": 0.0, "currentPrice": 0.0},
    {"regularMarketPrice": -83.2},
])
async def test_usd_inr_rate_rejects_non_positive_rate(info):
    with patch("data.yahoo_provider.yf.Ticker", return_value=_ticker(info)):
        provider = YahooQuoteProvider()
        with pytest.raises(QuoteUnavailable):
            await provider.usd_inr_rate()
    assert cache.get("yahoo:fx:usdinr") is None


class MockResponse:
    def __init__(self, json_data, status_code=200):
        self._json = json_data
        self.status_code = status_code

    def json(self):
        return self._json


def _patched_client(response):
    client = MagicMock()
    client.get = AsyncMock(return_value=response)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


@pytest.mark.asyncio
async def test_coingecko_top_symbols():
    client = _patched_client(MockResponse([{"symbol": "btc"}, {"symbol": "eth"}, {"symbol": "usdt"}]))
    with patch("data.coingecko_provider.httpx.AsyncClient", return_value=client):
        symbols = await CoinGeckoProvider(api_key="demo").get_top_coin_symbols(2)

    assert symbols == ["BTC", "ETH"]
    params = client.get.call_args.kwargs["params"]
    assert params["per_page"] == 2
    assert params["x_cg_demo_api_key"] == "demo"


@pytest.mark.asyncio
async def test_coingecko_rate_limit_returns_empty():
    client = _patched_client(MockResponse({}, status_code=429))
    with patch("data.coingecko_provider.httpx.AsyncClient", return_value=client):
        assert await CoinGeckoProvider().get_top_coin_symbols(2) == []
