import pytest
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from unittest.mock import AsyncMock, MagicMock
from data.market_data_service import MarketDataService, _apply_under_price
from data.scrape_session import ScrapeError
from data.yahoo_provider import QuoteUnavailable
from data.cache import cache


PRICES = {
    "TCS.NS": 3500.0,
    "INFY.NS": 1500.0,
    "RELIANCE.NS": 2900.0,
    "BTC-USD": 60000.0,
    "ETH-USD": 3000.0,
}


def _history(price, days=15):
    return [{"date": f"2025-01-{i + 1:02d}", "price": price, "volume": 100} for i in range(days)]


async def _quote(symbol):
    if symbol not in PRICES:
        raise QuoteUnavailable(f"no price for {symbol}")
    return {
        "symbol": symbol,
        "name": f"{symbol} Ltd",
        "current_price": PRICES[symbol],
        "change": 10.0,
        "change_percent": 0.5,
        "market_cap": 1000000.0,
    }


async def _history_for(symbol, start, end, interval="1d"):
    return _history(PRICES.get(symbol, 1.0))


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def mock_service():
    svc = MarketDataService.__new__(MarketDataService)
    svc.quotes = MagicMock()
    svc.quotes.current_quote = AsyncMock(side_effect=_quote)
    svc.quotes.historical_series = AsyncMock(side_effect=_history_for)
    svc.quotes.detailed_profile = AsyncMock(return_value={"sector": "Technology"})
    svc.quotes.recent_news = AsyncMock(return_value=[{"title": "Headline"}])
    svc.quotes.usd_inr_rate = AsyncMock(return_value=83.0)
    svc.nse = MagicMock()
    svc.nse.get_top_gainer_symbols = AsyncMock(return_value=["TCS", "INFY"])
    svc.coingecko = MagicMock()
    svc.coingecko.get_top_coin_symbols = AsyncMock(return_value=["BTC", "ETH"])
    svc.screener = MagicMock()
    return svc


@pytest.mark.asyncio
async def test_stock_price_preserves_input_order(mock_service):
    result = await mock_service.get_stock_price(["INFY", "TCS", "reliance"])

    assert [r["symbol"] for r in result] == ["INFY.NS", "TCS.NS", "RELIANCE.NS"]
    assert result[0]["current_price"] == 1500.0
    assert len(result[0]["history"]) == 15
    assert result[0]["detailed_info"] == {"sector": "Technology"}
    assert result[0]["news"] == [{"title": "Headline"}]


@pytest.mark.asyncio
async def test_one_bad_symbol_gives_exactly_one_error(mock_service):
    result = await mock_service.get_stock_price(["TCS", "NOPE", "INFY"])

    assert len(result) == 3
    errors = [r for r in result if "error" in r]
    assert errors == [{"symbol": "NOPE.NS", "error": "Unable to fetch data"}]
    assert result[1]["symbol"] == "NOPE.NS"


@pytest.mark.asyncio
async def test_secondary_failures_degrade_to_empty(mock_service):
    mock_service.quotes.historical_series = AsyncMock(side_effect=QuoteUnavailable("history down"))
    mock_service.quotes.detailed_profile = AsyncMock(side_effect=QuoteUnavailable("profile down"))
    mock_service.quotes.recent_news = AsyncMock(side_effect=QuoteUnavailable("news down"))

    record = (await mock_service.get_stock_price(["TCS"]))[0]
    assert "error" not in record
    assert record["history"] == []
    assert record["detailed_info"] is None
    assert record["news"] == []


@pytest.mark.asyncio
async def test_stock_under_price_filter(mock_service):
    result = await mock_service.get_stock_price(["TCS", "INFY", "NOPE"], under_price=2000)

    assert [r.get("symbol") for r in result] == ["INFY.NS", "NOPE.NS"]
    assert "error" in result[1]


@pytest.mark.asyncio
async def test_stock_under_price_with_no_match_adds_message(mock_service):
    result = await mock_service.get_stock_price(["TCS"], under_price=100)
    assert result == [{"message": "No stocks found with a price under 100."}]


def test_apply_under_price_keeps_errors_in_order():
    records = [
        {"symbol": "A", "error": "Unable to fetch data"},
        {"symbol": "B", "current_price": 5.0},
        {"symbol": "C", "current_price": 50.0},
    ]
    result = _apply_under_price(records, 10, "stocks")
    assert [r["symbol"] for r in result] == ["A", "B"]


@pytest.mark.asyncio
async def test_crypto_in_inr_converts_prices(mock_service):
    result = await mock_service.get_crypto_price(["btc"], currency="inr")

    record = result[0]
    assert record["symbol"] == "BTC-USD"
    assert record["currency"] == "INR"
    assert record["conversion_rate"] == 83.0
    assert record["current_price"] == 60000.0 * 83.0
    assert record["change"] == 10.0 * 83.0
    assert record["history"][0]["price"] == 60000.0 * 83.0


@pytest.mark.asyncio
async def test_crypto_usd_rate_is_one(mock_service):
    result = await mock_service.get_crypto_price(["ETH"])

    assert result[0]["currency"] == "USD"
    assert result[0]["conversion_rate"] == 1.0
    assert result[0]["current_price"] == 3000.0
    mock_service.quotes.usd_inr_rate.assert_not_called()


@pytest.mark.asyncio
async def test_crypto_inr_rate_failure_falls_back_to_one(mock_service):
    mock_service.quotes.usd_inr_rate = AsyncMock(side_effect=QuoteUnavailable("fx down"))
    result = await mock_service.get_crypto_price(["BTC"], currency="INR")

    assert result[0]["conversion_rate"] == 1.0
    assert result[0]["current_price"] == 60000.0


@pytest.mark.asyncio
async def test_top_stocks_uses_nse_ranking(mock_service):
    result = await mock_service.get_top_stocks(2)

    mock_service.nse.get_top_gainer_symbols.assert_awaited_once_with(2)
    assert [r["symbol"] for r in result] == ["TCS.NS", "INFY.NS"]


@pytest.mark.asyncio
async def test_top_stocks_ranking_failure(mock_service):
    mock_service.nse.get_top_gainer_symbols = AsyncMock(side_effect=ScrapeError("blocked"))
    result = await mock_service.get_top_stocks(2)
    assert result == {"error": "Unable to fetch trending Indian stocks from NSE."}


@pytest.mark.asyncio
async def test_top_cryptos(mock_service):
    result = await mock_service.get_top_cryptos(2, currency="INR", under_price=1000000)

    assert [r["symbol"] for r in result] == ["ETH-USD"]
    assert result[0]["current_price"] == 3000.0 * 83.0


@pytest.mark.asyncio
async def test_top_cryptos_ranking_failure(mock_service):
    mock_service.coingecko.get_top_coin_symbols = AsyncMock(return_value=[])
    assert await mock_service.get_top_cryptos(2) == {"error": "Unable to fetch top cryptos"}


@pytest.mark.asyncio
async def test_calculate_stock_roi(mock_service):
    mock_service.quotes.historical_series = AsyncMock(
        return_value=[{"date": "2025-01-01", "price": 200.0}, {"date": "2025-03-01", "price": 250.0}]
    )
    result = await mock_service.calculate_stock_roi("tcs", "3month")

    assert result == {
        "symbol": "TCS.NS",
        "period": "3month",
        "start_price": 200.0,
        "end_price": 250.0,
        "roi": 25.0,
    }


@pytest.mark.asyncio
async def test_calculate_stock_roi_without_history(mock_service):
    mock_service.quotes.historical_series = AsyncMock(return_value=[])
    result = await mock_service.calculate_stock_roi("TCS", "1year")
    assert result["error"] == "No historical data available for the specified period"


@pytest.mark.asyncio
async def test_should_purchase_below_average(mock_service):
    mock_service.quotes.historical_series = AsyncMock(return_value=_history(4000.0))
    result = await mock_service.should_purchase_stocks(["TCS"], "15days")

    assert result[0]["symbol"] == "TCS.NS"
    assert result[0]["average_price"] == 4000.0
    assert result[0]["period_days"] == 15
    assert "buying opportunity" in result[0]["recommendation"]
    assert "not personalized financial advice" in result[0]["note"]


@pytest.mark.asyncio
async def test_should_purchase_without_history(mock_service):
    mock_service.quotes.historical_series = AsyncMock(return_value=[])
    result = await mock_service.should_purchase_stocks(["TCS"])
    assert result == [{
        "symbol": "TCS.NS",
        "recommendation": "Insufficient historical data to provide a recommendation.",
    }]


@pytest.mark.asyncio
async def test_should_purchase_reports_symbol_failure(mock_service):
    result = await mock_service.should_purchase_stocks(["NOPE", "INFY"])

    assert result[0]["recommendation"].startswith("Error processing data for this symbol:")
    assert "no price for NOPE.NS" in result[0]["recommendation"]
    assert result[1]["symbol"] == "INFY.NS"
    assert "close to the recent average" in result[1]["recommendation"]
