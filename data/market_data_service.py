import asyncio
from datetime import datetime, timedelta

from core.price_signals import (
    ROI_PERIOD_DAYS,
    ADVICE_NOTE,
    average_price,
    compute_roi,
    parse_period_days,
    purchase_recommendation,
)
from core.symbols import normalize_crypto_symbol, normalize_equity_symbol
from data.coingecko_provider import CoinGeckoProvider
from data.nse_scraper import NseScraper
from data.scrape_session import ScrapeError
from data.screener_scraper import ScreenerScraper
from data.yahoo_provider import YahooQuoteProvider, QuoteUnavailable

SNAPSHOT_HISTORY_DAYS = 15
NEWS_LIMIT = 5

PRICE_FIELDS = ("current_price", "change", "market_cap")


def _window(days: int) -> tuple[datetime, datetime]:
    now = datetime.now()
    return now - timedelta(days=days), now + timedelta(days=1)


def _apply_under_price(records: list, under_price: float, noun: str) -> list:
    """
    Keep failed symbols so the caller sees them, keep successful ones under
    the threshold, and say so explicitly when nothing qualifies.
    """
    kept = []
    matched = 0
    for r in records:
        if "error" in r:
            kept.append(r)
        elif r.get("current_price") is not None and r["current_price"] < under_price:
            kept.append(r)
            matched += 1
    if not matched:
        kept.append({"message": f"No {noun} found with a price under {under_price}."})
    return kept


class MarketDataService:
    """
    Unified interface for all market data.
    The agent talks to THIS, never directly to yfinance or the scrapers.
    """

    def __init__(self, coingecko_key: str = None):
        self.quotes = YahooQuoteProvider()
        self.nse = NseScraper()
        self.screener = ScreenerScraper()
        self.coingecko = CoinGeckoProvider(coingecko_key)
        print(f"[INIT] MarketDataService ready (coingecko_key={'set' if coingecko_key else 'none'})")

    async def fetch_asset_snapshot(self, symbol: str, history_days: int = SNAPSHOT_HISTORY_DAYS) -> dict:
        """
        Quote + recent history + profile + news for one symbol.
        Only the quote is fatal; the rest degrade to empty values.
        """
        try:
            quote = await self.quotes.current_quote(symbol)
        except QuoteUnavailable as e:
            print(f"[YAHOO] quote failed symbol={symbol}: {e}")
            return {"symbol": symbol, "error": "Unable to fetch data"}

        start, end = _window(history_days)
        history, profile, news = await asyncio.gather(
            self.quotes.historical_series(symbol, start, end),
            self.quotes.detailed_profile(symbol),
            self.quotes.recent_news(symbol, NEWS_LIMIT),
            return_exceptions=True,
        )
        if isinstance(history, Exception):
            print(f"[YAHOO] history failed symbol={symbol}: {history}")
            history = []
        if isinstance(profile, Exception):
            print(f"[YAHOO] profile failed symbol={symbol}: {profile}")
            profile = None
        if isinstance(news, Exception):
            print(f"[YAHOO] news failed symbol={symbol}: {news}")
            news = []

        return {
            "symbol": symbol,
            "name": quote.get("name") or symbol,
            "current_price": quote.get("current_price"),
            "change": quote.get("change"),
            "change_percent": quote.get("change_percent"),
            "market_cap": quote.get("market_cap"),
            "history": history,
            "detailed_info": profile,
            "news": news,
        }

    async def _snapshots(self, symbols: list) -> list:
        return list(await asyncio.gather(*(self.fetch_asset_snapshot(s) for s in symbols)))

    async def get_stock_price(self, symbols: list, under_price: float = None) -> list:
        symbols = [normalize_equity_symbol(s) for s in symbols]
        records = await self._snapshots(symbols)
        print(f"[YAHOO] stock batch symbols={symbols} ok={sum(1 for r in records if 'error' not in r)}")
        if under_price is not None:
            return _apply_under_price(records, under_price, "stocks")
        return records

    async def _conversion_rate(self, currency: str) -> float:
        if currency != "INR":
            return 1.0
        try:
            return await self.quotes.usd_inr_rate()
        except QuoteUnavailable as e:
            print(f"[YAHOO] USDINR rate failed, using 1.0: {e}")
            return 1.0

    @staticmethod
    def _convert(record: dict, rate: float, currency: str) -> dict:
        if "error" in record:
            return record
        converted = dict(record)
        for field in PRICE_FIELDS:
            if converted.get(field) is not None:
                converted[field] = converted[field] * rate
        converted["history"] = [
            {**p, "price": p["price"] * rate if p.get("price") is not None else None}
            for p in record.get("history") or []
        ]
        converted["currency"] = currency
        converted["conversion_rate"] = rate
        return converted

    async def get_crypto_price(self, symbols: list, currency: str = "USD", under_price: float = None) -> list:
        symbols = [normalize_crypto_symbol(s) for s in symbols]
        currency = (currency or "USD").upper()
        rate, records = await asyncio.gather(
            self._conversion_rate(currency),
            self._snapshots(symbols),
        )
        records = [self._convert(r, rate, currency) for r in records]
        print(f"[YAHOO] crypto batch symbols={symbols} currency={currency} rate={rate}")
        if under_price is not None:
            return _apply_under_price(records, under_price, "cryptocurrencies")
        return records

    async def get_top_stocks(self, limit: int = 2, under_price: float = None):
        try:
            ranked = await self.nse.get_top_gainer_symbols(limit)
        except ScrapeError as e:
            print(f"[NSE] top gainers ranking failed: {e}")
            return {"error": "Unable to fetch trending Indian stocks from NSE."}
        return await self.get_stock_price(ranked, under_price)

    async def get_top_cryptos(self, limit: int = 2, currency: str = "USD", under_price: float = None):
        ranked = await self.coingecko.get_top_coin_symbols(limit)
        if not ranked:
            return {"error": "Unable to fetch top cryptos"}
        return await self.get_crypto_price(ranked, currency, under_price)

    async def calculate_stock_roi(self, symbol: str, period: str) -> dict:
        symbol = normalize_equity_symbol(symbol)
        days = ROI_PERIOD_DAYS[period]
        start, end = _window(days)
        try:
            history = await self.quotes.historical_series(symbol, start, end)
        except QuoteUnavailable as e:
            print(f"[YAHOO] ROI history failed symbol={symbol}: {e}")
            return {"symbol": symbol, "error": "Unable to calculate ROI"}

        roi = compute_roi(history)
        if roi is None:
            return {"symbol": symbol, "error": "No historical data available for the specified period"}
        return {"symbol": symbol, "period": period, **roi}

    async def _purchase_signal(self, symbol: str, days: int) -> dict:
        start, end = _window(days)
        try:
            history = await self.quotes.historical_series(symbol, start, end)
            avg = average_price(history)
            if avg is None:
                return {
                    "symbol": symbol,
                    "recommendation": "Insufficient historical data to provide a recommendation.",
                }
            quote = await self.quotes.current_quote(symbol)
        except QuoteUnavailable as e:
            print(f"[YAHOO] purchase signal failed symbol={symbol}: {e}")
            return {"symbol": symbol, "recommendation": f"Error processing data for this symbol: {e}"}

        current = quote["current_price"]
        return {
            "symbol": symbol,
            "current_price": current,
            "average_price": avg,
            "period_days": days,
            "recommendation": purchase_recommendation(current, avg),
            "note": ADVICE_NOTE,
        }

    async def should_purchase_stocks(self, symbols: list, period: str = "30days") -> list:
        days = parse_period_days(period)
        symbols = [normalize_equity_symbol(s) for s in symbols]
        return list(await asyncio.gather(*(self._purchase_signal(s, days) for s in symbols)))

    async def aclose(self):
        await self.nse.aclose()
        await self.screener.aclose()
