import asyncio
import math
from datetime import datetime, timezone

import yfinance as yf

from config import UPSTREAM_TIMEOUT_SECONDS
from data.cache import cache, QUOTE_TTL, HISTORY_TTL, NEWS_TTL, FX_TTL

USD_INR_SYMBOL = "USDINR=X"

PROFILE_FIELDS = (
    "longName", "shortName", "sector", "industry", "website", "country",
    "longBusinessSummary", "fullTimeEmployees", "exchange", "currency",
    "previousClose", "open", "dayLow", "dayHigh", "fiftyTwoWeekLow", "fiftyTwoWeekHigh",
    "volume", "averageVolume", "trailingPE", "forwardPE", "priceToBook",
    "dividendYield", "beta", "bookValue", "trailingEps",
    "circulatingSupply", "maxSupply", "volume24Hr",
)


class QuoteUnavailable(Exception):
    """Raised when the quote source cannot answer for a symbol."""


def _clean_number(value):
    if value is None:
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


class YahooQuoteProvider:
    """
    Wraps yfinance for point-in-time quotes, daily history, company
    profile and news. yfinance is blocking, so every call runs in a worker
    thread bounded by UPSTREAM_TIMEOUT_SECONDS.
    """

    def __init__(self, timeout: float = UPSTREAM_TIMEOUT_SECONDS):
        self.timeout = timeout

    async def _run(self, label: str, fn, *args):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise QuoteUnavailable(f"{label} timed out after {self.timeout:.0f}s")
        except QuoteUnavailable:
            raise
        except Exception as e:
            raise QuoteUnavailable(f"{label} failed: {e}") from e

    def _info(self, symbol: str) -> dict:
        cache_key = f"yahoo:info:{symbol}"
        cached = cache.get(cache_key)
        if cached is not None:
            return cached
        info = yf.Ticker(symbol).info or {}
        cache.set(cache_key, info, QUOTE_TTL)
        return info

    def _quote_sync(self, symbol: str) -> dict:
        info = self._info(symbol)
        price = _clean_number(info.get("regularMarketPrice") or info.get("currentPrice"))
        if price is None:
            raise QuoteUnavailable(f"No real-time data available for {symbol}")
        return {
            "symbol": symbol,
            "name": info.get("longName") or info.get("shortName") or symbol,
            "short_name": info.get("shortName"),
            "current_price": price,
            "change": _clean_number(info.get("regularMarketChange")),
            "change_percent": _clean_number(info.get("regularMarketChangePercent")),
            "market_cap": _clean_number(info.get("marketCap")),
            "currency": info.get("currency"),
            "as_of": datetime.now(timezone.utc).isoformat(),
        }

    def _history_sync(self, symbol: str, start: datetime, end: datetime, interval: str) -> list:
        cache_key = f"yahoo:history:{symbol}:{start:%Y-%m-%d}:{end:%Y-%m-%d}:{interval}"
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        frame = yf.Ticker(symbol).history(start=start, end=end, interval=interval, auto_adjust=False)
        points = []
        if frame is not None and not frame.empty:
            for ts, row in frame.iterrows():
                price = _clean_number(row.get("Close"))
                if price is None:
                    continue
                volume = _clean_number(row.get("Volume"))
                points.append({
                    "date": ts.strftime("%Y-%m-%d"),
                    "price": price,
                    "volume": int(volume) if volume is not None else None,
                })
        points.sort(key=lambda p: p["date"])
        cache.set(cache_key, points, HISTORY_TTL)
        return points

    def _profile_sync(self, symbol: str) -> dict:
        info = self._info(symbol)
        if not info:
            raise QuoteUnavailable(f"No profile for {symbol}")
        return {k: info[k] for k in PROFILE_FIELDS if info.get(k) is not None}

    def _news_sync(self, symbol: str, limit: int) -> list:
        cache_key = f"yahoo:news:{symbol}:{limit}"
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        items = []
        for raw in (yf.Ticker(symbol).news or [])[:limit]:
            content = raw.get("content")
            if isinstance(content, dict):
                items.append({
                    "title": content.get("title"),
                    "publisher": (content.get("provider") or {}).get("displayName"),
                    "link": (content.get("canonicalUrl") or {}).get("url"),
                    "published": content.get("pubDate"),
                })
                continue
            published = None
            if raw.get("providerPublishTime"):
                published = datetime.fromtimestamp(raw["providerPublishTime"], tz=timezone.utc).isoformat()
            items.append({
                "title": raw.get("title"),
                "publisher": raw.get("publisher"),
                "link": raw.get("link"),
                "published": published,
            })
        cache.set(cache_key, items, NEWS_TTL)
        return items

    async def current_quote(self, symbol: str) -> dict:
        return await self._run(f"quote {symbol}", self._quote_sync, symbol)

    async def historical_series(self, symbol: str, start: datetime, end: datetime, interval: str = "1d") -> list:
        return await self._run(f"history {symbol}", self._history_sync, symbol, start, end, interval)

    async def detailed_profile(self, symbol: str) -> dict:
        return await self._run(f"profile {symbol}", self._profile_sync, symbol)

    async def recent_news(self, symbol: str, limit: int = 5) -> list:
        return await self._run(f"news {symbol}", self._news_sync, symbol, limit)

    async def usd_inr_rate(self) -> float:
        cached = cache.get("yahoo:fx:usdinr")
        if cached is not None:
            return cached
        quote = await self.current_quote(USD_INR_SYMBOL)
        rate = _clean_number(quote.get("current_price"))
        if rate is None or rate <= 0:
            raise QuoteUnavailable(f"Unusable USD/INR rate: {quote.get('current_price')!r}")
        cache.set("yahoo:fx:usdinr", rate, FX_TTL)
        return rate
