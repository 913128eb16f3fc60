import asyncio
from datetime import date

from core.options_engine import analyze_option_chain
from core.symbols import is_index_name, to_nse_symbol
from data.cache import cache, NSE_LIVE_TTL, NSE_SLOW_TTL
from data.scrape_session import CookieWarmupSession, ScrapeError, BROWSER_HEADERS

NSE_HOME = "https://www.nseindia.com/"
NSE_API = "https://www.nseindia.com/api"

OPTION_CHAIN_SYMBOLS = ("NIFTY", "BANKNIFTY")


def _api_headers() -> dict:
    headers = dict(BROWSER_HEADERS)
    headers["Accept"] = "application/json, text/plain, */*"
    return headers


class NseScraper:
    """
    NSE India JSON endpoints. The API refuses requests without the cookies
    the home page sets, so everything goes through a CookieWarmupSession.
    Public methods never raise: upstream failures and unexpected payload
    shapes come back as {"error": ...}.
    """

    def __init__(self, session: CookieWarmupSession = None):
        self.session = session or CookieWarmupSession(NSE_HOME, base_headers=_api_headers())

    async def _get(self, endpoint: str, params: dict = None, ttl: int = NSE_LIVE_TTL):
        cache_key = f"nse:{endpoint}:{sorted((params or {}).items())}"
        cached = cache.get(cache_key)
        if cached is not None:
            return cached
        data = await self.session.get_json(f"{NSE_API}/{endpoint}", params=params)
        if data in (None, {}, []):
            raise ScrapeError(f"Empty response from NSE {endpoint}")
        cache.set(cache_key, data, ttl)
        return data

    async def get_market_status(self) -> dict:
        try:
            data = await self._get("marketStatus")
        except ScrapeError as e:
            print(f"[NSE] market status failed: {e}")
            return {"error": "Unable to fetch realtime market status"}
        if not isinstance(data, dict) or "marketState" not in data:
            return {"error": "Unexpected market status response"}
        return data

    async def get_all_indices(self) -> dict:
        try:
            data = await self._get("allIndices", ttl=NSE_SLOW_TTL)
        except ScrapeError as e:
            print(f"[NSE] all indices failed: {e}")
            return {"error": "Unable to fetch all indices"}
        if not isinstance(data, dict) or not isinstance(data.get("data"), list):
            return {"error": "Unexpected all indices response"}
        return data

    async def get_live_index(self, symbols: list):
        all_indices = await self.get_all_indices()
        if "error" in all_indices:
            return {"error": all_indices["error"]}

        wanted = {s.strip().lower() for s in symbols if isinstance(s, str) and s.strip()}
        rows = [r for r in all_indices["data"] if isinstance(r, dict)]
        matches = [
            r for r in rows
            if str(r.get("index", "")).lower() in wanted
            or str(r.get("indexSymbol", "")).lower() in wanted
        ]
        if not matches:
            available = ", ".join(str(r.get("index")) for r in rows if r.get("index"))
            return {"error": f"No matching indices found. Available indices: {available}"}
        return matches

    async def _trade_info_one(self, symbol: str) -> dict:
        nse_symbol = to_nse_symbol(symbol)
        try:
            info = await self._get("quote-equity", {"symbol": nse_symbol, "section": "trade_info"})
        except ScrapeError as e:
            print(f"[NSE] trade info failed symbol={nse_symbol}: {e}")
            return {"symbol": nse_symbol, "error": "Unable to fetch trade info"}
        return {"symbol": nse_symbol, "info": info}

    async def get_trade_info(self, symbols: list) -> list:
        return list(await asyncio.gather(*(self._trade_info_one(s) for s in symbols)))

    @staticmethod
    def _contract_fields(meta: dict, book: dict) -> dict:
        trade = book.get("tradeInfo") or {}
        return {
            "lastPrice": meta.get("lastPrice"),
            "change": meta.get("change"),
            "pChange": meta.get("pChange"),
            "contractsTraded": meta.get("numberOfContractsTraded"),
            "totalTurnover": meta.get("totalTurnover"),
            "openInterest": trade.get("openInterest"),
            "changeInOpenInterest": trade.get("changeinOpenInterest"),
            "pChangeInOpenInterest": trade.get("pchangeinOpenInterest"),
            "orderBook": {"bid": book.get("bid"), "ask": book.get("ask")},
        }

    @classmethod
    def split_fno_contracts(cls, raw: dict, month: str = None, max_options: int = 3) -> tuple[list, list]:
        """Split an NSE quote-derivative payload into futures and (month-filtered) options."""
        futures = []
        options = []
        for stock in raw.get("stocks") or []:
            meta = stock.get("metadata")
            book = stock.get("marketDeptOrderBook")
            if not meta or not book:
                continue
            other = book.get("otherInfo") or {}
            instrument = meta.get("instrumentType")

            if instrument == "Stock Futures":
                row = cls._contract_fields(meta, book)
                row["volatility"] = {
                    "daily": other.get("dailyvolatility"),
                    "annualised": other.get("annualisedVolatility"),
                    "implied": other.get("impliedVolatility"),
                }
                futures.append(row)
            elif instrument == "Stock Options":
                if month and meta.get("expiryDate"):
                    parts = meta["expiryDate"].split("-")
                    if len(parts) < 2 or parts[1].lower() != month.strip().lower()[:3]:
                        continue
                row = {
                    "optionType": meta.get("optionType"),
                    "strikePrice": meta.get("strikePrice"),
                    "expiryDate": meta.get("expiryDate"),
                    "identifier": meta.get("identifier"),
                }
                row.update(cls._contract_fields(meta, book))
                row["impliedVolatility"] = other.get("impliedVolatility")
                options.append(row)
        return futures, options[:max_options]

    async def _fno_one(self, symbol: str, month: str = None) -> dict:
        nse_symbol = to_nse_symbol(symbol)
        try:
            raw = await self._get("quote-derivative", {"symbol": nse_symbol})
        except ScrapeError as e:
            print(f"[NSE] F&O quote failed symbol={nse_symbol}: {e}")
            return {"symbol": nse_symbol, "error": "Unable to fetch F&O data"}
        if not isinstance(raw, dict):
            return {"symbol": nse_symbol, "error": "Unexpected F&O response"}

        futures, options = self.split_fno_contracts(raw, month)
        return {
            "symbol": nse_symbol,
            "underlyingValue": raw.get("underlyingValue"),
            "futuresData": futures,
            "optionsData": options,
            "fut_timestamp": raw.get("fut_timestamp"),
            "opt_timestamp": raw.get("opt_timestamp"),
            "info": raw.get("info"),
        }

    async def get_stock_quote_fno(self, symbols: list, month: str = None) -> list:
        return list(await asyncio.gather(*(self._fno_one(s, month) for s in symbols)))

    async def get_chart_data(self, symbol: str, include_additional: bool = False) -> dict:
        """
        Intraday chart. Equities use the '<SYMBOL>EQN' series id, indices are
        queried by name with indices=true. include_additional attaches the
        equity quote (or the index row) next to the chart points.
        """
        is_index = is_index_name(symbol)
        name = symbol.strip().upper() if is_index else to_nse_symbol(symbol)
        params = {"index": name, "indices": "true"} if is_index else {"index": f"{name}EQN"}

        try:
            data = await self._get("chart-databyindex", params)
        except ScrapeError as e:
            print(f"[NSE] chart data failed symbol={name}: {e}")
            return {"error": "Unable to fetch chart data"}
        if not isinstance(data, dict) or not isinstance(data.get("grapthData"), list):
            return {"error": "Unexpected chart data response"}

        result = dict(data)
        result["symbol"] = name
        if include_additional:
            if is_index:
                rows = await self.get_live_index([name])
                result["additionalData"] = rows[0] if isinstance(rows, list) else rows
            else:
                try:
                    result["additionalData"] = await self._get("quote-equity", {"symbol": name})
                except ScrapeError as e:
                    result["additionalData"] = {"error": f"Unable to fetch quote: {e}"}
        return result

    async def _variations(self, index: str):
        data = await self._get("live-analysis-variations", {"index": index})
        if not isinstance(data, dict):
            raise ScrapeError(f"Unexpected {index} response")
        return data

    async def get_gainers_and_losers(self, query: str):
        text = (query or "").lower()
        want_gainers = "gainers" in text
        want_losers = "losers" in text
        if not want_gainers and not want_losers:
            return {"error": "Query not recognized. Please specify 'gainers', 'losers', or 'gainers and losers'."}

        try:
            if want_gainers and want_losers:
                gainers, losers = await asyncio.gather(
                    self._variations("gainers"),
                    self._variations("loosers"),
                )
                return {"gainers": gainers, "losers": losers}
            if want_gainers:
                return await self._variations("gainers")
            return await self._variations("loosers")
        except ScrapeError as e:
            print(f"[NSE] gainers/losers failed: {e}")
            return {"error": "Unable to fetch gainers/losers data"}

    async def get_volume_gainers(self):
        try:
            return await self._get("live-analysis-volume-gainers")
        except ScrapeError as e:
            print(f"[NSE] volume gainers failed: {e}")
            return {"error": "Unable to fetch volume gainers data"}

    async def get_top_gainer_symbols(self, limit: int) -> list:
        """Ranking for top-N stocks. Raises ScrapeError; callers treat it as a full failure."""
        data = await self._variations("gainers")
        nifty = data.get("NIFTY")
        rows = nifty.get("data") if isinstance(nifty, dict) else None
        if not isinstance(rows, list) or not rows:
            raise ScrapeError("No trending data available from NSE API")
        symbols = [r.get("symbol") for r in rows if isinstance(r, dict) and r.get("symbol")]
        if not symbols:
            raise ScrapeError("NSE trending rows carry no symbols")
        return symbols[:limit]

    async def get_option_chain(self, symbol: str) -> dict:
        return await self._get("option-chain-indices", {"symbol": symbol})

    async def analyze_option_chain(
        self,
        symbol: str,
        strike_price: float,
        option_type: str,
        expiry_date: str = None,
        today: date = None,
    ) -> dict:
        symbol = symbol.strip().upper()
        if symbol not in OPTION_CHAIN_SYMBOLS:
            return {"error": f"Option chain is only available for {', '.join(OPTION_CHAIN_SYMBOLS)}"}
        try:
            chain = await self.get_option_chain(symbol)
        except ScrapeError as e:
            print(f"[NSE] option chain failed symbol={symbol}: {e}")
            return {"error": "Unable to fetch option chain data"}
        return analyze_option_chain(chain, symbol, strike_price, option_type.upper(), expiry_date, today)

    async def aclose(self):
        await self.session.aclose()
