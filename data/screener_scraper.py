import re
from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from config import SCREENER_USERNAME, SCREENER_PASSWORD
from data.cache import cache, SCREENER_TTL
from data.scrape_session import (
    CookieWarmupSession,
    FormLoginSession,
    ScrapeAuthError,
    ScrapeError,
)

SCREENER_HOME = "https://www.screener.in/"
SCREENER_LOGIN = "https://www.screener.in/login/"
SCREENER_RAW_QUERY = "https://www.screener.in/screen/raw/"

HIGHEST_RETURN_SCREENS = {
    "1month": "https://www.screener.in/screens/300202/stocks-with-good-1-month-returns/?sort=return+over+1month&order=desc",
    "3month": "https://www.screener.in/screens/355769/highest-return-in-3-months/?sort=return+over+3months&order=desc",
    "6month": "https://www.screener.in/screens/264786/highest-returns-in-six-months/",
    "1year": "https://www.screener.in/screens/355766/highest-return-in-1-year/",
}

RETURN_LABELS = {
    "1month": "1M Return %",
    "3month": "3M Return %",
    "6month": "6M Return %",
    "1year": "1Y Return %",
}

RESULTS_TABLE = "div.responsive-holder.fill-card-width table.data-table"

MIN_SALES_GROWTH_3Y = 10
MIN_PROFIT_GROWTH_3Y = 10
MAX_DEBT_TO_EQUITY = 0.5
MIN_SALES = 500
MIN_SCREEN_COLUMNS = 14

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def parse_number(text):
    if text is None:
        return None
    match = _NUMBER.search(str(text).replace(",", ""))
    return float(match.group()) if match else None


def parse_market_cap(text):
    """'1.2 Lakh Cr.' -> 120000.0 (crore), '1,234 Cr.' -> 1234.0."""
    if not text:
        return None
    value = parse_number(text)
    if value is None:
        return None
    if "Lakh" in text:
        return value * 100000
    return value


def build_screen_query(max_price: float, min_price: float = None, max_market_cap: float = None) -> str:
    parts = [
        f"Sales growth 3Years > {MIN_SALES_GROWTH_3Y}",
        f"Profit growth 3Years > {MIN_PROFIT_GROWTH_3Y}",
        f"Debt to equity < {MAX_DEBT_TO_EQUITY}",
    ]
    if min_price is not None:
        parts.append(f"Current price > {_fmt(min_price)} AND Current price < {_fmt(max_price)}")
    else:
        parts.append(f"Current price < {_fmt(max_price)}")
    parts.append(f"Sales > {MIN_SALES}")
    if max_market_cap is not None:
        parts.append(f"Market Capitalization < {_fmt(max_market_cap)}")
    return " AND\r\n".join(parts)


def build_screen_url(query: str) -> str:
    return f"{SCREENER_RAW_QUERY}?sort=&order=&source_id=&query={quote_plus(query)}"


def _fmt(value: float):
    return int(value) if float(value).is_integer() else value


def _passes(stock: dict, max_price: float, min_price: float = None, max_market_cap: float = None) -> bool:
    cmp = stock.get("cmp")
    if cmp is None or cmp >= max_price:
        return False
    if min_price is not None and cmp <= min_price:
        return False
    if max_market_cap is not None:
        mcap = stock.get("market_cap_value")
        if mcap is None or mcap > max_market_cap:
            return False
    sales = stock.get("sales_var_3y")
    profit = stock.get("profit_var_3y")
    debt = stock.get("debt_to_equity")
    if sales is None or sales <= MIN_SALES_GROWTH_3Y:
        return False
    if profit is None or profit <= MIN_PROFIT_GROWTH_3Y:
        return False
    if debt is None or debt >= MAX_DEBT_TO_EQUITY:
        return False
    return True


class ScreenerScraper:
    """
    Screener.in pages. Leaderboards are public; the raw query screen
    needs a logged-in session.
    """

    def __init__(self, public_session: CookieWarmupSession = None, login_session: FormLoginSession = None):
        self.public_session = public_session or CookieWarmupSession(SCREENER_HOME)
        self.login_session = login_session or FormLoginSession(
            SCREENER_LOGIN, SCREENER_USERNAME, SCREENER_PASSWORD
        )

    @staticmethod
    def parse_highest_return_table(html: str, period: str) -> list:
        soup = BeautifulSoup(html, "html.parser")
        table = soup.select_one(RESULTS_TABLE)
        if table is None:
            raise ScrapeError("No table found")

        rows = []
        for tr in table.select("tbody tr"):
            cols = tr.find_all("td")
            if len(cols) < 2:
                continue
            rows.append({
                "name": cols[1].get_text(strip=True),
                "period": period,
                "return_label": RETURN_LABELS[period],
                "return_pct": parse_number(cols[-1].get_text(strip=True)),
            })
        return rows

    @staticmethod
    def parse_screen_table(html: str) -> list:
        soup = BeautifulSoup(html, "html.parser")
        table = soup.select_one(RESULTS_TABLE)
        if table is None:
            raise ScrapeError("No results table on screen page")

        stocks = []
        for tr in table.select("tbody tr"):
            cols = tr.find_all("td")
            if len(cols) < MIN_SCREEN_COLUMNS:
                continue
            link = cols[1].find("a")
            mcap_text = cols[4].get_text(strip=True)
            stocks.append({
                "name": (link or cols[1]).get_text(strip=True),
                "url": f"https://www.screener.in{link.get('href')}" if link and link.get("href") else None,
                "cmp": parse_number(cols[2].get_text(strip=True)),
                "pe_ratio": parse_number(cols[3].get_text(strip=True)),
                "market_cap": mcap_text,
                "market_cap_value": parse_market_cap(mcap_text),
                "sales_var_3y": parse_number(cols[11].get_text(strip=True)),
                "profit_var_3y": parse_number(cols[12].get_text(strip=True)),
                "debt_to_equity": parse_number(cols[13].get_text(strip=True)),
            })
        return stocks

    async def get_highest_return_stocks(self, period: str):
        url = HIGHEST_RETURN_SCREENS.get(period)
        if url is None:
            return {"error": f"Unsupported period '{period}'. Use one of: {', '.join(HIGHEST_RETURN_SCREENS)}"}

        cache_key = f"screener:highest:{period}"
        cached = cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            html = await self.public_session.get_text(url)
            rows = self.parse_highest_return_table(html, period)
        except ScrapeError as e:
            print(f"[SCREENER] highest return failed period={period}: {e}")
            return {"error": str(e)}
        print(f"[SCREENER] highest return period={period} rows={len(rows)}")
        cache.set(cache_key, rows, SCREENER_TTL)
        return rows

    async def get_best_stocks_under_price(
        self,
        max_price: float,
        min_price: float = None,
        max_market_cap: float = None,
    ):
        url = build_screen_url(build_screen_query(max_price, min_price, max_market_cap))
        try:
            html = await self.login_session.get_text(url)
            stocks = self.parse_screen_table(html)
        except ScrapeAuthError as e:
            print(f"[SCREENER] login failed: {e}")
            return {"error": f"Screener login failed: {e}"}
        except ScrapeError as e:
            print(f"[SCREENER] screen failed: {e}")
            return {"error": str(e)}

        matched = [s for s in stocks if _passes(s, max_price, min_price, max_market_cap)]
        print(f"[SCREENER] screen rows={len(stocks)} matched={len(matched)}")
        return matched

    async def aclose(self):
        await self.public_session.aclose()
        await self.login_session.aclose()
