import pytest
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
from unittest.mock import AsyncMock, MagicMock
from data.screener_scraper import (
    ScreenerScraper,
    build_screen_query,
    build_screen_url,
    parse_market_cap,
    parse_number,
    _passes,
)
from data.scrape_session import (
    CookieWarmupSession,
    FormLoginSession,
    ScrapeAuthError,
    ScrapeError,
)
from data.cache import cache


def _table(rows_html: str) -> str:
    return (
        '<html><body><div class="responsive-holder fill-card-width">'
        '<table class="data-table"><tbody>'
        f"{rows_html}"
        "</tbody></table></div></body></html>"
    )


def _screen_row(name, cmp, mcap, sales, profit, debt):
    cells = [
        "<td>1.</td>",
        f'<td><a href="/company/{name}/">{name}</a></td>',
        f"<td>{cmp}</td>",
        "<td>18.5</td>",
        f"<td>{mcap}</td>",
    ]
    cells += ["<td>0</td>"] * 6
    cells += [f"<td>{sales}</td>", f"<td>{profit}</td>", f"<td>{debt}</td>"]
    return "<tr>" + "".join(cells) + "</tr>"


SCREEN_HTML = _table(
    _screen_row("GOODCO", "250.5", "1,234 Cr.", "15.2", "22.0", "0.1")
    + _screen_row("PRICEY", "900", "2,000 Cr.", "15", "20", "0.1")
    + _screen_row("DEBTCO", "120", "800 Cr.", "15", "20", "0.9")
    + "<tr><td>header</td></tr>"
)

HIGHEST_HTML = _table(
    "<tr><td>1.</td><td>Alpha Ltd</td><td>100</td><td>45.6</td></tr>"
    "<tr><td>2.</td><td>Beta Ltd</td><td>200</td><td>30.1</td></tr>"
)


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


def _scraper(public_html=None, screen_html=None, screen_error=None):
    public = MagicMock()
    public.get_text = AsyncMock(return_value=public_html)
    public.aclose = AsyncMock()
    login = MagicMock()
    if screen_error is not None:
        login.get_text = AsyncMock(side_effect=screen_error)
    else:
        login.get_text = AsyncMock(return_value=screen_html)
    login.aclose = AsyncMock()
    return ScreenerScraper(public_session=public, login_session=login)


def test_parse_number():
    assert parse_number("1,234.5") == 1234.5
    assert parse_number("-3.2%") == -3.2
    assert parse_number("") is None
    assert parse_number(None) is None


def test_parse_market_cap():
    assert parse_market_cap("1.2 Lakh Cr.") == pytest.approx(120000.0)
    assert parse_market_cap("1,234 Cr.") == 1234.0
    assert parse_market_cap("") is None


def test_build_screen_query():
    query = build_screen_query(500, min_price=100, max_market_cap=5000)
    assert query.split(" AND\r\n") == [
        "Sales growth 3Years > 10",
        "Profit growth 3Years > 10",
        "Debt to equity < 0.5",
        "Current price > 100 AND Current price < 500",
        "Sales > 500",
        "Market Capitalization < 5000",
    ]
    assert "Current price < 99.5" in build_screen_query(99.5)
    assert "Market Capitalization" not in build_screen_query(99.5)


def test_build_screen_url_encodes_query():
    url = build_screen_url("Current price < 500")
    assert url.endswith("query=Current+price+%3C+500")


def test_passes_backstop():
    good = {"cmp": 250, "market_cap_value": 1000, "sales_var_3y": 15, "profit_var_3y": 20, "debt_to_equity": 0.1}
    assert _passes(good, 500)
    assert not _passes(good, 250)
    assert not _passes(good, 500, min_price=250)
    assert not _passes(good, 500, max_market_cap=999)
    assert not _passes({**good, "debt_to_equity": None}, 500)
    assert not _passes({**good, "sales_var_3y": 10}, 500)
    assert not _passes({**good, "cmp": None}, 500)


def test_parse_screen_table():
    stocks = ScreenerScraper.parse_screen_table(SCREEN_HTML)

    assert len(stocks) == 3
    assert stocks[0] == {
        "name": "GOODCO",
        "url": "https://www.screener.in/company/GOODCO/",
        "cmp": 250.5,
        "pe_ratio": 18.5,
        "market_cap": "1,234 Cr.",
        "market_cap_value": 1234.0,
        "sales_var_3y": 15.2,
        "profit_var_3y": 22.0,
        "debt_to_equity": 0.1,
    }


def test_parse_table_without_results():
    with pytest.raises(ScrapeError):
        ScreenerScraper.parse_screen_table("<html><body>No results</body></html>")


@pytest.mark.asyncio
async def test_highest_return_stocks():
    scraper = _scraper(public_html=HIGHEST_HTML)
    rows = await scraper.get_highest_return_stocks("3month")

    assert rows == [
        {"name": "Alpha Ltd", "period": "3month", "return_label": "3M Return %", "return_pct": 45.6},
        {"name": "Beta Ltd", "period": "3month", "return_label": "3M Return %", "return_pct": 30.1},
    ]
    await scraper.get_highest_return_stocks("3month")
    assert scraper.public_session.get_text.await_count == 1


@pytest.mark.asyncio
async def test_highest_return_missing_table():
    scraper = _scraper(public_html="<html></html>")
    assert await scraper.get_highest_return_stocks("1year") == {"error": "No table found"}


@pytest.mark.asyncio
async def test_best_stocks_under_price_filters_rows():
    scraper = _scraper(screen_html=SCREEN_HTML)
    result = await scraper.get_best_stocks_under_price(500)

    assert [s["name"] for s in result] == ["GOODCO"]


@pytest.mark.asyncio
async def test_best_stocks_login_failure():
    scraper = _scraper(screen_error=ScrapeAuthError("Login credentials are not configured"))
    result = await scraper.get_best_stocks_under_price(500)
    assert result == {"error": "Screener login failed: Login credentials are not configured"}


# --- session techniques over a mock transport ---


def _mock_client(session, handler):
    session._new_client = lambda: httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        headers=session.base_headers,
        follow_redirects=True,
    )


@pytest.mark.asyncio
async def test_cookie_warmup_hits_home_first():
    seen = []

    def handler(request):
        seen.append(request)
        if request.url.path == "/":
            return httpx.Response(200, text="home", headers={"set-cookie": "nsit=abc; Path=/"})
        return httpx.Response(200, json={"ok": True})

    session = CookieWarmupSession("https://www.nseindia.com/")
    _mock_client(session, handler)

    assert await session.get_json("https://www.nseindia.com/api/marketStatus") == {"ok": True}
    assert await session.get_json("https://www.nseindia.com/api/allIndices") == {"ok": True}

    assert [r.url.path for r in seen] == ["/", "/api/marketStatus", "/api/allIndices"]
    assert seen[1].headers["Referer"] == "https://www.nseindia.com/"
    assert "nsit=abc" in seen[1].headers.get("cookie", "")
    await session.aclose()


@pytest.mark.asyncio
async def test_cookie_warmup_failure_retries_next_call():
    calls = {"home": 0}

    def handler(request):
        if request.url.path == "/":
            calls["home"] += 1
            return httpx.Response(403 if calls["home"] == 1 else 200)
        return httpx.Response(200, json={"ok": True})

    session = CookieWarmupSession("https://www.nseindia.com/")
    _mock_client(session, handler)

    with pytest.raises(ScrapeError):
        await session.get_json("https://www.nseindia.com/api/marketStatus")
    assert await session.get_json("https://www.nseindia.com/api/marketStatus") == {"ok": True}
    assert calls["home"] == 2
    await session.aclose()


@pytest.mark.asyncio
async def test_rejected_cookies_trigger_new_warmup():
    calls = {"home": 0, "api": 0}

    def handler(request):
        if request.url.path == "/":
            calls["home"] += 1
            return httpx.Response(200)
        calls["api"] += 1
        return httpx.Response(401 if calls["api"] == 1 else 200, json={"ok": True})

    session = CookieWarmupSession("https://www.nseindia.com/")
    _mock_client(session, handler)

    with pytest.raises(ScrapeError) as exc_info:
        await session.get_json("https://www.nseindia.com/api/marketStatus")
    assert exc_info.value.status_code == 401
    assert await session.get_json("https://www.nseindia.com/api/marketStatus") == {"ok": True}
    assert calls["home"] == 2
    await session.aclose()


@pytest.mark.asyncio
async def test_server_error_keeps_warm_cookies():
    calls = {"home": 0, "api": 0}

    def handler(request):
        if request.url.path == "/":
            calls["home"] += 1
            return httpx.Response(200)
        calls["api"] += 1
        return httpx.Response(503 if calls["api"] == 1 else 200, json={"ok": True})

    session = CookieWarmupSession("https://www.nseindia.com/")
    _mock_client(session, handler)

    with pytest.raises(ScrapeError):
        await session.get_json("https://www.nseindia.com/api/marketStatus")
    assert await session.get_json("https://www.nseindia.com/api/marketStatus") == {"ok": True}
    assert calls["home"] == 1
    await session.aclose()


@pytest.mark.asyncio
async def test_non_200_is_a_scrape_error():
    def handler(request):
        if request.url.path == "/":
            return httpx.Response(200)
        return httpx.Response(503)

    session = CookieWarmupSession("https://www.nseindia.com/")
    _mock_client(session, handler)
    with pytest.raises(ScrapeError):
        await session.get_text("https://www.nseindia.com/api/x")
    await session.aclose()


LOGIN_FORM = '<form><input type="hidden" name="csrfmiddlewaretoken" value="tok123"></form>'


@pytest.mark.asyncio
async def test_form_login_posts_csrf_and_credentials():
    posted = []

    def handler(request):
        if request.url.path == "/login/" and request.method == "GET":
            return httpx.Response(200, text=LOGIN_FORM)
        if request.url.path == "/login/" and request.method == "POST":
            posted.append(request.content.decode())
            return httpx.Response(302, headers={"location": "/dash/"})
        return httpx.Response(200, text=f"page {request.url.path}")

    session = FormLoginSession("https://www.screener.in/login/", "user@example.com", "secret")
    _mock_client(session, handler)

    assert await session.get_text("https://www.screener.in/screen/raw/") == "page /screen/raw/"
    assert await session.get_text("https://www.screener.in/screen/raw/") == "page /screen/raw/"
    assert len(posted) == 1
    assert "csrfmiddlewaretoken=tok123" in posted[0]
    assert "username=user%40example.com" in posted[0]
    await session.aclose()


@pytest.mark.asyncio
async def test_form_login_rejected_credentials():
    def handler(request):
        if request.method == "POST":
            return httpx.Response(302, headers={"location": "/login/"})
        return httpx.Response(200, text=LOGIN_FORM)

    session = FormLoginSession("https://www.screener.in/login/", "user", "wrong")
    _mock_client(session, handler)

    with pytest.raises(ScrapeAuthError):
        await session.get_text("https://www.screener.in/screen/raw/")
    await session.aclose()


@pytest.mark.asyncio
async def test_form_login_without_credentials():
    session = FormLoginSession("https://www.screener.in/login/", None, None)
    _mock_client(session, lambda request: httpx.Response(200))

    with pytest.raises(ScrapeAuthError, match="not configured"):
        await session.get_text("https://www.screener.in/screen/raw/")


@pytest.mark.asyncio
async def test_form_login_expired_session_is_detected():
    state = {"expired": False}

    def handler(request):
        if request.url.path == "/login/":
            if request.method == "POST":
                return httpx.Response(302, headers={"location": "/dash/"})
            return httpx.Response(200, text=LOGIN_FORM)
        if state["expired"]:
            return httpx.Response(302, headers={"location": "/login/"})
        return httpx.Response(200, text="data")

    session = FormLoginSession("https://www.screener.in/login/", "user", "secret")
    _mock_client(session, handler)

    assert await session.get_text("https://www.screener.in/screen/raw/") == "data"
    state["expired"] = True
    with pytest.raises(ScrapeAuthError, match="Session expired"):
        await session.get_text("https://www.screener.in/screen/raw/")
    assert session._logged_in is False
    await session.aclose()
