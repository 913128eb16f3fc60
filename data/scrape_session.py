"""
Session techniques for sites that do not offer a public API.

  - CookieWarmupSession: hit the home page first so the site hands out its
    bot-check cookies, then call the JSON/HTML endpoint with browser headers.
  - FormLoginSession: log in through the site's HTML form (CSRF token +
    credentials) and keep the authenticated cookie jar for data requests.

Each session owns one long-lived httpx.AsyncClient, created lazily under an
asyncio.Lock. A failed setup leaves the session empty so the next call retries.
"""
import asyncio
import time

import httpx
from bs4 import BeautifulSoup

from config import COOKIE_TTL_SECONDS, UPSTREAM_TIMEOUT_SECONDS


class ScrapeError(Exception):
    """Upstream page or endpoint could not be fetched or parsed."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ScrapeAuthError(ScrapeError):
    """Credentialed session could not be established."""


BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class ScrapeSession:
    """Shared client handling for the concrete session techniques."""

    def __init__(self, base_headers: dict = None, timeout: float = UPSTREAM_TIMEOUT_SECONDS):
        self.base_headers = dict(base_headers or BROWSER_HEADERS)
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self.base_headers,
            timeout=self.timeout,
            follow_redirects=True,
        )

    async def _prepare(self, client: httpx.AsyncClient):
        """Hook for warm-up or login. Runs with the lock held."""

    def _is_ready(self) -> bool:
        return self._client is not None

    async def _ensure_ready(self) -> httpx.AsyncClient:
        async with self._lock:
            if self._is_ready():
                return self._client
            client = self._client or self._new_client()
            try:
                await self._prepare(client)
            except httpx.HTTPError as e:
                await self._discard(client)
                raise ScrapeError(f"Session setup failed: {e}") from e
            except ScrapeError:
                await self._discard(client)
                raise
            self._client = client
            return client

    async def _discard(self, client: httpx.AsyncClient):
        self._client = None
        await client.aclose()

    async def _send(self, url: str, params: dict = None, headers: dict = None) -> httpx.Response:
        client = await self._ensure_ready()
        try:
            resp = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise ScrapeError(f"Request to {url} failed: {e}") from e
        if resp.status_code != 200:
            raise ScrapeError(f"HTTP {resp.status_code} from {url}", status_code=resp.status_code)
        return resp

    async def get_text(self, url: str, params: dict = None, headers: dict = None) -> str:
        resp = await self._send(url, params=params, headers=headers)
        return resp.text

    async def get_json(self, url: str, params: dict = None, headers: dict = None):
        resp = await self._send(url, params=params, headers=headers)
        try:
            return resp.json()
        except ValueError as e:
            raise ScrapeError(f"Non-JSON response from {url}") from e

    async def aclose(self):
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class CookieWarmupSession(ScrapeSession):
    """
    Unauthenticated cookie harvest from `home_url`, refreshed every
    cookie_ttl seconds or as soon as the site answers 401/403.
    """

    REJECTED_STATUSES = (401, 403)

    def __init__(
        self,
        home_url: str,
        base_headers: dict = None,
        cookie_ttl: int = COOKIE_TTL_SECONDS,
        timeout: float = UPSTREAM_TIMEOUT_SECONDS,
    ):
        super().__init__(base_headers, timeout)
        self.home_url = home_url
        self.cookie_ttl = cookie_ttl
        self._warmed_at = 0.0

    def _is_ready(self) -> bool:
        return self._client is not None and time.time() - self._warmed_at < self.cookie_ttl

    async def _prepare(self, client: httpx.AsyncClient):
        resp = await client.get(self.home_url)
        if resp.status_code >= 400:
            raise ScrapeError(f"Cookie warm-up returned HTTP {resp.status_code}")
        self._warmed_at = time.time()
        print(f"[SCRAPE] warm-up ok home={self.home_url} cookies={len(client.cookies)}")

    async def _send(self, url: str, params: dict = None, headers: dict = None) -> httpx.Response:
        merged = {"Referer": self.home_url}
        merged.update(headers or {})
        try:
            return await super()._send(url, params=params, headers=merged)
        except ScrapeError as e:
            if e.status_code in self.REJECTED_STATUSES:
                # cookies were refused; force a fresh warm-up on the next call
                self._warmed_at = 0.0
                print(f"[SCRAPE] cookies rejected home={self.home_url} status={e.status_code}")
            raise


class FormLoginSession(ScrapeSession):
    """
    Credentialed session through an HTML login form with a CSRF token
    (Django-style `csrfmiddlewaretoken`). Login is verified by checking that
    the final URL after the POST is no longer the login page.
    """

    CSRF_FIELD = "csrfmiddlewaretoken"

    def __init__(
        self,
        login_url: str,
        username: str,
        password: str,
        base_headers: dict = None,
        timeout: float = UPSTREAM_TIMEOUT_SECONDS,
    ):
        super().__init__(base_headers, timeout)
        self.login_url = login_url
        self.username = username
        self.password = password
        self._logged_in = False

    def _is_ready(self) -> bool:
        return self._client is not None and self._logged_in

    def _on_login_page(self, resp: httpx.Response) -> bool:
        return resp.url.path.rstrip("/") == httpx.URL(self.login_url).path.rstrip("/")

    async def _prepare(self, client: httpx.AsyncClient):
        if not self.username or not self.password:
            raise ScrapeAuthError("Login credentials are not configured")

        form_page = await client.get(self.login_url)
        if form_page.status_code != 200:
            raise ScrapeAuthError(f"Login page returned HTTP {form_page.status_code}")

        soup = BeautifulSoup(form_page.text, "html.parser")
        token_input = soup.find("input", attrs={"name": self.CSRF_FIELD})
        token = token_input.get("value") if token_input else client.cookies.get("csrftoken")
        if not token:
            raise ScrapeAuthError("Login form has no CSRF token")

        resp = await client.post(
            self.login_url,
            data={
                self.CSRF_FIELD: token,
                "username": self.username,
                "password": self.password,
            },
            headers={"Referer": self.login_url},
        )
        if resp.status_code >= 400 or self._on_login_page(resp):
            raise ScrapeAuthError("Login failed: check the configured credentials")

        self._logged_in = True
        print(f"[SCRAPE] login ok url={self.login_url}")

    async def _send(self, url: str, params: dict = None, headers: dict = None) -> httpx.Response:
        resp = await super()._send(url, params=params, headers=headers)
        if self._on_login_page(resp):
            self._logged_in = False
            raise ScrapeAuthError("Session expired: redirected to the login page")
        return resp
