import httpx

from config import UPSTREAM_TIMEOUT_SECONDS
from data.cache import cache, COINGECKO_TTL


class CoinGeckoProvider:
    """Market-cap ranking for the top-N crypto capability."""

    BASE_URL = "https://api.coingecko.com/api/v3"

    def __init__(self, api_key: str = None):
        self.api_key = api_key

    async def _get(self, endpoint: str, params: dict = None) -> dict | list:
        if params is None:
            params = {}
        if self.api_key:
            params["x_cg_demo_api_key"] = self.api_key

        cache_key = f"coingecko:{endpoint}:{str(sorted((k, v) for k, v in params.items() if k != 'x_cg_demo_api_key'))[:80]}"
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            async with httpx.AsyncClient() as client:
                resp = await client.get(
                    f"{self.BASE_URL}/{endpoint}",
                    params=params,
                    timeout=UPSTREAM_TIMEOUT_SECONDS,
                )
            if resp.status_code == 429:
                print("[COINGECKO] rate limit hit")
                return []
            if resp.status_code != 200:
                print(f"[COINGECKO] error {resp.status_code}: {endpoint}")
                return []
            data = resp.json()
            cache.set(cache_key, data, COINGECKO_TTL)
            return data
        except Exception as e:
            print(f"[COINGECKO] request failed ({endpoint}): {e}")
            return []

    async def get_top_coins(self, limit: int = 25) -> list:
        data = await self._get("coins/markets", {
            "vs_currency": "usd",
            "order": "market_cap_desc",
            "per_page": limit,
            "page": 1,
            "sparkline": "false",
        })
        return data if isinstance(data, list) else []

    async def get_top_coin_symbols(self, limit: int) -> list:
        """Ticker symbols (upper-case) in market-cap order; empty when the ranking is unavailable."""
        coins = await self.get_top_coins(limit)
        return [c["symbol"].upper() for c in coins if isinstance(c, dict) and c.get("symbol")][:limit]
