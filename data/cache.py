"""
Simple in-memory TTL cache.
Stores upstream responses with expiration times.
Quote calls run in worker threads, so access is guarded by a lock.
"""
import threading
import time
from typing import Any


class TTLCache:
    def __init__(self):
        self._store: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Get a value if it exists and hasn't expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.time() < expires_at:
                return value
            del self._store[key]
            return None

    def set(self, key: str, value: Any, ttl_seconds: int):
        """Store a value with a TTL in seconds."""
        with self._lock:
            self._store[key] = (value, time.time() + ttl_seconds)

    def clear(self):
        with self._lock:
            self._store.clear()

    @property
    def size(self):
        return len(self._store)


cache = TTLCache()

QUOTE_TTL = 60
HISTORY_TTL = 300
NEWS_TTL = 600
FX_TTL = 300
NSE_LIVE_TTL = 30
NSE_SLOW_TTL = 60
COINGECKO_TTL = 120
SCREENER_TTL = 900
