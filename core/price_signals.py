"""
Rule-based price signals over a daily close series:
  - ROI between the first and last close of a fixed lookback
  - buy/hold hint from current price vs. the lookback average (+/- 2% band)
"""

import re

ROI_PERIOD_DAYS = {
    "1month": 30,
    "3month": 90,
    "6month": 180,
    "1year": 365,
}

DEFAULT_SIGNAL_DAYS = 30
BUY_BAND_LOW = 0.98
BUY_BAND_HIGH = 1.02

ADVICE_NOTE = (
    "This analysis is based solely on historical price data and is not personalized financial advice. "
    "Please consult a financial advisor before making any investment decisions."
)

_PERIOD_PATTERN = re.compile(r"^(\d+)\s*(day|days|month|months|year|years)$")


def parse_period_days(period) -> int:
    """'15days' -> 15, '2 months' -> 60, '1year' -> 365; anything else -> 30."""
    if isinstance(period, str):
        match = _PERIOD_PATTERN.match(period.strip().lower())
        if match:
            value = int(match.group(1))
            unit = match.group(2)
            if unit.startswith("day"):
                days = value
            elif unit.startswith("month"):
                days = value * 30
            else:
                days = value * 365
            if days > 0:
                return days
    return DEFAULT_SIGNAL_DAYS


def compute_roi(history: list) -> dict | None:
    prices = [p.get("price") for p in history or [] if p.get("price") is not None]
    if not prices or not prices[0]:
        return None
    start_price = prices[0]
    end_price = prices[-1]
    return {
        "start_price": start_price,
        "end_price": end_price,
        "roi": (end_price - start_price) / start_price * 100,
    }


def purchase_recommendation(current_price: float, average_price: float) -> str:
    if current_price < average_price * BUY_BAND_LOW:
        return "The current price is below the recent average, indicating a potential buying opportunity."
    if current_price > average_price * BUY_BAND_HIGH:
        return "The current price is above the recent average, which may suggest it is overvalued at this time."
    return "The current price is close to the recent average; further analysis is recommended before purchasing."


def average_price(history: list) -> float | None:
    prices = [p.get("price") for p in history or [] if p.get("price") is not None]
    if not prices:
        return None
    return sum(prices) / len(prices)
