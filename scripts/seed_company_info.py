"""
Upsert the default company document into the company-info store.

Run:  python scripts/seed_company_info.py
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config import COMPANY_INFO_PATH
from data.chat_log_store import CompanyInfoStore

DEFAULT_COMPANY = {
    "name": "Profit Flow",
    "tagline": "Unleash the Power of SMART Trading",
    "description": "AI-powered trading system providing actionable insights and trading signals",
    "features": [
        "Zero trading skills needed",
        "Works across all markets (stocks, forex, crypto)",
        "Real-time AI-powered signals",
        "Emotion-free trading decisions",
        "Simple clean interface",
        "24/7 customer support",
    ],
    "pricing": {
        "original": 9999,
        "discounted": 2999,
        "currency": "₹",
        "offer": "75% OFF New Year Sale!",
        "guarantee": "3-day risk free trial",
        "includes": ["Premium Indicators", "Tutorials", "Course", "Trading Guide"],
        "buyNowLink": "https://cosmofeed.com/vig/65e733e79b0cd40013a65409",
    },
    "benefits": {
        "without": ["Losing Trades", "Confusing Charts", "Missed Opportunities"],
        "with": ["Clear Signals", "Confident Trading", "Time Savings"],
    },
    "faq": {
        "beginner": "Absolutely! Our system guides beginners while offering advanced tools for pros.",
        "access": "Instant access after purchase through TradingView integration.",
        "markets": "Works with stocks, forex, and cryptocurrencies.",
        "support": "24/7 support via email and live chat.",
    },
}


def main():
    store = CompanyInfoStore(COMPANY_INFO_PATH)
    store.upsert(DEFAULT_COMPANY)
    print(f"[SEED] company info for '{DEFAULT_COMPANY['name']}' written to {COMPANY_INFO_PATH}")


if __name__ == "__main__":
    main()
