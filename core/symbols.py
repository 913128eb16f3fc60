"""
Symbol normalization shared by every capability that accepts tickers.

Equities default to the NSE listing on the quote source (".NS"), crypto
pairs default to USD ("-USD"). The NSE website itself expects bare symbols.
"""

import re

NSE_SUFFIX = ".NS"
EXCHANGE_SUFFIXES = (".NS", ".BO")
CRYPTO_QUOTE_CURRENCY = "USD"

_BARE_TICKER = re.compile(r"^[A-Z]+$")


def normalize_equity_symbol(symbol: str) -> str:
    sym = (symbol or "").strip().upper()
    if "." not in sym and _BARE_TICKER.match(sym):
        return f"{sym}{NSE_SUFFIX}"
    return sym


def normalize_crypto_symbol(symbol: str) -> str:
    sym = (symbol or "").strip().upper()
    if sym and "-" not in sym:
        return f"{sym}-{CRYPTO_QUOTE_CURRENCY}"
    return sym


def to_nse_symbol(symbol: str) -> str:
    sym = (symbol or "").strip().upper()
    for suffix in EXCHANGE_SUFFIXES:
        if sym.endswith(suffix):
            return sym[: -len(suffix)]
    return sym


def is_index_name(symbol: str) -> bool:
    """NSE index names ("NIFTY 50", "NIFTY BANK") vs equity symbols."""
    sym = (symbol or "").strip().upper()
    return " " in sym or sym in ("NIFTY", "BANKNIFTY", "FINNIFTY", "MIDCPNIFTY")
