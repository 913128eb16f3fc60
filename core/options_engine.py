"""
Option Chain Rule Engine.

Resolves a user's (symbol, strike, side, expiry hint) against an NSE option
chain and builds a rule-based recommendation:
  - expiry: earliest listed expiry on/after the requested one, never in the past
  - strike: closest listed strike, first one wins on ties
  - moneyness: PE in-the-money when strike >= underlying, CE when strike <= underlying
  - IV above 40 is flagged as elevated
  - underlying/strike ratio above 1 is framed as needing a significant move

Deterministic text generation, not a pricing model.
"""

from datetime import date, datetime

NSE_EXPIRY_FORMAT = "%d-%b-%Y"
HIGH_IV_THRESHOLD = 40

EXPIRY_HINT_FORMATS = (
    ("%d-%b-%Y", "day"),
    ("%d %b %Y", "day"),
    ("%b-%Y", "month"),
    ("%b %Y", "month"),
    ("%B %Y", "month"),
    ("%B-%Y", "month"),
    ("%b", "month_only"),
    ("%B", "month_only"),
    ("%Y", "year"),
)

OPTION_SIDES = {"PE": "Put", "CE": "Call"}


def parse_expiry(value: str) -> date | None:
    try:
        return datetime.strptime(value.strip(), NSE_EXPIRY_FORMAT).date()
    except (AttributeError, ValueError):
        return None


def parse_expiry_hint(hint: str, today: date) -> date | None:
    """Parse a user expiry hint into the earliest date it can refer to."""
    if not hint or not hint.strip():
        return None
    text = " ".join(hint.strip().split())
    for fmt, kind in EXPIRY_HINT_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if kind == "day":
            return parsed.date()
        if kind == "month":
            return date(parsed.year, parsed.month, 1)
        if kind == "year":
            return date(parsed.year, 1, 1)
        year = today.year if parsed.month >= today.month else today.year + 1
        return date(year, parsed.month, 1)
    return None


def valid_expiries(expiry_dates: list, today: date) -> list[date]:
    parsed = [parse_expiry(e) for e in expiry_dates or []]
    return sorted({d for d in parsed if d is not None and d >= today})


def resolve_expiry(expiry_dates: list, hint: str = None, today: date = None) -> date | None:
    today = today or date.today()
    candidates = valid_expiries(expiry_dates, today)
    if not candidates:
        return None
    target = parse_expiry_hint(hint, today) if hint else None
    if target is None:
        return candidates[0]
    for expiry in candidates:
        if expiry >= target:
            return expiry
    return candidates[0]


def resolve_strike(strikes: list, requested: float) -> float | None:
    closest = None
    for strike in strikes:
        if strike is None:
            continue
        if closest is None or abs(strike - requested) < abs(closest - requested):
            closest = strike
    return closest


def is_in_the_money(option_type: str, strike: float, underlying: float) -> bool:
    if option_type == "PE":
        return strike >= underlying
    return strike <= underlying


def moneyness_label(option_type: str, strike: float, underlying: float) -> str:
    return "In-the-money" if is_in_the_money(option_type, strike, underlying) else "Out-of-the-money"


def build_recommendation(option_data: dict, option_type: str, strike: float, underlying: float) -> str:
    itm = is_in_the_money(option_type, strike, underlying)

    if option_type == "PE":
        moneyness_text = (
            "The put option is in-the-money, providing intrinsic value."
            if itm else
            "The put option is out-of-the-money; a significant move downward in the underlying index is required to profit."
        )
    else:
        moneyness_text = (
            "The call option is in-the-money, providing intrinsic value."
            if itm else
            "The call option is out-of-the-money; the underlying index must move higher for profitability."
        )

    change_oi = option_data.get("changeinOpenInterest") or 0
    oi_text = (
        "The increasing open interest indicates that more traders are entering this position, suggesting emerging sentiment."
        if change_oi > 0 else
        "The decreasing open interest might indicate waning trader interest."
    )

    iv = option_data.get("impliedVolatility") or 0
    iv_text = (
        "The high implied volatility suggests that the option premium may be inflated due to market uncertainty."
        if iv > HIGH_IV_THRESHOLD else
        "The implied volatility is within a normal range, implying fair pricing of the option."
    )

    ratio = round(underlying / strike, 2) if strike else 0
    risk_text = (
        "A significant move in the underlying asset is needed to make the option profitable."
        if ratio > 1 else
        "The risk/reward balance appears acceptable given the current market conditions."
    )

    name = option_data.get("underlying") or ""
    side = OPTION_SIDES.get(option_type, option_type)
    strike_text = int(strike) if float(strike).is_integer() else strike
    return (
        f"Recommendation for {name} {strike_text} {side} Option:\n"
        f"- Moneyness: {moneyness_text}\n"
        f"- Open Interest: {oi_text}\n"
        f"- Implied Volatility: {iv_text}\n"
        f"- Risk/Reward: {risk_text}\n\n"
        "Overall, if you have a strong directional view (for example, expecting a bearish trend for a put option) "
        "and the market conditions align with these signals, this option might serve as a good speculative or "
        "hedging play. Otherwise, consider waiting for clearer indicators or exploring other strike levels."
    )


def analyze_option_chain(
    chain: dict,
    symbol: str,
    strike_price: float,
    option_type: str,
    expiry_hint: str = None,
    today: date = None,
) -> dict:
    """Pick the contract from an NSE option-chain payload and analyze it."""
    records = chain.get("records") if isinstance(chain, dict) else None
    if not isinstance(records, dict):
        return {"error": "Option chain response is missing records"}

    rows = records.get("data")
    if not isinstance(rows, list) or not rows:
        return {"error": "Option chain has no contracts"}

    expiry = resolve_expiry(records.get("expiryDates") or [], expiry_hint, today)
    if expiry is None:
        return {"error": "No future expiries available"}

    same_expiry = [r for r in rows if isinstance(r, dict) and parse_expiry(r.get("expiryDate") or "") == expiry]
    strike = resolve_strike([r.get("strikePrice") for r in same_expiry], strike_price)
    if strike is None:
        return {"error": "No data for specified strike/expiry"}

    entry = next((r for r in same_expiry if r.get("strikePrice") == strike), None)
    option_data = entry.get(option_type) if entry else None
    if not isinstance(option_data, dict):
        return {"error": "Option type not found"}

    underlying = option_data.get("underlyingValue")
    if underlying is None:
        underlying = records.get("underlyingValue")
    if underlying is None:
        return {"error": "Underlying value missing from option chain"}

    return {
        "symbol": symbol,
        "strike_price": strike,
        "requested_strike_price": strike_price,
        "option_type": option_type,
        "expiry_date": expiry.strftime(NSE_EXPIRY_FORMAT),
        "open_interest": option_data.get("openInterest"),
        "change_in_open_interest": option_data.get("changeinOpenInterest"),
        "pchange_in_open_interest": option_data.get("pchangeinOpenInterest"),
        "last_price": option_data.get("lastPrice"),
        "implied_volatility": option_data.get("impliedVolatility"),
        "underlying_value": underlying,
        "moneyness": moneyness_label(option_type, strike, underlying),
        "recommendation": build_recommendation(option_data, option_type, strike, underlying),
    }
