"""
Capability Registry.

A capability is one data-fetching operation the routing model may call:
a name, a description, a pydantic model for its arguments and an async
handler. The registry is built once at startup and is read-only afterwards.
Adding a capability means writing a handler and one `registry.register(...)`
line in build_default_registry.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from agent import schemas
from config import COMPANY_NAME
from core.chart_series import normalize_intraday_chart

Handler = Callable[[BaseModel, "DispatchContext"], Awaitable[Any]]

COMPANY_CATEGORY_ALIASES = {"subscription": "pricing"}


@dataclass(frozen=True)
class Capability:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: Handler

    def parameters_schema(self) -> dict:
        return clean_schema(self.args_model.model_json_schema())


@dataclass
class DispatchContext:
    """Collaborators handed to every handler."""
    market: Any
    company_info: Any = None
    company_name: str = COMPANY_NAME


def clean_schema(schema: dict) -> dict:
    """
    Reduce a pydantic JSON schema to the subset function-calling APIs accept:
    no titles, Optional[X] collapsed to X.
    """
    if not isinstance(schema, dict):
        return schema
    out = {}
    for key, value in schema.items():
        if key == "title":
            continue
        if key == "anyOf" and isinstance(value, list):
            non_null = [v for v in value if v.get("type") != "null"]
            if len(non_null) == 1:
                out.update(clean_schema(non_null[0]))
                continue
        if key == "properties" and isinstance(value, dict):
            out[key] = {name: clean_schema(prop) for name, prop in value.items()}
        elif isinstance(value, dict):
            out[key] = clean_schema(value)
        elif isinstance(value, list):
            out[key] = [clean_schema(v) if isinstance(v, dict) else v for v in value]
        else:
            out[key] = value
    if "properties" in out:
        out.setdefault("type", "object")
    return out


class CapabilityRegistry:
    def __init__(self):
        self._capabilities: dict[str, Capability] = {}

    def register(self, capability: Capability):
        if capability.name in self._capabilities:
            raise ValueError(f"Capability already registered: {capability.name}")
        self._capabilities[capability.name] = capability

    def get(self, name: str) -> Capability | None:
        return self._capabilities.get(name)

    def names(self) -> list[str]:
        return list(self._capabilities)

    def __len__(self):
        return len(self._capabilities)

    def __iter__(self):
        return iter(self._capabilities.values())

    def descriptors(self) -> list[dict]:
        """Provider-neutral {name, description, parameters} list, registration order."""
        return [
            {"name": c.name, "description": c.description, "parameters": c.parameters_schema()}
            for c in self._capabilities.values()
        ]


# ─── Handlers ──────────────────────────────────────────────────────────────────

async def _stock_price(args: schemas.StockPriceInput, ctx: DispatchContext):
    return await ctx.market.get_stock_price(args.symbols, args.underPrice)


async def _crypto_price(args: schemas.CryptoPriceInput, ctx: DispatchContext):
    return await ctx.market.get_crypto_price(args.symbols, args.currency, args.underPrice)


async def _top_stocks(args: schemas.TopStocksInput, ctx: DispatchContext):
    return await ctx.market.get_top_stocks(args.limit, args.underPrice)


async def _top_cryptos(args: schemas.TopCryptosInput, ctx: DispatchContext):
    return await ctx.market.get_top_cryptos(args.limit, args.currency, args.underPrice)


async def _company_info(args: schemas.CompanyInfoInput, ctx: DispatchContext):
    store = ctx.company_info.acquire() if ctx.company_info is not None else None
    if store is None:
        return {"error": "Company information store is unavailable"}
    doc = store.get(ctx.company_name)
    if not doc:
        return {"error": "Company information not found."}

    category = COMPANY_CATEGORY_ALIASES.get(args.category, args.category)
    if category == "all":
        return doc
    if category == "support" and "support" not in doc:
        return {"support": (doc.get("faq") or {}).get("support")}
    return {category: doc.get(category)}


async def _market_status(args: schemas.EmptyInput, ctx: DispatchContext):
    return await ctx.market.nse.get_market_status()


async def _trade_info(args: schemas.NseSymbolsInput, ctx: DispatchContext):
    return await ctx.market.nse.get_trade_info(args.symbols)


async def _stock_quote_fno(args: schemas.FnoQuoteInput, ctx: DispatchContext):
    return await ctx.market.nse.get_stock_quote_fno(args.symbols, args.optionsRequiredMonth)


async def _chart_data(args: schemas.ChartDataInput, ctx: DispatchContext):
    result = await ctx.market.nse.get_chart_data(args.symbol, args.includeAdditionalData)
    if isinstance(result, dict) and "error" not in result and normalize_intraday_chart(result, args.symbol) is None:
        return {"error": f"No intraday points for {args.symbol}"}
    return result


async def _stock_roi(args: schemas.StockRoiInput, ctx: DispatchContext):
    return await ctx.market.calculate_stock_roi(args.symbol, args.period)


async def _highest_return(args: schemas.HighestReturnInput, ctx: DispatchContext):
    return await ctx.market.screener.get_highest_return_stocks(args.period)


async def _all_indices(args: schemas.EmptyInput, ctx: DispatchContext):
    return await ctx.market.nse.get_all_indices()


async def _live_index(args: schemas.LiveIndexInput, ctx: DispatchContext):
    return await ctx.market.nse.get_live_index(args.symbols)


async def _gainers_losers(args: schemas.GainersLosersInput, ctx: DispatchContext):
    return await ctx.market.nse.get_gainers_and_losers(args.query)


async def _volume_gainers(args: schemas.EmptyInput, ctx: DispatchContext):
    return await ctx.market.nse.get_volume_gainers()


async def _purchase_signal(args: schemas.PurchaseSignalInput, ctx: DispatchContext):
    return await ctx.market.should_purchase_stocks(args.symbols, args.period)


async def _best_under_price(args: schemas.BestStocksUnderPriceInput, ctx: DispatchContext):
    return await ctx.market.screener.get_best_stocks_under_price(args.maxPrice, args.minPrice, args.maxMarketCap)


async def _option_chain(args: schemas.OptionChainInput, ctx: DispatchContext):
    return await ctx.market.nse.analyze_option_chain(args.symbol, args.strikePrice, args.optionType, args.expiryDate)


def build_default_registry(company_name: str = COMPANY_NAME) -> CapabilityRegistry:
    registry = CapabilityRegistry()
    register = registry.register

    register(Capability(
        "get_stock_price",
        "Get real-time stock price (current quote), historical price data, and basic information for one or more stock symbols. This function always returns data for Indian stocks only.",
        schemas.StockPriceInput, _stock_price,
    ))
    register(Capability(
        "get_crypto_price",
        'Get real-time cryptocurrency price (current quote), historical price data, and basic information for one or more crypto symbols. Optionally, specify the currency ("USD" or "INR") and a maximum price (underPrice).',
        schemas.CryptoPriceInput, _crypto_price,
    ))
    register(Capability(
        "get_top_stocks",
        "Get the trending Indian stocks in real time using NSE data. Optionally, specify a price filter (underPrice).",
        schemas.TopStocksInput, _top_stocks,
    ))
    register(Capability(
        "get_top_cryptos",
        'Get the top cryptocurrencies by market cap in real time. Optionally, specify the currency ("USD" or "INR") and a price filter (underPrice).',
        schemas.TopCryptosInput, _top_cryptos,
    ))
    register(Capability(
        "get_company_info",
        f"Get information about {company_name} company and services",
        schemas.CompanyInfoInput, _company_info,
    ))
    register(Capability(
        "get_market_status",
        "Get realtime Indian market status from NSE.",
        schemas.EmptyInput, _market_status,
    ))
    register(Capability(
        "get_trade_info",
        "Get detailed trade information for one or more NSE equities.",
        schemas.NseSymbolsInput, _trade_info,
    ))
    register(Capability(
        "get_stock_quote_fno",
        "Fetch live F&O (futures and options) data for one or more NSE equities, optionally limited to an expiry month.",
        schemas.FnoQuoteInput, _stock_quote_fno,
    ))
    register(Capability(
        "get_chart_data",
        "Fetch intraday chart data for a given NSE stock or index symbol.",
        schemas.ChartDataInput, _chart_data,
    ))
    register(Capability(
        "calculate_stock_roi",
        "Calculate the ROI (Return on Investment) for a specific stock over a given period (1month, 3month, 6month, or 1year).",
        schemas.StockRoiInput, _stock_roi,
    ))
    register(Capability(
        "get_highest_return_stock",
        "Scrape the screener website to determine which stock has the highest return over specified period (only supports 1month, 3month, 6month, or 1year). If asked for unsupported periods, returns closest available data with explanation.",
        schemas.HighestReturnInput, _highest_return,
    ))
    register(Capability(
        "get_all_indices",
        "Fetch data of all NSE indices.",
        schemas.EmptyInput, _all_indices,
    ))
    register(Capability(
        "get_live_index",
        "Fetch realtime index data for given index names or symbols.",
        schemas.LiveIndexInput, _live_index,
    ))
    register(Capability(
        "get_gainers_and_losers",
        "Fetch top gainers, top losers, or both from NSE depending on the user query.",
        schemas.GainersLosersInput, _gainers_losers,
    ))
    register(Capability(
        "get_volume_gainers",
        "Fetch NSE volume gainers.",
        schemas.EmptyInput, _volume_gainers,
    ))
    register(Capability(
        "should_purchase_stock",
        "Analyzes a given stock by comparing its current price to the historical average over a specified period, and provides a recommendation on whether to purchase the stock today.",
        schemas.PurchaseSignalInput, _purchase_signal,
    ))
    register(Capability(
        "get_best_stocks_under_price",
        "Get recommended stocks within a specified price range and/or under a certain market cap based on fundamental analysis criteria from Screener.in.",
        schemas.BestStocksUnderPriceInput, _best_under_price,
    ))
    register(Capability(
        "get_option_chain_data",
        "Analyze option contracts (PUT/CALL) for NSE indices. Use this for evaluating strike prices, open interest, premiums, and volatility. Returns critical data for options trading decisions including moneyness, OI changes, and IV analysis.",
        schemas.OptionChainInput, _option_chain,
    ))
    return registry
