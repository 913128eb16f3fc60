from typing import Annotated, Literal

from pydantic import BaseModel, BeforeValidator, Field, field_validator

from core.symbols import normalize_crypto_symbol, normalize_equity_symbol, to_nse_symbol

RoiPeriod = Literal["1month", "3month", "6month", "1year"]
Currency = Literal["USD", "INR"]
CompanyCategory = Literal["all", "features", "pricing", "benefits", "support", "faq", "subscription"]


def _as_list(value):
    if isinstance(value, str):
        return [s for s in (p.strip() for p in value.split(",")) if s]
    return value


def _upper(value):
    return value.strip().upper() if isinstance(value, str) else value


def _whole_number(value):
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


def _non_empty(symbols: list) -> list:
    if not symbols:
        raise ValueError("at least one non-blank symbol is required")
    return symbols


SymbolList = Annotated[list[str], BeforeValidator(_as_list)]
WholeNumber = Annotated[int, BeforeValidator(_whole_number)]
CurrencyCode = Annotated[Currency, BeforeValidator(_upper)]


class EmptyInput(BaseModel):
    pass


# ─── Quotes ────────────────────────────────────────────────────────────────────

class StockPriceInput(BaseModel):
    symbols: SymbolList = Field(..., min_length=1, description='Array of stock symbols like ["RELIANCE", "TCS"] for Reliance and TCS.')
    underPrice: float | None = Field(default=None, description="Optional: filter stocks with current price under this value (in INR).")

    @field_validator("symbols")
    @classmethod
    def normalize_symbols(cls, v):
        return _non_empty([normalize_equity_symbol(s) for s in v if s.strip()])


class CryptoPriceInput(BaseModel):
    symbols: SymbolList = Field(..., min_length=1, description='Array of cryptocurrency symbols like ["BTC", "ETH"] for Bitcoin and Ethereum.')
    currency: CurrencyCode = Field(default="USD", description='Currency for the price. Default is USD. For INR conversion, use "INR".')
    underPrice: float | None = Field(default=None, description="Optional: filter cryptos with current price under this value (in the specified currency).")

    @field_validator("symbols")
    @classmethod
    def normalize_symbols(cls, v):
        return _non_empty([normalize_crypto_symbol(s) for s in v if s.strip()])


class TopStocksInput(BaseModel):
    limit: WholeNumber = Field(default=2, ge=1, le=50, description="Number of top stocks to fetch (default is 2).")
    underPrice: float | None = Field(default=None, description="Optional: filter stocks with price under this value (in INR).")


class TopCryptosInput(BaseModel):
    limit: WholeNumber = Field(default=2, ge=1, le=50, description="Number of top cryptos to fetch (default is 2).")
    currency: CurrencyCode = Field(default="USD", description='Currency for the price. Default is USD. For INR conversion, use "INR".')
    underPrice: float | None = Field(default=None, description="Optional: filter cryptos with current price under this value (in the specified currency).")


# ─── Company ───────────────────────────────────────────────────────────────────

class CompanyInfoInput(BaseModel):
    category: CompanyCategory = Field(default="all", description="Category of information requested")


# ─── NSE ───────────────────────────────────────────────────────────────────────

class NseSymbolsInput(BaseModel):
    symbols: SymbolList = Field(..., min_length=1, description="Array of NSE stock symbols, e.g. [\"RELIANCE\", \"INFY\"].")

    @field_validator("symbols")
    @classmethod
    def normalize_symbols(cls, v):
        return _non_empty([to_nse_symbol(s) for s in v if s.strip()])


class FnoQuoteInput(NseSymbolsInput):
    optionsRequiredMonth: str | None = Field(default=None, description='Optional expiry month for options, e.g. "Mar".')


class ChartDataInput(BaseModel):
    symbol: str = Field(..., min_length=1, description='Stock or index symbol for chart data, e.g. "RELIANCE" or "NIFTY 50".')
    includeAdditionalData: bool = Field(default=False, description="Optional flag to include additional chart details.")

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v):
        return to_nse_symbol(v)


class LiveIndexInput(BaseModel):
    symbols: list[str] = Field(..., min_length=1, description='Array of index names/symbols to fetch (e.g. ["NIFTY 50", "NIFTY NEXT 50"])')

    @field_validator("symbols", mode="before")
    @classmethod
    def coerce_list(cls, v):
        return [v] if isinstance(v, str) else v


class GainersLosersInput(BaseModel):
    query: str = Field(..., description='User query specifying what data to fetch (e.g. "top gainers", "top losers", or "gainers and losers").')


class OptionChainInput(BaseModel):
    symbol: Annotated[Literal["BANKNIFTY", "NIFTY"], BeforeValidator(_upper)] = Field(..., description="Index name - BANKNIFTY for banking sector, NIFTY for Nifty 50")
    strikePrice: float = Field(..., gt=0, description="Exact strike price being analyzed (e.g., 49000)")
    optionType: Annotated[Literal["PE", "CE"], BeforeValidator(_upper)] = Field(..., description="PE for Put Options, CE for Call Options")
    expiryDate: str | None = Field(default=None, description="Optional expiry in DD-MMM-YYYY, MMM, YYYY, MMM-YYYY, MMM YYYY, MMMM, MMMM YYYY format")


# ─── Analysis ──────────────────────────────────────────────────────────────────

class StockRoiInput(BaseModel):
    symbol: str = Field(..., min_length=1, description='Stock symbol, e.g. "RELIANCE".')
    period: RoiPeriod = Field(..., description="Time period for ROI calculation.")

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v):
        return normalize_equity_symbol(v)


class HighestReturnInput(BaseModel):
    period: RoiPeriod = Field(..., description="Time period for return ranking. Only these exact values are supported.")


class PurchaseSignalInput(BaseModel):
    symbols: SymbolList = Field(..., min_length=1, description='Stock symbols (e.g. ["RELIANCE"]).')
    period: str = Field(default="30days", description='Time period for historical analysis (e.g. "30days", "15days", "1month"). Defaults to "30days".')

    @field_validator("symbols")
    @classmethod
    def normalize_symbols(cls, v):
        return _non_empty([normalize_equity_symbol(s) for s in v if s.strip()])


class BestStocksUnderPriceInput(BaseModel):
    maxPrice: float = Field(..., gt=0, description="Maximum price (in INR). Stocks must be priced below this value.")
    minPrice: float | None = Field(default=None, ge=0, description="Optional minimum price (in INR). If provided, returns stocks priced above this value.")
    maxMarketCap: float | None = Field(default=None, gt=0, description="Optional maximum market cap in crore INR. If provided, filters stocks by market cap below this value.")
