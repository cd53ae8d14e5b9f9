"""Models for the Yahoo chart API provider (request params and response payload)."""
from pydantic import BaseModel, Field


class YahooChartParams(BaseModel):
    """Params for /v8/finance/chart/{symbol}."""

    period1: int
    period2: int
    interval: str = "1d"
    include_pre_post: str = Field(default="false", serialization_alias="includePrePost")
    events: str = "div,split"

    model_config = {"populate_by_name": True}


class YahooQuoteIndicators(BaseModel):
    open: list[float | None] = Field(default_factory=list)
    high: list[float | None] = Field(default_factory=list)
    low: list[float | None] = Field(default_factory=list)
    close: list[float | None] = Field(default_factory=list)
    volume: list[float | None] = Field(default_factory=list)


class YahooIndicators(BaseModel):
    quote: list[YahooQuoteIndicators] = Field(default_factory=list)


class YahooChartResult(BaseModel):
    """One entry of chart.result; timestamps are Unix seconds."""

    timestamp: list[int] = Field(default_factory=list)
    indicators: YahooIndicators = Field(default_factory=YahooIndicators)


class YahooSearchParams(BaseModel):
    """Params for /v1/finance/search."""

    q: str
    quotes_count: int = Field(default=10, serialization_alias="quotesCount")
    news_count: int = Field(default=0, serialization_alias="newsCount")
    enable_fuzzy_query: str = Field(default="false", serialization_alias="enableFuzzyQuery")

    model_config = {"populate_by_name": True}


class YahooSearchQuote(BaseModel):
    """One entry of the search response's ``quotes`` list."""

    symbol: str
    shortname: str | None = None
    longname: str | None = None
    exchange: str | None = None
    exch_disp: str | None = Field(default=None, alias="exchDisp")
    quote_type: str | None = Field(default=None, alias="quoteType")

    model_config = {"populate_by_name": True}
