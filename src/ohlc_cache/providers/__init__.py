"""Upstream daily bar providers.

- YFinanceProvider: Yahoo Finance via the yfinance library
- YahooChartProvider: Yahoo Finance chart API over httpx

All providers implement QuoteProviderABC and return untrusted RawBar lists.

Example:
    async with YahooChartProvider() as provider:
        bars = await provider.fetch("AAPL", start, end)
"""
from ohlc_cache.providers.core import CacheErrorMapper, QuoteProviderABC
from ohlc_cache.providers.yahoo_chart import YahooChartProvider
from ohlc_cache.providers.yfinance import YFinanceProvider

_PROVIDERS: dict[str, type[QuoteProviderABC]] = {
    YFinanceProvider.name: YFinanceProvider,
    YahooChartProvider.name: YahooChartProvider,
}


def create_quote_provider(name: str, *, timeout: float = 10.0) -> QuoteProviderABC:
    """Build the provider selected by OHLC_PROVIDER.

    Raises:
        ValueError: for an unknown provider name.
    """
    key = name.strip().lower()
    if key not in _PROVIDERS:
        raise ValueError(f"Unknown quote provider: {name}. Available: {', '.join(_PROVIDERS)}")
    if key == YahooChartProvider.name:
        return YahooChartProvider(timeout=timeout)
    return _PROVIDERS[key]()


__all__ = [
    "CacheErrorMapper",
    "QuoteProviderABC",
    "YFinanceProvider",
    "YahooChartProvider",
    "create_quote_provider",
]
