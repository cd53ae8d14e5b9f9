"""Yahoo Finance chart API provider (httpx)."""
from ohlc_cache.providers.yahoo_chart.yahoo_chart_provider import \
    YahooChartProvider

__all__ = ["YahooChartProvider"]
