"""Yahoo Finance provider via the yfinance library."""
from ohlc_cache.providers.yfinance.y_finance_provider import YFinanceProvider

__all__ = ["YFinanceProvider"]
