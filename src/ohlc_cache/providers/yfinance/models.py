"""Models for YFinance provider (history request options)."""
from pydantic import BaseModel


class YFinanceHistoryParams(BaseModel):
    """Keyword arguments for Ticker.history(); merge with start/end at call site."""

    interval: str = "1d"
    auto_adjust: bool = False
    actions: bool = False
