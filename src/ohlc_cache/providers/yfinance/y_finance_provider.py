"""Yahoo Finance daily bar provider backed by the yfinance library."""
import asyncio
import logging
from datetime import datetime

import pandas as pd
import yfinance as yf

from ohlc_cache.providers.core import QuoteProviderABC
from ohlc_cache.providers.yfinance.models import YFinanceHistoryParams
from ohlc_cache.schemas import RawBar, SymbolMatch
from ohlc_cache.utils import ensure_utc, normalize_symbol

logger = logging.getLogger(__name__)

_OHLC_COLUMNS = ["Open", "High", "Low", "Close"]


def _frame_to_raw_bars(df: pd.DataFrame) -> list[RawBar]:
    """Convert a Ticker.history() frame to raw bars, skipping rows with missing prices."""
    if df is None or df.empty:
        return []
    bars: list[RawBar] = []
    for ts, row in df.iterrows():
        if row[_OHLC_COLUMNS].isna().any():
            continue
        volume = row.get("Volume")
        bars.append(
            RawBar(
                timestamp=ensure_utc(pd.Timestamp(ts).to_pydatetime()),
                open=float(row["Open"]),
                high=float(row["High"]),
                low=float(row["Low"]),
                close=float(row["Close"]),
                volume=None if volume is None or pd.isna(volume) else float(volume),
            )
        )
    return bars


class YFinanceProvider(QuoteProviderABC):
    """Daily bars for stocks via Yahoo Finance.

    Uses the yfinance library; no API key required. yfinance is synchronous,
    so each history call runs in a worker thread.
    """

    name = "yfinance"

    def _fetch_sync(self, symbol: str, start: datetime, end: datetime) -> list[RawBar]:
        """Fetch history synchronously (run in thread)."""
        try:
            df = yf.Ticker(symbol).history(
                start=start, end=end, **YFinanceHistoryParams().model_dump()
            )
        except Exception as e:
            raise ValueError(f"Failed to fetch history for '{symbol}': {e}") from e
        return _frame_to_raw_bars(df)

    async def fetch(self, symbol: str, start: datetime, end: datetime) -> list[RawBar]:
        """Fetch daily bars in [start, end)."""
        sym = normalize_symbol(symbol)
        bars = await asyncio.to_thread(self._fetch_sync, sym, start, end)
        logger.debug("yfinance returned %d bars for %s", len(bars), sym)
        return bars

    def _search_sync(self, query: str, limit: int) -> list[SymbolMatch]:
        """Run yfinance.Search synchronously (run in thread)."""
        try:
            quotes = yf.Search(query, max_results=limit, news_count=0).quotes
        except Exception as e:
            raise ValueError(f"Symbol search failed for '{query}': {e}") from e
        return [
            SymbolMatch(
                symbol=q["symbol"],
                name=q.get("shortname") or q.get("longname"),
                exchange=q.get("exchDisp") or q.get("exchange"),
                quote_type=q.get("quoteType"),
            )
            for q in quotes or []
            if q.get("symbol") and str(q.get("quoteType", "")).upper() == "EQUITY"
        ]

    async def search(self, query: str, limit: int = 10) -> list[SymbolMatch]:
        """Equities matching ``query`` via yfinance.Search."""
        return await asyncio.to_thread(self._search_sync, query, limit)
