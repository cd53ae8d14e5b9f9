"""Yahoo Finance chart API provider (direct HTTP, no yfinance)."""
import logging
from datetime import datetime

import httpx

from ohlc_cache.providers.core import QuoteProviderABC
from ohlc_cache.providers.yahoo_chart.models import (YahooChartParams,
                                                     YahooChartResult,
                                                     YahooSearchParams,
                                                     YahooSearchQuote)
from ohlc_cache.schemas import RawBar, SymbolMatch
from ohlc_cache.utils import normalize_symbol, parse_timestamp

logger = logging.getLogger(__name__)


def _value_at(values: list[float | None], i: int) -> float | None:
    return values[i] if i < len(values) else None


class YahooChartProvider(QuoteProviderABC):
    """Daily bars from https://query1.finance.yahoo.com/v8/finance/chart.

    Uses httpx for REST calls. Rows where any of open/high/low/close is
    missing are skipped; validation of the remaining values is left to the
    fetcher.
    """

    name = "yahoo_chart"
    BASE_URL = "https://query1.finance.yahoo.com/v8/finance"
    SEARCH_URL = "https://query1.finance.yahoo.com/v1/finance/search"

    def __init__(
        self,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Yahoo chart provider.

        Args:
            timeout: Per-request timeout in seconds.
            client: Optional preconfigured client (tests pass one with a mock transport).
        """
        self._client = client or httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={"Accept": "application/json", "User-Agent": "Mozilla/5.0"},
            timeout=timeout,
        )

    async def fetch(self, symbol: str, start: datetime, end: datetime) -> list[RawBar]:
        """Fetch daily bars in [start, end)."""
        sym = normalize_symbol(symbol)
        params = YahooChartParams(
            period1=int(start.timestamp()),
            period2=int(end.timestamp()),
        ).model_dump(by_alias=True)
        response = await self._client.get(f"/chart/{sym}", params=params)
        response.raise_for_status()
        chart = response.json().get("chart") or {}

        if chart.get("error"):
            error = chart["error"]
            raise ValueError(f"Chart API error for '{sym}': {error.get('description') or error}")
        results = chart.get("result") or []
        if not results:
            raise ValueError(f"No chart data for '{sym}'")

        result = YahooChartResult.model_validate(results[0])
        quotes = result.indicators.quote[0] if result.indicators.quote else None
        if quotes is None:
            return []

        bars: list[RawBar] = []
        for i, ts in enumerate(result.timestamp):
            o, h, lo, c = (
                _value_at(quotes.open, i),
                _value_at(quotes.high, i),
                _value_at(quotes.low, i),
                _value_at(quotes.close, i),
            )
            if o is None or h is None or lo is None or c is None:
                continue
            bars.append(
                RawBar(
                    timestamp=parse_timestamp(ts),
                    open=o,
                    high=h,
                    low=lo,
                    close=c,
                    volume=_value_at(quotes.volume, i),
                )
            )
        logger.debug("Yahoo chart returned %d bars for %s", len(bars), sym)
        return bars

    async def search(self, query: str, limit: int = 10) -> list[SymbolMatch]:
        """Equities matching ``query`` from the Yahoo search endpoint."""
        params = YahooSearchParams(q=query, quotes_count=limit).model_dump(by_alias=True)
        response = await self._client.get(self.SEARCH_URL, params=params)
        response.raise_for_status()
        quotes = [YahooSearchQuote.model_validate(q) for q in response.json().get("quotes") or []]
        return [
            SymbolMatch(
                symbol=q.symbol,
                name=q.shortname or q.longname,
                exchange=q.exch_disp or q.exchange,
                quote_type=q.quote_type,
            )
            for q in quotes
            if (q.quote_type or "").upper() == "EQUITY"
        ][:limit]

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
