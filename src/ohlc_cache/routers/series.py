"""Series routes: cached OHLC bars for a symbol at daily, weekly or monthly interval."""
import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Query

from ohlc_cache.deps import CoordinatorDep, ErrorMapperDep, SettingsDep
from ohlc_cache.exceptions import CacheError
from ohlc_cache.schemas import SeriesResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/series", tags=["series"])


@router.get("/{symbol}/{interval}", response_model=SeriesResponse)
async def get_series(
    symbol: str,
    interval: str,
    coordinator: CoordinatorDep,
    error_mapper: ErrorMapperDep,
    settings: SettingsDep,
    start: datetime | None = Query(default=None, description="Range start (ISO 8601)"),
    end: datetime | None = Query(default=None, description="Range end (ISO 8601, default now)"),
    days: int | None = Query(default=None, ge=1, description="Days back from end when start is omitted"),
    limit: int | None = Query(default=None, ge=1, description="Keep only the last N bars"),
) -> SeriesResponse:
    """Get bars for a symbol, fetching only what the cache is missing.

    Args:
        symbol: Ticker (e.g. "AAPL").
        interval: daily, weekly or monthly (aliases 1d, 1wk, 1mo accepted).

    Returns:
        Bars plus completeness flags; partial=true when upstream could not
        fill the whole range.
    """
    end = end or coordinator.now()
    start = start or end - timedelta(days=days or settings.default_days)
    try:
        series = await coordinator.get_series(symbol, interval, start, end)
    except (CacheError, ValueError) as e:
        error_mapper.raise_http(e, symbol=symbol)
    if limit is not None and len(series.bars) > limit:
        bars = series.bars[-limit:]
        series = series.model_copy(
            update={
                "bars": bars,
                "metadata": series.metadata.model_copy(update={"points": len(bars)}),
            }
        )
    return series
