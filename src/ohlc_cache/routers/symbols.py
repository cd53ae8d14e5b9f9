"""Symbol management routes: list, search, warm, inspect coverage, refresh, delete."""
import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, HTTPException, Query

from ohlc_cache.deps import CoordinatorDep, ErrorMapperDep, SettingsDep
from ohlc_cache.exceptions import CacheError
from ohlc_cache.schemas import (CoverageRecord, CoverageReport, SearchResponse,
                                SymbolSummary, WarmRequest)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/symbols", tags=["symbols"])

# Auto-download after a search warms at most this many uncached hits.
_SEARCH_WARM_LIMIT = 5


def _default_range(
    now: datetime,
    start: datetime | None,
    end: datetime | None,
    days: int | None,
    default_days: int,
) -> tuple[datetime, datetime]:
    end = end or now
    return start or end - timedelta(days=days or default_days), end


@router.get("", response_model=list[SymbolSummary])
def list_symbols(coordinator: CoordinatorDep) -> list[SymbolSummary]:
    """Cached symbols with their coverage envelope and bar count."""
    return coordinator.list_symbols()


@router.get("/search", response_model=SearchResponse)
async def search_symbols(
    coordinator: CoordinatorDep,
    error_mapper: ErrorMapperDep,
    settings: SettingsDep,
    q: str = Query(..., min_length=1, description="Ticker or company name"),
    limit: int = Query(default=10, ge=1, le=50),
    download: bool = Query(default=False, description="Warm the cache for uncached hits"),
    days: int | None = Query(default=None, ge=1, description="Days of history to warm"),
) -> SearchResponse:
    """Search symbols, optionally downloading daily history for new ones.

    Cached symbols are listed first. Upstream search failures fall back to
    cached matches only.
    """
    try:
        results = await coordinator.search(q, limit=limit)
    except ValueError as e:
        error_mapper.raise_http(e)
    warmed: list[CoverageReport] = []
    if download:
        new = [m.symbol for m in results if not m.cached][:_SEARCH_WARM_LIMIT]
        if new:
            start, end = _default_range(
                coordinator.now(), None, None, days, settings.default_days
            )
            warmed = await coordinator.warm(new, start, end)
            done = {r.symbol for r in warmed if r.fetched}
            results = [
                m.model_copy(update={"cached": True}) if m.symbol in done else m for m in results
            ]
    return SearchResponse(query=q, results=results, warmed=warmed)


@router.post("/warm", response_model=list[CoverageReport])
async def warm_symbols(
    body: WarmRequest,
    coordinator: CoordinatorDep,
    error_mapper: ErrorMapperDep,
    settings: SettingsDep,
) -> list[CoverageReport]:
    """Fetch missing daily history for several symbols at once.

    Returns one coverage report per symbol; upstream failures show up in each
    report's ``failed`` list instead of failing the request.
    """
    start, end = _default_range(
        coordinator.now(), body.start, body.end, body.days, settings.default_days
    )
    try:
        return await coordinator.warm(body.symbols, start, end)
    except (CacheError, ValueError) as e:
        error_mapper.raise_http(e)


@router.get("/{symbol}/coverage", response_model=CoverageRecord)
def get_coverage(symbol: str, coordinator: CoordinatorDep) -> CoverageRecord:
    coverage = coordinator.get_coverage(symbol)
    if coverage is None:
        raise HTTPException(status_code=404, detail=f"No cached data for '{symbol.upper()}'")
    return coverage


@router.post("/{symbol}/refresh", response_model=CoverageReport)
async def refresh_symbol(
    symbol: str,
    coordinator: CoordinatorDep,
    error_mapper: ErrorMapperDep,
) -> CoverageReport:
    """Re-fetch the full cached range of a symbol.

    Closed bars that upstream now reports differently are returned as
    conflicts; the stored values are kept.
    """
    try:
        return await coordinator.refresh(symbol)
    except (CacheError, KeyError, ValueError) as e:
        error_mapper.raise_http(e, symbol=symbol.upper())


@router.delete("/{symbol}/data")
async def delete_symbol_data(symbol: str, coordinator: CoordinatorDep) -> dict[str, str | int]:
    """Drop all cached bars and coverage for a symbol."""
    deleted = await coordinator.forget(symbol)
    logger.info("Cleared cache for %s (%d bars)", symbol.upper(), deleted)
    return {"symbol": symbol.upper(), "deleted": deleted}
