"""Cache coordinator: the single entry point for series requests.

get_series() never fails because upstream is down or slow; it serves whatever
the store has and sets ``partial``. Fetches are serialized per symbol through
a SingleFlight so concurrent requests whose trading days are already being
fetched hit upstream once, whatever interval they asked for.
"""
import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from ohlc_cache.clock import Clock
from ohlc_cache.exceptions import InvalidRange, UpstreamUnavailable
from ohlc_cache.schemas import (Bar, CoverageRecord, CoverageReport, Interval,
                                SeriesMetadata, SeriesResponse, SymbolMatch,
                                SymbolSummary)
from ohlc_cache.services.aggregator import aggregate
from ohlc_cache.services.bar_store import BarStore
from ohlc_cache.services.calendar import TradingCalendar
from ohlc_cache.services.fetcher import IncrementalFetcher
from ohlc_cache.services.utils import SingleFlight
from ohlc_cache.utils import ensure_utc, normalize_symbol

logger = logging.getLogger(__name__)

_Range = tuple[datetime, datetime]


def _range_covers(in_flight: _Range, wanted: _Range) -> bool:
    return in_flight[0] <= wanted[0] and wanted[1] <= in_flight[1]


def _never_covers(in_flight: _Range, wanted: _Range) -> bool:
    # A forced refresh always runs its own fetch.
    return False


class CacheCoordinator:
    """Serves complete, aligned series for any interval from the daily cache."""

    def __init__(
        self,
        fetcher: IncrementalFetcher,
        store: BarStore,
        calendar: TradingCalendar,
        clock: Clock,
        *,
        wait_timeout: float | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            fetcher: Fills coverage gaps from upstream.
            store: Bar store read after every fetch.
            calendar: Calendar for bucket alignment.
            clock: Source of "now".
            wait_timeout: Default seconds a caller waits for the fetch before
                being served cached data; None waits for the fetch to finish.
        """
        self._fetcher = fetcher
        self._store = store
        self._calendar = calendar
        self._clock = clock
        self._wait_timeout = wait_timeout
        self._flight = SingleFlight()

    def _normalize(self, symbol: str) -> str:
        sym = normalize_symbol(symbol)
        if not sym:
            raise ValueError("Symbol is required")
        return sym

    def _daily_range(self, start: datetime, end: datetime, interval: Interval) -> _Range:
        """Daily buckets spanning every calendar day of the edge buckets."""
        cal = self._calendar
        first = cal.bucket_start(start, interval)
        last = cal.bucket_start(end, interval)
        if interval is Interval.DAILY:
            return first, last
        period_start = cal.bucket_bounds(first, interval)[0]
        period_end = cal.bucket_bounds(last, interval)[1]
        return (
            cal.bucket_start(period_start, Interval.DAILY),
            cal.bucket_start(period_end - timedelta(microseconds=1), Interval.DAILY),
        )

    async def _ensure(
        self,
        symbol: str,
        daily: _Range,
        *,
        force: bool = False,
        timeout: float | None = None,
    ) -> CoverageReport:
        # Compare what would actually be fetched, so a weekly Sun..Sat range
        # joins a daily Mon..Fri fetch of the same trading days.
        scope = self._fetcher.trading_range(*daily)
        if scope is None:
            return CoverageReport(symbol=symbol)
        # A call that finished after this one arrived already refreshed the open bucket.
        fresh_since = None if force else self._clock.now()
        return await asyncio.wait_for(
            self._flight.do(
                symbol,
                lambda: self._fetcher.ensure_coverage(
                    symbol, daily[0], daily[1], force=force, fresh_since=fresh_since
                ),
                scope=scope,
                covers=_never_covers if force else _range_covers,
            ),
            timeout=timeout,
        )

    async def get_series(
        self,
        symbol: str,
        interval: Interval | str,
        start: datetime,
        end: datetime,
        *,
        timeout: float | None = None,
    ) -> SeriesResponse:
        """Bars of ``interval`` for every bucket touching [start, end].

        Missing daily history is fetched first. When upstream fails, or
        ``timeout`` elapses before the fetch finishes, cached bars are served
        with partial=True; the fetch itself keeps running.

        Raises:
            InvalidRange: if start is after end.
            ValueError: for an empty symbol or unknown interval.
        """
        sym = self._normalize(symbol)
        interval = Interval.parse(interval)
        start, end = ensure_utc(start), ensure_utc(end)
        if start > end:
            raise InvalidRange(start, end)
        daily = self._daily_range(start, end, interval)
        wait = self._wait_timeout if timeout is None else timeout

        report: CoverageReport | None = None
        timed_out = False
        try:
            report = await self._ensure(sym, daily, timeout=wait)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning("Fetch for %s still running after %ss; serving cached bars", sym, wait)
        except UpstreamUnavailable as e:
            report = e.report
            logger.warning("Upstream unavailable for %s; serving cached bars: %s", sym, e)

        coverage = await asyncio.to_thread(self._store.get_coverage, sym)
        stored = await asyncio.to_thread(self._store.get_range, sym, *daily)
        daily_bars = self._flag_conflicts(stored, report)
        available = (coverage.earliest_bucket, coverage.latest_bucket) if coverage else None
        lo = self._calendar.bucket_start(start, interval)
        hi = self._calendar.bucket_start(end, interval)
        bars = [
            b
            for b in aggregate(daily_bars, interval, self._calendar, available=available)
            if lo <= b.bucket_start <= hi
        ]

        partial = (
            timed_out
            or (report is not None and not report.complete)
            or self._missing_coverage(coverage, daily)
            or any(b.partial for b in bars)
        )
        return SeriesResponse(
            symbol=sym,
            interval=interval,
            bars=bars,
            partial=partial,
            coverage=coverage,
            failed_windows=report.failed if report else [],
            conflicts=report.conflicts if report else [],
            rejected=report.rejected if report else [],
            metadata=self._metadata(bars, coverage, report),
        )

    def _flag_conflicts(self, bars: list[Bar], report: CoverageReport | None) -> list[Bar]:
        if report is None or not report.conflicts:
            return bars
        conflicted = {c.bucket_start for c in report.conflicts}
        return [
            b.model_copy(update={"conflicted": True}) if b.bucket_start in conflicted else b
            for b in bars
        ]

    def _missing_coverage(self, coverage: CoverageRecord | None, daily: _Range) -> bool:
        """True if some trading day of the range, up to today, is outside coverage."""
        cal = self._calendar
        today = cal.bucket_start(self._clock.now(), Interval.DAILY)
        first = cal.first_trading_day_on_or_after(daily[0])
        last = cal.last_trading_day_on_or_before(min(daily[1], today))
        if first > last:
            return False
        if coverage is None:
            return True
        return coverage.earliest_bucket > first or coverage.latest_bucket < last

    def _metadata(
        self,
        bars: list[Bar],
        coverage: CoverageRecord | None,
        report: CoverageReport | None,
    ) -> SeriesMetadata:
        if coverage is None:
            return SeriesMetadata(points=len(bars), cached=False)
        age = self._clock.now() - coverage.last_refreshed_at
        return SeriesMetadata(
            points=len(bars),
            cached=report is None or not report.fetched,
            last_update=coverage.last_refreshed_at,
            age_minutes=int(age.total_seconds() // 60),
        )

    async def refresh(self, symbol: str) -> CoverageReport:
        """Re-fetch the whole cached range of a symbol up to today.

        Closed buckets that come back different are reported as conflicts and
        never overwritten.

        Raises:
            KeyError: if nothing is cached for the symbol.
            UpstreamUnavailable: if upstream failed for the whole range.
        """
        sym = self._normalize(symbol)
        coverage = await asyncio.to_thread(self._store.get_coverage, sym)
        if coverage is None:
            raise KeyError(sym)
        today = self._calendar.bucket_start(self._clock.now(), Interval.DAILY)
        daily = (coverage.earliest_bucket, max(coverage.latest_bucket, today))
        logger.info("Forced refresh of %s", sym)
        return await self._ensure(sym, daily, force=True)

    async def forget(self, symbol: str) -> int:
        """Delete a symbol's cached bars once any in-flight fetch for it is done."""
        sym = self._normalize(symbol)
        await self._flight.wait(sym)
        return await asyncio.to_thread(self._store.delete_symbol, sym)

    async def warm(
        self, symbols: Iterable[str], start: datetime, end: datetime
    ) -> list[CoverageReport]:
        """Fill daily coverage for [start, end] for many symbols concurrently.

        Each symbol goes through its own single-flight, so warming never
        duplicates a fetch a series request already started. Upstream failures
        are returned in the symbol's report rather than raised.

        Raises:
            InvalidRange: if start is after end.
            ValueError: if a symbol is empty.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if start > end:
            raise InvalidRange(start, end)
        syms = list(dict.fromkeys(self._normalize(s) for s in symbols))
        daily = self._daily_range(start, end, Interval.DAILY)
        logger.info("Warming %d symbols for %s..%s", len(syms), daily[0].date(), daily[1].date())
        return list(await asyncio.gather(*(self._warm_one(sym, daily) for sym in syms)))

    async def _warm_one(self, symbol: str, daily: _Range) -> CoverageReport:
        try:
            return await self._ensure(symbol, daily)
        except UpstreamUnavailable as e:
            logger.warning("Warming %s failed: %s", symbol, e)
            return e.report if e.report is not None else CoverageReport(symbol=symbol)

    async def search(self, query: str, *, limit: int = 10) -> list[SymbolMatch]:
        """Symbols matching ``query``: cached ones first, then upstream hits.

        When upstream search fails only cached matches are returned.

        Raises:
            ValueError: for an empty query.
        """
        needle = normalize_symbol(query)
        if not needle:
            raise ValueError("Search query is required")
        cached = {s.symbol for s in await asyncio.to_thread(self._store.list_symbols)}
        try:
            remote = await self._fetcher.search(query.strip(), limit)
        except UpstreamUnavailable as e:
            logger.warning("Symbol search upstream failed, using cached symbols only: %s", e)
            remote = []

        matches = {s: SymbolMatch(symbol=s, cached=True) for s in cached if needle in s}
        for match in remote:
            sym = normalize_symbol(match.symbol)
            matches[sym] = match.model_copy(update={"symbol": sym, "cached": sym in cached})
        ranked = sorted(matches.values(), key=lambda m: (not m.cached, m.symbol != needle, m.symbol))
        return ranked[:limit]

    def now(self) -> datetime:
        """Current instant on the coordinator's clock; routes default ``end`` to it."""
        return self._clock.now()

    def list_symbols(self) -> list[SymbolSummary]:
        return self._store.list_symbols()

    def get_coverage(self, symbol: str) -> CoverageRecord | None:
        return self._store.get_coverage(self._normalize(symbol))
