"""Incremental fetcher: fetch only the daily buckets the store does not cover yet.

Windows are planned against the symbol's coverage record so the envelope stays
contiguous: a prefix window always reaches the day before ``earliest`` and a
suffix window always starts right after ``latest`` (or at ``latest`` while
that bucket may still change).
"""
import asyncio
import logging
import math
from collections.abc import Sequence
from datetime import datetime

import httpx

from ohlc_cache.clock import Clock
from ohlc_cache.exceptions import (InvalidRange, UpstreamUnavailable,
                                   ValidationFailure)
from ohlc_cache.providers.core import QuoteProviderABC
from ohlc_cache.schemas import (Bar, CoverageRecord, CoverageReport,
                                FailedWindow, FetchWindow, Interval, RawBar,
                                RejectedBar, SymbolMatch)
from ohlc_cache.services.bar_store import BarStore
from ohlc_cache.services.calendar import TradingCalendar
from ohlc_cache.utils import ensure_utc, normalize_symbol

logger = logging.getLogger(__name__)

# Exceptions from providers we retry; all others propagate (e.g. bugs, cancellation).
_PROVIDER_EXCEPTIONS: tuple[type[Exception], ...] = (
    ValueError,
    KeyError,
    TypeError,
    TimeoutError,
    OSError,
    asyncio.TimeoutError,
    httpx.HTTPError,
)


def _describe(window: FetchWindow) -> str:
    return f"{window.start.date().isoformat()}..{window.end.date().isoformat()}"


class IncrementalFetcher:
    """Plans, fetches, validates and merges the missing parts of a daily range."""

    def __init__(
        self,
        provider: QuoteProviderABC,
        store: BarStore,
        calendar: TradingCalendar,
        clock: Clock,
        *,
        timeout: float | None = 10.0,
        max_attempts: int = 3,
        backoff: float = 0.5,
    ) -> None:
        """Initialize the fetcher.

        Args:
            provider: Upstream daily bar source.
            store: Bar store receiving validated bars.
            calendar: Calendar for daily bucket arithmetic.
            clock: Source of "now" (today's bucket is the upper clamp).
            timeout: Seconds allowed per upstream call; None disables it.
            max_attempts: Upstream calls per window before giving up.
            backoff: Delay before the first retry; doubled on each retry.
        """
        self._provider = provider
        self._store = store
        self._calendar = calendar
        self._clock = clock
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff

    def trading_range(
        self, from_bucket: datetime, to_bucket: datetime
    ) -> tuple[datetime, datetime] | None:
        """First and last trading day of the range up to today, or None if there is none."""
        cal = self._calendar
        today = cal.bucket_start(self._clock.now(), Interval.DAILY)
        first = cal.first_trading_day_on_or_after(cal.bucket_start(from_bucket, Interval.DAILY))
        last = cal.last_trading_day_on_or_before(
            min(cal.bucket_start(to_bucket, Interval.DAILY), today)
        )
        if first > last:
            return None
        return first, last

    def plan(
        self,
        symbol: str,
        from_bucket: datetime,
        to_bucket: datetime,
        *,
        force: bool = False,
        fresh_since: datetime | None = None,
    ) -> list[FetchWindow]:
        """Windows that must be fetched so coverage includes [from_bucket, to_bucket].

        The range is normalized to trading days and clamped to today's bucket.
        Closed buckets already inside coverage are never planned again unless
        ``force`` is set, in which case one window spans the whole range.

        An open latest bucket is re-fetched unless it was refreshed at or
        after ``fresh_since``.

        Raises:
            InvalidRange: if from_bucket is after to_bucket.
        """
        if from_bucket > to_bucket:
            raise InvalidRange(from_bucket, to_bucket)
        bounds = self.trading_range(from_bucket, to_bucket)
        if bounds is None:
            return []
        first, last = bounds

        coverage = self._store.get_coverage(normalize_symbol(symbol))
        if coverage is None:
            return [FetchWindow(start=first, end=last)]

        windows = self._gap_windows(coverage, first, last, fresh_since)
        if force:
            start = min([first] + [w.start for w in windows])
            end = max([last] + [w.end for w in windows])
            return [FetchWindow(start=start, end=end)]
        return windows

    def _gap_windows(
        self,
        coverage: CoverageRecord,
        first: datetime,
        last: datetime,
        fresh_since: datetime | None,
    ) -> list[FetchWindow]:
        cal = self._calendar
        earliest = ensure_utc(coverage.earliest_bucket)
        latest = ensure_utc(coverage.latest_bucket)
        refreshed = ensure_utc(coverage.last_refreshed_at)
        windows: list[FetchWindow] = []

        if first < earliest:
            windows.append(FetchWindow(start=first, end=cal.previous_trading_day(earliest)))

        # The latest bucket stays mutable until it is fetched after it closed.
        latest_open = refreshed < cal.bucket_end(latest, Interval.DAILY)
        if latest_open and fresh_since is not None and refreshed >= ensure_utc(fresh_since):
            latest_open = False
        suffix_start = latest if latest_open else cal.next_trading_day(latest)
        if last >= suffix_start:
            windows.append(FetchWindow(start=suffix_start, end=last))
        return windows

    def _closed_trading_days(self, window: FetchWindow) -> int:
        now = self._clock.now()
        return sum(
            1
            for bucket in self._calendar.enumerate_buckets(Interval.DAILY, window.start, window.end)
            if self._calendar.bucket_end(bucket, Interval.DAILY) <= now
        )

    async def ensure_coverage(
        self,
        symbol: str,
        from_bucket: datetime,
        to_bucket: datetime,
        *,
        force: bool = False,
        fresh_since: datetime | None = None,
    ) -> CoverageReport:
        """Fetch whatever is missing for [from_bucket, to_bucket] and merge it.

        Windows run concurrently, each with its own retries. Failed windows
        are reported and the successful ones are still merged. A window of
        several closed trading days that comes back empty counts as failed,
        so an upstream glitch never marks those days as covered.

        Returns:
            What was fetched, what failed and what validation rejected.

        Raises:
            InvalidRange: if from_bucket is after to_bucket.
            UpstreamUnavailable: if every planned window failed; carries the report.
        """
        sym = normalize_symbol(symbol)
        windows = await asyncio.to_thread(
            self.plan, sym, from_bucket, to_bucket, force=force, fresh_since=fresh_since
        )
        report = CoverageReport(symbol=sym)
        if not windows:
            return report
        logger.info(
            "Fetching %s%s: %s",
            sym,
            " (forced)" if force else "",
            ", ".join(_describe(w) for w in windows),
        )

        results = await asyncio.gather(
            *(self._fetch_window(sym, w) for w in windows), return_exceptions=True
        )

        bars: list[Bar] = []
        last_error: UpstreamUnavailable | None = None
        for window, result in zip(windows, results):
            if isinstance(result, UpstreamUnavailable):
                last_error = result
                report.failed.append(FailedWindow(window=window, error=str(result)))
                logger.warning("Giving up on %s %s: %s", sym, _describe(window), result)
                continue
            if isinstance(result, BaseException):
                raise result
            if not result and self._closed_trading_days(window) > 1:
                error = f"{self._provider.name} returned no bars for {_describe(window)}"
                report.failed.append(FailedWindow(window=window, error=error))
                logger.warning("Not marking %s %s as covered: %s", sym, _describe(window), error)
                continue
            accepted, rejected = self.validate(sym, result, window)
            bars.extend(accepted)
            report.rejected.extend(rejected)
            report.fetched.append(window)

        if not report.fetched:
            raise UpstreamUnavailable(
                f"All {len(windows)} fetch windows failed for '{sym}'", report=report
            ) from last_error

        merged_window = FetchWindow(
            start=min(w.start for w in report.fetched),
            end=max(w.end for w in report.fetched),
        )
        bars.sort(key=lambda b: b.bucket_start)
        report.merge = await asyncio.to_thread(self._store.merge, sym, bars, window=merged_window)
        return report

    async def _fetch_window(self, symbol: str, window: FetchWindow) -> list[RawBar]:
        """One upstream call for a window, retried with exponential backoff."""
        start = window.start
        end = self._calendar.bucket_end(window.end, Interval.DAILY)
        delay = self._backoff
        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await asyncio.wait_for(
                    self._provider.fetch(symbol, start, end), timeout=self._timeout
                )
            except _PROVIDER_EXCEPTIONS as e:
                last_error = e
                logger.warning(
                    "Fetch %s %s failed (attempt %d/%d): %r",
                    symbol,
                    _describe(window),
                    attempt,
                    self._max_attempts,
                    e,
                )
                if attempt < self._max_attempts:
                    await asyncio.sleep(delay)
                    delay *= 2
        raise UpstreamUnavailable(
            f"{self._provider.name} failed for '{symbol}' {_describe(window)} "
            f"after {self._max_attempts} attempts: {last_error!r}"
        ) from last_error

    async def search(self, query: str, limit: int = 10) -> list[SymbolMatch]:
        """Symbols upstream knows for ``query``; one attempt, same timeout as fetches.

        Raises:
            UpstreamUnavailable: if the provider call failed or timed out.
        """
        try:
            return await asyncio.wait_for(
                self._provider.search(query, limit), timeout=self._timeout
            )
        except _PROVIDER_EXCEPTIONS as e:
            raise UpstreamUnavailable(
                f"{self._provider.name} search for '{query}' failed: {e!r}"
            ) from e

    def validate(
        self, symbol: str, raw_bars: Sequence[RawBar], window: FetchWindow
    ) -> tuple[list[Bar], list[RejectedBar]]:
        """Split raw provider output into canonical daily bars and rejects."""
        accepted: list[Bar] = []
        rejected: list[RejectedBar] = []
        for raw in raw_bars:
            try:
                bar = self._to_bar(symbol, raw, window)
                if accepted and bar.bucket_start <= accepted[-1].bucket_start:
                    raise ValidationFailure(raw.timestamp, "timestamp not increasing")
            except ValidationFailure as e:
                logger.warning("%s %s", symbol, e)
                rejected.append(RejectedBar(timestamp=e.timestamp, reason=e.reason))
                continue
            accepted.append(bar)
        return accepted, rejected

    def _to_bar(self, symbol: str, raw: RawBar, window: FetchWindow) -> Bar:
        prices = (raw.open, raw.high, raw.low, raw.close)
        if any(p is None for p in prices):
            raise ValidationFailure(raw.timestamp, "missing price")
        if not all(math.isfinite(p) for p in prices):
            raise ValidationFailure(raw.timestamp, "non-finite price")
        volume = 0.0 if raw.volume is None else raw.volume
        if not math.isfinite(volume) or volume < 0:
            raise ValidationFailure(raw.timestamp, f"invalid volume {volume}")

        bucket = self._calendar.bucket_start(ensure_utc(raw.timestamp), Interval.DAILY)
        if bucket < window.start or bucket > window.end:
            raise ValidationFailure(raw.timestamp, f"outside window {_describe(window)}")

        bar = Bar(
            symbol=symbol,
            bucket_start=bucket,
            open=raw.open,
            high=raw.high,
            low=raw.low,
            close=raw.close,
            volume=volume,
        )
        if not bar.is_consistent():
            raise ValidationFailure(raw.timestamp, "OHLC values out of order")
        return bar
