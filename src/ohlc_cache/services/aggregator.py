"""Fold canonical daily bars into weekly or monthly bars.

Pure functions, no I/O. Derived bars are recomputed on every read and never
stored, so they cannot drift from the daily series.
"""
import math
from collections.abc import Sequence
from datetime import datetime

from ohlc_cache.schemas import Bar, Interval
from ohlc_cache.services.calendar import TradingCalendar


def aggregate(
    daily_bars: Sequence[Bar],
    interval: Interval,
    calendar: TradingCalendar,
    *,
    available: tuple[datetime, datetime] | None = None,
) -> list[Bar]:
    """Group daily bars by their ``interval`` bucket and fold each group.

    open is the first daily open, close the last daily close, high the max,
    low the min and volume the sum. Input order does not matter: bars are
    sorted by bucket_start first, so the same set of daily bars always yields
    the same output.

    Args:
        daily_bars: Daily bars for one symbol, unique by bucket_start.
        interval: Target interval. DAILY returns the sorted input unchanged.
        calendar: Calendar used to resolve bucket starts.
        available: Inclusive daily range known to be completely cached. A
            bucket with trading days outside it is emitted with partial=True.
            Defaults to the first..last input bar.

    Returns:
        Aggregated bars in ascending bucket order.
    """
    ordered = sorted(daily_bars, key=lambda b: b.bucket_start)
    if interval is Interval.DAILY or not ordered:
        return ordered
    if available is None:
        available = (ordered[0].bucket_start, ordered[-1].bucket_start)

    groups: dict[datetime, list[Bar]] = {}
    for bar in ordered:
        groups.setdefault(calendar.bucket_start(bar.bucket_start, interval), []).append(bar)

    return [
        _fold(bucket, group, partial=not _fully_available(calendar, bucket, interval, available))
        for bucket, group in groups.items()
    ]


def _fully_available(
    calendar: TradingCalendar,
    bucket: datetime,
    interval: Interval,
    available: tuple[datetime, datetime],
) -> bool:
    days = calendar.trading_days(bucket, interval)
    return bool(days) and days[0] >= available[0] and days[-1] <= available[1]


def _fold(bucket: datetime, group: list[Bar], *, partial: bool) -> Bar:
    first, last = group[0], group[-1]
    return Bar(
        symbol=first.symbol,
        bucket_start=bucket,
        open=first.open,
        high=max(b.high for b in group),
        low=min(b.low for b in group),
        close=last.close,
        volume=math.fsum(b.volume for b in group),
        partial=partial,
        conflicted=any(b.conflicted for b in group),
    )
