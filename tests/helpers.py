"""Shared builders and a scripted quote provider for the test suite."""
import asyncio
from datetime import datetime, timedelta, timezone

from ohlc_cache.providers.core import QuoteProviderABC
from ohlc_cache.schemas import Bar, RawBar, SymbolMatch

UTC = timezone.utc


def day(year: int, month: int, dom: int) -> datetime:
    """UTC midnight, i.e. a daily bucket start on the default calendar."""
    return datetime(year, month, dom, tzinfo=UTC)


def make_bar(symbol, bucket, o, h, l, c, v=1000.0) -> Bar:
    return Bar(symbol=symbol, bucket_start=bucket, open=o, high=h, low=l, close=c, volume=v)


def make_raw(bucket, o, h, l, c, v=1000.0) -> RawBar:
    # Yahoo stamps daily bars at the session open, not at midnight.
    return RawBar(
        timestamp=bucket + timedelta(hours=14, minutes=30),
        open=o,
        high=h,
        low=l,
        close=c,
        volume=v,
    )


def synthetic_raw(bucket: datetime) -> RawBar:
    base = 100.0 + bucket.toordinal() % 7
    return make_raw(bucket, base, base + 1.0, base - 1.0, base + 0.5, 1000.0 + bucket.day)


class FakeProvider(QuoteProviderABC):
    """Scripted provider.

    Every weekday gets a synthetic bar unless ``series`` pins the bars for a
    symbol. ``failures`` are raised one per call before anything else,
    ``fail_all`` on every call, and ``fail_starts`` for windows starting on
    one of the given instants. ``gate`` blocks every call until it is set.
    ``matches`` is what search() returns.
    """

    name = "fake"

    def __init__(self) -> None:
        self.calls: list[tuple[str, datetime, datetime]] = []
        self.series: dict[str, list[RawBar]] = {}
        self.failures: list[Exception] = []
        self.fail_all: Exception | None = None
        self.fail_starts: set[datetime] = set()
        self.delay: float = 0.0
        self.gate: asyncio.Event | None = None
        self.matches: list[SymbolMatch] = []
        self.searches: list[str] = []
        self.closed = False

    async def fetch(self, symbol: str, start: datetime, end: datetime) -> list[RawBar]:
        self.calls.append((symbol, start, end))
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)
        if self.fail_all is not None:
            raise self.fail_all
        if start in self.fail_starts:
            raise ValueError(f"scripted failure at {start.isoformat()}")
        if symbol in self.series:
            return [b for b in self.series[symbol] if start <= b.timestamp < end]
        bars = []
        bucket = start
        while bucket < end:
            if bucket.weekday() < 5:
                bars.append(synthetic_raw(bucket))
            bucket += timedelta(days=1)
        return bars

    async def close(self) -> None:
        self.closed = True

    async def search(self, query: str, limit: int = 10) -> list[SymbolMatch]:
        self.searches.append(query)
        if self.fail_all is not None:
            raise self.fail_all
        return self.matches[:limit]
