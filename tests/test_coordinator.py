"""Tests for CacheCoordinator: series assembly, single-flight and degraded modes."""
import asyncio
from datetime import datetime, timezone

import pytest
from helpers import day, make_raw

from ohlc_cache.exceptions import InvalidRange
from ohlc_cache.schemas import Interval, SymbolMatch


def test_daily_series_then_cache_hit(coordinator, provider):
    first = asyncio.run(coordinator.get_series("aapl", "daily", day(2024, 3, 4), day(2024, 3, 8)))
    second = asyncio.run(coordinator.get_series("AAPL", "1d", day(2024, 3, 4), day(2024, 3, 8)))

    assert first.symbol == "AAPL"
    assert len(first.bars) == 5
    assert not first.partial
    assert not first.metadata.cached
    assert second.bars == first.bars
    assert second.metadata.cached
    assert second.metadata.points == 5
    assert len(provider.calls) == 1


def test_concurrent_identical_requests_fetch_once(coordinator, provider):
    async def scenario():
        provider.gate = asyncio.Event()
        requests = [
            asyncio.create_task(
                coordinator.get_series("AAPL", "daily", day(2024, 3, 4), day(2024, 3, 8))
            )
            for _ in range(2)
        ]
        await asyncio.sleep(0.01)
        provider.gate.set()
        return await asyncio.gather(*requests)

    first, second = asyncio.run(scenario())

    assert len(provider.calls) == 1
    assert first.bars == second.bars
    assert len(first.bars) == 5


def test_caller_timeout_serves_cache_and_fetch_completes(coordinator, provider):
    async def scenario():
        provider.gate = asyncio.Event()
        early = await coordinator.get_series(
            "AAPL", "daily", day(2024, 3, 4), day(2024, 3, 8), timeout=0.01
        )
        provider.gate.set()
        late = await coordinator.get_series("AAPL", "daily", day(2024, 3, 4), day(2024, 3, 8))
        return early, late

    early, late = asyncio.run(scenario())

    assert early.partial
    assert early.bars == []
    assert not late.partial
    assert len(late.bars) == 5
    assert len(provider.calls) == 1


def test_upstream_down_serves_cached_bars_as_partial(coordinator, provider):
    asyncio.run(coordinator.get_series("AAPL", "daily", day(2024, 3, 4), day(2024, 3, 8)))
    provider.fail_all = ValueError("down")

    series = asyncio.run(
        coordinator.get_series("AAPL", "daily", day(2024, 3, 4), day(2024, 3, 15))
    )

    assert series.partial
    assert len(series.bars) == 5
    assert len(series.failed_windows) == 1


def test_upstream_down_with_empty_cache(coordinator, provider):
    provider.fail_all = ValueError("down")

    series = asyncio.run(coordinator.get_series("AAPL", "weekly", day(2024, 3, 4), day(2024, 3, 8)))

    assert series.partial
    assert series.bars == []
    assert series.coverage is None


def test_weekly_scenario(coordinator, provider, clock):
    clock.set(datetime(2025, 9, 20, 12, 0, tzinfo=timezone.utc))
    provider.series["ACME"] = [
        make_raw(day(2025, 9, 1), 9.8, 10.5, 9.5, 10.0),
        make_raw(day(2025, 9, 2), 10.6, 11.5, 10.5, 11.0),
        make_raw(day(2025, 9, 3), 9.2, 9.5, 8.5, 9.0),
        make_raw(day(2025, 9, 4), 11.8, 12.5, 11.5, 12.0),
        make_raw(day(2025, 9, 5), 12.6, 13.5, 12.5, 13.0),
    ]

    series = asyncio.run(
        coordinator.get_series("ACME", Interval.WEEKLY, day(2025, 9, 3), day(2025, 9, 3))
    )

    assert not series.partial
    assert len(series.bars) == 1
    bar = series.bars[0]
    assert bar.bucket_start == day(2025, 9, 1)
    assert (bar.open, bar.high, bar.low, bar.close) == (9.8, 13.5, 8.5, 13.0)
    # The whole week was fetched even though only Wednesday was asked for.
    _, start, end = provider.calls[0]
    assert (start, end) == (day(2025, 9, 1), day(2025, 9, 6))


def test_current_week_is_partial(coordinator, clock):
    clock.set(datetime(2024, 3, 13, 18, 0, tzinfo=timezone.utc))  # Wednesday

    series = asyncio.run(
        coordinator.get_series("AAPL", "weekly", day(2024, 3, 4), day(2024, 3, 15))
    )

    assert [b.bucket_start for b in series.bars] == [day(2024, 3, 4), day(2024, 3, 11)]
    assert not series.bars[0].partial
    assert series.bars[1].partial
    assert series.partial


def test_monthly_series(coordinator):
    series = asyncio.run(
        coordinator.get_series("AAPL", "1mo", day(2024, 1, 10), day(2024, 2, 10))
    )

    assert [b.bucket_start for b in series.bars] == [day(2024, 1, 1), day(2024, 2, 1)]
    assert not series.partial


def test_overlapping_requests_never_duplicate_buckets(coordinator, store):
    for start, end in [
        (day(2024, 3, 4), day(2024, 3, 8)),
        (day(2024, 3, 6), day(2024, 3, 12)),
        (day(2024, 2, 26), day(2024, 3, 15)),
    ]:
        asyncio.run(coordinator.get_series("AAPL", "daily", start, end))

    series = asyncio.run(coordinator.get_series("AAPL", "daily", day(2024, 2, 26), day(2024, 3, 15)))
    buckets = [b.bucket_start for b in series.bars]
    assert buckets == sorted(set(buckets))
    assert len(buckets) == 15
    assert len(store.get_range("AAPL", day(2024, 2, 1), day(2024, 3, 31))) == 15


def test_inverted_range_raises(coordinator):
    with pytest.raises(InvalidRange):
        asyncio.run(coordinator.get_series("AAPL", "daily", day(2024, 3, 8), day(2024, 3, 4)))


def test_unknown_interval_raises(coordinator):
    with pytest.raises(ValueError):
        asyncio.run(coordinator.get_series("AAPL", "hourly", day(2024, 3, 4), day(2024, 3, 8)))


def test_refresh_reports_conflicts_without_overwriting(coordinator, provider, store):
    provider.series["AAPL"] = [make_raw(day(2024, 3, 4 + i), 10.0, 11.0, 9.0, 10.5) for i in range(5)]
    asyncio.run(coordinator.get_series("AAPL", "daily", day(2024, 3, 4), day(2024, 3, 8)))
    provider.series["AAPL"][2] = make_raw(day(2024, 3, 6), 10.0, 12.0, 9.0, 11.5)

    report = asyncio.run(coordinator.refresh("aapl"))

    assert [c.bucket_start for c in report.conflicts] == [day(2024, 3, 6)]
    assert store.get_range("AAPL", day(2024, 3, 6), day(2024, 3, 6))[0].close == 10.5


def test_refresh_unknown_symbol(coordinator):
    with pytest.raises(KeyError):
        asyncio.run(coordinator.refresh("NOPE"))


def test_forget_drops_cached_data(coordinator):
    asyncio.run(coordinator.get_series("AAPL", "daily", day(2024, 3, 4), day(2024, 3, 8)))

    assert asyncio.run(coordinator.forget("aapl")) == 5
    assert coordinator.get_coverage("AAPL") is None
    assert coordinator.list_symbols() == []


def test_daily_and_weekly_requests_share_one_fetch(coordinator, provider):
    async def scenario():
        provider.gate = asyncio.Event()
        daily = asyncio.create_task(
            coordinator.get_series("AAPL", "daily", day(2024, 3, 11), day(2024, 3, 15))
        )
        weekly = asyncio.create_task(
            coordinator.get_series("AAPL", "weekly", day(2024, 3, 11), day(2024, 3, 15))
        )
        await asyncio.sleep(0.01)
        provider.gate.set()
        return await asyncio.gather(daily, weekly)

    daily, weekly = asyncio.run(scenario())

    assert len(provider.calls) == 1
    assert len(daily.bars) == 5
    assert [b.bucket_start for b in weekly.bars] == [day(2024, 3, 11)]


def test_waiting_request_fetches_only_what_is_still_missing(coordinator, provider):
    async def scenario():
        provider.gate = asyncio.Event()
        daily = asyncio.create_task(
            coordinator.get_series("AAPL", "daily", day(2024, 3, 11), day(2024, 3, 15))
        )
        weekly = asyncio.create_task(
            coordinator.get_series("AAPL", "weekly", day(2024, 3, 4), day(2024, 3, 15))
        )
        await asyncio.sleep(0.01)
        provider.gate.set()
        return await asyncio.gather(daily, weekly)

    _, weekly = asyncio.run(scenario())

    # Today's open bar came from the first fetch; the second only backfills.
    assert [(start, end) for _, start, end in provider.calls] == [
        (day(2024, 3, 11), day(2024, 3, 16)),
        (day(2024, 3, 4), day(2024, 3, 9)),
    ]
    assert [b.bucket_start for b in weekly.bars] == [day(2024, 3, 4), day(2024, 3, 11)]


def test_empty_upstream_answer_is_fetched_again_later(coordinator, provider):
    provider.series["ZZZ"] = []
    first = asyncio.run(coordinator.get_series("ZZZ", "daily", day(2024, 2, 5), day(2024, 2, 9)))
    del provider.series["ZZZ"]
    second = asyncio.run(coordinator.get_series("ZZZ", "daily", day(2024, 2, 5), day(2024, 2, 9)))

    assert first.partial
    assert first.bars == []
    assert first.coverage is None
    assert not second.partial
    assert len(second.bars) == 5
    assert len(provider.calls) == 2


def test_warm_many_symbols(coordinator, provider):
    provider.series["BAD"] = []

    reports = asyncio.run(
        coordinator.warm(["aapl", "MSFT", "AAPL", " bad "], day(2024, 3, 4), day(2024, 3, 8))
    )

    assert [r.symbol for r in reports] == ["AAPL", "MSFT", "BAD"]
    assert reports[0].complete and reports[1].complete
    assert not reports[2].complete
    assert len(provider.calls) == 3
    assert [s.symbol for s in coordinator.list_symbols()] == ["AAPL", "MSFT"]


def test_warm_skips_what_is_cached(coordinator, provider):
    asyncio.run(coordinator.get_series("AAPL", "daily", day(2024, 3, 4), day(2024, 3, 8)))

    reports = asyncio.run(coordinator.warm(["AAPL"], day(2024, 3, 4), day(2024, 3, 8)))

    assert reports[0].fetched == []
    assert len(provider.calls) == 1


def test_warm_rejects_empty_symbol(coordinator):
    with pytest.raises(ValueError):
        asyncio.run(coordinator.warm(["AAPL", "  "], day(2024, 3, 4), day(2024, 3, 8)))


def test_search_lists_cached_symbols_first(coordinator, provider):
    asyncio.run(coordinator.warm(["AAPL"], day(2024, 3, 4), day(2024, 3, 8)))
    provider.matches = [
        SymbolMatch(symbol="APLE", name="Apple Hospitality REIT"),
        SymbolMatch(symbol="aapl", name="Apple Inc."),
    ]

    results = asyncio.run(coordinator.search(" aapl "))

    assert [(m.symbol, m.cached) for m in results] == [("AAPL", True), ("APLE", False)]
    assert results[0].name == "Apple Inc."
    assert provider.searches == ["aapl"]


def test_search_falls_back_to_cached_symbols(coordinator, provider):
    asyncio.run(coordinator.warm(["AAPL", "MSFT"], day(2024, 3, 4), day(2024, 3, 8)))
    provider.fail_all = ValueError("down")

    results = asyncio.run(coordinator.search("AAP"))

    assert [(m.symbol, m.cached) for m in results] == [("AAPL", True)]


def test_search_requires_query(coordinator):
    with pytest.raises(ValueError):
        asyncio.run(coordinator.search("   "))
