"""Tests for TradingCalendar bucket arithmetic."""
from datetime import datetime, timedelta, timezone

import pytest
from helpers import day

from ohlc_cache.exceptions import InvalidRange
from ohlc_cache.schemas import Interval
from ohlc_cache.services.calendar import TradingCalendar


@pytest.fixture
def cal():
    return TradingCalendar()


class TestBucketStart:
    def test_daily_truncates_to_midnight(self, cal):
        instant = datetime(2024, 3, 15, 18, 42, tzinfo=timezone.utc)
        assert cal.bucket_start(instant, Interval.DAILY) == day(2024, 3, 15)

    def test_weekly_midweek_maps_to_monday(self, cal):
        assert cal.bucket_start(day(2025, 9, 3), Interval.WEEKLY) == day(2025, 9, 1)

    def test_weekly_saturday_stays_in_its_week(self, cal):
        assert cal.bucket_start(day(2025, 9, 6), Interval.WEEKLY) == day(2025, 9, 1)

    def test_weekly_sunday_maps_forward(self, cal):
        sunday = datetime(2025, 9, 7, 12, 0, tzinfo=timezone.utc)
        assert cal.bucket_start(sunday, Interval.WEEKLY) == day(2025, 9, 8)

    @pytest.mark.parametrize(
        "instant, expected",
        [
            (day(2024, 9, 15), day(2024, 9, 2)),  # Sept 1 is a Sunday
            (day(2024, 6, 28), day(2024, 6, 3)),  # June 1 is a Saturday
            (day(2024, 8, 20), day(2024, 8, 1)),  # Aug 1 is a Thursday
            (day(2024, 9, 1), day(2024, 9, 2)),
        ],
    )
    def test_monthly_is_first_weekday(self, cal, instant, expected):
        assert cal.bucket_start(instant, Interval.MONTHLY) == expected

    def test_naive_instants_are_utc(self, cal):
        assert cal.bucket_start(datetime(2024, 3, 15, 9), Interval.DAILY) == day(2024, 3, 15)

    def test_exchange_timezone(self):
        cal = TradingCalendar.for_timezone("America/New_York")
        # 03:00 UTC on Mar 15 is still Mar 14 in New York (EDT, UTC-4).
        instant = datetime(2024, 3, 15, 3, 0, tzinfo=timezone.utc)
        assert cal.bucket_start(instant, Interval.DAILY) == datetime(
            2024, 3, 14, 4, 0, tzinfo=timezone.utc
        )


class TestNavigation:
    def test_next_trading_day_skips_weekend(self, cal):
        assert cal.next_trading_day(day(2024, 3, 15)) == day(2024, 3, 18)

    def test_previous_trading_day_skips_weekend(self, cal):
        assert cal.previous_trading_day(day(2024, 3, 18)) == day(2024, 3, 15)

    def test_is_trading_day(self, cal):
        assert cal.is_trading_day(day(2024, 3, 15))
        assert not cal.is_trading_day(day(2024, 3, 16))
        assert not cal.is_trading_day(day(2024, 3, 17))

    def test_weekly_bounds_span_sunday_to_saturday(self, cal):
        start, end = cal.bucket_bounds(day(2025, 9, 8), Interval.WEEKLY)
        assert start == day(2025, 9, 7)
        assert end == day(2025, 9, 14)

    def test_monthly_bucket_end_is_first_of_next_month(self, cal):
        assert cal.bucket_end(day(2024, 9, 2), Interval.MONTHLY) == day(2024, 10, 1)

    def test_next_monthly_bucket(self, cal):
        assert cal.next_bucket(day(2024, 5, 1), Interval.MONTHLY) == day(2024, 6, 3)

    def test_trading_days_of_week(self, cal):
        days = cal.trading_days(day(2025, 9, 1), Interval.WEEKLY)
        assert days == [day(2025, 9, 1) + timedelta(days=i) for i in range(5)]


class TestEnumerateBuckets:
    def test_daily_skips_weekends(self, cal):
        assert cal.enumerate_buckets(Interval.DAILY, day(2024, 3, 8), day(2024, 3, 12)) == [
            day(2024, 3, 8),
            day(2024, 3, 11),
            day(2024, 3, 12),
        ]

    def test_daily_starting_on_weekend(self, cal):
        buckets = cal.enumerate_buckets(Interval.DAILY, day(2024, 3, 16), day(2024, 3, 18))
        assert buckets == [day(2024, 3, 18)]

    def test_weekly(self, cal):
        buckets = cal.enumerate_buckets(Interval.WEEKLY, day(2025, 9, 1), day(2025, 9, 20))
        assert buckets == [day(2025, 9, 1), day(2025, 9, 8), day(2025, 9, 15)]

    def test_monthly(self, cal):
        buckets = cal.enumerate_buckets(Interval.MONTHLY, day(2024, 5, 15), day(2024, 9, 10))
        assert buckets == [
            day(2024, 5, 1),
            day(2024, 6, 3),
            day(2024, 7, 1),
            day(2024, 8, 1),
            day(2024, 9, 2),
        ]

    def test_is_restartable(self, cal):
        first = cal.enumerate_buckets(Interval.DAILY, day(2024, 3, 1), day(2024, 3, 31))
        second = cal.enumerate_buckets(Interval.DAILY, day(2024, 3, 1), day(2024, 3, 31))
        assert first == second
        assert len(first) == 21

    def test_start_after_end_raises(self, cal):
        with pytest.raises(InvalidRange):
            cal.enumerate_buckets(Interval.DAILY, day(2024, 3, 12), day(2024, 3, 8))
