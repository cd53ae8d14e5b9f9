"""Trading calendar: maps instants to daily, weekly and monthly bucket starts.

Saturdays and Sundays are the only non-trading days modeled. Exchange holidays
are expected to be absent from provider data already.

Week buckets start on Monday. A Sunday belongs to the week that starts the next
day, so a week bucket spans Sunday..Saturday in calendar terms. Month buckets
start on the first weekday of the month.
"""
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from ohlc_cache.exceptions import InvalidRange
from ohlc_cache.schemas import Interval

SATURDAY = 5
SUNDAY = 6

_ONE_DAY = timedelta(days=1)


def _first_weekday_on_or_after(day: date) -> date:
    while day.weekday() >= SATURDAY:
        day += _ONE_DAY
    return day


def _last_weekday_on_or_before(day: date) -> date:
    while day.weekday() >= SATURDAY:
        day -= _ONE_DAY
    return day


def _first_of_next_month(day: date) -> date:
    return (day.replace(day=1) + timedelta(days=32)).replace(day=1)


class TradingCalendar:
    """Pure bucket arithmetic in an exchange timezone; inputs and outputs are UTC instants."""

    def __init__(self, tz: tzinfo = timezone.utc) -> None:
        self._tz = tz

    @classmethod
    def for_timezone(cls, name: str) -> "TradingCalendar":
        """Build a calendar from an IANA zone name ("UTC", "America/New_York")."""
        if name.upper() == "UTC":
            return cls(timezone.utc)
        return cls(ZoneInfo(name))

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def local_date(self, instant: datetime) -> date:
        """Exchange-local calendar date of an instant (naive instants are taken as UTC)."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self._tz).date()

    def start_of(self, day: date) -> datetime:
        """UTC instant of local midnight for an exchange date."""
        return datetime.combine(day, time.min, tzinfo=self._tz).astimezone(timezone.utc)

    def is_trading_day(self, instant: datetime) -> bool:
        return self.local_date(instant).weekday() < SATURDAY

    def bucket_date(self, instant: datetime, interval: Interval) -> date:
        day = self.local_date(instant)
        if interval is Interval.DAILY:
            return day
        if interval is Interval.WEEKLY:
            if day.weekday() == SUNDAY:
                # Sunday opens the coming trading week, never the one that just ended.
                return day + _ONE_DAY
            return day - timedelta(days=day.weekday())
        if interval is Interval.MONTHLY:
            return _first_weekday_on_or_after(day.replace(day=1))
        raise ValueError(f"Unsupported interval: {interval}")

    def bucket_start(self, instant: datetime, interval: Interval) -> datetime:
        """Start instant of the bucket containing ``instant``."""
        return self.start_of(self.bucket_date(instant, interval))

    def bucket_bounds(self, bucket_start: datetime, interval: Interval) -> tuple[datetime, datetime]:
        """Calendar period [start, end) whose instants all map to this bucket."""
        day = self.bucket_date(bucket_start, interval)
        if interval is Interval.DAILY:
            return self.start_of(day), self.start_of(day + _ONE_DAY)
        if interval is Interval.WEEKLY:
            return self.start_of(day - _ONE_DAY), self.start_of(day + timedelta(days=6))
        first = day.replace(day=1)
        return self.start_of(first), self.start_of(_first_of_next_month(first))

    def bucket_end(self, bucket_start: datetime, interval: Interval) -> datetime:
        """Exclusive end of the bucket; the bucket is closed once now >= this."""
        return self.bucket_bounds(bucket_start, interval)[1]

    def next_bucket(self, bucket_start: datetime, interval: Interval) -> datetime:
        """Start of the following bucket. Daily steps skip weekends."""
        day = self.bucket_date(bucket_start, interval)
        if interval is Interval.DAILY:
            return self.start_of(_first_weekday_on_or_after(day + _ONE_DAY))
        if interval is Interval.WEEKLY:
            return self.start_of(day + timedelta(days=7))
        return self.start_of(_first_weekday_on_or_after(_first_of_next_month(day)))

    def next_trading_day(self, instant: datetime) -> datetime:
        return self.next_bucket(instant, Interval.DAILY)

    def previous_trading_day(self, instant: datetime) -> datetime:
        return self.start_of(_last_weekday_on_or_before(self.local_date(instant) - _ONE_DAY))

    def first_trading_day_on_or_after(self, instant: datetime) -> datetime:
        return self.start_of(_first_weekday_on_or_after(self.local_date(instant)))

    def last_trading_day_on_or_before(self, instant: datetime) -> datetime:
        return self.start_of(_last_weekday_on_or_before(self.local_date(instant)))

    def enumerate_buckets(self, interval: Interval, start: datetime, end: datetime) -> list[datetime]:
        """Ordered bucket starts of every bucket touching [start, end].

        Daily enumeration yields trading days only.

        Raises:
            InvalidRange: if start is after end.
        """
        if start > end:
            raise InvalidRange(start, end)
        bucket = self.bucket_start(start, interval)
        if interval is Interval.DAILY and not self.is_trading_day(bucket):
            bucket = self.next_bucket(bucket, interval)
        buckets: list[datetime] = []
        while bucket <= end:
            buckets.append(bucket)
            bucket = self.next_bucket(bucket, interval)
        return buckets

    def trading_days(self, bucket_start: datetime, interval: Interval) -> list[datetime]:
        """Daily bucket starts of the trading days inside one bucket's calendar period."""
        period_start, period_end = self.bucket_bounds(bucket_start, interval)
        return self.enumerate_buckets(
            Interval.DAILY, period_start, period_end - timedelta(microseconds=1)
        )
