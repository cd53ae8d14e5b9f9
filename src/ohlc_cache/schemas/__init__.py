"""Pydantic schemas for API and runtime use. Persisted rows live in ohlc_cache.db."""
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class Interval(str, Enum):
    """Bar intervals served by the cache. Only DAILY is stored."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: "str | Interval") -> "Interval":
        """Resolve an interval name or one of the provider-style aliases (1day, 1wk, ...)."""
        if isinstance(value, cls):
            return value
        key = value.strip().lower()
        try:
            return _INTERVAL_ALIASES[key]
        except KeyError:
            raise ValueError(
                f"Unknown interval '{value}'. Use one of: {', '.join(i.value for i in cls)}"
            ) from None


_INTERVAL_ALIASES = {
    "daily": Interval.DAILY,
    "1d": Interval.DAILY,
    "1day": Interval.DAILY,
    "weekly": Interval.WEEKLY,
    "1wk": Interval.WEEKLY,
    "1week": Interval.WEEKLY,
    "monthly": Interval.MONTHLY,
    "1mo": Interval.MONTHLY,
    "1month": Interval.MONTHLY,
}


class RawBar(BaseModel):
    """Untrusted daily bar as returned by an upstream provider."""

    timestamp: datetime
    open: float | None = None
    high: float | None = None
    low: float | None = None
    close: float | None = None
    volume: float | None = None


class Bar(BaseModel):
    """One OHLCV candle for a symbol, keyed by its interval-aligned bucket start (UTC)."""

    model_config = {"frozen": True}

    symbol: str
    bucket_start: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    partial: bool = False  # aggregated from an incompletely covered bucket
    conflicted: bool = False  # upstream contradicted stored closed history

    def is_consistent(self) -> bool:
        """True when low <= min(open, close) <= max(open, close) <= high."""
        return self.low <= min(self.open, self.close) and max(self.open, self.close) <= self.high

    def same_values(self, other: "Bar") -> bool:
        """Compare OHLCV values only (flags and symbol are ignored)."""
        return (
            self.open == other.open
            and self.high == other.high
            and self.low == other.low
            and self.close == other.close
            and self.volume == other.volume
        )


class CoverageRecord(BaseModel):
    """Range of daily buckets known to be completely cached for a symbol."""

    symbol: str
    earliest_bucket: datetime
    latest_bucket: datetime
    last_refreshed_at: datetime


class FetchWindow(BaseModel):
    """Inclusive range of daily bucket starts requested from upstream."""

    model_config = {"frozen": True}

    start: datetime
    end: datetime


class FailedWindow(BaseModel):
    window: FetchWindow
    error: str


class RejectedBar(BaseModel):
    """A raw bar dropped by validation before reaching the store."""

    timestamp: datetime
    reason: str


class Conflict(BaseModel):
    """Upstream returned different values for an already stored, closed bucket."""

    bucket_start: datetime
    stored: Bar
    incoming: Bar


class MergeResult(BaseModel):
    symbol: str
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    conflicts: list[Conflict] = Field(default_factory=list)


class CoverageReport(BaseModel):
    """Outcome of one ensure_coverage call."""

    symbol: str
    fetched: list[FetchWindow] = Field(default_factory=list)
    failed: list[FailedWindow] = Field(default_factory=list)
    rejected: list[RejectedBar] = Field(default_factory=list)
    merge: MergeResult | None = None

    @property
    def complete(self) -> bool:
        return not self.failed

    @property
    def conflicts(self) -> list[Conflict]:
        return self.merge.conflicts if self.merge else []


class SeriesMetadata(BaseModel):
    points: int
    cached: bool
    last_update: datetime | None = None
    age_minutes: int | None = None


class SeriesResponse(BaseModel):
    """Response of get_series: best available bars plus completeness flags."""

    symbol: str
    interval: Interval
    bars: list[Bar]
    partial: bool
    coverage: CoverageRecord | None = None
    failed_windows: list[FailedWindow] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)
    rejected: list[RejectedBar] = Field(default_factory=list)
    metadata: SeriesMetadata


class SymbolSummary(BaseModel):
    symbol: str
    earliest_bucket: datetime
    latest_bucket: datetime
    last_refreshed_at: datetime
    bars: int


class SymbolMatch(BaseModel):
    """One symbol search hit; ``cached`` when the store already holds bars for it."""

    symbol: str
    name: str | None = None
    exchange: str | None = None
    quote_type: str | None = None
    cached: bool = False


class SearchResponse(BaseModel):
    query: str
    results: list[SymbolMatch]
    warmed: list[CoverageReport] = Field(default_factory=list)


class WarmRequest(BaseModel):
    """Body of POST /symbols/warm. Without start, ``days`` (or the server default) back from end."""

    symbols: list[str] = Field(min_length=1)
    start: datetime | None = None
    end: datetime | None = None
    days: int | None = Field(default=None, ge=1)


__all__ = [
    "Bar",
    "Conflict",
    "CoverageRecord",
    "CoverageReport",
    "FailedWindow",
    "FetchWindow",
    "Interval",
    "MergeResult",
    "RawBar",
    "RejectedBar",
    "SearchResponse",
    "SeriesMetadata",
    "SeriesResponse",
    "SymbolMatch",
    "SymbolSummary",
    "WarmRequest",
]
