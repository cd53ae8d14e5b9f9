"""Error taxonomy for the bar cache.

InvalidRange is a caller error and is raised immediately. UpstreamUnavailable is
transient and retried by the fetcher before it surfaces. ConsistencyViolation and
ValidationFailure describe data problems; the store and fetcher record them in
their results instead of raising, so the rest of a batch still goes through.
"""
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ohlc_cache.schemas import CoverageReport


class CacheError(Exception):
    """Base class for bar cache errors."""


class InvalidRange(CacheError, ValueError):
    """Malformed request range (start after end)."""

    def __init__(self, start: datetime, end: datetime) -> None:
        super().__init__(f"Invalid range: start {start.isoformat()} is after end {end.isoformat()}")
        self.start = start
        self.end = end


class UpstreamUnavailable(CacheError):
    """Quote provider failed or timed out after all retry attempts.

    ``report`` carries whatever was learned before giving up (failed windows,
    rejected bars), when raised from ensure_coverage.
    """

    def __init__(self, message: str, report: "CoverageReport | None" = None) -> None:
        super().__init__(message)
        self.report = report


class ConsistencyViolation(CacheError):
    """Upstream returned values contradicting stored, closed history."""

    def __init__(self, symbol: str, bucket_start: datetime) -> None:
        super().__init__(
            f"Upstream data for '{symbol}' contradicts stored bar at {bucket_start.isoformat()}"
        )
        self.symbol = symbol
        self.bucket_start = bucket_start


class ValidationFailure(CacheError):
    """A single raw bar failed validation and was dropped."""

    def __init__(self, timestamp: datetime, reason: str) -> None:
        super().__init__(f"Rejected bar at {timestamp.isoformat()}: {reason}")
        self.timestamp = timestamp
        self.reason = reason
