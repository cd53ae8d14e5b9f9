"""Database models for the bar cache.

Only canonical daily bars and their coverage envelope are persisted. Weekly and
monthly bars are derived on read and never stored. Datetime columns use
UTCTimestamp: aware UTC in, aware UTC out, stored as UTC wall time.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel

from ohlc_cache.utils import ensure_utc


class UTCTimestamp(TypeDecorator):
    """DateTime column bound and loaded as aware UTC on every backend."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        return ensure_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class BarRow(SQLModel, table=True):
    """One canonical daily bar."""

    __tablename__ = "bars"

    symbol: str = Field(primary_key=True)
    bucket_start: datetime = Field(sa_column=Column(UTCTimestamp(), primary_key=True))
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class CoverageRow(SQLModel, table=True):
    """Contiguous range of daily buckets known to be cached for a symbol."""

    __tablename__ = "coverage"

    symbol: str = Field(primary_key=True)
    earliest_bucket: datetime = Field(sa_column=Column(UTCTimestamp(), nullable=False))
    latest_bucket: datetime = Field(sa_column=Column(UTCTimestamp(), nullable=False))
    last_refreshed_at: datetime = Field(sa_column=Column(UTCTimestamp(), nullable=False))
