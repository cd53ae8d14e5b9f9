"""Bar store: durable canonical daily bars plus per-symbol coverage records.

All writes go through merge(), which runs as one transaction under a
per-symbol lock. Closed history is never overwritten with different values;
such contradictions are kept out of storage and reported as conflicts.
"""
import logging
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager, nullcontext
from datetime import datetime

from sqlalchemy import delete, func
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, select

from ohlc_cache.clock import Clock
from ohlc_cache.db import BarRow, CoverageRow, session_scope
from ohlc_cache.exceptions import ConsistencyViolation, InvalidRange
from ohlc_cache.schemas import (Bar, Conflict, CoverageRecord, FetchWindow,
                                Interval, MergeResult, SymbolSummary)
from ohlc_cache.services.calendar import TradingCalendar
from ohlc_cache.utils import ensure_utc

logger = logging.getLogger(__name__)


def _bar_from_row(row: BarRow) -> Bar:
    return Bar(
        symbol=row.symbol,
        bucket_start=ensure_utc(row.bucket_start),
        open=row.open,
        high=row.high,
        low=row.low,
        close=row.close,
        volume=row.volume,
    )


def _coverage_from_row(row: CoverageRow) -> CoverageRecord:
    return CoverageRecord(
        symbol=row.symbol,
        earliest_bucket=ensure_utc(row.earliest_bucket),
        latest_bucket=ensure_utc(row.latest_bucket),
        last_refreshed_at=ensure_utc(row.last_refreshed_at),
    )


def _check_increasing(bars: Sequence[Bar]) -> None:
    for prev, cur in zip(bars, bars[1:]):
        if cur.bucket_start <= prev.bucket_start:
            raise ValueError(
                f"Bars must be strictly increasing by bucket_start; "
                f"{cur.bucket_start.isoformat()} follows {prev.bucket_start.isoformat()}"
            )


class BarStore:
    """Persistent daily bars keyed by (symbol, bucket_start) with coverage metadata."""

    def __init__(self, engine: Engine, calendar: TradingCalendar, clock: Clock) -> None:
        self._engine = engine
        self._calendar = calendar
        self._clock = clock
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        # A StaticPool hands every thread the same connection; sessions on it must not overlap.
        self._connection_lock = threading.Lock() if isinstance(engine.pool, StaticPool) else None

    def _lock_for(self, symbol: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(symbol, threading.Lock())

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._connection_lock or nullcontext(), session_scope(self._engine) as session:
            yield session

    def get_range(self, symbol: str, from_bucket: datetime, to_bucket: datetime) -> list[Bar]:
        """Stored daily bars in [from_bucket, to_bucket], ascending. Gaps are possible;
        check get_coverage() to know whether the range is complete."""
        if from_bucket > to_bucket:
            raise InvalidRange(from_bucket, to_bucket)
        statement = (
            select(BarRow)
            .where(
                BarRow.symbol == symbol,
                BarRow.bucket_start >= ensure_utc(from_bucket),
                BarRow.bucket_start <= ensure_utc(to_bucket),
            )
            .order_by(BarRow.bucket_start)
        )
        with self._session() as session:
            return [_bar_from_row(row) for row in session.exec(statement).all()]

    def get_coverage(self, symbol: str) -> CoverageRecord | None:
        with self._session() as session:
            row = session.get(CoverageRow, symbol)
            return _coverage_from_row(row) if row is not None else None

    def merge(
        self,
        symbol: str,
        bars: Sequence[Bar],
        *,
        window: FetchWindow | None = None,
    ) -> MergeResult:
        """Upsert daily bars and grow the coverage envelope, atomically per symbol.

        New buckets are inserted and identical values are left alone. A stored
        bucket that is still open, or was still open when last refreshed, is
        replaced. A closed bucket with different values is kept as stored and
        returned in ``conflicts``.

        Args:
            symbol: Normalized symbol.
            bars: Daily bars, strictly increasing by bucket_start.
            window: Daily range that was fetched to produce ``bars``. Coverage
                grows to include it even where upstream returned nothing. The
                caller keeps batches adjacent to the existing envelope.

        Raises:
            ValueError: if ``bars`` is not strictly increasing.
        """
        result = MergeResult(symbol=symbol)
        if not bars and window is None:
            return result
        _check_increasing(bars)
        now = self._clock.now()

        with self._lock_for(symbol), self._session() as session:
            coverage = session.get(CoverageRow, symbol)
            existing: dict[datetime, BarRow] = {}
            if bars:
                rows = session.exec(
                    select(BarRow).where(
                        BarRow.symbol == symbol,
                        BarRow.bucket_start >= ensure_utc(bars[0].bucket_start),
                        BarRow.bucket_start <= ensure_utc(bars[-1].bucket_start),
                    )
                ).all()
                existing = {ensure_utc(row.bucket_start): row for row in rows}

            for bar in bars:
                bucket = ensure_utc(bar.bucket_start)
                row = existing.get(bucket)
                if row is None:
                    session.add(
                        BarRow(
                            symbol=symbol,
                            bucket_start=bucket,
                            open=bar.open,
                            high=bar.high,
                            low=bar.low,
                            close=bar.close,
                            volume=bar.volume,
                        )
                    )
                    result.inserted += 1
                    continue
                stored = _bar_from_row(row)
                if stored.same_values(bar):
                    result.unchanged += 1
                elif self._is_mutable(bucket, coverage, now):
                    row.open, row.high, row.low = bar.open, bar.high, bar.low
                    row.close, row.volume = bar.close, bar.volume
                    session.add(row)
                    result.updated += 1
                else:
                    logger.warning("%s", ConsistencyViolation(symbol, bucket))
                    result.conflicts.append(
                        Conflict(bucket_start=bucket, stored=stored, incoming=bar)
                    )

            self._grow_coverage(session, symbol, coverage, bars, window, now)

        logger.info(
            "Merged %s: %d inserted, %d updated, %d unchanged, %d conflicts",
            symbol,
            result.inserted,
            result.updated,
            result.unchanged,
            len(result.conflicts),
        )
        return result

    def _is_mutable(self, bucket: datetime, coverage: CoverageRow | None, now: datetime) -> bool:
        bucket_end = self._calendar.bucket_end(bucket, Interval.DAILY)
        if bucket_end > now:
            return True
        if coverage is not None and ensure_utc(coverage.latest_bucket) == bucket:
            return ensure_utc(coverage.last_refreshed_at) < bucket_end
        return False

    def _grow_coverage(
        self,
        session: Session,
        symbol: str,
        coverage: CoverageRow | None,
        bars: Sequence[Bar],
        window: FetchWindow | None,
        now: datetime,
    ) -> None:
        lows = [ensure_utc(bars[0].bucket_start)] if bars else []
        highs = [ensure_utc(bars[-1].bucket_start)] if bars else []
        if window is not None:
            lows.append(ensure_utc(window.start))
            highs.append(ensure_utc(window.end))
        batch_low, batch_high = min(lows), max(highs)

        if coverage is None:
            session.add(
                CoverageRow(
                    symbol=symbol,
                    earliest_bucket=batch_low,
                    latest_bucket=batch_high,
                    last_refreshed_at=now,
                )
            )
            return

        latest = max(ensure_utc(coverage.latest_bucket), batch_high)
        coverage.earliest_bucket = min(ensure_utc(coverage.earliest_bucket), batch_low)
        coverage.latest_bucket = latest
        # last_refreshed_at tracks the latest bucket only; prefix backfills leave it alone.
        if batch_high >= latest:
            coverage.last_refreshed_at = now
        session.add(coverage)

    def list_symbols(self) -> list[SymbolSummary]:
        """Every cached symbol with its coverage envelope and stored bar count."""
        with self._session() as session:
            counts = dict(
                session.exec(
                    select(BarRow.symbol, func.count(BarRow.bucket_start)).group_by(BarRow.symbol)
                ).all()
            )
            rows = session.exec(select(CoverageRow).order_by(CoverageRow.symbol)).all()
            return [
                SymbolSummary(
                    symbol=row.symbol,
                    earliest_bucket=ensure_utc(row.earliest_bucket),
                    latest_bucket=ensure_utc(row.latest_bucket),
                    last_refreshed_at=ensure_utc(row.last_refreshed_at),
                    bars=counts.get(row.symbol, 0),
                )
                for row in rows
            ]

    def delete_symbol(self, symbol: str) -> int:
        """Drop all bars and the coverage record for a symbol; returns bars deleted."""
        with self._lock_for(symbol), self._session() as session:
            connection = session.connection()
            deleted = connection.execute(delete(BarRow).where(BarRow.symbol == symbol)).rowcount
            connection.execute(delete(CoverageRow).where(CoverageRow.symbol == symbol))
        logger.info("Deleted %d bars for %s", deleted, symbol)
        return deleted
