"""Fixtures: in-memory database, frozen clock, scripted provider and wired services."""
from datetime import datetime, timezone

import pytest
from helpers import FakeProvider

from ohlc_cache.clock import FrozenClock
from ohlc_cache.db import create_db_engine, init_db
from ohlc_cache.services import (BarStore, CacheCoordinator,
                                 IncrementalFetcher, TradingCalendar)

# Friday afternoon; today's daily bucket is still open.
NOW = datetime(2024, 3, 15, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def calendar():
    return TradingCalendar()


@pytest.fixture
def store(engine, calendar, clock):
    return BarStore(engine, calendar, clock)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def fetcher(provider, store, calendar, clock):
    return IncrementalFetcher(
        provider, store, calendar, clock, timeout=1.0, max_attempts=3, backoff=0.0
    )


@pytest.fixture
def coordinator(fetcher, store, calendar, clock):
    return CacheCoordinator(fetcher, store, calendar, clock)
