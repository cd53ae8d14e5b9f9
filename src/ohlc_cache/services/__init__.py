"""Service layer: calendar, store, aggregation, incremental fetch and coordination."""
from ohlc_cache.services.aggregator import aggregate
from ohlc_cache.services.bar_store import BarStore
from ohlc_cache.services.calendar import TradingCalendar
from ohlc_cache.services.coordinator import CacheCoordinator
from ohlc_cache.services.fetcher import IncrementalFetcher

__all__ = [
    "BarStore",
    "CacheCoordinator",
    "IncrementalFetcher",
    "TradingCalendar",
    "aggregate",
]
