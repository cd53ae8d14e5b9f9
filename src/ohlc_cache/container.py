"""DI container. Build via init_container(); routers resolve services through deps.py."""
from dependency_injector import containers, providers

from ohlc_cache.clock import SystemClock
from ohlc_cache.config import Settings
from ohlc_cache.db import create_db_engine
from ohlc_cache.providers import CacheErrorMapper, create_quote_provider
from ohlc_cache.services import (BarStore, CacheCoordinator,
                                 IncrementalFetcher, TradingCalendar)


class Container(containers.DeclarativeContainer):
    settings = providers.Singleton(Settings.from_env)

    clock = providers.Singleton(SystemClock)
    calendar = providers.Singleton(
        TradingCalendar.for_timezone, settings.provided.exchange_tz
    )
    engine = providers.Singleton(
        create_db_engine,
        settings.provided.database_url,
        echo=settings.provided.sql_echo,
    )

    quote_provider = providers.Singleton(
        create_quote_provider,
        settings.provided.provider_name,
        timeout=settings.provided.fetch_timeout_seconds,
    )

    store = providers.Singleton(BarStore, engine, calendar, clock)
    fetcher = providers.Singleton(
        IncrementalFetcher,
        quote_provider,
        store,
        calendar,
        clock,
        timeout=settings.provided.fetch_timeout_seconds,
        max_attempts=settings.provided.fetch_max_attempts,
        backoff=settings.provided.fetch_backoff_seconds,
    )
    coordinator = providers.Singleton(
        CacheCoordinator,
        fetcher,
        store,
        calendar,
        clock,
        wait_timeout=settings.provided.wait_timeout_seconds,
    )

    error_mapper = providers.Singleton(
        CacheErrorMapper, resource_name="Symbol", api_name="Quote provider"
    )


def init_container(settings: Settings | None = None) -> Container:
    """Create the container, optionally pinned to explicit settings."""
    container = Container()
    if settings is not None:
        container.settings.override(providers.Object(settings))
    return container
