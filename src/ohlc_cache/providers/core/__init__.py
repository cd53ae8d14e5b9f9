"""Core provider abstractions."""
from ohlc_cache.providers.core.error_mapper import CacheErrorMapper
from ohlc_cache.providers.core.quote_provider_abc import QuoteProviderABC

__all__ = [
    "CacheErrorMapper",
    "QuoteProviderABC",
]
