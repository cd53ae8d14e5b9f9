"""Service helpers."""
from ohlc_cache.services.utils.single_flight import SingleFlight

__all__ = ["SingleFlight"]
