"""API routers.

Includes routes for:
- /series - Cached OHLC bars per symbol and interval
- /symbols - Cached symbols, coverage, forced refresh and deletion
"""
from ohlc_cache.routers.series import router as series_router
from ohlc_cache.routers.symbols import router as symbols_router

__all__ = [
    "series_router",
    "symbols_router",
]
