"""Database package: models and session management."""
from ohlc_cache.db.models import BarRow, CoverageRow, UTCTimestamp
from ohlc_cache.db.sessions import create_db_engine, init_db, session_scope

__all__ = [
    "BarRow",
    "CoverageRow",
    "UTCTimestamp",
    "create_db_engine",
    "init_db",
    "session_scope",
]
