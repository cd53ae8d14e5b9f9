"""Shared utilities for the bar cache."""

from datetime import datetime, timezone


def parse_timestamp(ts: float) -> datetime:
    """Convert a Unix timestamp (seconds) to an aware UTC datetime."""
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_symbol(symbol: str) -> str:
    """Normalize a ticker symbol (trimmed, uppercase)."""
    return symbol.strip().upper()
