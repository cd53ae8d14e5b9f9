"""Runtime settings read from environment variables."""
import os
from dataclasses import dataclass

_DEFAULT_URL = "sqlite:///./ohlc_cache.sqlite"


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Service configuration. Build with Settings.from_env() at startup."""

    database_url: str = _DEFAULT_URL
    sql_echo: bool = False
    provider_name: str = "yfinance"  # yfinance | yahoo_chart
    exchange_tz: str = "UTC"
    fetch_timeout_seconds: float = 10.0
    fetch_max_attempts: int = 3
    fetch_backoff_seconds: float = 0.5
    wait_timeout_seconds: float | None = None
    default_days: int = 730
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8001

    @classmethod
    def from_env(cls) -> "Settings":
        wait_timeout = os.getenv("OHLC_WAIT_TIMEOUT_SECONDS")
        return cls(
            database_url=os.getenv("DATABASE_URL", _DEFAULT_URL),
            sql_echo=_env_bool("SQL_ECHO"),
            provider_name=os.getenv("OHLC_PROVIDER", "yfinance").strip().lower(),
            exchange_tz=os.getenv("OHLC_EXCHANGE_TZ", "UTC"),
            fetch_timeout_seconds=float(os.getenv("OHLC_FETCH_TIMEOUT_SECONDS", "10")),
            fetch_max_attempts=int(os.getenv("OHLC_FETCH_MAX_ATTEMPTS", "3")),
            fetch_backoff_seconds=float(os.getenv("OHLC_FETCH_BACKOFF_SECONDS", "0.5")),
            wait_timeout_seconds=float(wait_timeout) if wait_timeout else None,
            default_days=int(os.getenv("OHLC_DEFAULT_DAYS", "730")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "8001")),
        )
