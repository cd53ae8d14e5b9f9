"""Abstract base class for upstream quote providers."""
from abc import ABC, abstractmethod
from datetime import datetime

from ohlc_cache.schemas import RawBar, SymbolMatch


class QuoteProviderABC(ABC):
    """Base interface for upstream daily bar sources.

    Providers are treated as untrusted: the fetcher validates everything they
    return before it reaches the store.
    """

    name: str = "provider"

    @abstractmethod
    async def fetch(self, symbol: str, start: datetime, end: datetime) -> list[RawBar]:
        """Fetch raw daily bars for a symbol.

        Args:
            symbol: Normalized symbol (e.g. "AAPL").
            start: Start of the window (inclusive, aware UTC).
            end: End of the window (exclusive, aware UTC).

        Returns:
            Raw bars ordered by timestamp. Errors propagate as exceptions
            (ValueError, httpx errors, timeouts).
        """

    @abstractmethod
    async def search(self, query: str, limit: int = 10) -> list[SymbolMatch]:
        """Look up equity symbols matching a free-text query (ticker or company name)."""

    async def close(self) -> None:
        """Clean up resources (connections, clients).

        Override in subclasses if cleanup is needed.
        """

    async def __aenter__(self) -> "QuoteProviderABC":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        """Async context manager exit - calls close()."""
        await self.close()
