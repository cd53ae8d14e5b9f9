"""Maps cache and provider exceptions to HTTP responses."""
import asyncio
from dataclasses import dataclass

import httpx
from fastapi import HTTPException

from ohlc_cache.exceptions import (ConsistencyViolation, InvalidRange,
                                   UpstreamUnavailable)


def _caused_by_timeout(exc: BaseException) -> bool:
    cause = exc.__cause__
    while cause is not None:
        if isinstance(cause, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
            return True
        cause = cause.__cause__
    return False


@dataclass(frozen=True)
class CacheErrorMapper:
    """Maps bar cache errors to HTTP (status_code, detail).

    Routers use one instance so every endpoint reports the same statuses for
    the same failure class.
    """

    resource_name: str = "Symbol"
    api_name: str = "Quote provider"

    def to_http(
        self,
        exc: Exception,
        symbol: str | None = None,
    ) -> tuple[int, str]:
        """Map an exception to (status_code, detail) for HTTP responses.

        Args:
            exc: The exception raised by the cache or a provider.
            symbol: Optional symbol to include in detail (e.g. "AAPL").

        Returns:
            (status_code, detail) suitable for HTTPException(status_code=..., detail=...).
        """
        if isinstance(exc, InvalidRange):
            return (400, str(exc))
        if isinstance(exc, ConsistencyViolation):
            return (409, str(exc))
        if isinstance(exc, UpstreamUnavailable):
            if _caused_by_timeout(exc):
                return (504, f"Request to {self.api_name} timed out for '{symbol}'")
            return (502, f"{self.api_name} error")
        if isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            if status == 404:
                detail = (
                    f"{self.resource_name} not found"
                    if symbol is None
                    else f"{self.resource_name} '{symbol}' not found"
                )
                return (404, detail)
            if status >= 500:
                return (502, f"{self.api_name} error")
            return (status, f"{self.api_name} error")
        if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
            detail = "Request timed out"
            if symbol is not None:
                detail = f"Request to {self.api_name} timed out for '{symbol}'"
            return (504, detail)
        if isinstance(exc, KeyError):
            detail = (
                f"{self.resource_name} not found"
                if symbol is None
                else f"{self.resource_name} '{symbol}' not found"
            )
            return (404, detail)
        if isinstance(exc, ValueError):
            return (400, str(exc) or "Invalid request")
        return (500, "Internal server error")

    def raise_http(
        self,
        exc: Exception,
        symbol: str | None = None,
    ) -> None:
        """Map exception to HTTP and raise HTTPException. Never returns."""
        status_code, detail = self.to_http(exc, symbol=symbol)
        raise HTTPException(status_code=status_code, detail=detail) from exc
