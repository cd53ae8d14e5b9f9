"""FastAPI dependencies: resolve services from the container on app.state.

The container is built by create_app() (main.py); these getters are used by
Depends() so tests can swap any provider on the container.
"""
from typing import Annotated

from fastapi import Depends, Request

from ohlc_cache.config import Settings
from ohlc_cache.providers import CacheErrorMapper
from ohlc_cache.services import CacheCoordinator


def get_coordinator(request: Request) -> CacheCoordinator:
    """Resolve the CacheCoordinator singleton."""
    return request.app.state.container.coordinator()


def get_error_mapper(request: Request) -> CacheErrorMapper:
    return request.app.state.container.error_mapper()


def get_settings(request: Request) -> Settings:
    return request.app.state.container.settings()


# Type aliases for route injection
CoordinatorDep = Annotated[CacheCoordinator, Depends(get_coordinator)]
ErrorMapperDep = Annotated[CacheErrorMapper, Depends(get_error_mapper)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
