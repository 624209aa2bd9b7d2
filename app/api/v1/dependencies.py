"""Presentation-layer dependency injection (composition root).

Provides FastAPI Depends() for the cache store, the analytics cache
service and the management-token guard. Use cases are built from
infrastructure implementations here; routes depend only on these
dependencies, not on infra directly.
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from app.application.interfaces.services import IAccessResolver, ICacheService
from app.application.use_cases.cache_stats import CacheStatsCollector
from app.application.use_cases.cache_warming import CacheWarmingService
from app.application.use_cases.data_source_cache import DataSourceCacheService
from app.core.config import get_settings
from app.infrastructure.persistence.database import get_session_factory
from app.infrastructure.persistence.repositories import (
    DataSourceRepository,
    SqlAnalyticsExecutor,
)
from app.infrastructure.services.access_resolver import DenyAllAccessResolver

logger = logging.getLogger(__name__)

ADMIN_TOKEN_HEADER = "X-Cache-Admin-Token"


def require_cache_admin(
    x_cache_admin_token: Annotated[str | None, Header(alias=ADMIN_TOKEN_HEADER)] = None,
) -> None:
    """Guard for /cache endpoints.

    - Settings must define CACHE_ADMIN_TOKEN (503 otherwise).
    - Requests must send X-Cache-Admin-Token matching it (401 otherwise).
    """
    settings = get_settings()
    if settings.cache_admin_token is None:
        raise HTTPException(
            status_code=503,
            detail="Cache management is not configured (CACHE_ADMIN_TOKEN is not set).",
        )
    expected = settings.cache_admin_token.get_secret_value()
    if not x_cache_admin_token or not hmac.compare_digest(
        x_cache_admin_token.encode(), expected.encode()
    ):
        logger.warning("SECURITY: rejected cache management request with bad admin token")
        raise HTTPException(status_code=401, detail="Invalid cache admin token")


def get_cache(request: Request) -> ICacheService:
    """Cache store created at startup (see app.core.lifespan)."""
    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        raise HTTPException(status_code=503, detail="Cache store is not initialized")
    return cache


def get_access_resolver(request: Request) -> IAccessResolver:
    """Access resolver wired at startup; fails closed when none was provided."""
    resolver = getattr(request.app.state, "access_resolver", None)
    return resolver if resolver is not None else DenyAllAccessResolver()


def get_cache_stats_collector(
    cache: Annotated[ICacheService, Depends(get_cache)],
) -> CacheStatsCollector:
    settings = get_settings()
    return CacheStatsCollector(
        cache,
        sample_size=settings.cache_stats_sample_size,
        largest_entries=settings.cache_stats_largest_entries,
    )


def get_data_source_cache_service(
    cache: Annotated[ICacheService, Depends(get_cache)],
    access_resolver: Annotated[IAccessResolver, Depends(get_access_resolver)],
    stats_collector: Annotated[CacheStatsCollector, Depends(get_cache_stats_collector)],
) -> DataSourceCacheService:
    """Compose the analytics cache service over the SQL catalog and executor."""
    settings = get_settings()
    session_factory = get_session_factory()
    repo = DataSourceRepository(session_factory)
    executor = SqlAnalyticsExecutor(session_factory)
    warmer = CacheWarmingService(
        cache,
        repo,
        executor,
        ttl=settings.cache_ttl_analytics,
        lock_ttl=settings.cache_warm_lock_ttl,
        cooldown=settings.cache_auto_warm_cooldown,
    )
    return DataSourceCacheService(
        cache,
        catalog=repo,
        column_registry=repo,
        executor=executor,
        access_resolver=access_resolver,
        ttl=settings.cache_ttl_analytics,
        warmer=warmer,
        stats_collector=stats_collector,
        auto_warm_enabled=settings.cache_auto_warm_enabled,
        auto_warm_cooldown=settings.cache_auto_warm_cooldown,
    )
