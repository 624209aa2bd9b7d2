"""Application lifespan: startup and shutdown.

Single place for all startup/shutdown logic (SRP). Used by main.py;
no business logic here, only wiring of infrastructure (logging, cache,
telemetry, DB engine dispose).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.core.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run startup then yield; on exit run shutdown.

    Startup order: logging, telemetry (if enabled), Redis cache.
    Shutdown order: cache disconnect, telemetry shutdown, SQL engine dispose.
    An access resolver may be placed on app.state.access_resolver before
    startup; otherwise fetches resolve to no data.
    """
    from app.shared.telemetry.logging import setup_logging

    settings = get_settings()
    setup_logging()

    # ---- Startup ----
    if settings.telemetry_enabled:
        from app.shared.telemetry.telemetry import TelemetryConfig, set_telemetry

        telemetry = TelemetryConfig(
            service_name=settings.app_name,
            service_version=settings.app_version,
            enabled=True,
            environment=settings.telemetry_environment,
        )
        telemetry.setup_telemetry(
            exporter_type=settings.telemetry_exporter,
            otlp_endpoint=settings.telemetry_otlp_endpoint,
            sample_rate=settings.telemetry_sample_rate,
        )
        set_telemetry(telemetry)
        telemetry.instrument_fastapi(app)
        telemetry.instrument_redis()
        telemetry.instrument_logging()
        if settings.database_url:
            from app.infrastructure.persistence import database

            database._ensure_engine()
            telemetry.instrument_sqlalchemy(database.engine)
        logger.info("Telemetry initialized")

    from app.infrastructure.cache.redis_cache import CacheService

    cache = getattr(app.state, "cache", None)
    if cache is None:
        cache = CacheService()
        await cache.connect()
        app.state.cache = cache

    if getattr(app.state, "access_resolver", None) is None:
        from app.infrastructure.services.access_resolver import DenyAllAccessResolver

        app.state.access_resolver = DenyAllAccessResolver()

    yield

    # ---- Shutdown ----
    if getattr(app.state, "cache", None) is not None:
        await app.state.cache.disconnect()
        app.state.cache = None
        logger.info("Cache disconnected")

    from app.shared.telemetry.telemetry import get_telemetry, set_telemetry

    telemetry_instance = get_telemetry()
    if telemetry_instance is not None:
        telemetry_instance.shutdown()
        set_telemetry(None)

    from app.infrastructure.persistence.database import dispose_engine

    await dispose_engine()
