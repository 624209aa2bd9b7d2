"""Warm the analytics cache: repopulate the widest entries per data source.

Usage:
    uv run python -m scripts.warm_cache [data_source_id]
If data_source_id is omitted, warms every active data source.
Requires DATABASE_URL and a reachable Redis. Safe to run from several
hosts at once: a per-data-source lock makes concurrent runs skip.
Exit code 1 on configuration errors or when any data source failed.
"""

import asyncio
import sys

import app.infrastructure.persistence.database as database
from app.application.use_cases.cache_warming import CacheWarmingService
from app.core.config import get_settings
from app.domain.exceptions import AnalyticsCacheException
from app.infrastructure.cache.redis_cache import CacheService
from app.infrastructure.persistence.repositories import (
    DataSourceRepository,
    SqlAnalyticsExecutor,
)
from app.shared.telemetry.logging import setup_logging


async def main() -> int:
    """Warm one data source (argv[1]) or all active ones; return the process exit code."""
    settings = get_settings()
    setup_logging()
    database._ensure_engine()
    if database.AsyncSessionLocal is None:
        print("DATABASE_URL is not configured", file=sys.stderr)
        return 1

    data_source_id: int | None = None
    if len(sys.argv) > 1:
        try:
            data_source_id = int(sys.argv[1])
        except ValueError:
            print(f"Invalid data source id: {sys.argv[1]}", file=sys.stderr)
            return 1

    cache = CacheService()
    await cache.connect()
    if not cache.is_available():
        print("Redis is not available; nothing to warm", file=sys.stderr)
        await database.dispose_engine()
        return 1

    repo = DataSourceRepository(database.AsyncSessionLocal)
    warmer = CacheWarmingService(
        cache,
        repo,
        SqlAnalyticsExecutor(database.AsyncSessionLocal),
        ttl=settings.cache_ttl_analytics,
        lock_ttl=settings.cache_warm_lock_ttl,
        cooldown=settings.cache_auto_warm_cooldown,
    )
    try:
        if data_source_id is not None:
            try:
                result = await warmer.warm(data_source_id)
            except AnalyticsCacheException as e:
                print(f"{e.error_code}: {e.message}", file=sys.stderr)
                return 1
            if result.skipped:
                print(f"Data source {data_source_id}: skipped (warm already in progress)")
            else:
                print(
                    f"Data source {data_source_id}: {result.entries_cached} entries, "
                    f"{result.total_rows} rows in {result.duration_ms} ms"
                )
            return 0

        summary = await warmer.warm_all()
        print(
            f"Done. Warmed {summary.data_sources_warmed}, failed {summary.data_sources_failed}, "
            f"{summary.total_entries_cached} entries, {summary.total_rows} rows "
            f"in {summary.duration_ms} ms"
        )
        return 1 if summary.data_sources_failed else 0
    finally:
        await cache.disconnect()
        await database.dispose_engine()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
