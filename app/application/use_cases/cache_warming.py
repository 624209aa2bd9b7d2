"""Cache warming: repopulate the widest entries of a data source under a lock.

Measure-based sources are grouped by (measure, frequency) and written one
entry per group at the measure level; table-based sources are written as a
single entry at the data-source level. Rows are never permission-filtered
here, so every entry holds the widest dataset for its key.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from typing import TYPE_CHECKING

from app.application.dtos.analytics import DataSourceConfig, Row
from app.application.dtos.cache import CachedEntry, WarmAllResult, WarmResult
from app.application.services.cache_keys import (
    auto_warm_cooldown_key,
    build_key,
    warm_lock_key,
    warm_metadata_key,
)
from app.application.services.query_builder import build_full_table_query, is_valid_identifier
from app.core.constants import COLUMN_MEASURE, FREQUENCY_COLUMNS
from app.domain.enums import DataSourceType
from app.domain.exceptions import DataSourceNotFoundException, InvalidDataSourceConfigException
from app.domain.value_objects import CacheKeyComponents
from app.shared.telemetry.tracing import add_span_attributes, traced
from app.shared.utils.datetime import utc_now

if TYPE_CHECKING:
    from app.application.interfaces.repositories import IAnalyticsExecutor, IDataSourceCatalog
    from app.application.interfaces.services import ICacheService

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL = 300
DEFAULT_COOLDOWN = 14400


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def group_by_measure_frequency(rows: list[Row]) -> dict[tuple[str, str], list[Row]]:
    """Group rows by (measure, frequency); rows missing either are left out."""
    groups: dict[tuple[str, str], list[Row]] = defaultdict(list)
    for row in rows:
        measure = row.get(COLUMN_MEASURE)
        frequency = next(
            (row[col] for col in FREQUENCY_COLUMNS if row.get(col) is not None), None
        )
        if measure is None or frequency is None:
            continue
        groups[(str(measure), str(frequency))].append(row)
    return dict(groups)


class CacheWarmingService:
    """Bulk-populate cache entries for one or all active data sources.

    Safe to run concurrently from several processes: a per-data-source
    SET NX EX lock lets exactly one warm proceed; the rest report skipped.
    """

    def __init__(
        self,
        cache: "ICacheService",
        catalog: "IDataSourceCatalog",
        executor: "IAnalyticsExecutor",
        ttl: int,
        lock_ttl: int = DEFAULT_LOCK_TTL,
        cooldown: int = DEFAULT_COOLDOWN,
    ) -> None:
        self.cache = cache
        self.catalog = catalog
        self.executor = executor
        self.ttl = ttl
        self.lock_ttl = lock_ttl
        self.cooldown = cooldown

    @traced("analytics_cache.warm")
    async def warm(self, data_source_id: int) -> WarmResult:
        """Warm one data source. Returns skipped=True if another warm holds the lock.

        Raises:
            DataSourceNotFoundException: Unknown or inactive data source.
            InvalidDataSourceConfigException: Catalog identifiers unsafe for SQL.
        """
        started = time.perf_counter()
        config = await self.catalog.get(data_source_id)
        if config is None or not config.is_active:
            raise DataSourceNotFoundException(data_source_id)

        lock_key = warm_lock_key(data_source_id)
        token = await self.cache.acquire_lock(lock_key, self.lock_ttl)
        if token is None:
            if self.cache.is_available():
                logger.info("Warm already in progress for data source %s, skipping", data_source_id)
            else:
                logger.warning("Cache unavailable, skipping warm of data source %s", data_source_id)
            return WarmResult(duration_ms=_elapsed_ms(started), skipped=True)

        try:
            rows = await self._fetch_all(config)
            entries = await self._write_entries(config, rows)
            await self._record_warm(data_source_id)
        finally:
            await self.cache.release_lock(lock_key, token)

        result = WarmResult(
            entries_cached=entries,
            total_rows=len(rows),
            duration_ms=_elapsed_ms(started),
        )
        add_span_attributes(
            data_source_id=data_source_id,
            entries_cached=result.entries_cached,
            total_rows=result.total_rows,
        )
        logger.info(
            "Warmed data source %s: %d entries, %d rows in %d ms",
            data_source_id,
            result.entries_cached,
            result.total_rows,
            result.duration_ms,
        )
        return result

    async def warm_all(self) -> WarmAllResult:
        """Warm every active data source; a failure in one does not stop the rest."""
        started = time.perf_counter()
        result = WarmAllResult()
        for config in await self.catalog.list_active():
            try:
                warmed = await self.warm(config.id)
            except Exception:
                logger.exception("Warming data source %s failed", config.id)
                result.data_sources_failed += 1
                continue
            if warmed.skipped:
                continue
            result.data_sources_warmed += 1
            result.total_entries_cached += warmed.entries_cached
            result.total_rows += warmed.total_rows
        result.duration_ms = _elapsed_ms(started)
        logger.info(
            "Warm-all finished: %d warmed, %d failed, %d entries in %d ms",
            result.data_sources_warmed,
            result.data_sources_failed,
            result.total_entries_cached,
            result.duration_ms,
        )
        return result

    async def _fetch_all(self, config: DataSourceConfig) -> list[Row]:
        for identifier in (config.schema_name, config.table_name):
            if not is_valid_identifier(identifier):
                raise InvalidDataSourceConfigException(config.id, identifier)
        sql, args = build_full_table_query(config.schema_name, config.table_name)
        return await self.executor.execute(sql, args)

    async def _write_entries(self, config: DataSourceConfig, rows: list[Row]) -> int:
        if not rows:
            return 0
        if config.data_source_type is DataSourceType.TABLE_BASED:
            groups = {CacheKeyComponents(data_source_id=config.id): rows}
        else:
            groups = {}
            for (measure, frequency), group in group_by_measure_frequency(rows).items():
                try:
                    components = CacheKeyComponents(
                        data_source_id=config.id, measure=measure, frequency=frequency
                    )
                except ValueError as e:
                    logger.warning(
                        "Skipping group (%r, %r) of data source %s: %s",
                        measure,
                        frequency,
                        config.id,
                        e,
                    )
                    continue
                groups[components] = group

        written = 0
        for components, group in groups.items():
            key = build_key(components)
            try:
                entry = CachedEntry.create(group, components, self.ttl)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping %s: rows are not JSON-serializable (%s)", key, e)
                continue
            if await self.cache.set(key, entry.to_payload(), self.ttl):
                written += 1
        return written

    async def _record_warm(self, data_source_id: int) -> None:
        now = utc_now().isoformat()
        await self.cache.set(warm_metadata_key(data_source_id), now, self.ttl)
        await self.cache.set(auto_warm_cooldown_key(data_source_id), now, self.cooldown)
