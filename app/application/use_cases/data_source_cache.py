"""Analytics data source cache: the only path callers use to read chart data.

Request flow:
    render context -> key hierarchy lookup -> database on miss
    -> permission filter -> date range filter -> advanced filters (cached rows)

The cache stores the widest unfiltered dataset for a set of explicit chart
dimensions. Visibility is enforced per caller after every fetch, so one
entry serves users with different grants without leaking rows.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import TYPE_CHECKING

from app.application.dtos.analytics import (
    AnalyticsQueryParams,
    DataSourceConfig,
    DataSourceFetchResult,
    QueryPlan,
    Row,
    UserContext,
)
from app.application.dtos.cache import CachedEntry, CacheStats, WarmAllResult, WarmResult
from app.application.services.cache_keys import (
    auto_warm_cooldown_key,
    build_hierarchy,
    build_key,
    invalidation_patterns,
)
from app.application.services.filter_field_validator import FilterFieldValidator
from app.application.services.permission_filter_service import PermissionFilterService
from app.application.services.query_builder import build_query, is_valid_identifier
from app.application.services.render_context_builder import RenderContextBuilder
from app.application.services.row_filters import (
    apply_advanced_filters,
    filter_by_date_range,
    narrow_to_components,
)
from app.domain.enums import DataSourceType
from app.domain.exceptions import (
    DataSourceNotFoundException,
    InvalidDataSourceConfigException,
    ValidationException,
)
from app.domain.value_objects import CacheKeyComponents
from app.shared.telemetry.tracing import add_span_attributes, traced

if TYPE_CHECKING:
    from app.application.interfaces.repositories import (
        IAnalyticsExecutor,
        IColumnRegistry,
        IDataSourceCatalog,
    )
    from app.application.interfaces.services import (
        IAccessResolver,
        ICacheService,
        PermissionAuditSink,
    )
    from app.application.use_cases.cache_stats import CacheStatsCollector
    from app.application.use_cases.cache_warming import CacheWarmingService

logger = logging.getLogger(__name__)

# Strong references to scheduled auto-warms; the event loop only keeps weak ones.
_background_tasks: set[asyncio.Task] = set()


def _validate_date(value: str | None, name: str) -> None:
    if value is None:
        return
    try:
        date.fromisoformat(value[:10])
    except ValueError:
        raise ValidationException(f"{name} must be an ISO date (YYYY-MM-DD)", field=name) from None


class DataSourceCacheService:
    """Read-through cache over analytics data sources with server-side permission filtering."""

    def __init__(
        self,
        cache: "ICacheService",
        catalog: "IDataSourceCatalog",
        column_registry: "IColumnRegistry",
        executor: "IAnalyticsExecutor",
        access_resolver: "IAccessResolver",
        ttl: int,
        warmer: "CacheWarmingService | None" = None,
        stats_collector: "CacheStatsCollector | None" = None,
        audit_sink: "PermissionAuditSink | None" = None,
        auto_warm_enabled: bool = False,
        auto_warm_cooldown: int = 14400,
    ) -> None:
        self.cache = cache
        self.catalog = catalog
        self.executor = executor
        self.ttl = ttl
        self.warmer = warmer
        self.stats_collector = stats_collector
        self.auto_warm_enabled = auto_warm_enabled
        self.auto_warm_cooldown = auto_warm_cooldown
        self.field_validator = FilterFieldValidator(column_registry)
        self.context_builder = RenderContextBuilder(access_resolver)
        self.permission_filter = PermissionFilterService(audit_sink)

    async def fetch(
        self,
        params: AnalyticsQueryParams,
        user: UserContext,
        skip_cache: bool = False,
    ) -> list[Row]:
        """Return the rows of params visible to user."""
        result = await self.fetch_with_metadata(params, user, skip_cache=skip_cache)
        return result.rows

    @traced("analytics_cache.fetch")
    async def fetch_with_metadata(
        self,
        params: AnalyticsQueryParams,
        user: UserContext,
        skip_cache: bool = False,
    ) -> DataSourceFetchResult:
        """Fetch rows plus where they came from (cache hit, key and hierarchy level).

        Raises:
            DataSourceNotFoundException: Unknown or inactive data source.
            ValidationException: Bad dimensions, dates or filter shapes.
            FilterFieldValidationException: Filter field outside the allow-set.
            PermissionScopeException: Claimed scope not backed by grants.
        """
        config = await self._get_config(params.data_source_id)
        context = await self.context_builder.build(user)
        self.permission_filter.validate_scope(context, user)

        components = self._components(params, config)
        _validate_date(params.start_date, "start_date")
        _validate_date(params.end_date, "end_date")
        await self.field_validator.validate_fields(
            params.advanced_filters, params.data_source_id, context
        )

        rows: list[Row] | None = None
        cache_key: str | None = None
        cache_level: int | None = None
        if not skip_cache:
            for level, key in enumerate(build_hierarchy(components)):
                entry = await self._read(key)
                if entry is None:
                    continue
                logger.debug("Cache HIT %s (level %d)", key, level)
                rows = narrow_to_components(entry.rows, components, entry.key_components)
                cache_key, cache_level = key, level
                break

        cache_hit = rows is not None
        if rows is None:
            logger.debug("Cache MISS for data source %s", params.data_source_id)
            rows = await self._query(config, params)
            if not skip_cache:
                if rows and not params.advanced_filters:
                    cache_key = build_key(components)
                    await self._write(cache_key, components, rows)
                await self._maybe_auto_warm(params.data_source_id)

        rows = self.permission_filter.filter_rows(rows, context)
        rows = filter_by_date_range(rows, params.start_date, params.end_date, config.date_field)
        if cache_hit:
            # SQL already applied these on a miss.
            rows = apply_advanced_filters(rows, params.advanced_filters)
        add_span_attributes(
            data_source_id=params.data_source_id,
            cache_hit=cache_hit,
            row_count=len(rows),
        )
        return DataSourceFetchResult(
            rows=rows,
            cache_hit=cache_hit,
            cache_key=cache_key,
            cache_level=cache_level,
        )

    async def invalidate(
        self, data_source_id: int | None = None, measure: str | None = None
    ) -> int:
        """Delete cached entries for a data source / measure (all analytics keys when both None)."""
        deleted = 0
        for pattern in invalidation_patterns(data_source_id, measure):
            deleted += await self.cache.delete_pattern(pattern)
        logger.info(
            "Invalidated %d cache entries (data_source=%s, measure=%s)",
            deleted,
            data_source_id,
            measure,
        )
        return deleted

    async def warm(self, data_source_id: int) -> WarmResult:
        return await self._require_warmer().warm(data_source_id)

    async def warm_all(self) -> WarmAllResult:
        return await self._require_warmer().warm_all()

    async def stats(self) -> CacheStats:
        if self.stats_collector is None:
            raise RuntimeError("DataSourceCacheService was built without a stats collector")
        return await self.stats_collector.stats()

    def _require_warmer(self) -> "CacheWarmingService":
        if self.warmer is None:
            raise RuntimeError("DataSourceCacheService was built without a warmer")
        return self.warmer

    async def _get_config(self, data_source_id: int) -> DataSourceConfig:
        config = await self.catalog.get(data_source_id)
        if config is None or not config.is_active:
            raise DataSourceNotFoundException(data_source_id)
        return config

    def _components(
        self, params: AnalyticsQueryParams, config: DataSourceConfig
    ) -> CacheKeyComponents:
        if config.data_source_type is DataSourceType.MEASURE_BASED and (
            params.measure is None or params.frequency is None
        ):
            raise ValidationException(
                "measure and frequency are required for measure-based data sources",
                field="measure" if params.measure is None else "frequency",
            )
        try:
            return CacheKeyComponents(
                data_source_id=params.data_source_id,
                measure=params.measure,
                practice_id=params.practice_id,
                provider_id=params.provider_id,
                frequency=params.frequency,
            )
        except ValueError as e:
            raise ValidationException(str(e)) from e

    async def _read(self, key: str) -> CachedEntry | None:
        payload = await self.cache.get(key)
        if payload is None:
            return None
        try:
            return CachedEntry.from_payload(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed cache entry %s: %s", key, e)
            return None

    async def _write(self, key: str, components: CacheKeyComponents, rows: list[Row]) -> None:
        try:
            entry = CachedEntry.create(rows, components, self.ttl)
        except (TypeError, ValueError) as e:
            logger.warning("Not caching %s: rows are not JSON-serializable (%s)", key, e)
            return
        if await self.cache.set(key, entry.to_payload(), self.ttl):
            logger.debug("Cached %d rows at %s", entry.row_count, key)

    async def _query(self, config: DataSourceConfig, params: AnalyticsQueryParams) -> list[Row]:
        for identifier in (config.schema_name, config.table_name):
            if not is_valid_identifier(identifier):
                raise InvalidDataSourceConfigException(config.id, identifier)
        sql, args = build_query(
            QueryPlan(
                schema_name=config.schema_name,
                table_name=config.table_name,
                measure=params.measure,
                practice_id=params.practice_id,
                provider_id=params.provider_id,
                frequency=params.frequency,
                advanced_filters=tuple(params.advanced_filters),
            )
        )
        return await self.executor.execute(sql, args)

    async def _maybe_auto_warm(self, data_source_id: int) -> None:
        if not self.auto_warm_enabled or self.warmer is None:
            return
        # The cooldown key doubles as a claim so concurrent misses schedule one warm.
        claimed = await self.cache.acquire_lock(
            auto_warm_cooldown_key(data_source_id), self.auto_warm_cooldown
        )
        if claimed is None:
            return
        task = asyncio.create_task(self._auto_warm(data_source_id))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

    async def _auto_warm(self, data_source_id: int) -> None:
        logger.info("Auto-warming data source %s after cache miss", data_source_id)
        try:
            await self.warmer.warm(data_source_id)
        except Exception:
            logger.exception("Auto-warm of data source %s failed", data_source_id)
