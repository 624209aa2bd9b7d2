"""Tests for DataSourceCacheService: lookup, fallback, permission filtering, population."""

import asyncio
import json
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest

from app.application.dtos.analytics import (
    AccessGrant,
    AnalyticsQueryParams,
    PermissionAuditRecord,
    UserContext,
)
from app.application.dtos.cache import CachedEntry, WarmResult
from app.application.services.cache_keys import auto_warm_cooldown_key, build_key
from app.application.use_cases.data_source_cache import DataSourceCacheService
from app.core.constants import PERMISSION_ANALYTICS_READ_ORGANIZATION
from app.domain.enums import PermissionScope
from app.domain.exceptions import (
    DataSourceNotFoundException,
    FilterFieldValidationException,
    PermissionScopeException,
    ValidationException,
)
from app.domain.value_objects import CacheKeyComponents, FilterSpec
from tests.conftest import FakeCacheService, StaticAccessResolver

TTL = 172_800


@pytest.fixture
def service(
    fake_cache: FakeCacheService,
    catalog: AsyncMock,
    column_registry: AsyncMock,
    executor: AsyncMock,
    access_resolver: StaticAccessResolver,
) -> DataSourceCacheService:
    return DataSourceCacheService(
        fake_cache,
        catalog=catalog,
        column_registry=column_registry,
        executor=executor,
        access_resolver=access_resolver,
        ttl=TTL,
    )


def _params(**kwargs: Any) -> AnalyticsQueryParams:
    defaults: dict[str, Any] = {"data_source_id": 1, "measure": "Charges", "frequency": "Monthly"}
    defaults.update(kwargs)
    return AnalyticsQueryParams(**defaults)


async def test_miss_queries_database_and_caches_at_most_specific_key(
    service: DataSourceCacheService,
    fake_cache: FakeCacheService,
    executor: AsyncMock,
    admin_user: UserContext,
    rows: list[dict[str, Any]],
) -> None:
    result = await service.fetch_with_metadata(_params(), admin_user)
    assert result.cache_hit is False
    assert result.rows == rows
    key = "datasource:1:m:Charges:p:*:prov:*:freq:Monthly"
    assert result.cache_key == key
    assert key in fake_cache.store
    assert fake_cache.ttls[key] == TTL
    sql, args = executor.execute.await_args.args
    assert "practice_id" not in sql
    assert args == {"p1": "Charges", "p2": "Monthly"}


async def test_two_users_share_one_entry_with_distinct_results(
    service: DataSourceCacheService,
    executor: AsyncMock,
    admin_user: UserContext,
    org_user: UserContext,
    rows: list[dict[str, Any]],
) -> None:
    """One database query serves both callers; each sees only their scope."""
    admin_rows = await service.fetch(_params(), admin_user)
    org_result = await service.fetch_with_metadata(_params(), org_user)
    assert executor.execute.await_count == 1
    assert len(admin_rows) == len(rows)
    assert org_result.cache_hit is True
    assert org_result.cache_level == 0
    assert {row["practice_id"] for row in org_result.rows} == {114}


async def test_hit_rows_are_permission_filtered(
    service: DataSourceCacheService,
    fake_cache: FakeCacheService,
    org_user: UserContext,
    rows: list[dict[str, Any]],
) -> None:
    components = CacheKeyComponents(data_source_id=1, measure="Charges", frequency="Monthly")
    entry = CachedEntry.create(rows, components, TTL)
    await fake_cache.set(build_key(components), entry.to_payload(), TTL)
    result = await service.fetch(_params(), org_user)
    assert result and all(row["practice_id"] == 114 for row in result)


async def test_fallback_hit_is_narrowed_to_requested_dimensions(
    service: DataSourceCacheService,
    fake_cache: FakeCacheService,
    executor: AsyncMock,
    admin_user: UserContext,
    rows: list[dict[str, Any]],
) -> None:
    wide = CacheKeyComponents(data_source_id=1, measure="Charges", frequency="Monthly")
    await fake_cache.set(build_key(wide), CachedEntry.create(rows, wide, TTL).to_payload(), TTL)

    result = await service.fetch_with_metadata(_params(practice_id=115), admin_user)

    executor.execute.assert_not_awaited()
    assert result.cache_hit is True
    assert result.cache_level == 1
    assert result.cache_key == build_key(wide)
    assert {row["practice_id"] for row in result.rows} == {115}
    assert {row["frequency"] for row in result.rows} == {"Monthly"}
    assert fake_cache.get_calls == [
        "datasource:1:m:Charges:p:115:prov:*:freq:Monthly",
        "datasource:1:m:Charges:p:*:prov:*:freq:Monthly",
    ]


async def test_data_source_level_hit_narrows_measure_and_frequency(
    service: DataSourceCacheService,
    fake_cache: FakeCacheService,
    admin_user: UserContext,
    rows: list[dict[str, Any]],
) -> None:
    ds_only = CacheKeyComponents(data_source_id=1)
    await fake_cache.set(build_key(ds_only), CachedEntry.create(rows, ds_only, TTL).to_payload(), TTL)
    result = await service.fetch_with_metadata(
        _params(measure="Charges", frequency="Weekly"), admin_user
    )
    assert result.cache_level == 1
    assert result.rows == [rows[5]]


async def test_skip_cache_bypasses_read_and_write(
    service: DataSourceCacheService,
    fake_cache: FakeCacheService,
    executor: AsyncMock,
    admin_user: UserContext,
) -> None:
    await service.fetch(_params(), admin_user)
    fake_cache.store.clear()
    fake_cache.get_calls.clear()
    result = await service.fetch_with_metadata(_params(), admin_user, skip_cache=True)
    assert result.cache_hit is False
    assert fake_cache.get_calls == []
    assert fake_cache.store == {}
    assert executor.execute.await_count == 2


async def test_cache_unavailable_degrades_to_database(
    service: DataSourceCacheService,
    fake_cache: FakeCacheService,
    executor: AsyncMock,
    org_user: UserContext,
) -> None:
    fake_cache.available = False
    result = await service.fetch(_params(), org_user)
    assert result and {row["practice_id"] for row in result} == {114}
    executor.execute.assert_awaited_once()


async def test_empty_results_are_not_cached(
    service: DataSourceCacheService,
    fake_cache: FakeCacheService,
    executor: AsyncMock,
    admin_user: UserContext,
) -> None:
    executor.execute.return_value = []
    assert await service.fetch(_params(), admin_user) == []
    assert fake_cache.store == {}


async def test_advanced_filter_results_are_not_cached_but_applied_on_hits(
    service: DataSourceCacheService,
    fake_cache: FakeCacheService,
    executor: AsyncMock,
    admin_user: UserContext,
    rows: list[dict[str, Any]],
) -> None:
    filters = [FilterSpec("value", "gt", 150)]
    await service.fetch(_params(advanced_filters=filters), admin_user)
    assert fake_cache.store == {}
    sql, _ = executor.execute.await_args.args
    assert "value > :p3" in sql

    await service.fetch(_params(), admin_user)
    result = await service.fetch_with_metadata(_params(advanced_filters=filters), admin_user)
    assert result.cache_hit is True
    assert [row["value"] for row in result.rows] == [200.0, 300.0]


async def test_rejected_filter_field_never_reaches_database(
    service: DataSourceCacheService,
    executor: AsyncMock,
    admin_user: UserContext,
) -> None:
    with pytest.raises(FilterFieldValidationException):
        await service.fetch(
            _params(advanced_filters=[FilterSpec("'; DROP TABLE x; --", "eq", 1)]), admin_user
        )
    executor.execute.assert_not_awaited()


async def test_date_range_uses_data_source_date_field(
    service: DataSourceCacheService,
    executor: AsyncMock,
    admin_user: UserContext,
) -> None:
    executor.execute.return_value = [
        {"practice_id": 1, "service_date": "2024-01-01"},
        {"practice_id": 1, "service_date": "2024-03-01"},
    ]
    result = await service.fetch(
        AnalyticsQueryParams(data_source_id=2, start_date="2024-02-01"), admin_user
    )
    assert result == [{"practice_id": 1, "service_date": "2024-03-01"}]


async def test_date_filter_runs_after_permission_filter(
    service: DataSourceCacheService,
    org_user: UserContext,
) -> None:
    result = await service.fetch(_params(start_date="2024-02-01", end_date="2024-12-31"), org_user)
    assert [(row["practice_id"], row["date_index"]) for row in result] == [(114, "2024-02-01")]


async def test_invalid_date_is_rejected(
    service: DataSourceCacheService, admin_user: UserContext
) -> None:
    with pytest.raises(ValidationException):
        await service.fetch(_params(start_date="yesterday"), admin_user)


async def test_measure_based_source_requires_measure_and_frequency(
    service: DataSourceCacheService, executor: AsyncMock, admin_user: UserContext
) -> None:
    with pytest.raises(ValidationException):
        await service.fetch(AnalyticsQueryParams(data_source_id=1, measure="Charges"), admin_user)
    executor.execute.assert_not_awaited()


async def test_unknown_data_source(service: DataSourceCacheService, admin_user: UserContext) -> None:
    with pytest.raises(DataSourceNotFoundException):
        await service.fetch(_params(data_source_id=404), admin_user)


async def test_scope_mismatch_aborts_before_any_lookup(
    fake_cache: FakeCacheService,
    catalog: AsyncMock,
    column_registry: AsyncMock,
    executor: AsyncMock,
) -> None:
    resolver = StaticAccessResolver({"u-1": AccessGrant(scope=PermissionScope.ALL)})
    service = DataSourceCacheService(
        fake_cache, catalog, column_registry, executor, resolver, ttl=TTL
    )
    user = UserContext(
        user_id="u-1", permissions=frozenset({PERMISSION_ANALYTICS_READ_ORGANIZATION})
    )
    with pytest.raises(PermissionScopeException):
        await service.fetch(_params(), user)
    assert fake_cache.get_calls == []
    executor.execute.assert_not_awaited()


async def test_render_context_is_resolved_per_request(
    service: DataSourceCacheService,
    access_resolver: StaticAccessResolver,
    org_user: UserContext,
) -> None:
    await service.fetch(_params(), org_user)
    await service.fetch(_params(), org_user)
    assert access_resolver.calls == ["org-1", "org-1"]


async def test_unresolved_user_gets_zero_rows(
    service: DataSourceCacheService,
) -> None:
    user = UserContext(user_id="nobody")
    assert await service.fetch(_params(), user) == []


async def test_audit_sink_receives_each_fetch(
    fake_cache: FakeCacheService,
    catalog: AsyncMock,
    column_registry: AsyncMock,
    executor: AsyncMock,
    access_resolver: StaticAccessResolver,
    org_user: UserContext,
) -> None:
    records: list[PermissionAuditRecord] = []
    service = DataSourceCacheService(
        fake_cache, catalog, column_registry, executor, access_resolver, ttl=TTL,
        audit_sink=records.append,
    )
    await service.fetch(_params(), org_user)
    assert len(records) == 1
    assert records[0].user_id == "org-1"


async def test_malformed_entry_is_treated_as_miss(
    service: DataSourceCacheService,
    fake_cache: FakeCacheService,
    executor: AsyncMock,
    admin_user: UserContext,
) -> None:
    fake_cache.store["datasource:1:m:Charges:p:*:prov:*:freq:Monthly"] = json.dumps({"rows": []})
    result = await service.fetch_with_metadata(_params(), admin_user)
    assert result.cache_hit is False
    executor.execute.assert_awaited_once()


async def test_invalidate_by_measure_drops_measure_and_wildcard_entries(
    service: DataSourceCacheService, fake_cache: FakeCacheService
) -> None:
    for key in (
        "datasource:1:m:Charges:p:*:prov:*:freq:Monthly",
        "datasource:1:m:Charges:p:114:prov:*:freq:Monthly",
        "datasource:1:m:*:p:*:prov:*:freq:*",
        "datasource:1:m:Payments:p:*:prov:*:freq:Monthly",
        "datasource:2:m:Charges:p:*:prov:*:freq:Monthly",
    ):
        await fake_cache.set(key, {"rows": []})
    deleted = await service.invalidate(data_source_id=1, measure="Charges")
    assert deleted == 3
    assert sorted(fake_cache.store) == [
        "datasource:1:m:Payments:p:*:prov:*:freq:Monthly",
        "datasource:2:m:Charges:p:*:prov:*:freq:Monthly",
    ]


async def test_invalidate_everything_leaves_locks_alone(
    service: DataSourceCacheService, fake_cache: FakeCacheService
) -> None:
    await fake_cache.set("datasource:1:m:*:p:*:prov:*:freq:*", {"rows": []})
    await fake_cache.set("datasource:2:m:*:p:*:prov:*:freq:*", {"rows": []})
    await fake_cache.set("lock:cache:warm:1", "token")
    assert await service.invalidate() == 2
    assert list(fake_cache.store) == ["lock:cache:warm:1"]


async def test_miss_schedules_one_auto_warm_per_cooldown(
    fake_cache: FakeCacheService,
    catalog: AsyncMock,
    column_registry: AsyncMock,
    executor: AsyncMock,
    access_resolver: StaticAccessResolver,
    admin_user: UserContext,
) -> None:
    warmer = AsyncMock()
    warmer.warm.return_value = WarmResult(entries_cached=1)
    service = DataSourceCacheService(
        fake_cache, catalog, column_registry, executor, access_resolver, ttl=TTL,
        warmer=warmer, auto_warm_enabled=True, auto_warm_cooldown=60,
    )
    await service.fetch(_params(), admin_user)
    await service.fetch(_params(measure="Payments"), admin_user)
    await asyncio.sleep(0)
    warmer.warm.assert_awaited_once_with(1)
    assert auto_warm_cooldown_key(1) in fake_cache.store
    assert fake_cache.ttls[auto_warm_cooldown_key(1)] == 60


async def test_auto_warm_failure_is_logged_not_raised(
    fake_cache: FakeCacheService,
    catalog: AsyncMock,
    column_registry: AsyncMock,
    executor: AsyncMock,
    access_resolver: StaticAccessResolver,
    admin_user: UserContext,
) -> None:
    warmer = AsyncMock()
    warmer.warm.side_effect = RuntimeError("boom")
    service = DataSourceCacheService(
        fake_cache, catalog, column_registry, executor, access_resolver, ttl=TTL,
        warmer=warmer, auto_warm_enabled=True,
    )
    assert await service.fetch(_params(), admin_user)
    await asyncio.sleep(0)
    warmer.warm.assert_awaited_once()


async def test_advanced_filters_on_hit_run_after_permission_filter(
    fake_cache: FakeCacheService,
    catalog: AsyncMock,
    column_registry: AsyncMock,
    executor: AsyncMock,
    access_resolver: StaticAccessResolver,
    admin_user: UserContext,
    org_user: UserContext,
) -> None:
    records: list[PermissionAuditRecord] = []
    service = DataSourceCacheService(
        fake_cache, catalog, column_registry, executor, access_resolver, ttl=TTL,
        audit_sink=records.append,
    )
    await service.fetch(_params(), admin_user)
    records.clear()

    result = await service.fetch_with_metadata(
        _params(advanced_filters=[FilterSpec("value", "gte", 100)]), org_user
    )

    assert result.cache_hit is True
    assert [row["value"] for row in result.rows] == [100.0, 110.0]
    assert records[0].original_row_count == 6
    assert records[0].practices_before == (114, 115, 116)
    assert records[0].practices_after == (114,)


async def test_unserializable_rows_are_returned_but_not_cached(
    service: DataSourceCacheService,
    fake_cache: FakeCacheService,
    executor: AsyncMock,
    admin_user: UserContext,
) -> None:
    rows = [{"practice_id": 114, "measure": "Charges", "frequency": "Monthly",
             "duration": timedelta(days=1)}]
    executor.execute.return_value = rows
    result = await service.fetch_with_metadata(_params(), admin_user)
    assert result.rows == rows
    assert result.cache_hit is False
    assert fake_cache.store == {}
