"""Tests for CacheWarmingService: grouping, locking, metadata and warm_all."""

import asyncio
import dataclasses
import json
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest

from app.application.dtos.analytics import DataSourceConfig
from app.application.dtos.cache import CachedEntry
from app.application.services.cache_keys import (
    auto_warm_cooldown_key,
    warm_lock_key,
    warm_metadata_key,
)
from app.application.use_cases.cache_warming import (
    CacheWarmingService,
    group_by_measure_frequency,
)
from app.domain.exceptions import DataSourceNotFoundException, InvalidDataSourceConfigException
from tests.conftest import FakeCacheService

TTL = 172_800


@pytest.fixture
def warmer(
    fake_cache: FakeCacheService, catalog: AsyncMock, executor: AsyncMock
) -> CacheWarmingService:
    return CacheWarmingService(fake_cache, catalog, executor, ttl=TTL, lock_ttl=30, cooldown=600)


def _entry(fake_cache: FakeCacheService, key: str) -> CachedEntry:
    return CachedEntry.from_payload(json.loads(fake_cache.store[key]))


def test_group_by_measure_frequency_falls_back_to_time_period(rows: list[dict[str, Any]]) -> None:
    groups = group_by_measure_frequency(rows)
    assert set(groups) == {("Charges", "Monthly"), ("Payments", "Monthly"), ("Charges", "Weekly")}
    assert len(groups[("Charges", "Monthly")]) == 4
    assert groups[("Charges", "Weekly")] == [rows[5]]


def test_group_by_measure_frequency_skips_incomplete_rows() -> None:
    groups = group_by_measure_frequency(
        [{"measure": "Charges"}, {"frequency": "Monthly"}, {"measure": "Charges", "frequency": None}]
    )
    assert groups == {}


async def test_warm_measure_source_writes_one_entry_per_group(
    warmer: CacheWarmingService, fake_cache: FakeCacheService, executor: AsyncMock
) -> None:
    result = await warmer.warm(1)

    assert result.skipped is False
    assert result.entries_cached == 3
    assert result.total_rows == 6
    sql, args = executor.execute.await_args.args
    assert sql == "SELECT * FROM analytics.agg_practice_measures"
    assert args == {}

    entry = _entry(fake_cache, "datasource:1:m:Charges:p:*:prov:*:freq:Monthly")
    assert entry.row_count == 4
    assert entry.key_components.measure == "Charges"
    assert fake_cache.ttls["datasource:1:m:Payments:p:*:prov:*:freq:Monthly"] == TTL
    assert "datasource:1:m:Charges:p:*:prov:*:freq:Weekly" in fake_cache.store


async def test_warm_table_source_writes_single_data_source_entry(
    warmer: CacheWarmingService, fake_cache: FakeCacheService
) -> None:
    result = await warmer.warm(2)
    assert result.entries_cached == 1
    entry = _entry(fake_cache, "datasource:2:m:*:p:*:prov:*:freq:*")
    assert entry.row_count == 6


async def test_warm_records_metadata_and_cooldown_then_releases_lock(
    warmer: CacheWarmingService, fake_cache: FakeCacheService
) -> None:
    await warmer.warm(1)
    assert fake_cache.ttls[warm_metadata_key(1)] == TTL
    assert fake_cache.ttls[auto_warm_cooldown_key(1)] == 600
    assert warm_lock_key(1) not in fake_cache.store


async def test_concurrent_warm_is_skipped_while_lock_is_held(
    warmer: CacheWarmingService, fake_cache: FakeCacheService, executor: AsyncMock
) -> None:
    token = await fake_cache.acquire_lock(warm_lock_key(1), 30)
    assert token is not None

    result = await warmer.warm(1)

    assert result.skipped is True
    assert result.entries_cached == 0
    executor.execute.assert_not_awaited()
    assert await fake_cache.release_lock(warm_lock_key(1), token) is True


async def test_warm_is_skipped_when_cache_unavailable(
    warmer: CacheWarmingService, fake_cache: FakeCacheService, executor: AsyncMock
) -> None:
    fake_cache.available = False
    result = await warmer.warm(1)
    assert result.skipped is True
    executor.execute.assert_not_awaited()


async def test_lock_is_released_when_query_fails(
    warmer: CacheWarmingService, fake_cache: FakeCacheService, executor: AsyncMock
) -> None:
    executor.execute.side_effect = RuntimeError("connection reset")
    with pytest.raises(RuntimeError):
        await warmer.warm(1)
    assert warm_lock_key(1) not in fake_cache.store
    assert warm_metadata_key(1) not in fake_cache.store


async def test_invalid_group_values_are_skipped(
    warmer: CacheWarmingService, fake_cache: FakeCacheService, executor: AsyncMock
) -> None:
    executor.execute.return_value = [
        {"measure": "Charges", "frequency": "Monthly", "practice_id": 1},
        {"measure": "Net:Charges", "frequency": "Monthly", "practice_id": 1},
    ]
    result = await warmer.warm(1)
    assert result.entries_cached == 1
    assert result.total_rows == 2


async def test_unsafe_identifiers_are_rejected(
    fake_cache: FakeCacheService, executor: AsyncMock, measure_source: DataSourceConfig
) -> None:
    catalog = AsyncMock()
    catalog.get.return_value = dataclasses.replace(measure_source, table_name="t; DROP TABLE t")
    warmer = CacheWarmingService(fake_cache, catalog, executor, ttl=TTL)
    with pytest.raises(InvalidDataSourceConfigException):
        await warmer.warm(1)
    executor.execute.assert_not_awaited()
    assert warm_lock_key(1) not in fake_cache.store


async def test_unknown_data_source(warmer: CacheWarmingService) -> None:
    with pytest.raises(DataSourceNotFoundException):
        await warmer.warm(99)


async def test_warm_all_continues_past_failures(
    fake_cache: FakeCacheService,
    catalog: AsyncMock,
    executor: AsyncMock,
    rows: list[dict[str, Any]],
) -> None:
    executor.execute.side_effect = [RuntimeError("timeout"), rows]
    warmer = CacheWarmingService(fake_cache, catalog, executor, ttl=TTL)

    result = await warmer.warm_all()

    assert result.data_sources_failed == 1
    assert result.data_sources_warmed == 1
    assert result.total_entries_cached == 1
    assert result.total_rows == 6


async def test_warm_all_counts_skipped_as_neither(
    warmer: CacheWarmingService, fake_cache: FakeCacheService
) -> None:
    await fake_cache.acquire_lock(warm_lock_key(1), 30)
    result = await warmer.warm_all()
    assert result.data_sources_warmed == 1
    assert result.data_sources_failed == 0


async def test_concurrent_warms_populate_once(
    warmer: CacheWarmingService,
    fake_cache: FakeCacheService,
    executor: AsyncMock,
    rows: list[dict[str, Any]],
) -> None:
    async def slow_execute(sql: str, args: dict[str, Any]) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        return rows

    executor.execute.side_effect = slow_execute

    first, second = await asyncio.gather(warmer.warm(1), warmer.warm(1))

    assert sorted([first.skipped, second.skipped]) == [False, True]
    populated = first if not first.skipped else second
    assert populated.entries_cached == 3
    executor.execute.assert_awaited_once()
    assert warm_lock_key(1) not in fake_cache.store


async def test_unserializable_group_is_skipped_not_fatal(
    warmer: CacheWarmingService, fake_cache: FakeCacheService, executor: AsyncMock
) -> None:
    executor.execute.return_value = [
        {"measure": "Charges", "frequency": "Monthly", "duration": timedelta(hours=1)},
        {"measure": "Payments", "frequency": "Monthly", "value": 1.0},
    ]
    result = await warmer.warm(1)
    assert result.entries_cached == 1
    assert "datasource:1:m:Payments:p:*:prov:*:freq:Monthly" in fake_cache.store
    assert warm_lock_key(1) not in fake_cache.store
