"""Read-only keyspace introspection for the analytics cache."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from app.application.dtos.cache import CacheEntrySize, CacheStats, DataSourceCacheStats
from app.application.services.cache_keys import data_source_pattern, level_name, parse_key
from app.shared.telemetry.tracing import traced

if TYPE_CHECKING:
    from app.application.interfaces.services import ICacheService

_BYTES_PER_MB = 1024 * 1024


def _to_mb(size_bytes: float) -> float:
    return round(size_bytes / _BYTES_PER_MB, 4)


class CacheStatsCollector:
    """Summarize analytics keys via SCAN plus sampled MEMORY USAGE.

    Memory figures are estimates: the average sampled size times the key
    count. Never writes or deletes.
    """

    def __init__(
        self,
        cache: "ICacheService",
        sample_size: int = 50,
        largest_entries: int = 10,
    ) -> None:
        self.cache = cache
        self.sample_size = sample_size
        self.largest_entries = largest_entries

    @traced("analytics_cache.stats")
    async def stats(self) -> CacheStats:
        keys = await self.cache.scan(data_source_pattern())
        result = CacheStats(total_keys=len(keys))
        measures: dict[int, set[str]] = {}
        ds_keys: dict[int, list[str]] = {}

        for key in keys:
            components = parse_key(key)
            if components is None:
                result.keys_by_level["custom"] = result.keys_by_level.get("custom", 0) + 1
                continue
            level = level_name(components)
            result.keys_by_level[level] = result.keys_by_level.get(level, 0) + 1
            ds_keys.setdefault(components.data_source_id, []).append(key)
            found = measures.setdefault(components.data_source_id, set())
            if components.measure is not None:
                found.add(components.measure)

        sample = keys if len(keys) <= self.sample_size else random.sample(keys, self.sample_size)
        sizes: dict[str, int] = {}
        for key in sample:
            size = await self.cache.memory_usage(key)
            if size is not None:
                sizes[key] = size

        average = sum(sizes.values()) / len(sizes) if sizes else 0.0
        result.total_memory_mb = _to_mb(average * len(keys))

        for data_source_id, members in sorted(ds_keys.items()):
            sampled = [sizes[key] for key in members if key in sizes]
            ds_average = sum(sampled) / len(sampled) if sampled else average
            result.by_data_source[data_source_id] = DataSourceCacheStats(
                keys=len(members),
                memory_mb=_to_mb(ds_average * len(members)),
                measures=sorted(measures.get(data_source_id, ())),
            )

        largest = sorted(sizes.items(), key=lambda item: item[1], reverse=True)
        result.largest_entries = [
            CacheEntrySize(key=key, size_mb=_to_mb(size))
            for key, size in largest[: self.largest_entries]
        ]
        return result
