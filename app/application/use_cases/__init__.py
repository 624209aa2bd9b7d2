"""Application use cases: one entry point per workflow."""

from app.application.use_cases.cache_stats import CacheStatsCollector
from app.application.use_cases.cache_warming import CacheWarmingService
from app.application.use_cases.data_source_cache import DataSourceCacheService

__all__ = [
    "CacheStatsCollector",
    "CacheWarmingService",
    "DataSourceCacheService",
]
