"""Application layer: interfaces, services, use cases.

Depends only on domain and protocol definitions (DIP).
Infrastructure implements the interfaces (cache store, catalog, executor).
"""

from app.application.interfaces import (
    IAccessResolver,
    IAnalyticsExecutor,
    ICacheService,
    IColumnRegistry,
    IDataSourceCatalog,
)
from app.application.use_cases import (
    CacheStatsCollector,
    CacheWarmingService,
    DataSourceCacheService,
)

__all__ = [
    "CacheStatsCollector",
    "CacheWarmingService",
    "DataSourceCacheService",
    "IAccessResolver",
    "IAnalyticsExecutor",
    "ICacheService",
    "IColumnRegistry",
    "IDataSourceCatalog",
]
