"""Application DTOs (no ORM dependency)."""

from app.application.dtos.analytics import (
    AccessGrant,
    AnalyticsQueryParams,
    ColumnInfo,
    DataSourceConfig,
    DataSourceFetchResult,
    PermissionAuditRecord,
    QueryPlan,
    RenderContext,
    Row,
    UserContext,
)
from app.application.dtos.cache import (
    CachedEntry,
    CacheEntrySize,
    CacheStats,
    DataSourceCacheStats,
    WarmAllResult,
    WarmResult,
)

__all__ = [
    "AccessGrant",
    "AnalyticsQueryParams",
    "CacheEntrySize",
    "CacheStats",
    "CachedEntry",
    "ColumnInfo",
    "DataSourceCacheStats",
    "DataSourceConfig",
    "DataSourceFetchResult",
    "PermissionAuditRecord",
    "QueryPlan",
    "RenderContext",
    "Row",
    "UserContext",
    "WarmAllResult",
    "WarmResult",
]
