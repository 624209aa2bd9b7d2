"""Pydantic request/response schemas for the API."""

from app.schemas.cache import (
    CacheEntrySizeResponse,
    CacheStatsResponse,
    DataSourceCacheStatsResponse,
    InvalidateResponse,
    WarmAllResultResponse,
    WarmResultResponse,
)
from app.schemas.health import HealthResponse

__all__ = [
    "CacheEntrySizeResponse",
    "CacheStatsResponse",
    "DataSourceCacheStatsResponse",
    "HealthResponse",
    "InvalidateResponse",
    "WarmAllResultResponse",
    "WarmResultResponse",
]
