"""Cache management API: stats, invalidation and warming.

Every route requires the X-Cache-Admin-Token header. Chart data itself
is served by the reporting surface through DataSourceCacheService.fetch,
not from here.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from app.api.v1.dependencies import (
    get_cache_stats_collector,
    get_data_source_cache_service,
    require_cache_admin,
)
from app.application.use_cases.cache_stats import CacheStatsCollector
from app.application.use_cases.data_source_cache import DataSourceCacheService
from app.core.limiter import limit_admin_read, limit_invalidate, limit_warm
from app.schemas.cache import (
    CacheStatsResponse,
    InvalidateResponse,
    WarmAllResultResponse,
    WarmResultResponse,
)

router = APIRouter(dependencies=[Depends(require_cache_admin)])


@router.get("/stats", response_model=CacheStatsResponse)
@limit_admin_read
async def get_cache_stats(
    request: Request,
    collector: Annotated[CacheStatsCollector, Depends(get_cache_stats_collector)],
):
    """Keyspace summary: key counts by level and data source, sampled memory use."""
    stats = await collector.stats()
    return CacheStatsResponse.model_validate(stats)


@router.post("/invalidate", response_model=InvalidateResponse)
@limit_invalidate
async def invalidate_cache(
    request: Request,
    service: Annotated[DataSourceCacheService, Depends(get_data_source_cache_service)],
    data_source_id: Annotated[int | None, Query(ge=1)] = None,
    measure: Annotated[str | None, Query(min_length=1, max_length=100)] = None,
):
    """Delete entries for a data source and/or measure (everything when both omitted)."""
    deleted = await service.invalidate(data_source_id=data_source_id, measure=measure)
    return InvalidateResponse(deleted=deleted, data_source_id=data_source_id, measure=measure)


@router.post("/warm", response_model=WarmAllResultResponse)
@limit_warm
async def warm_all_data_sources(
    request: Request,
    service: Annotated[DataSourceCacheService, Depends(get_data_source_cache_service)],
):
    """Warm every active data source; failures are counted, not raised."""
    result = await service.warm_all()
    return WarmAllResultResponse.model_validate(result)


@router.post("/warm/{data_source_id}", response_model=WarmResultResponse)
@limit_warm
async def warm_data_source(
    request: Request,
    data_source_id: int,
    service: Annotated[DataSourceCacheService, Depends(get_data_source_cache_service)],
):
    """Warm one data source. skipped=true when another warm holds its lock."""
    result = await service.warm(data_source_id)
    return WarmResultResponse.model_validate(result)
