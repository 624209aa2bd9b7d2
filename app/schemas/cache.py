"""Cache management API schemas."""

from pydantic import BaseModel, ConfigDict, Field


class WarmResultResponse(BaseModel):
    """Outcome of warming one data source."""

    model_config = ConfigDict(from_attributes=True)

    entries_cached: int
    total_rows: int
    duration_ms: int
    skipped: bool = Field(
        default=False, description="True when another warm held the lock (or cache is down)"
    )


class WarmAllResultResponse(BaseModel):
    """Outcome of warming every active data source."""

    model_config = ConfigDict(from_attributes=True)

    data_sources_warmed: int
    data_sources_failed: int
    total_entries_cached: int
    total_rows: int
    duration_ms: int


class DataSourceCacheStatsResponse(BaseModel):
    """Per-data-source keyspace slice."""

    model_config = ConfigDict(from_attributes=True)

    keys: int
    memory_mb: float
    measures: list[str] = Field(default_factory=list)


class CacheEntrySizeResponse(BaseModel):
    """One sampled entry and its approximate size."""

    model_config = ConfigDict(from_attributes=True)

    key: str
    size_mb: float


class CacheStatsResponse(BaseModel):
    """Keyspace summary. Memory figures are estimates from sampled MEMORY USAGE."""

    model_config = ConfigDict(from_attributes=True)

    total_keys: int
    total_memory_mb: float
    keys_by_level: dict[str, int] = Field(default_factory=dict)
    by_data_source: dict[int, DataSourceCacheStatsResponse] = Field(default_factory=dict)
    largest_entries: list[CacheEntrySizeResponse] = Field(default_factory=list)


class InvalidateResponse(BaseModel):
    """Number of cache entries removed."""

    deleted: int
    data_source_id: int | None = None
    measure: str | None = None
