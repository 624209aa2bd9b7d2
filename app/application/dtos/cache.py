"""DTOs for cache entries, warming results, and keyspace statistics."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from app.domain.value_objects import CacheKeyComponents
from app.shared.utils.datetime import utc_now


@dataclass(frozen=True)
class CachedEntry:
    """A stored result set. Immutable; overwrites replace it wholesale with a new TTL."""

    rows: list[dict[str, Any]]
    row_count: int
    cached_at: datetime
    expires_at: datetime
    size_bytes: int
    key_components: CacheKeyComponents

    @classmethod
    def create(
        cls,
        rows: list[dict[str, Any]],
        key_components: CacheKeyComponents,
        ttl: int,
    ) -> "CachedEntry":
        """Build a new entry for rows, stamping cached_at/expires_at and the serialized size."""
        now = utc_now()
        return cls(
            rows=rows,
            row_count=len(rows),
            cached_at=now,
            expires_at=now + timedelta(seconds=ttl),
            size_bytes=len(json.dumps(rows).encode("utf-8")),
            key_components=key_components,
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-serializable form written to the store."""
        return {
            "rows": self.rows,
            "row_count": self.row_count,
            "cached_at": self.cached_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "size_bytes": self.size_bytes,
            "key_components": self.key_components.to_dict(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CachedEntry":
        """Rebuild from the store's JSON; raises KeyError/ValueError on malformed payloads."""
        return cls(
            rows=payload["rows"],
            row_count=payload["row_count"],
            cached_at=datetime.fromisoformat(payload["cached_at"]),
            expires_at=datetime.fromisoformat(payload["expires_at"]),
            size_bytes=payload["size_bytes"],
            key_components=CacheKeyComponents.from_dict(payload["key_components"]),
        )


@dataclass
class WarmResult:
    """Outcome of warming one data source."""

    entries_cached: int = 0
    total_rows: int = 0
    duration_ms: int = 0
    skipped: bool = False


@dataclass
class WarmAllResult:
    """Aggregate outcome of warming every active data source."""

    data_sources_warmed: int = 0
    data_sources_failed: int = 0
    total_entries_cached: int = 0
    total_rows: int = 0
    duration_ms: int = 0


@dataclass
class DataSourceCacheStats:
    """Per-data-source slice of the keyspace."""

    keys: int = 0
    memory_mb: float = 0.0
    measures: list[str] = field(default_factory=list)


@dataclass
class CacheEntrySize:
    """One sampled entry and its approximate size."""

    key: str
    size_mb: float


@dataclass
class CacheStats:
    """Keyspace summary for operational monitoring (approximate, from sampling)."""

    total_keys: int = 0
    total_memory_mb: float = 0.0
    keys_by_level: dict[str, int] = field(default_factory=dict)
    by_data_source: dict[int, DataSourceCacheStats] = field(default_factory=dict)
    largest_entries: list[CacheEntrySize] = field(default_factory=list)
