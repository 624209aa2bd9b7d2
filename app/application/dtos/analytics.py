"""DTOs for analytics fetches: user/render contexts, query params, audit (no dependency on ORM)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.core.constants import COLUMN_DATE_INDEX, FREQUENCY_COLUMNS
from app.domain.enums import DataSourceType, PermissionScope
from app.domain.value_objects import FilterSpec

Row = dict[str, Any]


@dataclass(frozen=True)
class UserContext:
    """Authenticated caller as issued by the auth layer.

    permissions holds granted permission codes (e.g. 'analytics:read:all');
    is_super_admin marks the unique system super-admin role.
    """

    user_id: str
    permissions: frozenset[str] = frozenset()
    is_super_admin: bool = False
    organization_id: str | None = None


@dataclass(frozen=True)
class AccessGrant:
    """Accessible practice/provider sets and scope for one user (from the access resolver)."""

    scope: PermissionScope
    accessible_practices: tuple[int, ...] = ()
    accessible_providers: tuple[int, ...] = ()


@dataclass(frozen=True)
class RenderContext:
    """Per-request visibility context. Built fresh per fetch; never cached or reused."""

    user_id: str
    permission_scope: PermissionScope
    accessible_practices: frozenset[int] = frozenset()
    accessible_providers: frozenset[int] = frozenset()
    is_super_admin: bool = False


@dataclass(frozen=True)
class ColumnInfo:
    """One column from a data source's column registry."""

    name: str
    filterable: bool = False
    is_date_field: bool = False


@dataclass(frozen=True)
class DataSourceConfig:
    """Catalog entry for a data source: where its rows live and how they are keyed."""

    id: int
    name: str
    schema_name: str
    table_name: str
    data_source_type: DataSourceType = DataSourceType.MEASURE_BASED
    is_active: bool = True
    date_field: str = COLUMN_DATE_INDEX


@dataclass
class AnalyticsQueryParams:
    """Caller-supplied fetch parameters.

    measure/practice_id/provider_id/frequency are explicit chart filters and
    feed the cache key; start_date/end_date and advanced_filters do not.
    """

    data_source_id: int
    measure: str | None = None
    practice_id: int | None = None
    provider_id: int | None = None
    frequency: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    advanced_filters: list[FilterSpec] = field(default_factory=list)


@dataclass(frozen=True)
class QueryPlan:
    """Inputs for build_query: target table plus validated explicit filters."""

    schema_name: str
    table_name: str
    measure: str | None = None
    practice_id: int | None = None
    provider_id: int | None = None
    frequency: str | None = None
    advanced_filters: tuple[FilterSpec, ...] = ()
    frequency_columns: tuple[str, ...] = FREQUENCY_COLUMNS


@dataclass(frozen=True)
class PermissionAuditRecord:
    """Structured audit record emitted by every permission filter invocation."""

    user_id: str
    permission_scope: str
    original_row_count: int
    filtered_row_count: int
    practices_before: tuple[int, ...]
    practices_after: tuple[int, ...]
    suspicious: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "permission_scope": self.permission_scope,
            "original_row_count": self.original_row_count,
            "filtered_row_count": self.filtered_row_count,
            "practices_before": list(self.practices_before),
            "practices_after": list(self.practices_after),
            "suspicious": self.suspicious,
        }


@dataclass
class DataSourceFetchResult:
    """Rows returned to the caller (already permission-filtered) plus cache metadata."""

    rows: list[Row]
    cache_hit: bool
    cache_key: str | None = None
    cache_level: int | None = None
