"""Repository interfaces (ports) for the application layer.

Read-only access to the analytics database: the data source catalog,
its live column registry, and parameterized query execution.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from app.application.dtos.analytics import ColumnInfo, DataSourceConfig, Row


class IDataSourceCatalog(Protocol):
    """Protocol for data source metadata (table location and type)."""

    async def get(self, data_source_id: int) -> DataSourceConfig | None:
        """Return the data source config, or None when unknown."""

    async def list_active(self) -> list[DataSourceConfig]:
        """Return all active data sources."""


class IColumnRegistry(Protocol):
    """Protocol for per-data-source column metadata. Queried live; never cached."""

    async def columns_for(self, data_source_id: int) -> list[ColumnInfo]:
        """Return configured columns for the data source."""


class IAnalyticsExecutor(Protocol):
    """Protocol for executing parameterized analytics SQL."""

    async def execute(self, sql: str, args: dict[str, Any]) -> list[Row]:
        """Run sql with bound args; return rows as JSON-safe dicts."""
