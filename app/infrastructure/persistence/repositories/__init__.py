"""Persistence repositories. Re-exports for dependency injection."""

from app.infrastructure.persistence.repositories.analytics_executor import (
    SqlAnalyticsExecutor,
)
from app.infrastructure.persistence.repositories.data_source_repo import DataSourceRepository

__all__ = ["DataSourceRepository", "SqlAnalyticsExecutor"]
