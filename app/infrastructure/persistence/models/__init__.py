"""Persistence models: data source catalog ORM entities."""

from app.infrastructure.persistence.models.data_source import (
    ChartDataSource,
    ChartDataSourceColumn,
)

__all__ = ["ChartDataSource", "ChartDataSourceColumn"]
