"""Data source catalog and column registry backed by chart_data_sources tables."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.application.dtos.analytics import ColumnInfo, DataSourceConfig
from app.core.constants import COLUMN_DATE_INDEX
from app.domain.enums import DataSourceType
from app.domain.exceptions import InvalidDataSourceConfigException
from app.infrastructure.persistence.models.data_source import (
    ChartDataSource,
    ChartDataSourceColumn,
)


def _to_config(source: ChartDataSource, date_field: str | None) -> DataSourceConfig:
    try:
        source_type = DataSourceType(source.data_source_type)
    except ValueError:
        raise InvalidDataSourceConfigException(
            source.data_source_id, source.data_source_type
        ) from None
    return DataSourceConfig(
        id=source.data_source_id,
        name=source.data_source_name,
        schema_name=source.schema_name,
        table_name=source.table_name,
        data_source_type=source_type,
        is_active=source.is_active,
        date_field=date_field or COLUMN_DATE_INDEX,
    )


class DataSourceRepository:
    """Implements IDataSourceCatalog and IColumnRegistry.

    Opens a short-lived session per call; nothing is cached, so catalog
    edits (e.g. a column losing is_filterable) apply on the next request.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get(self, data_source_id: int) -> DataSourceConfig | None:
        async with self.session_factory() as db:
            source = await db.get(ChartDataSource, data_source_id)
            if source is None:
                return None
            result = await db.execute(
                select(ChartDataSourceColumn.column_name)
                .where(
                    ChartDataSourceColumn.data_source_id == data_source_id,
                    ChartDataSourceColumn.is_date_field.is_(True),
                    ChartDataSourceColumn.is_active.is_(True),
                )
                .order_by(ChartDataSourceColumn.sort_order, ChartDataSourceColumn.column_id)
                .limit(1)
            )
            return _to_config(source, result.scalar_one_or_none())

    async def list_active(self) -> list[DataSourceConfig]:
        async with self.session_factory() as db:
            sources = (
                await db.execute(
                    select(ChartDataSource)
                    .where(ChartDataSource.is_active.is_(True))
                    .order_by(ChartDataSource.data_source_id)
                )
            ).scalars().all()
            date_rows = (
                await db.execute(
                    select(ChartDataSourceColumn.data_source_id, ChartDataSourceColumn.column_name)
                    .where(
                        ChartDataSourceColumn.is_date_field.is_(True),
                        ChartDataSourceColumn.is_active.is_(True),
                    )
                    .order_by(ChartDataSourceColumn.sort_order, ChartDataSourceColumn.column_id)
                )
            ).all()
        date_fields: dict[int, str] = {}
        for data_source_id, column_name in date_rows:
            date_fields.setdefault(data_source_id, column_name)
        return [_to_config(s, date_fields.get(s.data_source_id)) for s in sources]

    async def columns_for(self, data_source_id: int) -> list[ColumnInfo]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ChartDataSourceColumn)
                .where(
                    ChartDataSourceColumn.data_source_id == data_source_id,
                    ChartDataSourceColumn.is_active.is_(True),
                )
                .order_by(ChartDataSourceColumn.sort_order, ChartDataSourceColumn.column_id)
            )
            return [
                ColumnInfo(
                    name=column.column_name,
                    filterable=column.is_filterable,
                    is_date_field=column.is_date_field,
                )
                for column in result.scalars().all()
            ]
