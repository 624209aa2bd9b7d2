"""Data source catalog ORM models: chart_data_sources and chart_data_source_columns."""

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.domain.enums import DataSourceType
from app.infrastructure.persistence.database import Base


class ChartDataSource(Base):
    """A reporting table charts can read. Type: measure-based or table-based."""

    __tablename__ = "chart_data_sources"

    data_source_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    data_source_name: Mapped[str] = mapped_column(String(100), nullable=False)
    data_source_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    schema_name: Mapped[str] = mapped_column(String(50), nullable=False)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    data_source_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DataSourceType.MEASURE_BASED.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    columns: Mapped[list["ChartDataSourceColumn"]] = relationship(
        back_populates="data_source", lazy="noload"
    )

    __table_args__ = (
        CheckConstraint(
            "data_source_type IN ({})".format(
                ", ".join("'{}'".format(v) for v in DataSourceType.values())
            ),
            name="chart_data_sources_type_check",
        ),
    )


class ChartDataSourceColumn(Base):
    """Column registry entry: which columns of a data source are filterable or dates."""

    __tablename__ = "chart_data_source_columns"

    column_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    data_source_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("chart_data_sources.data_source_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    column_name: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    data_type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_filterable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_date_field: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    data_source: Mapped[ChartDataSource] = relationship(back_populates="columns")
