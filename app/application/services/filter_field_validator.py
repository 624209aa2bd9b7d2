"""Filter field validator: allow-list dynamic column names before they reach SQL.

Column names cannot be bound as parameters, so this check is the only
thing standing between a caller-supplied field name and the query text.
The column registry is read on every call (never cached) so a column
removed from a data source stops being filterable immediately.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from app.application.dtos.analytics import RenderContext
from app.application.interfaces.repositories import IColumnRegistry
from app.core.constants import STANDARD_FILTER_COLUMNS
from app.domain.exceptions import FilterFieldValidationException
from app.domain.value_objects import FilterSpec

logger = logging.getLogger(__name__)


class FilterFieldValidator:
    """Reject filters whose field is neither a standard dimension nor a filterable column."""

    def __init__(self, column_registry: IColumnRegistry) -> None:
        self.column_registry = column_registry

    async def allowed_fields(self, data_source_id: int) -> frozenset[str]:
        """Standard dimension columns plus the data source's filterable columns (live)."""
        columns = await self.column_registry.columns_for(data_source_id)
        return STANDARD_FILTER_COLUMNS | {c.name for c in columns if c.filterable}

    async def validate_fields(
        self,
        filters: Iterable[FilterSpec],
        data_source_id: int,
        context: RenderContext | None = None,
    ) -> None:
        """Raise FilterFieldValidationException on the first field outside the allow-set."""
        filters = list(filters)
        if not filters:
            return
        allowed = await self.allowed_fields(data_source_id)
        for spec in filters:
            if spec.field not in allowed:
                logger.warning(
                    "SECURITY: rejected filter field for data source %s (user=%s, field=%r)",
                    data_source_id,
                    context.user_id if context else None,
                    spec.field,
                )
                raise FilterFieldValidationException(spec.field, data_source_id)
