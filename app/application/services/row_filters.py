"""In-memory row filters applied after permission filtering.

- filter_by_date_range: inclusive ISO-date bounds on the data source's date column.
- narrow_to_components: when a lookup hit a more general key than requested,
  drop rows outside the explicit dimensions the hit key wildcarded.
- apply_advanced_filters: evaluate FilterSpecs against rows, so cached rows
  honor the same filters the SQL path applies.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from app.application.dtos.analytics import Row
from app.core.constants import (
    COLUMN_DATE_INDEX,
    COLUMN_MEASURE,
    COLUMN_PRACTICE,
    COLUMN_PROVIDER,
    FREQUENCY_COLUMNS,
)
from app.domain.enums import FilterOperator
from app.domain.value_objects import CacheKeyComponents, FilterSpec


def _as_date_string(value: Any) -> str | None:
    """Normalize a date-ish value to 'YYYY-MM-DD...' for lexical comparison."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def filter_by_date_range(
    rows: list[Row],
    start_date: str | None = None,
    end_date: str | None = None,
    date_field: str = COLUMN_DATE_INDEX,
) -> list[Row]:
    """Keep rows whose date_field lies in [start_date, end_date].

    ISO dates compare correctly as strings. Rows without a date value are
    dropped whenever a bound is given. No bounds returns rows unchanged.
    """
    if not start_date and not end_date:
        return rows
    start = start_date[:10] if start_date else None
    end = end_date[:10] if end_date else None
    result: list[Row] = []
    for row in rows:
        value = _as_date_string(row.get(date_field))
        if value is None:
            continue
        day = value[:10]
        if start is not None and day < start:
            continue
        if end is not None and day > end:
            continue
        result.append(row)
    return result


def _frequency_of(row: Row) -> Any:
    for column in FREQUENCY_COLUMNS:
        if row.get(column) is not None:
            return row[column]
    return None


def narrow_to_components(
    rows: list[Row], requested: CacheKeyComponents, hit: CacheKeyComponents
) -> list[Row]:
    """Drop rows outside requested dimensions that the hit entry did not pin down."""
    checks: list[tuple[str, Any]] = []
    if requested.measure is not None and hit.measure is None:
        checks.append((COLUMN_MEASURE, requested.measure))
    if requested.practice_id is not None and hit.practice_id is None:
        checks.append((COLUMN_PRACTICE, requested.practice_id))
    if requested.provider_id is not None and hit.provider_id is None:
        checks.append((COLUMN_PROVIDER, requested.provider_id))
    check_frequency = requested.frequency is not None and hit.frequency is None
    if not checks and not check_frequency:
        return rows
    return [
        row
        for row in rows
        if all(row.get(column) == expected for column, expected in checks)
        and (not check_frequency or _frequency_of(row) == requested.frequency)
    ]


def _compare(op: FilterOperator, left: Any, right: Any) -> bool:
    try:
        if op is FilterOperator.GT:
            return left > right
        if op is FilterOperator.GTE:
            return left >= right
        if op is FilterOperator.LT:
            return left < right
        return left <= right
    except TypeError:
        # Mixed types (e.g. '10' vs 5): compare as strings, as the column would.
        return _compare(op, str(left), str(right))


def matches(row: Row, spec: FilterSpec) -> bool:
    """Evaluate one filter against a row the way the SQL clause would.

    Missing/None values never match (SQL NULL), except for an empty not_in,
    which adds no clause. like is a case-insensitive literal substring test,
    since the SQL path escapes LIKE wildcards.
    """
    value = row.get(spec.field)
    op = spec.operator
    if op is FilterOperator.NOT_IN and not spec.value:
        return True
    if op is FilterOperator.IN:
        return value is not None and value in spec.value
    if op is FilterOperator.NOT_IN:
        return value is not None and value not in spec.value
    if value is None:
        return False
    if op is FilterOperator.EQ:
        return value == spec.value
    if op is FilterOperator.NEQ:
        return value != spec.value
    if op is FilterOperator.LIKE:
        return str(spec.value).lower() in str(value).lower()
    return _compare(op, value, spec.value)


def apply_advanced_filters(rows: list[Row], filters: list[FilterSpec]) -> list[Row]:
    """Keep rows matching every filter (AND), mirroring the SQL WHERE clause."""
    if not filters:
        return rows
    return [row for row in rows if all(matches(row, spec) for spec in filters)]
