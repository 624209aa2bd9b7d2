"""Parameterized SQL for analytics fetches.

build_query() produces SELECT * with explicit-dimension equality clauses,
a frequency clause tolerant of both legacy column names, and one clause
per advanced filter. Values are always bound (SQLAlchemy text() named
parameters :p1, :p2, ...); only identifiers that passed validation are
interpolated. Permission filtering is never part of this SQL: the cache
must hold the widest dataset so it can be filtered per caller.
"""

from __future__ import annotations

import re
from typing import Any

from app.application.dtos.analytics import QueryPlan
from app.core.constants import COLUMN_MEASURE, COLUMN_PRACTICE, COLUMN_PROVIDER
from app.domain.enums import FilterOperator
from app.domain.value_objects import FilterSpec

# Strict identifier format for schema/table/column names interpolated into SQL.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

_COMPARISON_SQL: dict[FilterOperator, str] = {
    FilterOperator.EQ: "=",
    FilterOperator.NEQ: "!=",
    FilterOperator.GT: ">",
    FilterOperator.GTE: ">=",
    FilterOperator.LT: "<",
    FilterOperator.LTE: "<=",
}

# Matches no row on any table; used for an empty IN list.
UNSATISFIABLE_PREDICATE = "1 = 0"

# PostgreSQL LIKE metacharacters; backslash is its default escape character.
_LIKE_SPECIAL = ("\\", "%", "_")


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so value matches as a literal substring."""
    for ch in _LIKE_SPECIAL:
        value = value.replace(ch, "\\" + ch)
    return value


def is_valid_identifier(value: str) -> bool:
    """Return True if value is safe to interpolate as a SQL identifier."""
    return bool(value) and bool(_IDENTIFIER_RE.fullmatch(value))


class _Params:
    """Accumulates bound parameters and hands out their placeholder names."""

    def __init__(self) -> None:
        self.values: dict[str, Any] = {}

    def bind(self, value: Any) -> str:
        name = f"p{len(self.values) + 1}"
        self.values[name] = value
        return f":{name}"


def _filter_clause(spec: FilterSpec, params: _Params) -> str | None:
    """SQL for one validated advanced filter; None when the filter excludes nothing."""
    field = spec.field
    if not is_valid_identifier(field):
        raise ValueError(f"Filter field is not a valid identifier: {field!r}")
    op = spec.operator
    if op in _COMPARISON_SQL:
        return f"{field} {_COMPARISON_SQL[op]} {params.bind(spec.value)}"
    if op is FilterOperator.LIKE:
        pattern = "%" + escape_like(str(spec.value)) + "%"
        return f"{field} ILIKE {params.bind(pattern)}"
    if op is FilterOperator.IN:
        if not spec.value:
            return UNSATISFIABLE_PREDICATE
        return f"{field} = ANY({params.bind(list(spec.value))})"
    if op is FilterOperator.NOT_IN:
        if not spec.value:
            return None
        return f"{field} != ALL({params.bind(list(spec.value))})"
    raise ValueError(f"Unsupported filter operator: {op!r}")


def build_query(plan: QueryPlan) -> tuple[str, dict[str, Any]]:
    """Return (sql, args) for plan.

    Raises:
        ValueError: If schema/table or a filter field is not a plain identifier
            (callers validate fields against the column registry first).
    """
    for identifier in (plan.schema_name, plan.table_name, *plan.frequency_columns):
        if not is_valid_identifier(identifier):
            raise ValueError(f"Invalid SQL identifier: {identifier!r}")

    params = _Params()
    conditions: list[str] = []
    if plan.measure is not None:
        conditions.append(f"{COLUMN_MEASURE} = {params.bind(plan.measure)}")
    if plan.practice_id is not None:
        conditions.append(f"{COLUMN_PRACTICE} = {params.bind(plan.practice_id)}")
    if plan.provider_id is not None:
        conditions.append(f"{COLUMN_PROVIDER} = {params.bind(plan.provider_id)}")
    if plan.frequency is not None:
        if not plan.frequency_columns:
            raise ValueError("frequency filter requires at least one frequency column")
        placeholder = params.bind(plan.frequency)
        conditions.append(
            "(" + " OR ".join(f"{col} = {placeholder}" for col in plan.frequency_columns) + ")"
        )
    for spec in plan.advanced_filters:
        clause = _filter_clause(spec, params)
        if clause is not None:
            conditions.append(clause)

    sql = f"SELECT * FROM {plan.schema_name}.{plan.table_name}"
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    return sql, params.values


def build_full_table_query(schema_name: str, table_name: str) -> tuple[str, dict[str, Any]]:
    """Unfiltered SELECT used by cache warming (widest possible dataset)."""
    return build_query(QueryPlan(schema_name=schema_name, table_name=table_name))
