"""Domain enumerations for the analytics cache.

Closed value sets used across layers: permission scope tiers, filter
operators, and data source types. Unknown values fail at construction
(e.g. FilterOperator("between") raises ValueError).
"""

from enum import Enum


class _ValuesMixin:
    """Mixin that adds a values() classmethod to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]


class PermissionScope(_ValuesMixin, str, Enum):
    """Coarse visibility tier carried by a render context."""

    OWN = "own"
    ORGANIZATION = "organization"
    ALL = "all"


class FilterOperator(_ValuesMixin, str, Enum):
    """Operators accepted for advanced filters."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NOT_IN = "not_in"
    LIKE = "like"


class DataSourceType(_ValuesMixin, str, Enum):
    """How a data source's rows are organized.

    Measure-based sources are keyed by measure and frequency; table-based
    sources are cached whole at the data-source level.
    """

    MEASURE_BASED = "measure-based"
    TABLE_BASED = "table-based"
