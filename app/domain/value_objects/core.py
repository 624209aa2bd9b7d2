"""Domain value objects for the analytics cache.

Value objects are immutable types that represent domain concepts with
self-validation. They have no identity, only value.
"""

from dataclasses import dataclass
from typing import Any

from app.core.constants import CACHE_KEY_SEP, CACHE_KEY_WILDCARD
from app.domain.enums import FilterOperator
from app.domain.exceptions import ValidationException


def _validate_key_component(value: str, name: str) -> None:
    """Raise ValueError if value cannot be embedded unambiguously in a cache key.

    Args:
        value: String component used in a cache key.
        name: Name of the component (for error message).

    Raises:
        ValueError: If value is empty, contains CACHE_KEY_SEP, or is the wildcard.
    """
    if not value:
        raise ValueError(f"Cache key component {name!r} must be a non-empty string")
    if CACHE_KEY_SEP in value:
        raise ValueError(
            f"Cache key component {name!r} must not contain separator {CACHE_KEY_SEP!r}"
        )
    if value == CACHE_KEY_WILDCARD:
        raise ValueError(
            f"Cache key component {name!r} must not be the wildcard {CACHE_KEY_WILDCARD!r}"
        )


@dataclass(frozen=True)
class CacheKeyComponents:
    """Explicit chart-level dimensions that identify a cache entry.

    Only explicit chart filters populate practice_id/provider_id;
    permission-derived values never appear here. None means "absent"
    and becomes the wildcard in the key.
    """

    data_source_id: int
    measure: str | None = None
    practice_id: int | None = None
    provider_id: int | None = None
    frequency: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.data_source_id, bool) or not isinstance(self.data_source_id, int):
            raise ValueError("data_source_id must be an integer")
        if self.measure is not None:
            _validate_key_component(self.measure, "measure")
        if self.frequency is not None:
            _validate_key_component(self.frequency, "frequency")
        for name in ("practice_id", "provider_id"):
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                raise ValueError(f"{name} must be an integer")

    def present_dimensions(self) -> frozenset[str]:
        """Names of the dimensions that are set (excluding data_source_id)."""
        return frozenset(
            name
            for name in ("measure", "practice_id", "provider_id", "frequency")
            if getattr(self, name) is not None
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_source_id": self.data_source_id,
            "measure": self.measure,
            "practice_id": self.practice_id,
            "provider_id": self.provider_id,
            "frequency": self.frequency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheKeyComponents":
        return cls(
            data_source_id=data["data_source_id"],
            measure=data.get("measure"),
            practice_id=data.get("practice_id"),
            provider_id=data.get("provider_id"),
            frequency=data.get("frequency"),
        )


@dataclass(frozen=True)
class FilterSpec:
    """Advanced filter: field, operator, value.

    The operator is coerced to FilterOperator at construction, so unknown
    operators (e.g. 'between', 'OR 1=1') fail here rather than at query
    time. The field is only a candidate until FilterFieldValidator
    checks it against the data source's column registry.
    """

    field: str
    operator: FilterOperator
    value: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.field, str) or not self.field:
            raise ValidationException("Filter field must be a non-empty string", field="field")
        try:
            operator = FilterOperator(self.operator)
        except ValueError:
            raise ValidationException(
                f"Unsupported filter operator: {self.operator!r}", field="operator"
            ) from None
        object.__setattr__(self, "operator", operator)
        if operator in (FilterOperator.IN, FilterOperator.NOT_IN):
            if not isinstance(self.value, (list, tuple)):
                raise ValidationException(
                    f"Operator '{operator.value}' requires a list value", field=self.field
                )
            object.__setattr__(self, "value", tuple(self.value))
        elif self.value is None:
            raise ValidationException(
                f"Operator '{operator.value}' requires a value", field=self.field
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FilterSpec":
        """Build from an API/chart payload ({field, operator?, value}); operator defaults to eq."""
        return cls(
            field=data.get("field", ""),
            operator=data.get("operator") or FilterOperator.EQ,
            value=data.get("value"),
        )
