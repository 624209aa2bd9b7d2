"""Domain layer: enums, value objects, and exceptions.

No dependencies on infrastructure or presentation. Used by application
and infrastructure layers.
"""

from app.domain.enums import DataSourceType, FilterOperator, PermissionScope
from app.domain.exceptions import (
    AnalyticsCacheException,
    DataSourceNotFoundException,
    FilterFieldValidationException,
    InvalidDataSourceConfigException,
    PermissionScopeException,
    SqlNotConfiguredException,
    ValidationException,
)
from app.domain.value_objects import CacheKeyComponents, FilterSpec

__all__ = [
    # Enums
    "DataSourceType",
    "FilterOperator",
    "PermissionScope",
    # Exceptions
    "AnalyticsCacheException",
    "DataSourceNotFoundException",
    "FilterFieldValidationException",
    "InvalidDataSourceConfigException",
    "PermissionScopeException",
    "SqlNotConfiguredException",
    "ValidationException",
    # Value objects
    "CacheKeyComponents",
    "FilterSpec",
]
