"""Application services: key hierarchy, field validation, query building, row filters."""

from app.application.services.cache_keys import (
    build_hierarchy,
    build_key,
    invalidation_patterns,
    parse_key,
)
from app.application.services.filter_field_validator import FilterFieldValidator
from app.application.services.permission_filter_service import (
    PermissionFilterService,
    has_permission,
)
from app.application.services.query_builder import build_full_table_query, build_query
from app.application.services.render_context_builder import RenderContextBuilder
from app.application.services.row_filters import (
    apply_advanced_filters,
    filter_by_date_range,
    narrow_to_components,
)

__all__ = [
    "FilterFieldValidator",
    "PermissionFilterService",
    "RenderContextBuilder",
    "apply_advanced_filters",
    "build_full_table_query",
    "build_hierarchy",
    "build_key",
    "build_query",
    "filter_by_date_range",
    "has_permission",
    "invalidation_patterns",
    "narrow_to_components",
    "parse_key",
]
