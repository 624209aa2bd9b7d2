"""Domain value objects: cache key components and filter specs."""

from app.domain.value_objects.core import CacheKeyComponents, FilterSpec

__all__ = ["CacheKeyComponents", "FilterSpec"]
