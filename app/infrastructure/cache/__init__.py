"""Cache: Redis store backing the analytics cache.

Key format lives in app.application.services.cache_keys; CacheService
uses app.core.config for connection settings.
"""

from app.infrastructure.cache.redis_cache import CacheService

__all__ = ["CacheService"]
