"""Redis-backed store for the analytics cache.

Provides async JSON get/set with TTL, SCAN-based pattern deletion and key
listing, MEMORY USAGE sampling, and a SET NX EX lock with token-checked
release. Every operation degrades instead of raising when Redis is down:
reads miss, writes report False, scans come back empty.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis

from app.core.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Delete only if the lock still holds our token (a slow warm must not free a newer owner's lock).
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

_SCAN_CHUNK_SIZE = 500


class CacheService:
    """Async Redis store implementing ICacheService.

    Uses app.core.config for connection settings. Call connect() at
    startup and disconnect() at shutdown; pass redis_client to inject a
    ready client (tests, scripts).
    """

    def __init__(self, redis_client: redis.Redis | None = None) -> None:
        """Initialize cache service.

        Args:
            redis_client: Optional Redis client for testing or DI.
        """
        self.redis = redis_client
        self.settings = get_settings()
        self._connected = redis_client is not None

    async def connect(self) -> None:
        """Establish Redis connection. Call on app startup."""
        if not self.settings.redis_enabled:
            logger.info("Redis disabled by configuration; analytics cache bypassed")
            return
        if self.redis is None:
            try:
                self.redis = redis.Redis(
                    host=self.settings.redis_host,
                    port=self.settings.redis_port,
                    db=self.settings.redis_db,
                    password=self.settings.redis_password.get_secret_value() if self.settings.redis_password else None,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_keepalive=True,
                )
                await self.redis.ping()
                self._connected = True
                logger.info(
                    "Redis cache connected: %s:%s",
                    self.settings.redis_host,
                    self.settings.redis_port,
                )
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.warning("Redis connection failed: %s. Cache disabled.", e)
                self._connected = False
                self.redis = None

    async def disconnect(self) -> None:
        """Close Redis connection. Call on app shutdown."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self._connected = False
            logger.info("Redis cache disconnected")

    async def _reconnect(self) -> bool:
        """Attempt to reconnect after a dropped connection. Returns True if reconnected."""
        if self.redis is None:
            return False
        try:
            await self.redis.aclose()
        except redis.RedisError:
            logger.debug("Ignoring error while closing dropped Redis connection")
        self.redis = None
        self._connected = False
        await self.connect()
        return self._connected

    def is_available(self) -> bool:
        """Return True if Redis is connected and usable."""
        return self._connected and self.redis is not None

    async def _run(
        self,
        operation: str,
        target: str,
        call: Callable[[redis.Redis], Awaitable[T]],
        default: T,
    ) -> T:
        """Run call against Redis, retrying once after reconnect; default on failure."""
        if not self.is_available() or self.redis is None:
            return default
        try:
            return await call(self.redis)
        except (redis.ConnectionError, redis.TimeoutError):
            if await self._reconnect():
                try:
                    return await call(self.redis)
                except redis.RedisError:
                    logger.exception("Cache %s error for %s after reconnect", operation, target)
                    return default
            logger.warning("Cache %s unavailable for %s (Redis disconnected)", operation, target)
            return default
        except redis.RedisError:
            logger.exception("Cache %s error for %s", operation, target)
            return default

    async def get(self, key: str) -> Any | None:
        """Return cached value (JSON-deserialized) or None if missing/unavailable."""
        value = await self._run("get", key, lambda r: r.get(key), None)
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError:
            logger.warning("Cache value for %s is not valid JSON; treating as miss", key)
            return None

    async def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """Store value (JSON-serialized) with TTL in seconds. Returns True on success."""
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning("Cache SET skipped for %s: value is not JSON-serializable (%s)", key, e)
            return False

        async def _setex(r: redis.Redis) -> bool:
            await r.setex(key, ttl, serialized)
            return True

        stored = await self._run("set", key, _setex, False)
        if stored:
            logger.debug("Cache SET: %s (TTL: %ss, %d bytes)", key, ttl, len(serialized))
        return stored

    async def delete(self, key: str) -> bool:
        """Remove key from cache. Returns True if the command ran."""

        async def _delete(r: redis.Redis) -> bool:
            await r.delete(key)
            return True

        return await self._run("delete", key, _delete, False)

    async def scan(self, pattern: str) -> list[str]:
        """Return keys matching pattern via SCAN (never KEYS)."""

        async def _scan(r: redis.Redis) -> list[str]:
            return [key async for key in r.scan_iter(match=pattern, count=_SCAN_CHUNK_SIZE)]

        return await self._run("scan", pattern, _scan, [])

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching pattern using SCAN + batched UNLINK (non-blocking).

        Args:
            pattern: Redis SCAN match pattern (e.g. datasource:3:*).

        Returns:
            Number of keys deleted.
        """

        async def _unlink_matching(r: redis.Redis) -> int:
            deleted = 0
            chunk: list[str] = []
            async for key in r.scan_iter(match=pattern, count=_SCAN_CHUNK_SIZE):
                chunk.append(key)
                if len(chunk) >= _SCAN_CHUNK_SIZE:
                    deleted += int(await r.unlink(*chunk) or 0)
                    chunk = []
            if chunk:
                deleted += int(await r.unlink(*chunk) or 0)
            return deleted

        deleted = await self._run("delete_pattern", pattern, _unlink_matching, 0)
        if deleted > 0:
            logger.info("Cache INVALIDATE: %s (%s keys)", pattern, deleted)
        return deleted

    async def memory_usage(self, key: str) -> int | None:
        """Approximate bytes held by key (MEMORY USAGE), or None if unknown."""
        usage = await self._run("memory_usage", key, lambda r: r.memory_usage(key), None)
        return int(usage) if usage is not None else None

    async def acquire_lock(self, key: str, ttl: int) -> str | None:
        """SET key NX EX ttl with a fresh token. Returns the token, or None if held/unavailable."""
        token = uuid.uuid4().hex
        acquired = await self._run(
            "acquire_lock", key, lambda r: r.set(key, token, nx=True, ex=ttl), None
        )
        return token if acquired else None

    async def release_lock(self, key: str, token: str) -> bool:
        """Delete key only if it still holds token. Returns True if released."""
        released = await self._run(
            "release_lock", key, lambda r: r.eval(_RELEASE_LOCK_SCRIPT, 1, key, token), 0
        )
        if not released:
            logger.warning("Lock %s was not released (expired or taken over)", key)
        return bool(released)
