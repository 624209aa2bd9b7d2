"""Service interfaces (ports) for the application layer.

Protocols define contracts for the cache store and the external
collaborators the analytics cache depends on (DIP).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from app.application.dtos.analytics import AccessGrant, PermissionAuditRecord


# Cache store interface
class ICacheService(Protocol):
    """Key-value store used by the analytics cache.

    Implementations must never raise for store unavailability: reads
    return None (miss), writes return False, scans return empty results.
    """

    def is_available(self) -> bool:
        """Return True if cache is connected."""

    async def get(self, key: str) -> Any:
        """Return cached value (JSON-decoded) or None."""

    async def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """Store value with TTL. Returns True on success."""

    async def delete(self, key: str) -> bool:
        """Delete key. Returns True on success."""

    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching pattern. Returns count deleted."""

    async def scan(self, pattern: str) -> list[str]:
        """Return keys matching pattern (SCAN, non-blocking)."""

    async def memory_usage(self, key: str) -> int | None:
        """Return approximate bytes held by key, or None if unknown."""

    async def acquire_lock(self, key: str, ttl: int) -> str | None:
        """Set key only if absent, with expiry. Returns an owner token, or None if held."""

    async def release_lock(self, key: str, token: str) -> bool:
        """Delete key only if it still holds token. Returns True if released."""


# Access resolver interface
class IAccessResolver(Protocol):
    """Protocol for deriving a user's accessible practices/providers from org hierarchy."""

    async def resolve(self, user_id: str) -> AccessGrant:
        """Return the user's accessible practice/provider sets and permission scope."""


# Permission audit sink
PermissionAuditSink = Callable[["PermissionAuditRecord"], None]
