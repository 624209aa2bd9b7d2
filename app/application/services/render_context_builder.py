"""Build a per-request RenderContext from the caller and the access resolver."""

from __future__ import annotations

from app.application.dtos.analytics import RenderContext, UserContext
from app.application.interfaces.services import IAccessResolver


class RenderContextBuilder:
    """Resolve the caller's accessible practices/providers into a fresh RenderContext."""

    def __init__(self, access_resolver: IAccessResolver) -> None:
        self.access_resolver = access_resolver

    async def build(self, user: UserContext) -> RenderContext:
        """Return a new context; never reuse one across requests."""
        grant = await self.access_resolver.resolve(user.user_id)
        return RenderContext(
            user_id=user.user_id,
            permission_scope=grant.scope,
            accessible_practices=frozenset(grant.accessible_practices),
            accessible_providers=frozenset(grant.accessible_providers),
            is_super_admin=user.is_super_admin,
        )
