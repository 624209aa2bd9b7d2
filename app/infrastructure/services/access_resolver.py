"""Default access resolver used when no organization-hierarchy resolver is wired.

Grants nothing: every caller resolves to scope 'own' with no practices,
so the permission filter returns zero rows. Deployments that serve chart
data inject a real IAccessResolver via app.state.access_resolver.
"""

from __future__ import annotations

import logging

from app.application.dtos.analytics import AccessGrant
from app.domain.enums import PermissionScope

logger = logging.getLogger(__name__)


class DenyAllAccessResolver:
    """IAccessResolver that fails closed."""

    async def resolve(self, user_id: str) -> AccessGrant:
        logger.warning("No access resolver configured; user %s resolves to no data", user_id)
        return AccessGrant(scope=PermissionScope.OWN)
