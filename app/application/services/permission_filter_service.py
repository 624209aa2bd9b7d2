"""Permission filter engine: server-side row filtering by accessible practices/providers.

Runs after every cache or database fetch and before any other post-fetch
filter. The cache always holds the widest dataset, so this is the only
thing narrowing rows to what the caller may see.

Per request: validate scope -> short-circuit 'all' -> fail closed on an
empty grant -> filter by practice -> filter by provider -> audit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from app.application.dtos.analytics import PermissionAuditRecord, RenderContext, Row, UserContext
from app.application.interfaces.services import PermissionAuditSink
from app.core.constants import (
    COLUMN_PRACTICE,
    COLUMN_PROVIDER,
    PERMISSION_ANALYTICS_READ_ALL,
    PERMISSION_ANALYTICS_READ_ORGANIZATION,
)
from app.domain.enums import PermissionScope
from app.domain.exceptions import PermissionScopeException
from app.shared.telemetry.logging import AUDIT_LOGGER_NAME

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)


def has_permission(permissions: Iterable[str], code: str) -> bool:
    """Return True if permissions grant code directly or via resource:* / *:*."""
    granted = set(permissions)
    if code in granted:
        return True
    resource = code.split(":", 1)[0]
    return f"{resource}:*" in granted or "*:*" in granted


def _practice_ids(rows: list[Row]) -> tuple[int, ...]:
    # Sorted by type name first, so a mixed int/str column still orders.
    return tuple(
        sorted(
            {row[COLUMN_PRACTICE] for row in rows if row.get(COLUMN_PRACTICE) is not None},
            key=lambda value: (type(value).__name__, value),
        )
    )


class PermissionFilterService:
    """Validate a render context's scope, then narrow rows to what it may see.

    Filtering never raises: the worst case is an empty result. Only scope
    validation raises, and it aborts the whole request.
    """

    def __init__(self, audit_sink: PermissionAuditSink | None = None) -> None:
        self.audit_sink = audit_sink

    def validate_scope(self, context: RenderContext, user: UserContext) -> PermissionScope:
        """Confirm the claimed scope is backed by the user's actual grants.

        Raises:
            PermissionScopeException: On any mismatch. Never downgrades silently.
        """
        scope = context.permission_scope
        reason: str | None = None
        if context.user_id != user.user_id:
            reason = "user_mismatch"
        elif context.is_super_admin != user.is_super_admin:
            reason = "super_admin_mismatch"
        elif user.is_super_admin:
            if scope is not PermissionScope.ALL:
                reason = "super_admin_requires_all"
        elif scope is PermissionScope.ALL:
            if not has_permission(user.permissions, PERMISSION_ANALYTICS_READ_ALL):
                reason = "missing_permission"
        elif scope is PermissionScope.ORGANIZATION:
            if not (
                has_permission(user.permissions, PERMISSION_ANALYTICS_READ_ORGANIZATION)
                or has_permission(user.permissions, PERMISSION_ANALYTICS_READ_ALL)
            ):
                reason = "missing_permission"
        if reason is not None:
            logger.error(
                "SECURITY: permission scope validation failed (user=%s, scope=%s, reason=%s)",
                user.user_id,
                scope.value,
                reason,
            )
            raise PermissionScopeException(user.user_id, scope.value, reason)
        return scope

    def filter_rows(self, rows: list[Row], context: RenderContext) -> list[Row]:
        """Return the subset of rows visible to context (scope already validated)."""
        filtered = self._apply(rows, context)
        self._audit(rows, filtered, context)
        return filtered

    def apply(self, rows: list[Row], context: RenderContext, user: UserContext) -> list[Row]:
        """validate_scope then filter_rows."""
        self.validate_scope(context, user)
        return self.filter_rows(rows, context)

    def _apply(self, rows: list[Row], context: RenderContext) -> list[Row]:
        scope = context.permission_scope
        if scope is PermissionScope.ALL:
            return list(rows)
        # Fail closed: an empty grant is never "no filter".
        if not context.accessible_practices:
            return []
        practices = context.accessible_practices
        result = [row for row in rows if row.get(COLUMN_PRACTICE) in practices]
        if context.accessible_providers:
            providers = context.accessible_providers
            allow_system_rows = scope is PermissionScope.ORGANIZATION
            result = [
                row
                for row in result
                if (
                    row.get(COLUMN_PROVIDER) in providers
                    if row.get(COLUMN_PROVIDER) is not None
                    else allow_system_rows
                )
            ]
        return result

    def _audit(self, original: list[Row], filtered: list[Row], context: RenderContext) -> None:
        record = PermissionAuditRecord(
            user_id=context.user_id,
            permission_scope=context.permission_scope.value,
            original_row_count=len(original),
            filtered_row_count=len(filtered),
            practices_before=_practice_ids(original),
            practices_after=_practice_ids(filtered),
            suspicious=bool(original) and not filtered,
        )
        level = logging.WARNING if record.suspicious else logging.INFO
        audit_logger.log(
            level,
            "Permission filter applied (user=%s, scope=%s, %d -> %d rows)",
            record.user_id,
            record.permission_scope,
            record.original_row_count,
            record.filtered_row_count,
            extra={"audit": record.to_dict()},
        )
        if self.audit_sink is not None:
            self.audit_sink(record)
