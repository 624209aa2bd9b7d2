"""Shared utilities: telemetry and cross-cutting helpers.

Used by application, infrastructure and API layers. No business logic.
"""

from app.shared.utils import utc_now

__all__ = ["utc_now"]
