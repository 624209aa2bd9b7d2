"""Infrastructure services: default collaborator implementations."""

from app.infrastructure.services.access_resolver import DenyAllAccessResolver

__all__ = ["DenyAllAccessResolver"]
