"""Application interfaces (ports): repository and service protocols.

Define contracts for infrastructure implementations (DIP).
No runtime imports from app.infrastructure or app.api.
"""

from app.application.interfaces.repositories import (
    IAnalyticsExecutor,
    IColumnRegistry,
    IDataSourceCatalog,
)
from app.application.interfaces.services import (
    IAccessResolver,
    ICacheService,
    PermissionAuditSink,
)

__all__ = [
    "IAccessResolver",
    "IAnalyticsExecutor",
    "ICacheService",
    "IColumnRegistry",
    "IDataSourceCatalog",
    "PermissionAuditSink",
]
