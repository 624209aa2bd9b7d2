"""Domain exceptions for the analytics cache.

Defines domain-level exceptions for validation and security failures.
These exceptions are independent of infrastructure concerns. Presentation
layer maps them to HTTP responses in exception handlers.

Cache store failures are not represented here: the store degrades to a
miss or a no-op write and never raises to callers.
"""

from typing import Any


class AnalyticsCacheException(Exception):
    """Base exception for all analytics cache errors.

    All custom exceptions should inherit from this class to allow
    consistent error handling and logging. Presentation layer maps
    these to HTTP responses using message, error_code, and details.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. field, data_source_id).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON body used by the API exception handler."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(AnalyticsCacheException):
    """Raised when input validation fails (e.g. unknown operator or bad value shape)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize with message and optional field name.

        Args:
            message: Description of the validation failure.
            field: Optional field or attribute that failed validation.
        """
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class FilterFieldValidationException(AnalyticsCacheException):
    """Raised when a filter field is not in the data source's allow-set.

    Security-relevant: dynamic column names cannot be bound as parameters,
    so rejecting them here is what keeps them out of SQL.
    """

    def __init__(self, field: str, data_source_id: int) -> None:
        """Initialize with the rejected field and data source.

        Args:
            field: Field name supplied by the caller.
            data_source_id: Data source whose column registry was consulted.
        """
        super().__init__(
            f"Filter field is not allowed for data source {data_source_id}",
            "FILTER_FIELD_REJECTED",
            {"field": field, "data_source_id": data_source_id, "security": True},
        )


class PermissionScopeException(AnalyticsCacheException):
    """Raised when a claimed permission scope is not backed by the user's grants."""

    def __init__(self, user_id: str, claimed_scope: str, reason: str) -> None:
        """Initialize with the user, the scope they presented, and why it was refused.

        Args:
            user_id: User whose render context failed validation.
            claimed_scope: Scope carried by the render context.
            reason: Short machine-readable reason (e.g. 'missing_permission').
        """
        super().__init__(
            f"Permission scope '{claimed_scope}' is not permitted for this user",
            "PERMISSION_SCOPE_MISMATCH",
            {"user_id": user_id, "claimed_scope": claimed_scope, "reason": reason},
        )


class DataSourceNotFoundException(AnalyticsCacheException):
    """Raised when a data source id is unknown or inactive."""

    def __init__(self, data_source_id: int) -> None:
        super().__init__(
            f"Data source not found: {data_source_id}",
            "DATA_SOURCE_NOT_FOUND",
            {"data_source_id": data_source_id},
        )


class InvalidDataSourceConfigException(AnalyticsCacheException):
    """Raised when catalog metadata (schema/table identifiers) fails format validation."""

    def __init__(self, data_source_id: int, identifier: str) -> None:
        super().__init__(
            f"Data source {data_source_id} has an invalid identifier",
            "INVALID_DATA_SOURCE_CONFIG",
            {"data_source_id": data_source_id, "identifier": identifier},
        )


class SqlNotConfiguredException(AnalyticsCacheException):
    """Raised when a fetch needs the analytics database but DATABASE_URL is unset."""

    def __init__(self) -> None:
        super().__init__(
            message="This operation requires a SQL database that is not configured.",
            error_code="SERVICE_UNAVAILABLE",
        )
