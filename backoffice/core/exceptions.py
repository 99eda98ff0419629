# ==============================================================================
# CUSTOM EXCEPTIONS - Engine Error Taxonomy
# ==============================================================================
# Configuration, connectivity, validation, relationship, adapter and
# cascade failures, each mapped to an HTTP status code
# ==============================================================================

from __future__ import annotations

from typing import Any, Dict, List, Optional


class AppException(Exception):
    """
    Base exception for all engine errors.

    Provides a consistent interface for error handling with:
    - Error code for programmatic identification
    - HTTP status code mapping
    - Detailed message and optional context

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error identifier
        status_code: HTTP status code to return
        details: Additional context dictionary
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        error_code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary format for JSON response.

        Returns:
            Dictionary containing error details
        """
        return {
            "success": False,
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}', "
            f"status_code={self.status_code})"
        )


# ==============================================================================
# CONFIGURATION EXCEPTIONS
# ==============================================================================

class ConfigurationError(AppException):
    """
    Raised when the loaded schema is inconsistent.

    Examples: a section without actions, an action naming an unknown
    data source, a relationship pointing at a missing section.
    """

    def __init__(
        self,
        message: str = "Invalid configuration",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            status_code=500,
            details=details,
        )


# ==============================================================================
# DATA SOURCE EXCEPTIONS
# ==============================================================================

class DataSourceConnectionError(AppException):
    """
    Raised when a data source cannot be reached at connect time.

    Fatal for that adapter only; other data sources keep serving.
    """

    def __init__(
        self,
        message: str = "Failed to connect to data source",
        data_source: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if data_source:
            details["data_source"] = data_source
        if kind:
            details["kind"] = kind

        super().__init__(
            message=message,
            error_code="DATA_SOURCE_CONNECTION_ERROR",
            status_code=503,
            details=details,
        )
        self.data_source = data_source
        self.kind = kind


class AdapterError(AppException):
    """
    Raised when a backend operation fails after connecting.

    Wraps every driver exception so callers never see backend-native
    error types.
    """

    def __init__(
        self,
        message: str = "Data source operation failed",
        data_source: Optional[str] = None,
        kind: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        _details = dict(details or {})
        if data_source:
            _details["data_source"] = data_source
        if kind:
            _details["kind"] = kind

        super().__init__(
            message=message,
            error_code="ADAPTER_ERROR",
            status_code=502,
            details=_details,
        )
        self.data_source = data_source
        self.kind = kind


class RetryExhaustedError(AdapterError):
    """
    Raised after the final attempt of a retried network call.
    """

    def __init__(
        self,
        message: str = "Retries exhausted",
        data_source: Optional[str] = None,
        kind: Optional[str] = None,
        attempts: Optional[int] = None,
    ) -> None:
        details = {"attempts": attempts} if attempts is not None else None
        super().__init__(
            message=message,
            data_source=data_source,
            kind=kind,
            details=details,
        )
        self.error_code = "RETRY_EXHAUSTED"
        self.attempts = attempts


# ==============================================================================
# INTEGRITY EXCEPTIONS
# ==============================================================================

class RecordValidationError(AppException):
    """
    Raised when field validation produced one or more errors.

    Carries the complete list so the caller can show every problem at once.

    Attributes:
        errors: List of ``{"field": ..., "message": ...}`` dictionaries
    """

    def __init__(
        self,
        errors: List[Dict[str, Any]],
        message: str = "Validation failed",
    ) -> None:
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
            details={"validation_errors": errors},
        )
        self.errors = errors


class RelationshipValidationError(AppException):
    """
    Raised when referenced records do not exist.

    Attributes:
        errors: List of ``{"relationship_id", "field", "message"}`` dictionaries
    """

    def __init__(
        self,
        errors: List[Dict[str, Any]],
        message: str = "Relationship validation failed",
    ) -> None:
        super().__init__(
            message=message,
            error_code="RELATIONSHIP_ERROR",
            status_code=400,
            details={"relationship_errors": errors},
        )
        self.errors = errors


class CascadeError(AppException):
    """
    Raised when a cascade operation fails mid-way.

    Operations before ``failed_index`` have already been applied; nothing is
    rolled back since the plan may span several backends.
    """

    def __init__(
        self,
        message: str = "Cascade operation failed",
        failed_index: Optional[int] = None,
        applied: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        _details = dict(details or {})
        _details["applied"] = applied
        if failed_index is not None:
            _details["failed_index"] = failed_index

        super().__init__(
            message=message,
            error_code="CASCADE_ERROR",
            status_code=500,
            details=_details,
        )
        self.failed_index = failed_index
        self.applied = applied


# ==============================================================================
# REQUEST EXCEPTIONS
# ==============================================================================

class NotFoundError(AppException):
    """
    Raised when a requested backoffice, section or action does not exist.

    Maps to HTTP 404 Not Found.
    """

    def __init__(
        self,
        message: str = "Resource not found",
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
    ) -> None:
        details = {}
        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = str(resource_id)

        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            status_code=404,
            details=details,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class BadRequestError(AppException):
    """
    Raised for malformed requests.

    Maps to HTTP 400 Bad Request.
    """

    def __init__(
        self,
        message: str = "Bad request",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code="BAD_REQUEST",
            status_code=400,
            details=details,
        )
