"""
Custom exception hierarchy for the report preview service.
Provides structured error handling with proper HTTP status codes.
"""

from typing import Any, Optional


class ReportPreviewError(Exception):
    """Base exception for all report preview errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# =============================================================================
# Configuration Errors (500)
# =============================================================================


class ConfigurationError(ReportPreviewError):
    """Error in application configuration."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details=details,
            status_code=500,
        )


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(ReportPreviewError):
    """Request validation failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=details,
            status_code=400,
        )


class InvalidRequestError(ValidationError):
    """Invalid request parameters."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message=message, details=details)
        self.code = "INVALID_REQUEST"


class SecurityPolicyError(ValidationError):
    """Request uses a feature disabled by security policy."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message=message, details=details)
        self.code = "SECURITY_POLICY"


class ODataQueryError(ValidationError):
    """Query option rejected by the mock OData service (strict mode only)."""

    def __init__(self, message: str, option: str) -> None:
        super().__init__(message=message, details={"option": option})
        self.code = "ODATA_QUERY_INVALID"


# =============================================================================
# Not Found Errors (404)
# =============================================================================


class NotFoundError(ReportPreviewError):
    """Requested resource not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        msg = message or f"{resource_type} not found"
        if resource_id and not message:
            msg = f"{resource_type} with ID '{resource_id}' not found"

        super().__init__(
            message=msg,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
            status_code=404,
        )


class PreviewNotFoundError(NotFoundError):
    """Preview unknown, expired or backed by an invalid token.

    The cases are indistinguishable to callers: no details are exposed.
    """

    def __init__(self) -> None:
        super().__init__(resource_type="Preview", message="Preview not found or expired")
        self.code = "PREVIEW_NOT_FOUND"
        self.details = {}


class EntitySetNotFoundError(NotFoundError):
    """OData entity set or entity not found."""

    def __init__(self, name: str) -> None:
        super().__init__(resource_type="EntitySet", message="Entity set not found")
        self.code = "ENTITY_SET_NOT_FOUND"
        self.details = {"entity_set": name}


# =============================================================================
# External Service Errors (502, 504)
# =============================================================================


class ExternalServiceError(ReportPreviewError):
    """Error communicating with external service."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=f"{service_name} error: {message}",
            code="EXTERNAL_SERVICE_ERROR",
            details={"service": service_name, **(details or {})},
            status_code=502,
        )


class LLMError(ExternalServiceError):
    """Field-mapping LLM call failed.

    ``reason`` is the machine-readable fallback code reported to callers.
    """

    def __init__(self, reason: str, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(service_name="LLM", message=message, details=details)
        self.code = "LLM_ERROR"
        self.reason = reason
