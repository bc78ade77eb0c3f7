"""
Exception hierarchy for ticketforge.

Only PromptNotFoundError is meant to reach callers of the engine;
everything else is raised by a collaborator and recovered by the
resolver or the generation service.
"""

from typing import Any, Optional


class TicketForgeError(Exception):
    """Base exception for all ticketforge errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a serializable dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(TicketForgeError):
    """Error in application configuration."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message=message, code="CONFIGURATION_ERROR", details=details)


# =============================================================================
# Document Errors
# =============================================================================


class TemplateParseError(TicketForgeError):
    """Document text could not be parsed at all."""

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        details = {"source": source} if source else {}
        super().__init__(message=message, code="TEMPLATE_PARSE_ERROR", details=details)


class TemplateValidationError(TicketForgeError):
    """Parsed document is missing required fields."""

    def __init__(self, source: str, errors: list[str]) -> None:
        super().__init__(
            message=f"Template '{source}' failed validation",
            code="TEMPLATE_INVALID",
            details={"source": source, "errors": errors},
        )


# =============================================================================
# Not Found Errors
# =============================================================================


class NotFoundError(TicketForgeError):
    """Requested resource not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        msg = message or f"{resource_type} not found"
        if resource_id and not message:
            msg = f"{resource_type} '{resource_id}' not found"

        super().__init__(
            message=msg,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class PromptNotFoundError(NotFoundError):
    """Reasoning prompt definition not found."""

    def __init__(self, prompt_id: str, available: Optional[list[str]] = None) -> None:
        available = sorted(available or [])
        super().__init__(
            resource_type="Prompt",
            resource_id=prompt_id,
            message=f"Prompt '{prompt_id}' not found. Available: {', '.join(available) or 'none'}",
        )
        self.code = "PROMPT_NOT_FOUND"
        self.details["available"] = available


# =============================================================================
# External Service Errors
# =============================================================================


class ExternalServiceError(TicketForgeError):
    """Error communicating with an external service."""

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
        )


class ReasoningError(ExternalServiceError):
    """The reasoning engine call failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(service_name="Reasoning engine", message=message, details=details)
        self.code = "REASONING_ERROR"


class ReasoningResponseError(ReasoningError):
    """The reasoning engine answered with something that is not the expected JSON shape."""

    def __init__(self, message: str, raw: Optional[str] = None) -> None:
        details = {"raw_preview": raw[:200]} if raw else {}
        super().__init__(message=message, details=details)
        self.code = "REASONING_BAD_RESPONSE"


class CacheError(ExternalServiceError):
    """Error communicating with the cache store."""

    def __init__(self, message: str) -> None:
        super().__init__(service_name="Cache", message=message)
        self.code = "CACHE_ERROR"


# =============================================================================
# Timeout Errors
# =============================================================================


class ReasoningTimeoutError(ReasoningError):
    """The reasoning engine did not answer in time."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            message=f"No response after {timeout_seconds} seconds",
            details={"timeout_seconds": timeout_seconds},
        )
        self.code = "TIMEOUT"
