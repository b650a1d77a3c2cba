"""Custom exception hierarchy for ContentForge.

Two families live here:

- ``ForgeException`` subclasses are raised by the API layer and rendered as
  structured JSON by the exception handler middleware.
- ``ProviderError`` subclasses are raised by the generation service and never
  reach an HTTP caller; the job runner turns them into error records on the
  job document.
"""

from enum import Enum
from typing import Optional, Dict, Any, Iterable


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Job errors
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    UNSUPPORTED_JOB_TYPE = "UNSUPPORTED_JOB_TYPE"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Storage errors
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"

    # Auth
    UNAUTHORIZED = "UNAUTHORIZED"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ForgeException(Exception):
    """
    Base exception for all API-facing ContentForge errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class JobNotFoundError(ForgeException):
    """Job not found, or owned by a different principal."""

    def __init__(self, job_id: str):
        super().__init__(
            "Job not found",
            ErrorCode.JOB_NOT_FOUND,
            status_code=404,
            details={"job_id": job_id}
        )


class ValidationError(ForgeException):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class UnsupportedJobTypeError(ForgeException):
    """Submitted job type is not one of the supported kinds."""

    def __init__(self, received: str, supported: Iterable[str]):
        super().__init__(
            "Unsupported AI job type",
            ErrorCode.UNSUPPORTED_JOB_TYPE,
            status_code=400,
            details={"received": received, "supported": list(supported)}
        )


class AuthenticationError(ForgeException):
    """Request lacks valid authentication credentials."""

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(
            message,
            ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class StoreUnavailableError(ForgeException):
    """The job store could not be reached."""

    def __init__(self, message: str = "Job store unavailable", original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = type(original_error).__name__

        super().__init__(
            message,
            ErrorCode.STORE_UNAVAILABLE,
            status_code=503,
            details=details
        )


# ---------------------------------------------------------------------------
# Generation provider errors
# ---------------------------------------------------------------------------

class ProviderError(Exception):
    """A generation call failed.

    ``tokens_used`` records usage the provider reported before the failure
    (non-zero only when a call completed but its output was unusable).
    """

    retriable = False

    def __init__(
        self,
        message: str,
        code: str = "AI_CALL_FAILED",
        provider: str = "",
        tokens_used: int = 0,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.provider = provider
        self.tokens_used = tokens_used


class TransientProviderError(ProviderError):
    """Rate limit, timeout, connection reset or 5xx from the provider."""

    retriable = True


class ProviderRequestError(ProviderError):
    """The provider rejected the request (4xx other than 429)."""


class ProviderConfigurationError(ProviderError):
    """The provider cannot be called at all (e.g. missing API key)."""

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message, code="PROVIDER_NOT_CONFIGURED", provider=provider)


class ResponseParseError(ProviderError):
    """Provider output could not be parsed as JSON.

    Keeps the raw text and both parse failure messages for diagnostics.
    """

    def __init__(
        self,
        raw_text: str,
        parse_error: str,
        fallback_error: Optional[str] = None,
        context: str = "unknown",
        tokens_used: int = 0,
    ):
        super().__init__(
            f"JSON_PARSE_FAILED for {context}",
            code="JSON_PARSE_FAILED",
            tokens_used=tokens_used,
        )
        self.raw_text = raw_text
        self.parse_error = parse_error
        self.fallback_error = fallback_error
        self.context = context


class PreconditionError(ProviderError):
    """Required input for a generation kind is missing. Never retried."""

    def __init__(self, message: str, missing: Iterable[str] = ()):
        super().__init__(message, code="MISSING_REQUIRED_FIELDS")
        self.missing = list(missing)
