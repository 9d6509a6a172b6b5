# =============================================================================
# app/exceptions.py - Custom Exceptions and Handlers
# =============================================================================
# Centralized exception handling for the console and the device API.
#
# Browser requests get a rendered error page (or a redirect with a flash
# message); API and AJAX requests get a structured JSON error.
# =============================================================================

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse, Response

logger = logging.getLogger(__name__)


class VerificationServerException(Exception):
    """
    Base exception for the verification server.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "VERIFICATION_SERVER_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "error": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Session / Pipeline Exceptions
# =============================================================================

class RedirectError(VerificationServerException):
    """
    Raised by the request pipeline when the browser must be sent elsewhere.

    The message is flashed as an error before redirecting.
    """

    def __init__(self, location: str, message: str):
        super().__init__(
            message=message,
            code="REDIRECT",
            status_code=303,
            details={"location": location},
        )
        self.location = location


class UnauthorizedError(VerificationServerException):
    """Raised when the user lacks permission for the current realm."""

    def __init__(self, message: str = "You are not authorized to perform that action"):
        super().__init__(
            message=message,
            code="UNAUTHORIZED",
            status_code=401,
            suggestion="Ask a realm administrator for access",
        )


class CSRFError(VerificationServerException):
    """Raised when a state-changing request has a missing or bad CSRF token."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Invalid CSRF token: {reason}",
            code="CSRF_INVALID",
            status_code=403,
            suggestion="Reload the page and submit the form again",
        )


class RateLimitExceededError(VerificationServerException):
    """Raised when a key has exhausted its request budget."""

    def __init__(self, retry_after: int):
        super().__init__(
            message="Rate limit exceeded",
            code="RATE_LIMITED",
            status_code=429,
            suggestion=f"Retry after {retry_after} seconds",
            details={"retry_after": retry_after},
        )
        self.retry_after = retry_after


class APIKeyError(VerificationServerException):
    """Raised when an API request carries a missing, unknown or wrong-type key."""

    def __init__(self, message: str = "Invalid API key"):
        super().__init__(
            message=message,
            code="INVALID_API_KEY",
            status_code=401,
            suggestion="Send a valid key in the X-API-Key header",
        )


# =============================================================================
# Lookup Exceptions
# =============================================================================

class NotFoundError(VerificationServerException):
    """Raised when a record doesn't exist (or isn't visible in the realm)."""

    def __init__(self, kind: str, identifier: Any):
        super().__init__(
            message=f"{kind} not found: {identifier}",
            code=f"{kind.upper().replace(' ', '_')}_NOT_FOUND",
            status_code=404,
            suggestion=f"Check that the {kind.lower()} exists in the current realm",
            details={"id": str(identifier)},
        )


class RealmNotFoundError(NotFoundError):
    def __init__(self, realm_id: Any):
        super().__init__("Realm", realm_id)


class UserNotFoundError(NotFoundError):
    def __init__(self, email: Any):
        super().__init__("User", email)


class APIKeyNotFoundError(NotFoundError):
    def __init__(self, app_id: Any):
        super().__init__("API key", app_id)


# =============================================================================
# Validation Exceptions
# =============================================================================

class ValidationFailedError(VerificationServerException):
    """Raised when a record fails validation before it is saved."""

    def __init__(self, kind: str, errors: list[str]):
        super().__init__(
            message=f"Failed to save {kind}: {', '.join(errors)}",
            code="VALIDATION_FAILED",
            status_code=422,
            suggestion="Correct the listed fields and try again",
            details={"errors": errors},
        )
        self.errors = errors


class IssueCodeError(VerificationServerException):
    """Raised when an issue request is rejected before a code is generated."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(
            message=message,
            code="ISSUE_REJECTED",
            status_code=status_code,
        )


class CodeCollisionError(VerificationServerException):
    """Raised when no unique code could be generated within the retry budget."""

    def __init__(self, attempts: int):
        super().__init__(
            message=f"Failed to generate a unique code after {attempts} attempts",
            code="CODE_COLLISION",
            status_code=500,
            suggestion="Increase the realm code length or COLLISION_RETRY_COUNT",
            details={"attempts": attempts},
        )


class VerificationCodeError(VerificationServerException):
    """Base for errors returned while redeeming a code."""


class VerificationCodeNotFoundError(VerificationCodeError):
    def __init__(self):
        super().__init__(
            message="verification code invalid",
            code="CODE_INVALID",
            status_code=400,
        )


class VerificationCodeUsedError(VerificationCodeError):
    def __init__(self):
        super().__init__(
            message="verification code used",
            code="CODE_USED",
            status_code=400,
        )


class VerificationCodeExpiredError(VerificationCodeError):
    def __init__(self):
        super().__init__(
            message="verification code expired",
            code="CODE_EXPIRED",
            status_code=400,
        )


class UnsupportedTestTypeError(VerificationCodeError):
    def __init__(self, test_type: str):
        super().__init__(
            message=f"verification code has unsupported test type: {test_type}",
            code="UNSUPPORTED_TEST_TYPE",
            status_code=412,
            details={"test_type": test_type},
        )


# =============================================================================
# Exception Handlers
# =============================================================================

def wants_json(request: Request) -> bool:
    """True for API calls and AJAX requests from the console."""
    if request.url.path.startswith("/api/"):
        return True
    if request.headers.get("x-requested-with", "").lower() == "xmlhttprequest":
        return True
    accept = request.headers.get("accept", "")
    content_type = request.headers.get("content-type", "")
    return "application/json" in accept or "application/json" in content_type


async def verification_server_exception_handler(
    request: Request,
    exc: VerificationServerException
) -> Response:
    """
    Convert VerificationServerException to a response.

    - RedirectError: flash + 303 redirect (JSON 401 for AJAX callers)
    - JSON callers: structured error body
    - Browsers: rendered error page
    """
    from app.flash import flash_error
    from app.render import render_error

    if isinstance(exc, RedirectError):
        if wants_json(request):
            return JSONResponse(status_code=401, content=exc.to_dict())
        flash_error(request, exc.message)
        return RedirectResponse(exc.location, status_code=303)

    headers = {}
    if isinstance(exc, RateLimitExceededError):
        headers["Retry-After"] = str(exc.retry_after)

    if wants_json(request):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    response = render_error(request, exc.status_code, exc.message)
    response.headers.update(headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> Response:
    """
    Handle request bodies, forms and params that fail validation.

    JSON callers get the usual {"error", "code", "details"} body instead of
    FastAPI's default {"detail": [...]}; browsers get the error page.
    """
    from app.render import render_error

    errors = [
        {
            # Drop the "body"/"query" prefix so the field reads like the request
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or "request",
            "message": err.get("msg", "invalid value"),
        }
        for err in exc.errors()
    ]
    fields = ", ".join(error["field"] for error in errors)
    message = f"Invalid request: {fields}" if fields else "Invalid request"
    logger.warning(f"Validation failed on {request.method} {request.url.path}: {fields}")

    if wants_json(request):
        return JSONResponse(
            status_code=422,
            content={
                "error": message,
                "code": "VALIDATION_FAILED",
                "details": {"errors": errors},
            },
        )
    return render_error(request, 422, message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle unexpected exceptions."""
    from app.render import render_error

    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    if wants_json(request):
        return JSONResponse(
            status_code=500,
            content={"error": "An unexpected error occurred", "code": "INTERNAL_ERROR"},
        )
    return render_error(request, 500, "An unexpected error occurred")
