"""
Twitter Clone Backend — Custom Exception Hierarchy
====================================================

What:  Application-specific exceptions for request admission and startup.
Why:   Each rejection kind maps to one HTTP status and one error code, so
       middleware and exception handlers render identical bodies.
How:   Each exception class carries a message and optional context dict.
       `error_response()` turns any of them into a JSON response.
Who:   Raised by the rate limiter, CSRF guard and route composer.

Exception Hierarchy:
    TwitterCloneError (base)        → 500
    ├── RateLimitExceededError      → 429 Too Many Requests
    ├── CSRFTokenError              → 403 Forbidden
    └── RouteCompositionError       → raised at startup, never rendered

Error body:
    {
        "error": "rate_limit_exceeded",
        "message": "Rate limit exceeded. Please wait 12 seconds ...",
        "details": {"retry_after": 12}
    }
"""

from typing import Any, Dict, Optional

from starlette.responses import JSONResponse


class TwitterCloneError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional details returned under "details"
    """

    status_code = 500
    error_code = "internal_server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class RateLimitExceededError(TwitterCloneError):
    """
    Raised when a client exceeds its request quota for the current window.

    HTTP:    429 Too Many Requests
    Retry-After header carries the seconds until the window resets.
    """

    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CSRFTokenError(TwitterCloneError):
    """
    Raised when a state-mutating request carries no valid CSRF token.

    HTTP:    403 Forbidden
    Covers missing, mismatched, expired and unknown tokens. The client recovers by
    re-sending the request with the token from the csrf cookie.
    """

    status_code = 403
    error_code = "csrf_token_invalid"

    def __init__(
        self,
        reason: str = "missing",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["reason"] = reason
        super().__init__(message=f"CSRF token validation failed: {reason}", context=ctx)
        self.reason = reason


class RouteCompositionError(TwitterCloneError):
    """Raised when route groups cannot be composed (duplicate or nested prefixes)."""

    error_code = "route_composition_error"


def error_response(
    exc: TwitterCloneError, headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    """Render an application error as the standard JSON error body."""
    headers = dict(headers or {})
    if isinstance(exc, RateLimitExceededError):
        headers.setdefault("Retry-After", str(exc.retry_after))
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.context,
        },
        headers=headers,
    )


def internal_error_response() -> JSONResponse:
    """Generic 500 body for unexpected exceptions; details stay in the logs."""
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )
