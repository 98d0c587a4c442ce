"""
Access error hierarchy and HTTP error handling.

Provides:
- AccessError: base for all access-resolution failures
- SubscriptionNotLoadedError: a plan predicate was evaluated while loading
- SubscriptionEvaluationError: subscription fetch failed (fail-closed)
- ConfigError: invalid navigation or plan configuration
- AppError family: consistent API error shapes (401/402/403/503)
- ErrorHandlerMiddleware: converts errors to JSON, never returns stack traces
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class AccessError(Exception):
    """Base exception for access-related failures."""

    error_code = "ACCESS_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class SubscriptionNotLoadedError(AccessError):
    """Raised when a plan predicate is evaluated before subscription data resolved."""

    error_code = "SUBSCRIPTION_NOT_LOADED"

    def __init__(self, message: str = "Subscription data has not loaded yet"):
        super().__init__(message)


class SubscriptionEvaluationError(AccessError):
    """
    Raised when subscription state could not be fetched.

    Carries a machine-readable error_code for the UI to display.
    """

    error_code = "SUBSCRIPTION_UNAVAILABLE_FAIL_CLOSED"

    def __init__(self, user_id: str, detail: str, cause: Optional[Exception] = None):
        self.user_id = user_id
        self.detail = detail
        self.cause = cause
        super().__init__(f"Subscription evaluation failed for {user_id}: {detail}")

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.detail,
            "user_id": self.user_id,
        }


class ConfigError(AccessError, ValueError):
    """Raised when navigation or plan configuration is invalid."""

    error_code = "ACCESS_CONFIG_INVALID"

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)

    def to_dict(self) -> dict:
        d: dict = {"error": self.error_code, "message": self.message}
        if self.path is not None:
            d["path"] = self.path
        return d


class AppError(Exception):
    """
    Base application error with consistent error shape.

    All HTTP-facing errors inherit from this class.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to API error response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class AuthenticationError(AppError):
    """Authentication required (401)."""

    def __init__(self, message: str = "Authentication required", details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="AUTHENTICATION_ERROR",
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
        )


class PaymentRequiredError(AppError):
    """Feature requires a higher plan or an active subscription (402)."""

    def __init__(self, message: str = "This feature requires a paid plan", details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="PAYMENT_REQUIRED",
            message=message,
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details=details,
        )


class PermissionDeniedError(AppError):
    """Role does not allow the action (403)."""

    def __init__(self, message: str = "Permission denied", details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="PERMISSION_DENIED",
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
        )


class ServiceUnavailableError(AppError):
    """Dependency unavailable (503)."""

    def __init__(self, message: str = "Service temporarily unavailable", details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="SERVICE_UNAVAILABLE",
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
        )


def get_correlation_id(request: Request) -> str:
    """Return X-Correlation-ID from the request, or a fresh UUID."""
    correlation_id = request.headers.get("X-Correlation-ID")
    if correlation_id:
        return correlation_id
    if hasattr(request.state, "correlation_id"):
        return request.state.correlation_id
    return str(uuid.uuid4())


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Middleware that catches all exceptions and returns consistent error responses.

    IMPORTANT: Stack traces are NEVER returned to clients.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = get_correlation_id(request)
        request.state.correlation_id = correlation_id

        try:
            response = await call_next(request)
            response.headers["X-Correlation-ID"] = correlation_id
            return response

        except AppError as e:
            logger.warning(
                "Application error",
                extra={
                    "correlation_id": correlation_id,
                    "error_code": e.code,
                    "status_code": e.status_code,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return JSONResponse(
                status_code=e.status_code,
                content=e.to_dict(),
                headers={"X-Correlation-ID": correlation_id},
            )

        except HTTPException as e:
            return JSONResponse(
                status_code=e.status_code,
                content={
                    "error": {
                        "code": "HTTP_ERROR",
                        "message": str(e.detail),
                        "details": {},
                    }
                },
                headers={"X-Correlation-ID": correlation_id},
            )

        except Exception as e:
            logger.exception(
                "Unhandled exception",
                extra={
                    "correlation_id": correlation_id,
                    "error_type": type(e).__name__,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": {
                        "code": "INTERNAL_ERROR",
                        "message": "An unexpected error occurred",
                        "details": {"correlation_id": correlation_id},
                    }
                },
                headers={"X-Correlation-ID": correlation_id},
            )
