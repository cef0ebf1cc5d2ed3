"""
Authorization errors and their HTTP rendering.

The core only raises tagged exceptions; it does not know about HTTP. The
FastAPI layer maps each tag to a distinct status code so clients can tell
"log in again" (401) apart from "you may not do this" (403):

    Unauthenticated        -> 401 AUTH_REQUIRED
    Forbidden              -> 403 AUTH_INSUFFICIENT_PERMISSIONS
    DependencyUnavailable  -> 503 SERVER_DEPENDENCY_UNAVAILABLE

A missing resource is reported exactly like an invisible one (Forbidden), so
an unauthorized caller cannot probe for existence.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AuthFailureReason(str, Enum):
    """Tag carried by every authorization failure."""
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    DEPENDENCY_UNAVAILABLE = "dependency_unavailable"


class ErrorCode(str, Enum):
    """Error codes returned in the response body."""
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INSUFFICIENT_PERMISSIONS = "AUTH_INSUFFICIENT_PERMISSIONS"
    SERVER_DEPENDENCY_UNAVAILABLE = "SERVER_DEPENDENCY_UNAVAILABLE"


# =============================================================================
# EXCEPTIONS
# =============================================================================


class AuthorizationError(Exception):
    """Base class for authorization failures."""

    reason: AuthFailureReason = AuthFailureReason.FORBIDDEN
    code: ErrorCode = ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS
    status_code: int = status.HTTP_403_FORBIDDEN
    title: str = "Forbidden"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class Unauthenticated(AuthorizationError):
    """No resolvable caller identity (or no organization membership)."""

    reason = AuthFailureReason.UNAUTHENTICATED
    code = ErrorCode.AUTH_REQUIRED
    status_code = status.HTTP_401_UNAUTHORIZED
    title = "Unauthorized"

    def __init__(self, message: str = "Authentication required", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class Forbidden(AuthorizationError):
    """Identity resolved, but the permission or access-level check failed."""

    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class DependencyUnavailable(AuthorizationError):
    """An identity or persistence collaborator failed. Never reported as Forbidden."""

    reason = AuthFailureReason.DEPENDENCY_UNAVAILABLE
    code = ErrorCode.SERVER_DEPENDENCY_UNAVAILABLE
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    title = "Service Unavailable"

    def __init__(self, message: str = "Authorization service unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


# =============================================================================
# ERROR RESPONSE
# =============================================================================


class ErrorResponse(BaseModel):
    """Standardized authorization error response."""
    error: str = Field(..., description="Short error title")
    code: str = Field(..., description="Error code from ErrorCode enum")
    message: str = Field(..., description="Human-readable error message")
    status_code: int = Field(..., description="HTTP status code")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    request_id: str = Field(..., description="Unique request identifier for tracking")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")


def get_request_id(request: Request) -> str:
    """Get or generate request ID for tracking."""
    request_id = request.headers.get("X-Request-ID")
    if not request_id:
        request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = str(uuid.uuid4())
    return request_id


def build_error_response(exc: AuthorizationError, request: Request) -> JSONResponse:
    body = ErrorResponse(
        error=exc.title,
        code=exc.code.value,
        message=exc.message,
        status_code=exc.status_code,
        timestamp=datetime.now(timezone.utc).isoformat(),
        request_id=get_request_id(request),
        path=request.url.path,
        details=exc.details,
    )
    headers = None
    if isinstance(exc, Unauthenticated):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the authorization exception handler with the FastAPI app.

    Call this in your app initialization (install_authorization does it for you).
    """

    @app.exception_handler(AuthorizationError)
    async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
        if isinstance(exc, DependencyUnavailable):
            logger.error(f"Authorization dependency failure on {request.url.path}: {exc.message}")
        else:
            logger.info(f"Authorization failure ({exc.reason.value}) on {request.url.path}: {exc.message}")
        return build_error_response(exc, request)
