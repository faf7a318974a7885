"""
Shared API Middleware
======================

Common middleware and exception handlers for the FastAPI application.
"""

import time
import uuid
from typing import Callable, Tuple
from datetime import datetime, timezone

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from helpdesk.core import (
    ApplicationException,
    ConcurrentModificationException,
    DomainException,
    PolicyNotFoundException,
    ResourceNotFoundException,
    SLAPolicyTicketNotFoundException,
    ValidationException,
)
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
NO_SLA_POLICY_DETAIL = "No SLA policy for this ticket"
QUIET_PATHS = ("/health",)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds correlation ID to requests for tracing.

    An incoming X-Correlation-ID header is reused, otherwise a new one is
    generated. It is echoed on the response and attached to error bodies.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with its status code and latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        start_time = time.perf_counter()
        context = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    **context,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        if request.url.path not in QUIET_PATHS:
            logger.info(
                "Request completed",
                extra={
                    **context,
                    "status_code": response.status_code,
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
        return response


def _status_for(exc: ApplicationException) -> Tuple[int, str]:
    if isinstance(exc, (SLAPolicyTicketNotFoundException, PolicyNotFoundException)):
        return status.HTTP_404_NOT_FOUND, NO_SLA_POLICY_DETAIL
    if isinstance(exc, ResourceNotFoundException):
        return status.HTTP_404_NOT_FOUND, exc.message
    if isinstance(exc, (ConcurrentModificationException, DomainException)):
        return status.HTTP_409_CONFLICT, exc.message
    if isinstance(exc, ValidationException):
        return 422, exc.message
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Maps application exceptions to HTTP responses.

    Not found -> 404, conflicting state -> 409, invalid input -> 422,
    everything else -> 500.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    status_code, detail = _status_for(exc)

    log = logger.error if status_code >= 500 else logger.info
    log(
        "Application exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "status_code": status_code,
            "error_type": type(exc).__name__,
            "error_message": exc.message
        }
    )

    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "correlation_id": correlation_id}
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.

    Internal details are only included in development.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    settings = getattr(request.app.state, "settings", None)
    is_dev = getattr(settings, "environment", None) == "development"

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )
