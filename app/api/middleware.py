"""API middleware for the catalog API.

Provides:
- Request context (correlation ID, method and path bound into every log line)
- Last-resort error rendering in the catalog error envelope
"""

import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.schemas import ErrorResponse

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"


def internal_error_response(request_id: str | None) -> JSONResponse:
    """Build the 500 response shared by the middleware and the app handler."""
    body = ErrorResponse(
        error_code="INTERNAL_ERROR",
        message="An internal error occurred",
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(),
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind per-request logging context and tag responses.

    The request ID is taken from ``X-Request-ID`` or generated, stored on
    ``request.state`` for the error handlers, and echoed back together
    with the handling time. Catalog log lines emitted while the request
    runs carry ``request_id``, ``method`` and ``path``.
    """

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Process request inside its logging context.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response with request ID and timing headers.
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id

        start_time = time.perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        with structlog.contextvars.bound_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        ):
            try:
                response = await call_next(request)
                status_code = response.status_code
            finally:
                duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
                log = logger.error if status_code >= 500 else logger.info
                log("Request completed", status_code=status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[RESPONSE_TIME_HEADER] = str(duration_ms)
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turn exceptions that escaped every handler into an INTERNAL_ERROR."""

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(
                "Unhandled exception",
                path=request.url.path,
                method=request.method,
                error=str(e),
            )
            return internal_error_response(getattr(request.state, "request_id", None))


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application.

    Middleware is added in reverse order (last added = first executed),
    so the request context wraps the error handler and its log lines.

    Args:
        app: FastAPI application instance.
    """
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestContextMiddleware)
