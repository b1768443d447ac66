# civic_dispatch/transport/middleware.py
import re
import time
import uuid
from typing import Callable
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from civic_dispatch.infra.logging_config import get_logger, LogContext

logger = get_logger(__name__)

# Probes hit these constantly; logged at DEBUG only
_QUIET_PATHS = frozenset({"/health", "/metrics"})

_ISSUE_PATH_RE = re.compile(r"^/issues/([^/]+)/")


def _issue_id_from_path(path: str) -> str | None:
    match = _ISSUE_PATH_RE.match(path)
    return match.group(1) if match else None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID to each request for tracing"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its request id (and issue id for /issues/* routes)"""

    def __init__(self, app: ASGIApp, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled:
            return await call_next(request)

        path = request.url.path
        log_ctx = LogContext(
            logger,
            request_id=getattr(request.state, "request_id", "unknown"),
            issue_id=_issue_id_from_path(path),
        )
        log = log_ctx.debug if path in _QUIET_PATHS else log_ctx.info
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            log_ctx.error(
                f"Request failed: {request.method} {path} "
                f"error={exc.__class__.__name__} duration={duration_ms:.2f}ms",
                extra={
                    "method": request.method,
                    "path": path,
                    "error_type": exc.__class__.__name__,
                    "duration_ms": duration_ms,
                },
                exc_info=True
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        log(
            f"{request.method} {path} status={response.status_code} duration={duration_ms:.2f}ms",
            extra={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            }
        )
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Last-resort JSON 500 for anything the exception handlers missed"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            request_id = getattr(request.state, "request_id", "unknown")

            logger.error(
                f"Unhandled exception: {exc.__class__.__name__}: {exc}",
                extra={"request_id": request_id},
                exc_info=True
            )

            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "request_id": request_id,
                },
                headers={"X-Request-ID": request_id},
            )
