"""
HTTP middleware.

``RequestLoggingMiddleware`` gives every request an id, binds it into the
structlog contextvars so service-level log lines carry it, and reports the
outcome. ``SecurityHeadersMiddleware`` stamps the API's fixed response
headers.
"""

import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

from ..core.config import Environment, get_settings
from ..core.logging import bind_request_context, clear_request_context

settings = get_settings()
logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Health checks and scrapes would drown the request log
QUIET_PATHS = frozenset({"/health", "/metrics", "/metrics/"})

API_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        for name, value in API_SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if settings.environment == Environment.PRODUCTION:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        request.state.request_id = request_id

        clear_request_context()
        bind_request_context(request_id=request_id, method=request.method, path=request.url.path)

        quiet = request.url.path in QUIET_PATHS
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception as e:
            logger.error("request_failed", error=str(e), duration_ms=_elapsed_ms(started))
            raise

        duration_ms = _elapsed_ms(started)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        if not quiet:
            log = logger.warning if response.status_code >= 500 else logger.info
            log(
                "request_completed",
                status_code=response.status_code,
                duration_ms=duration_ms,
                client_ip=request.client.host if request.client else None,
            )
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
