"""
Request rate limits (SlowAPI).

Clients are keyed by the user id in a valid bearer token, falling back to
the remote address. The webhook endpoint carries no limit: throttling the
gateway only produces redeliveries.
"""

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from ..core.config import get_settings
from ..core.errors import error_body
from .auth import verify_token

settings = get_settings()


class RateLimits:
    CHECKOUT = "20/minute"
    REVIEW_WRITE = "30/minute"
    DEFAULT = "200/minute"


def rate_limit_key(request: Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            return f"user:{verify_token(token).sub}"
        except HTTPException:
            # Invalid tokens are rejected by the endpoint itself; limit by address meanwhile
            pass
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[RateLimits.DEFAULT],
    storage_uri=settings.rate_limit_storage_uri,
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    retry_after = exc.limit.limit.get_expiry()
    return JSONResponse(
        status_code=429,
        content=error_body("rate_limit_exceeded", f"Rate limit exceeded: {exc.detail}"),
        headers={"Retry-After": str(retry_after)},
    )
