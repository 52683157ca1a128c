from .auth import TokenPayload, create_access_token, get_current_active_user, require_admin, verify_token
from .rate_limiter import RateLimits, limiter, rate_limit_exceeded_handler

__all__ = [
    "TokenPayload",
    "create_access_token",
    "get_current_active_user",
    "require_admin",
    "verify_token",
    "RateLimits",
    "limiter",
    "rate_limit_exceeded_handler",
]
