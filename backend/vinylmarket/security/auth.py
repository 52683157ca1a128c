"""
Bearer token verification.

Tokens are minted by the identity service that owns user accounts; this
API shares its HS256 secret and only reads ``sub`` (the numeric user id),
``email`` and ``roles`` from them. ``create_access_token`` exists for
tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, ValidationError

from ..core.config import get_settings

ALGORITHM = "HS256"
ACCESS_TOKEN_TTL = timedelta(minutes=15)
TOKEN_TYPE_ACCESS = "access"

ROLE_ADMIN = "admin"
ROLE_USER = "user"

bearer_scheme = HTTPBearer(auto_error=False)


class TokenPayload(BaseModel):
    sub: str
    exp: datetime
    type: str
    email: Optional[str] = None
    roles: list[str] = []

    @property
    def user_id(self) -> int:
        return int(self.sub)

    @property
    def is_admin(self) -> bool:
        return ROLE_ADMIN in self.roles


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(
    user_id: int,
    email: Optional[str] = None,
    roles: Optional[list[str]] = None,
    ttl: timedelta = ACCESS_TOKEN_TTL,
) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "email": email,
        "roles": roles or [ROLE_USER],
        "type": TOKEN_TYPE_ACCESS,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(claims, get_settings().secret_key, algorithm=ALGORITHM)


def verify_token(token: str) -> TokenPayload:
    """Decode an access token; any problem is a 401."""
    try:
        claims = jwt.decode(token, get_settings().secret_key, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except JWTError as e:
        raise _unauthorized(f"Could not validate credentials: {e}")

    if claims.get("type") != TOKEN_TYPE_ACCESS:
        raise _unauthorized("Invalid token type")
    if not str(claims.get("sub", "")).isdigit():
        raise _unauthorized("Token subject is not a user id")

    try:
        return TokenPayload(**claims)
    except ValidationError:
        raise _unauthorized("Malformed token claims")


async def get_current_active_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenPayload:
    if credentials is None:
        raise _unauthorized("Not authenticated")
    return verify_token(credentials.credentials)


async def require_admin(user: TokenPayload = Depends(get_current_active_user)) -> TokenPayload:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return user
