"""FastAPI dependencies for resolving the caller's identity."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bookshelf.auth.jwt_handler import verify_token
from bookshelf.errors import Unauthenticated

# auto_error=False: a missing header resolves to "no identity" and the
# service layer decides whether that is an error.
security = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[int]:
    """Return the authenticated user id, or None when no valid access token is present."""
    if credentials is None:
        return None

    payload = verify_token(credentials.credentials)
    if payload is None or payload.get("type") != "access":
        return None

    try:
        return int(payload["sub"])
    except (KeyError, ValueError):
        return None


def require_identity(user_id: Optional[int]) -> int:
    """Narrow an optional identity to a user id or raise Unauthenticated."""
    if user_id is None:
        raise Unauthenticated()
    return user_id


async def get_current_user_id(
    user_id: Optional[int] = Depends(get_current_identity),
) -> int:
    """Strict variant for routes that never accept anonymous callers."""
    return require_identity(user_id)
