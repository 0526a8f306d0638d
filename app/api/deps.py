"""API dependencies for authentication and common operations."""

import hmac
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.core.exceptions import AuthenticationError, AuthorizationError, ConfigurationError
from app.core.security import verify_token
from app.database import get_db

__all__ = [
    "get_current_user_id",
    "get_current_admin",
    "require_admin_key",
    "get_db",
]

# Security scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> UUID:
    """Get the authenticated user's ID from the JWT ``sub`` claim."""
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    payload = verify_token(credentials.credentials, token_type="access")
    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("Invalid token payload")
    try:
        return UUID(str(subject))
    except ValueError:
        raise AuthenticationError("Invalid token subject")


def _admin_user_id() -> UUID:
    if not settings.admin_user_id:
        raise ConfigurationError("ADMIN_USER_ID")
    try:
        return UUID(settings.admin_user_id)
    except ValueError:
        raise ConfigurationError("ADMIN_USER_ID")


def is_admin(user_id: UUID) -> bool:
    """True when ``user_id`` is the configured platform administrator."""
    return user_id == _admin_user_id()


async def get_current_admin(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
) -> UUID:
    """Get the current user and verify they are the admin."""
    if not is_admin(user_id):
        raise AuthorizationError("Admin access required")
    return user_id


async def require_admin_key(
    x_admin_key: Annotated[str | None, Header()] = None,
) -> None:
    """Guard internal job endpoints with the shared admin key."""
    if not settings.settle_admin_key:
        raise ConfigurationError("SETTLE_ADMIN_KEY")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, settings.settle_admin_key):
        raise AuthenticationError("Invalid admin key")
