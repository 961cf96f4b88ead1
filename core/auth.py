"""
Current-user resolution from bearer JWTs.

Sessions are issued elsewhere; this module only validates the token and
exposes the caller as an AppUser for FastAPI dependencies.
"""

import logging
from dataclasses import dataclass, field
from uuid import UUID

from fastapi import Header

from .exceptions import AuthenticationError, AuthorizationError
from .security import extract_token_from_header, verify_token

logger = logging.getLogger(__name__)


@dataclass
class AppUser:
    """Application user, constructed from the JWT payload."""

    id: UUID  # sub claim
    email: str | None = None
    scopes: list[str] = field(default_factory=list)
    raw_payload: dict = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        """Check if the user has admin privileges."""
        return "admin" in self.scopes


def _to_app_user(payload: dict) -> AppUser:
    """Convert a decoded token payload to AppUser."""
    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError as e:
        raise AuthenticationError(message="Token subject is not a valid user id") from e

    return AppUser(
        id=user_id,
        email=payload.get("email"),
        scopes=list(payload.get("scopes") or []),
        raw_payload=payload,
    )


# ============ FastAPI Dependencies ============


async def get_current_user(authorization: str | None = Header(None)) -> AppUser | None:
    """
    Get current user from JWT token in Authorization header.

    Returns None if not authenticated (allows unauthenticated access).
    """
    token = extract_token_from_header(authorization)
    if not token:
        return None

    try:
        return _to_app_user(verify_token(token))
    except AuthenticationError as e:
        logger.warning("JWT verification failed: %s", e.message)
        return None


async def require_current_user(authorization: str | None = Header(None)) -> AppUser:
    """
    Require authenticated user.

    Raises 401 if not authenticated.
    """
    user = await get_current_user(authorization)
    if not user:
        raise AuthenticationError(message="Authentication required")
    return user


async def require_admin(authorization: str | None = Header(None)) -> AppUser:
    """
    Require admin scopes.

    Raises 401 if not authenticated, 403 if not admin.
    """
    user = await require_current_user(authorization)
    if not user.is_admin:
        raise AuthorizationError(message="Admin privileges required")
    return user
