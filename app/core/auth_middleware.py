"""Authentication dependencies for FastAPI."""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)

SYSTEM_USER_ID = "00000000-0000-0000-0000-000000000001"


class AuthContext:
    """Context object containing authenticated user info."""

    def __init__(
        self,
        user_id: str,
        token: str,
        email: Optional[str] = None,
        is_admin: bool = False,
    ):
        self.user_id = user_id
        self.token = token
        self.email = email
        self.is_admin = is_admin

    def can_act_for(self, user_id: str) -> bool:
        """Admins may act for any user; everyone else only for themselves."""
        return self.is_admin or str(user_id) == str(self.user_id)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[AuthContext]:
    """
    Extract and validate the current user from the request.

    Supports two authentication methods:
    1. Supabase JWT tokens (Bearer auth) - for app users
    2. Admin API key (X-API-Key header) - for internal tools and jobs

    Returns None if no valid auth is present.
    """
    admin_key = get_settings().ADMIN_API_KEY
    if x_api_key and admin_key and hmac.compare_digest(x_api_key.encode(), admin_key.encode()):
        logger.debug("Authenticated via admin API key")
        return AuthContext(user_id=SYSTEM_USER_ID, token="api-key", is_admin=True)

    if not credentials:
        return None

    token = credentials.credentials

    try:
        from app.db.supabase_client import get_supabase

        client = get_supabase()
        # Validates JWT signature and expiration server-side
        auth_response = client.auth.get_user(token)

        if not auth_response or not auth_response.user:
            return None

        return AuthContext(
            user_id=str(auth_response.user.id),
            token=token,
            email=auth_response.user.email,
        )
    except Exception as e:
        logger.warning(f"Token validation failed: {e}")
        return None


async def get_current_user(
    auth: Optional[AuthContext] = Depends(get_optional_user),
) -> AuthContext:
    """Require an authenticated user; raise 401 otherwise."""
    if auth is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth


def require_same_user(auth: AuthContext, user_id: str) -> None:
    """Raise 403 when the caller acts on another user's data."""
    if not auth.can_act_for(user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


async def get_admin_user(auth: AuthContext = Depends(get_current_user)) -> AuthContext:
    """Require the admin API key; authoring endpoints are not exposed to end users."""
    if not auth.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return auth
