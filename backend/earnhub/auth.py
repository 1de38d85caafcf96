"""Authentication utilities for the EarnHub backend.

User sessions are issued by Supabase Auth. The API only verifies the
access token and loads the caller's profile.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings, get_settings
from .database import Database, get_profile, is_valid_uuid
from .logging_config import log_auth_event

security = HTTPBearer(auto_error=False)


def create_access_token(
    settings: Settings,
    user_id: str,
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a Supabase-compatible access token for a user."""
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {
        "sub": user_id,
        "aud": settings.jwt_audience,
        "role": "authenticated",
        "exp": expire,
        "iat": now,
    }
    if email:
        to_encode["email"] = email
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate an access token."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthContext:
    """Authenticated caller: user id, email and admin flag."""

    def __init__(
        self,
        user_id: str,
        email: str | None = None,
        is_admin: bool = False,
        profile: dict | None = None,
    ):
        self.user_id = user_id
        self.email = email
        self.is_admin = is_admin
        self.profile = profile


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    db: Database,
) -> AuthContext:
    """Resolve the caller from the bearer token.

    A missing profile is allowed so a freshly signed-up user can create it.
    Suspended accounts are refused.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials, settings)
    user_id = payload.get("sub")
    if not user_id or not is_valid_uuid(user_id):
        log_auth_event("token", str(user_id), False, "invalid subject")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    profile = await get_profile(db, user_id)
    if profile and profile.get("is_suspended"):
        log_auth_event("token", user_id, False, "suspended")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account suspended")

    return AuthContext(
        user_id=user_id,
        email=payload.get("email") or (profile or {}).get("email_1"),
        is_admin=bool((profile or {}).get("admin_user")),
        profile=profile,
    )


async def require_admin(auth: Annotated[AuthContext, Depends(get_current_user)]) -> AuthContext:
    """Reject callers without the admin flag."""
    if not auth.is_admin:
        log_auth_event("admin", auth.user_id, False, "not admin")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return auth


# Type aliases for dependency injection
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
AdminUser = Annotated[AuthContext, Depends(require_admin)]
