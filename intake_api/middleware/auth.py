"""Request authentication dependencies.

The access token is read from ``Authorization: Bearer <token>`` or, failing
that, from the auth cookie. Missing or invalid tokens are rejected with 401;
non-admins reaching an admin route get 403.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from intake_api.config import get_settings
from intake_api.logging_config import get_logger
from intake_api.services.auth_service import TokenError, decode_access_token

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity carried by a verified access token."""
    id: int
    username: str
    is_admin: bool = False


def extract_token(request: Request) -> Optional[str]:
    """Return the raw access token from the header or cookie, if present."""
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(get_settings().auth_cookie_name) or None


async def get_current_user(request: Request) -> AuthenticatedUser:
    """FastAPI dependency resolving the authenticated user.

    Raises:
        HTTPException(401): If the token is missing, expired or invalid

    Usage:
        @router.get("/me")
        async def me(user: AuthenticatedUser = Depends(get_current_user)):
            ...
    """
    token = extract_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = decode_access_token(token)
        user = AuthenticatedUser(
            id=int(claims["sub"]),
            username=str(claims.get("username", "")),
            is_admin=bool(claims.get("is_admin", False)),
        )
    except TokenError as e:
        client_ip = request.client.host if request.client else "unknown"
        logger.warning(f"Rejected access token from IP {client_ip}: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired" if e.expired else "Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.user = user
    return user


async def require_admin(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    """FastAPI dependency allowing only admins.

    Raises:
        HTTPException(401): If unauthenticated
        HTTPException(403): If the user is not an admin
    """
    if not user.is_admin:
        logger.warning("Non-admin tried to reach an admin route", extra={"user_id": user.id})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


def ensure_self_or_admin(user: AuthenticatedUser, user_id: int) -> None:
    """Reject access to another user's data unless the caller is an admin."""
    if user.id != user_id and not user.is_admin:
        logger.warning(
            f"User {user.id} tried to access data of user {user_id}",
            extra={"user_id": user.id},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized access to user data",
        )
