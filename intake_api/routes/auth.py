"""Login, logout and token refresh endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from intake_api.config import get_settings
from intake_api.logging_config import get_logger
from intake_api.middleware.auth import AuthenticatedUser, get_current_user
from intake_api.models.database import get_db
from intake_api.models.user import User
from intake_api.schemas.auth import LoginRequest, LoginResponse, UserOut
from intake_api.services.auth_service import AuthService, create_access_token

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth")


def _set_auth_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=settings.jwt_expire_minutes * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def _load_user(db: Session, current: AuthenticatedUser) -> User:
    user = AuthService(db).get_user(current.id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User no longer exists",
        )
    return user


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
) -> LoginResponse:
    """Exchange a username and password for an access token.

    The token is returned in the body and also set as an httponly cookie.

    Raises:
        HTTPException(401): If the credentials do not match
    """
    user = AuthService(db).authenticate(credentials.username, credentials.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    token = create_access_token(user)
    _set_auth_cookie(response, token)
    return LoginResponse(token=token, user=UserOut.model_validate(user))


@router.get("/me", response_model=UserOut)
async def me(
    current: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserOut:
    """Return the logged-in user."""
    return UserOut.model_validate(_load_user(db, current))


@router.post("/refresh", response_model=LoginResponse)
async def refresh(
    response: Response,
    current: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> LoginResponse:
    """Issue a fresh token carrying the user's current admin flag."""
    user = _load_user(db, current)
    token = create_access_token(user)
    _set_auth_cookie(response, token)
    return LoginResponse(token=token, user=UserOut.model_validate(user))


@router.post("/logout")
async def logout(response: Response) -> dict:
    """Clear the auth cookie."""
    response.delete_cookie(key=get_settings().auth_cookie_name, path="/")
    return {"success": True}
