"""Password hashing and access tokens.

Passwords are stored as bcrypt hashes. Access tokens are JWTs signed with the
configured secret and carry the user's id, username and admin flag, so
request authentication never needs a database round trip.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
import jwt
from sqlalchemy.orm import Session

from intake_api.config import get_settings
from intake_api.logging_config import get_logger
from intake_api.models.user import User

logger = get_logger(__name__)


class TokenError(Exception):
    """Raised when an access token is expired, malformed or badly signed."""

    def __init__(self, message: str, expired: bool = False):
        super().__init__(message)
        self.expired = expired


def hash_password(plain: str) -> str:
    """Hash a password with a fresh bcrypt salt."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash.

    A stored value that is not a bcrypt hash never matches.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def create_access_token(user: User, expires_minutes: Optional[int] = None) -> str:
    """Issue a signed access token for ``user``.

    Args:
        user: Authenticated user
        expires_minutes: Lifetime override; defaults to ``jwt_expire_minutes``

    Returns:
        Encoded JWT
    """
    settings = get_settings()
    if expires_minutes is None:
        expires_minutes = settings.jwt_expire_minutes

    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user.id),
        "username": user.username,
        "is_admin": bool(user.is_admin),
        "iat": int(now.timestamp()),
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify a token's signature and expiry and return its claims.

    Raises:
        TokenError: If the token is expired or invalid
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "iat", "sub"]},
            leeway=5,
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token expired", expired=True) from None
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}") from None


class AuthService:
    """Looks up users and checks their credentials."""

    def __init__(self, db: Session):
        """Initialize the service.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the user if the credentials match, None otherwise."""
        user = User.get_by_username(self.db, username)
        if user is None or not verify_password(password, user.password_hash):
            logger.info(f"Failed login for username '{username}'")
            return None
        logger.info("User logged in", extra={"user_id": user.id})
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        """Fetch a user by id."""
        return self.db.get(User, user_id)
