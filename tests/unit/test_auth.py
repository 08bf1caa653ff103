"""Unit tests for password hashing, access tokens and auth dependencies."""

from types import SimpleNamespace
from unittest.mock import Mock

import jwt
import pytest
from fastapi import HTTPException, Request

from intake_api.config import get_settings
from intake_api.middleware.auth import (
    AuthenticatedUser,
    ensure_self_or_admin,
    extract_token,
    get_current_user,
    require_admin,
)
from intake_api.models.user import User
from intake_api.services.auth_service import (
    TokenError,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


@pytest.fixture
def user() -> User:
    """Transient admin user."""
    return User(id=7, username="dr_jones", is_admin=True)


def make_request(headers=None, cookies=None) -> Mock:
    """Mock FastAPI request carrying the given headers and cookies."""
    request = Mock(spec=Request)
    request.headers = headers or {}
    request.cookies = cookies or {}
    request.client = Mock()
    request.client.host = "10.0.0.5"
    request.state = SimpleNamespace()
    return request


class TestPasswords:
    """Tests for bcrypt hashing."""

    def test_hash_and_verify(self):
        hashed = hash_password("hunter2")
        assert hashed != "hunter2"
        assert verify_password("hunter2", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_salted(self):
        """Test that the same password hashes differently each time."""
        assert hash_password("same") != hash_password("same")

    def test_non_bcrypt_hash_never_matches(self):
        assert verify_password("plain", "plain") is False


class TestAccessTokens:
    """Tests for JWT issue and verification."""

    def test_round_trip_claims(self, user):
        claims = decode_access_token(create_access_token(user))
        assert claims["sub"] == "7"
        assert claims["username"] == "dr_jones"
        assert claims["is_admin"] is True
        assert claims["exp"] > claims["iat"]

    def test_expired_token(self, user):
        token = create_access_token(user, expires_minutes=-1)
        with pytest.raises(TokenError) as exc_info:
            decode_access_token(token)
        assert exc_info.value.expired is True

    def test_wrong_secret_rejected(self, user):
        """Test that a token signed with another key is invalid."""
        token = jwt.encode(
            {"sub": "7", "iat": 0, "exp": 9999999999},
            "another-secret",
            algorithm="HS256",
        )
        with pytest.raises(TokenError) as exc_info:
            decode_access_token(token)
        assert exc_info.value.expired is False

    def test_missing_claim_rejected(self):
        settings = get_settings()
        token = jwt.encode({"sub": "7"}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
        with pytest.raises(TokenError):
            decode_access_token(token)

    def test_garbage_rejected(self):
        with pytest.raises(TokenError):
            decode_access_token("not-a-jwt")


class TestExtractToken:
    """Tests for token lookup order."""

    def test_bearer_header(self):
        request = make_request(headers={"Authorization": "Bearer abc"})
        assert extract_token(request) == "abc"

    def test_cookie_fallback(self):
        request = make_request(cookies={"token": "from-cookie"})
        assert extract_token(request) == "from-cookie"

    def test_header_wins_over_cookie(self):
        request = make_request(
            headers={"Authorization": "Bearer header"},
            cookies={"token": "cookie"},
        )
        assert extract_token(request) == "header"

    def test_non_bearer_scheme_ignored(self):
        request = make_request(headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert extract_token(request) is None


class TestAuthDependencies:
    """Tests for the FastAPI auth dependencies."""

    @pytest.mark.asyncio
    async def test_valid_token_sets_request_user(self, user):
        request = make_request(headers={"Authorization": f"Bearer {create_access_token(user)}"})

        current = await get_current_user(request)

        assert current == AuthenticatedUser(id=7, username="dr_jones", is_admin=True)
        assert request.state.user is current

    @pytest.mark.asyncio
    async def test_missing_token_is_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(make_request())
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_expired_token_is_401(self, user):
        token = create_access_token(user, expires_minutes=-1)
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(make_request(cookies={"token": token}))
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Token expired"

    @pytest.mark.asyncio
    async def test_non_admin_is_403(self):
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(AuthenticatedUser(id=2, username="patient"))
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_passes(self):
        admin = AuthenticatedUser(id=1, username="admin", is_admin=True)
        assert await require_admin(admin) is admin

    def test_self_or_admin(self):
        """Test that users reach only their own data unless admin."""
        ensure_self_or_admin(AuthenticatedUser(id=2, username="p"), 2)
        ensure_self_or_admin(AuthenticatedUser(id=1, username="a", is_admin=True), 2)
        with pytest.raises(HTTPException) as exc_info:
            ensure_self_or_admin(AuthenticatedUser(id=3, username="q"), 2)
        assert exc_info.value.status_code == 403
