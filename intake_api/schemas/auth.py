"""Pydantic schemas for login and the current-user payload."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    """Credentials posted to ``/api/auth/login``."""
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserOut(BaseModel):
    """Public view of a user; never includes the password hash."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: Optional[str] = None
    is_admin: bool = False


class LoginResponse(BaseModel):
    """Successful login."""
    success: bool = True
    token: str
    user: UserOut
