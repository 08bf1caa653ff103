"""User model for people who log in to complete or manage questionnaires."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, select, text
from sqlalchemy.orm import Mapped, Session, mapped_column

from intake_api.models.database import Base


class User(Base):
    """Model for application users.

    Attributes:
        id: Primary key
        username: Unique login name
        password_hash: bcrypt hash of the user's password
        email: Optional unique email address
        is_admin: Whether the user can reach admin routes
        created_at: When the user was created
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    username: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Login name"
    )
    password_hash: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="bcrypt hash, never the plain password"
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        unique=True,
    )
    is_admin: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Grants access to /api/admin routes"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    @classmethod
    def get_by_username(cls, db: Session, username: str) -> Optional["User"]:
        """Look up a user by login name.

        Args:
            db: Database session
            username: Login name to find

        Returns:
            User if found, None otherwise
        """
        return db.execute(
            select(cls).where(cls.username == username)
        ).scalar_one_or_none()

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<User(id={self.id}, username={self.username}, is_admin={self.is_admin})>"
