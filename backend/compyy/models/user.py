"""
Compyy Backend — User SQLAlchemy Model
========================================

What:  ORM model for the `users` table.
Who:   Used by AuthService, UserService and ReferralService.

Table Design:
    - email is stored lowercased and is unique
    - username is optional but unique when set
    - only a SHA-256 digest of the password reset token is stored, together
      with its expiry; both are cleared once the token is used
    - raffle_tickets is incremented by the referral chain on email confirmation
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, Uuid, false, text
from sqlalchemy.orm import Mapped, mapped_column

from compyy.database import Base, utcnow


class User(Base):
    """A registered teacher account."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(320), nullable=False, unique=True, index=True,
        comment="Lowercased login email",
    )
    password_hash: Mapped[str] = mapped_column(
        String(255), nullable=False,
        comment="bcrypt hash of the password",
    )
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    username: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    profile_image: Mapped[Optional[str]] = mapped_column(String(500))
    bio: Mapped[Optional[str]] = mapped_column(Text)
    school: Mapped[Optional[str]] = mapped_column(String(200))
    grade: Mapped[Optional[str]] = mapped_column(String(50))
    subject: Mapped[Optional[str]] = mapped_column(String(100))

    is_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(),
    )
    raffle_tickets: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )

    reset_token_hash: Mapped[Optional[str]] = mapped_column(
        String(64), index=True,
        comment="SHA-256 hex digest of the outstanding password reset token",
    )
    reset_token_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    @property
    def display_name(self) -> str:
        """First/last name, else username, else 'Anonymous'."""
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.username or "Anonymous"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
