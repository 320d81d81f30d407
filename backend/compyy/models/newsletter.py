"""
Compyy Backend — Newsletter Subscriber Model
==============================================

Status lifecycle:
    pending ──confirm──▶ confirmed ──unsubscribe──▶ unsubscribed
                             ▲                            │
                             └────────subscribe───────────┘

`pending` only occurs with double opt-in enabled; the confirmation token
is stored as a SHA-256 digest with a 24h expiry.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from compyy.database import Base, utcnow

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_UNSUBSCRIBED = "unsubscribed"


class NewsletterSubscriber(Base):
    __tablename__ = "newsletter_subscribers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=STATUS_CONFIRMED,
        server_default=text(f"'{STATUS_CONFIRMED}'"),
    )
    confirm_token_hash: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    confirm_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<NewsletterSubscriber(email='{self.email}', status='{self.status}')>"
