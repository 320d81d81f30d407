"""
Compyy Backend — Tag Model
============================

One row per normalised tag name (trimmed, lowercase). `usage_count` counts
the public games and templates carrying the tag; rows disappear when the
count would drop to zero.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from compyy.database import Base, utcnow


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    usage_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default=text("1"), index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Tag(name='{self.name}', usage={self.usage_count})>"
