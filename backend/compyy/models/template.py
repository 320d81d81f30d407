"""
Compyy Backend — Template SQLAlchemy Models
=============================================

What:  ORM models for `templates` and `template_downloads`.

A template is a styling/content preset. Templates are created private;
sharing flips `is_public`, which is the only thing that puts a template
in the marketplace listing. A download row is unique per (template, user)
so the `downloads` counter only moves on a user's first download.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from compyy.database import Base, JSONType, utcnow


class Template(Base):
    __tablename__ = "templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="JEOPARDY")
    data: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    preview_image: Mapped[Optional[str]] = mapped_column(String(500))
    tags: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    difficulty: Mapped[Optional[str]] = mapped_column(String(20))
    grade_level: Mapped[Optional[str]] = mapped_column(String(50))
    subject: Mapped[Optional[str]] = mapped_column(String(100))

    downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    is_featured: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(),
    )
    is_public: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_templates_marketplace", "is_public", "is_featured", "downloads"),
    )

    def __repr__(self) -> str:
        return f"<Template(id={self.id}, title='{self.title}', public={self.is_public})>"


class TemplateDownload(Base):
    __tablename__ = "template_downloads"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("templates.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    downloaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("template_id", "user_id", name="uq_template_downloads_template_user"),
    )
