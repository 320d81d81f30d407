"""
Compyy Backend — Game SQLAlchemy Models
=========================================

What:  ORM models for `games`, `game_favorites` and `game_ratings`.
Who:   Used by GameService, TemplateService and the play runtime.

Table Design:
    - data: the whole board document (categories → questions, styling,
      game settings) as JSON; JSONB on PostgreSQL
    - tags: JSON list of lowercase tag names, mirrored into `tags` usage
      counts while the game is public
    - plays / downloads: counters bumped by the track endpoint
    - favorites and ratings are unique per (game, user)
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
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from compyy.database import Base, JSONType, utcnow

GAME_TYPES = ("JEOPARDY", "QUIZ", "WORD_GAME")


class Game(Base):
    """A teacher-authored game. Private until shared."""

    __tablename__ = "games"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="JEOPARDY",
        comment="JEOPARDY, QUIZ or WORD_GAME",
    )
    data: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    is_public: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(),
    )
    tags: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    subject: Mapped[Optional[str]] = mapped_column(String(100))
    grade_level: Mapped[Optional[str]] = mapped_column(String(50))
    difficulty: Mapped[Optional[str]] = mapped_column(String(20))
    language: Mapped[str] = mapped_column(String(10), nullable=False, default="en")
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    plays: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_games_public_created", "is_public", created_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<Game(id={self.id}, title='{self.title}', public={self.is_public})>"


class GameFavorite(Base):
    """A user's bookmark of a public game ("saved" games)."""

    __tablename__ = "game_favorites"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )

    __table_args__ = (UniqueConstraint("game_id", "user_id", name="uq_game_favorites_game_user"),)


class GameRating(Base):
    """One 1–5 star rating per user per game, optionally with a review."""

    __tablename__ = "game_ratings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    rating: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    review: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    __table_args__ = (UniqueConstraint("game_id", "user_id", name="uq_game_ratings_game_user"),)
