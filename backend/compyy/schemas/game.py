"""
Compyy Backend — Game, Board Editor and Rating Schemas
========================================================

`data` stays a free-form dict on the wire: the board document may carry
styling keys this API does not know about, and they must round-trip
untouched. Board rules are enforced by compyy.services.board instead.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from compyy.schemas.common import AuthorSummary, CamelModel, Pagination


# ══════════════════════════════════════════════════════════════════════════
# Game CRUD
# ══════════════════════════════════════════════════════════════════════════


class GameCreate(CamelModel):
    title: str = Field(max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    type: str = Field(default="JEOPARDY", description="JEOPARDY, QUIZ or WORD_GAME")
    data: Any = Field(description="Board document (object)")
    tags: List[str] = Field(default_factory=list, max_length=20)
    subject: Optional[str] = Field(default=None, max_length=100)
    grade_level: Optional[str] = Field(default=None, max_length=50)
    difficulty: Optional[str] = Field(default=None, max_length=20)
    language: str = Field(default="en", max_length=10)


class GameUpdate(CamelModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    type: Optional[str] = None
    data: Optional[Any] = None
    tags: Optional[List[str]] = Field(default=None, max_length=20)
    subject: Optional[str] = Field(default=None, max_length=100)
    grade_level: Optional[str] = Field(default=None, max_length=50)
    difficulty: Optional[str] = Field(default=None, max_length=20)
    language: Optional[str] = Field(default=None, max_length=10)


class GameShareRequest(CamelModel):
    is_public: bool = True
    description: Optional[str] = Field(default=None, max_length=5000)
    tags: Optional[List[str]] = Field(default=None, max_length=20)
    subject: Optional[str] = Field(default=None, max_length=100)
    grade_level: Optional[str] = Field(default=None, max_length=50)
    difficulty: Optional[str] = Field(default=None, max_length=20)


class GameResponse(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    title: str
    description: Optional[str] = None
    type: str
    data: Dict[str, Any]
    is_public: bool
    tags: List[str]
    subject: Optional[str] = None
    grade_level: Optional[str] = None
    difficulty: Optional[str] = None
    language: str
    published_at: Optional[datetime] = None
    plays: int
    downloads: int
    created_at: datetime
    updated_at: datetime


class PublicGameItem(CamelModel):
    """Marketplace card: no board document, plus author and social counts."""

    id: uuid.UUID
    title: str
    description: Optional[str] = None
    type: str
    tags: List[str]
    subject: Optional[str] = None
    grade_level: Optional[str] = None
    difficulty: Optional[str] = None
    published_at: Optional[datetime] = None
    plays: int
    downloads: int
    created_at: datetime
    author: AuthorSummary
    avg_rating: float = 0.0
    rating_count: int = 0
    favorite_count: int = 0


class PublicGameListResponse(CamelModel):
    games: List[PublicGameItem]
    pagination: Pagination


class TrackRequest(CamelModel):
    action: str = Field(description="'play' or 'download'")


class TrackResponse(CamelModel):
    plays: int
    downloads: int


class FavoriteStatus(CamelModel):
    is_favorited: bool
    favorite_count: int


class RatingRequest(CamelModel):
    rating: int
    review: Optional[str] = Field(default=None, max_length=2000)


class RatingItem(CamelModel):
    id: uuid.UUID
    rating: int
    review: Optional[str] = None
    user: AuthorSummary
    created_at: datetime


class RatingsResponse(CamelModel):
    ratings: List[RatingItem]
    avg_rating: float
    rating_count: int
    user_rating: Optional[int] = None


# ══════════════════════════════════════════════════════════════════════════
# Board editor
# ══════════════════════════════════════════════════════════════════════════


class QuestionMedia(CamelModel):
    type: Literal["image", "audio", "video"]
    url: str = Field(min_length=1, max_length=1000)
    alt: Optional[str] = Field(default=None, max_length=300)


class QuestionUpdate(CamelModel):
    """Fields of one board question; absent fields are left unchanged."""

    value: Optional[int] = None
    question: Optional[str] = Field(default=None, max_length=2000)
    answer: Optional[str] = Field(default=None, max_length=2000)
    media: Optional[QuestionMedia] = None
    timer: Optional[int] = None
    difficulty: Optional[str] = None


class CategoryRename(CamelModel):
    name: str = Field(max_length=100)


class BoardCustomizationUpdate(CamelModel):
    board_customizations: Optional[Dict[str, Any]] = None
    display_image: Optional[str] = Field(default=None, max_length=1000)
    board_background: Optional[str] = Field(default=None, max_length=1000)
    game_settings: Optional[Dict[str, Any]] = None
    custom_values: Optional[List[int]] = Field(default=None, max_length=5)


class BoardValidateRequest(CamelModel):
    data: Dict[str, Any]


class BoardStats(CamelModel):
    categories: int
    total_questions: int
    complete_questions: int
    percent: int


class BoardValidationResponse(CamelModel):
    valid: bool
    errors: List[str]
    stats: BoardStats
