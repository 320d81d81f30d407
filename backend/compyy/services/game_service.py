"""
Compyy Backend — Game Service
===============================

What:  Game CRUD, sharing, the public game listing, play/download tracking,
       favorites ("saved" games), ratings, and persistence for board editor
       operations.
How:   Each method takes the request's AsyncSession. Ownership is checked
       here, not in routes: a missing game is a NotFoundError, someone
       else's game a PermissionDeniedError.
Who:   Called by compyy.routes.games and the play runtime routes.

Tag usage counts (compyy.services.tag_service) follow visibility: a game's
tags count only while the game is public.

Public listing query plan:
    1. page of games WHERE is_public AND published_at IS NOT NULL
    2. one grouped query each for rating aggregates and favorite counts
       over the page's ids
    3. one query for the page's authors
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import String, cast, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.database import utcnow
from compyy.exceptions import (
    ConflictError,
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from compyy.models.game import GAME_TYPES, Game, GameFavorite, GameRating
from compyy.schemas.common import AuthorSummary, Pagination
from compyy.schemas.game import (
    FavoriteStatus,
    GameCreate,
    GameShareRequest,
    GameUpdate,
    PublicGameItem,
    PublicGameListResponse,
    RatingItem,
    RatingsResponse,
    TrackResponse,
)
from compyy.security import sanitize_input
from compyy.services.board import Board, ensure_valid_board
from compyy.services.tag_service import normalize_tags, tag_service
from compyy.services.user_service import user_service

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("newest", "popular", "downloads", "rating")
TRACK_ACTIONS = ("play", "download")
MAX_PAGE_SIZE = 50
MIN_RATING = 1
MAX_RATING = 5

ANONYMOUS = "Anonymous"


def _validated_type(game_type: str) -> str:
    normalized = (game_type or "").strip().upper()
    if normalized not in GAME_TYPES:
        raise ValidationError(
            f"Game type must be one of: {', '.join(GAME_TYPES)}",
            field="type",
            context={"allowed": list(GAME_TYPES)},
        )
    return normalized


def _validated_title(title: Optional[str]) -> str:
    cleaned = sanitize_input(title or "", 200)
    if not cleaned:
        raise ValidationError("Game title is required", field="title")
    return cleaned


def _validated_data(game_type: str, data: Any, title: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError("Game data must be an object", field="data")
    if game_type == "JEOPARDY":
        board = ensure_valid_board(data, title)
        board["title"] = title
        return board
    return dict(data)


def _optional_text(value: Optional[str], max_length: int) -> Optional[str]:
    if value is None:
        return None
    return sanitize_input(value, max_length) or None


class GameService:
    """
    Business logic for games.

    Error mapping:
        ValidationError        bad title, type, board or rating
        NotFoundError          unknown game, or a private game where a public one is required
        PermissionDeniedError  mutating someone else's game
        ConflictError          saving an already saved game
        DatabaseError          unexpected SQLAlchemy failures in listings
    """

    # ── Lookup helpers ────────────────────────────────────────────────────

    async def _get(self, db: AsyncSession, game_id: uuid.UUID) -> Game:
        game = await db.get(Game, game_id)
        if game is None:
            raise NotFoundError(resource="game", resource_id=str(game_id))
        return game

    async def get_owned(self, db: AsyncSession, game_id: uuid.UUID, user_id: uuid.UUID) -> Game:
        game = await self._get(db, game_id)
        if game.user_id != user_id:
            raise PermissionDeniedError("You can only modify your own games")
        return game

    async def get_public(self, db: AsyncSession, game_id: uuid.UUID) -> Game:
        game = await db.get(Game, game_id)
        if game is None or not game.is_public:
            raise NotFoundError(resource="game", resource_id=str(game_id))
        return game

    async def get_readable(self, db: AsyncSession, game_id: uuid.UUID, viewer_id: Optional[uuid.UUID]) -> Game:
        """The owner may always read a game; everyone else only while it is public."""
        game = await self._get(db, game_id)
        if game.user_id != viewer_id and not game.is_public:
            raise PermissionDeniedError("This game is private")
        return game

    # ── CRUD ──────────────────────────────────────────────────────────────

    async def create(self, db: AsyncSession, user_id: uuid.UUID, data: GameCreate) -> Game:
        title = _validated_title(data.title)
        game_type = _validated_type(data.type)
        game = Game(
            user_id=user_id,
            title=title,
            description=_optional_text(data.description, 5000),
            type=game_type,
            data=_validated_data(game_type, data.data, title),
            tags=normalize_tags(data.tags),
            subject=_optional_text(data.subject, 100),
            grade_level=_optional_text(data.grade_level, 50),
            difficulty=_optional_text(data.difficulty, 20),
            language=data.language or "en",
            is_public=False,
        )
        db.add(game)
        await db.flush()
        logger.info("Game created: %s by user %s", game.id, user_id)
        return game

    async def list_own(self, db: AsyncSession, user_id: uuid.UUID) -> List[Game]:
        result = await db.execute(
            select(Game).where(Game.user_id == user_id).order_by(Game.created_at.desc())
        )
        return list(result.scalars().all())

    async def update(
        self, db: AsyncSession, game_id: uuid.UUID, user_id: uuid.UUID, data: GameUpdate
    ) -> Game:
        game = await self.get_owned(db, game_id, user_id)
        changes = data.model_dump(exclude_unset=True)
        old_tags = list(game.tags or [])

        title = _validated_title(changes["title"]) if "title" in changes else game.title
        game_type = _validated_type(changes["type"]) if changes.get("type") else game.type
        if "data" in changes or title != game.title or game_type != game.type:
            game.data = _validated_data(game_type, changes.get("data", game.data), title)
        game.title = title
        game.type = game_type

        if "description" in changes:
            game.description = _optional_text(changes["description"], 5000)
        if "tags" in changes:
            game.tags = normalize_tags(changes["tags"])
        for field, limit in (("subject", 100), ("grade_level", 50), ("difficulty", 20)):
            if field in changes:
                setattr(game, field, _optional_text(changes[field], limit))
        if changes.get("language"):
            game.language = changes["language"]

        if game.is_public:
            await tag_service.update_from_changes(db, old_tags, game.tags)
        game.updated_at = utcnow()
        await db.flush()
        logger.info("Game updated: %s", game.id)
        return game

    async def delete(self, db: AsyncSession, game_id: uuid.UUID, user_id: uuid.UUID) -> None:
        game = await self.get_owned(db, game_id, user_id)
        if game.is_public:
            await tag_service.decrement(db, game.tags or [])
        await db.execute(delete(GameFavorite).where(GameFavorite.game_id == game.id))
        await db.execute(delete(GameRating).where(GameRating.game_id == game.id))
        await db.delete(game)
        await db.flush()
        logger.info("Game deleted: %s", game_id)

    async def share(
        self, db: AsyncSession, game_id: uuid.UUID, user_id: uuid.UUID, data: GameShareRequest
    ) -> Game:
        game = await self.get_owned(db, game_id, user_id)
        was_public, old_tags = game.is_public, list(game.tags or [])

        changes = data.model_dump(exclude_unset=True)
        if "description" in changes:
            game.description = _optional_text(changes["description"], 5000)
        if "tags" in changes:
            game.tags = normalize_tags(changes["tags"])
        for field, limit in (("subject", 100), ("grade_level", 50), ("difficulty", 20)):
            if field in changes:
                setattr(game, field, _optional_text(changes[field], limit))

        game.is_public = data.is_public
        if game.is_public and game.published_at is None:
            game.published_at = utcnow()

        await tag_service.sync_visibility(db, was_public, old_tags, game.is_public, game.tags)
        game.updated_at = utcnow()
        await db.flush()
        logger.info("Game %s is now %s", game.id, "public" if game.is_public else "private")
        return game

    # ── Board editor persistence ──────────────────────────────────────────

    async def apply_board_operation(
        self,
        db: AsyncSession,
        game_id: uuid.UUID,
        user_id: uuid.UUID,
        operation: Callable[[Board], Board],
    ) -> Game:
        """Run a pure board function on an owned game's board and store the result."""
        game = await self.get_owned(db, game_id, user_id)
        if game.type != "JEOPARDY":
            raise ValidationError("Only Jeopardy games have an editable board", field="type")
        # assign a fresh dict so the JSON column is marked dirty
        game.data = operation(game.data or {"title": game.title, "categories": []})
        game.updated_at = utcnow()
        await db.flush()
        return game

    # ── Public listing ────────────────────────────────────────────────────

    async def list_public(
        self,
        db: AsyncSession,
        search: str = "",
        subject: str = "",
        grade_level: str = "",
        difficulty: str = "",
        sort_by: str = "newest",
        page: int = 1,
        limit: int = 12,
    ) -> PublicGameListResponse:
        if sort_by not in SORT_OPTIONS:
            raise ValidationError(
                f"sortBy must be one of: {', '.join(SORT_OPTIONS)}", field="sortBy",
            )
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        page = max(1, page)

        conditions = [Game.is_public.is_(True), Game.published_at.is_not(None)]
        term = search.strip().lower()
        if term:
            pattern = f"%{term}%"
            conditions.append(or_(
                func.lower(Game.title).like(pattern),
                func.lower(Game.description).like(pattern),
                func.lower(cast(Game.tags, String)).like(pattern),
            ))
        if subject:
            conditions.append(Game.subject == subject)
        if grade_level:
            conditions.append(Game.grade_level == grade_level)
        if difficulty:
            conditions.append(Game.difficulty == difficulty)

        query = select(Game).where(*conditions)
        if sort_by == "popular":
            query = query.order_by(Game.plays.desc(), Game.published_at.desc())
        elif sort_by == "downloads":
            query = query.order_by(Game.downloads.desc(), Game.published_at.desc())
        elif sort_by == "rating":
            avg = (
                select(GameRating.game_id, func.avg(GameRating.rating).label("avg_rating"))
                .group_by(GameRating.game_id)
                .subquery()
            )
            query = (
                query.outerjoin(avg, avg.c.game_id == Game.id)
                .order_by(func.coalesce(avg.c.avg_rating, 0).desc(), Game.published_at.desc())
            )
        else:
            query = query.order_by(Game.published_at.desc())

        try:
            total = (await db.execute(select(func.count(Game.id)).where(*conditions))).scalar() or 0
            result = await db.execute(query.limit(limit).offset((page - 1) * limit))
            games = list(result.scalars().all())
            items = await self._public_items(db, games)
        except SQLAlchemyError as e:
            logger.error("Database error listing public games: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve games. Please try again.",
                context={"error_type": type(e).__name__},
            )
        return PublicGameListResponse(games=items, pagination=Pagination.build(page, limit, total))

    async def _public_items(self, db: AsyncSession, games: List[Game]) -> List[PublicGameItem]:
        if not games:
            return []
        ids = [game.id for game in games]
        rating_rows = await db.execute(
            select(GameRating.game_id, func.avg(GameRating.rating), func.count(GameRating.id))
            .where(GameRating.game_id.in_(ids))
            .group_by(GameRating.game_id)
        )
        ratings = {game_id: (float(avg or 0), count) for game_id, avg, count in rating_rows.all()}
        favorite_rows = await db.execute(
            select(GameFavorite.game_id, func.count(GameFavorite.id))
            .where(GameFavorite.game_id.in_(ids))
            .group_by(GameFavorite.game_id)
        )
        favorites = dict(favorite_rows.all())
        authors = await user_service.authors(db, [game.user_id for game in games])

        items = []
        for game in games:
            avg, count = ratings.get(game.id, (0.0, 0))
            items.append(PublicGameItem(
                id=game.id,
                title=game.title,
                description=game.description,
                type=game.type,
                tags=game.tags or [],
                subject=game.subject,
                grade_level=game.grade_level,
                difficulty=game.difficulty,
                published_at=game.published_at,
                plays=game.plays,
                downloads=game.downloads,
                created_at=game.created_at,
                author=authors.get(game.user_id) or AuthorSummary(id=game.user_id, name=ANONYMOUS),
                avg_rating=round(avg, 1),
                rating_count=count,
                favorite_count=favorites.get(game.id, 0),
            ))
        return items

    # ── Tracking ──────────────────────────────────────────────────────────

    async def track(self, db: AsyncSession, game_id: uuid.UUID, action: str) -> TrackResponse:
        if action not in TRACK_ACTIONS:
            raise ValidationError(
                f"Invalid action. Use one of: {', '.join(TRACK_ACTIONS)}", field="action",
            )
        game = await self.get_public(db, game_id)
        column = Game.plays if action == "play" else Game.downloads
        await db.execute(
            update(Game).where(Game.id == game.id).values({column: column + 1})
        )
        await db.refresh(game, attribute_names=["plays", "downloads"])
        return TrackResponse(plays=game.plays, downloads=game.downloads)

    # ── Favorites & saved games ───────────────────────────────────────────

    async def _favorite(self, db: AsyncSession, game_id: uuid.UUID, user_id: uuid.UUID) -> Optional[GameFavorite]:
        result = await db.execute(
            select(GameFavorite).where(GameFavorite.game_id == game_id, GameFavorite.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _favorite_count(self, db: AsyncSession, game_id: uuid.UUID) -> int:
        result = await db.execute(select(func.count(GameFavorite.id)).where(GameFavorite.game_id == game_id))
        return result.scalar() or 0

    async def favorite_status(
        self, db: AsyncSession, game_id: uuid.UUID, user_id: Optional[uuid.UUID]
    ) -> FavoriteStatus:
        await self.get_public(db, game_id)
        favorited = user_id is not None and await self._favorite(db, game_id, user_id) is not None
        return FavoriteStatus(is_favorited=favorited, favorite_count=await self._favorite_count(db, game_id))

    async def toggle_favorite(self, db: AsyncSession, game_id: uuid.UUID, user_id: uuid.UUID) -> FavoriteStatus:
        await self.get_public(db, game_id)
        existing = await self._favorite(db, game_id, user_id)
        if existing is not None:
            await db.delete(existing)
        else:
            db.add(GameFavorite(game_id=game_id, user_id=user_id))
        await db.flush()
        return FavoriteStatus(is_favorited=existing is None, favorite_count=await self._favorite_count(db, game_id))

    async def save(self, db: AsyncSession, game_id: uuid.UUID, user_id: uuid.UUID) -> None:
        await self.get_public(db, game_id)
        if await self._favorite(db, game_id, user_id) is not None:
            raise ConflictError("Game is already saved")
        db.add(GameFavorite(game_id=game_id, user_id=user_id))
        await db.flush()

    async def unsave(self, db: AsyncSession, game_id: uuid.UUID, user_id: uuid.UUID) -> None:
        existing = await self._favorite(db, game_id, user_id)
        if existing is None:
            raise NotFoundError(resource="saved game", resource_id=str(game_id), message="Game is not saved")
        await db.delete(existing)
        await db.flush()

    async def list_saved(
        self, db: AsyncSession, user_id: uuid.UUID, page: int = 1, limit: int = 12
    ) -> PublicGameListResponse:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        page = max(1, page)
        conditions = [GameFavorite.user_id == user_id, Game.is_public.is_(True)]
        base = select(Game).join(GameFavorite, GameFavorite.game_id == Game.id).where(*conditions)
        total = (
            await db.execute(
                select(func.count(Game.id)).join(GameFavorite, GameFavorite.game_id == Game.id).where(*conditions)
            )
        ).scalar() or 0
        result = await db.execute(
            base.order_by(GameFavorite.created_at.desc()).limit(limit).offset((page - 1) * limit)
        )
        items = await self._public_items(db, list(result.scalars().all()))
        return PublicGameListResponse(games=items, pagination=Pagination.build(page, limit, total))

    # ── Ratings ───────────────────────────────────────────────────────────

    async def rate(
        self, db: AsyncSession, game_id: uuid.UUID, user_id: uuid.UUID, rating: int, review: Optional[str]
    ) -> GameRating:
        """Create or replace the caller's rating of a public game."""
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}", field="rating")
        await self.get_public(db, game_id)

        result = await db.execute(
            select(GameRating).where(GameRating.game_id == game_id, GameRating.user_id == user_id)
        )
        existing = result.scalar_one_or_none()
        review_text = _optional_text(review, 2000)
        if existing is None:
            existing = GameRating(game_id=game_id, user_id=user_id, rating=rating, review=review_text)
            db.add(existing)
        else:
            existing.rating = rating
            existing.review = review_text
            existing.updated_at = utcnow()
        await db.flush()
        logger.info("Game %s rated %d by user %s", game_id, rating, user_id)
        return existing

    async def list_ratings(
        self, db: AsyncSession, game_id: uuid.UUID, viewer_id: Optional[uuid.UUID]
    ) -> RatingsResponse:
        await self.get_public(db, game_id)
        result = await db.execute(
            select(GameRating).where(GameRating.game_id == game_id).order_by(GameRating.created_at.desc())
        )
        ratings = list(result.scalars().all())
        authors = await user_service.authors(db, [r.user_id for r in ratings])

        items = [
            RatingItem(
                id=r.id,
                rating=r.rating,
                review=r.review,
                user=authors.get(r.user_id) or AuthorSummary(id=r.user_id, name=ANONYMOUS),
                created_at=r.created_at,
            )
            for r in ratings
        ]
        avg = sum(r.rating for r in ratings) / len(ratings) if ratings else 0.0
        user_rating = next((r.rating for r in ratings if viewer_id and r.user_id == viewer_id), None)
        return RatingsResponse(
            ratings=items, avg_rating=round(avg, 1), rating_count=len(ratings), user_rating=user_rating,
        )

    # ── Stats helpers ─────────────────────────────────────────────────────

    async def counts(self, db: AsyncSession) -> Tuple[int, int]:
        """(number of games, total plays)"""
        result = await db.execute(select(func.count(Game.id), func.coalesce(func.sum(Game.plays), 0)))
        games, plays = result.one()
        return games or 0, int(plays or 0)


# ── Singleton Instance ────────────────────────────────────────────────────
game_service = GameService()
