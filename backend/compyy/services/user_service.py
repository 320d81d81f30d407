"""
Compyy Backend — User Profile Service
=======================================

Profile reads and updates, user search, per-user game stats and account
deletion. Account deletion removes dependent rows with explicit DELETE
statements rather than relying on database cascades, which SQLite only
honours with foreign keys switched on.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Tuple

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.database import utcnow
from compyy.exceptions import ConflictError, DatabaseError, NotFoundError, ValidationError
from compyy.models.feedback import Feedback
from compyy.models.game import Game, GameFavorite, GameRating
from compyy.models.referral import Referral, ReferralLink
from compyy.models.template import Template, TemplateDownload
from compyy.models.user import User
from compyy.schemas.common import AuthorSummary
from compyy.schemas.user import UserStatsResponse, UserUpdate
from compyy.security import is_valid_email, normalize_email, sanitize_input
from compyy.services.tag_service import tag_service

logger = logging.getLogger(__name__)

PROFILE_TEXT_LIMITS = {
    "first_name": 100,
    "last_name": 100,
    "username": 50,
    "profile_image": 500,
    "bio": 1000,
    "school": 200,
    "grade": 50,
    "subject": 100,
}


class UserService:

    async def get(self, db: AsyncSession, user_id: uuid.UUID) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        return user

    async def authors(self, db: AsyncSession, user_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, AuthorSummary]:
        """Batch-load public author summaries keyed by user id."""
        ids = set(user_ids)
        if not ids:
            return {}
        result = await db.execute(select(User).where(User.id.in_(ids)))
        return {
            user.id: AuthorSummary(
                id=user.id, name=user.display_name, username=user.username, profile_image=user.profile_image,
            )
            for user in result.scalars().all()
        }

    async def list_users(
        self, db: AsyncSession, limit: int = 20, offset: int = 0, q: str = ""
    ) -> Tuple[List[User], int]:
        """Newest first; `q` matches email, username, first or last name."""
        query = select(User)
        count_query = select(func.count(User.id))
        term = q.strip().lower()
        if term:
            pattern = f"%{term}%"
            condition = or_(
                func.lower(User.email).like(pattern),
                func.lower(User.username).like(pattern),
                func.lower(User.first_name).like(pattern),
                func.lower(User.last_name).like(pattern),
            )
            query = query.where(condition)
            count_query = count_query.where(condition)

        try:
            total = (await db.execute(count_query)).scalar() or 0
            result = await db.execute(
                query.order_by(User.created_at.desc()).limit(limit).offset(offset)
            )
            return list(result.scalars().all()), total
        except SQLAlchemyError as e:
            logger.error("Database error listing users: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve users. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def update(self, db: AsyncSession, user_id: uuid.UUID, data: UserUpdate) -> User:
        user = await self.get(db, user_id)
        changes = data.model_dump(exclude_unset=True)

        if "email" in changes:
            email = normalize_email(changes.pop("email") or "")
            if not is_valid_email(email):
                raise ValidationError("Invalid email address", field="email")
            if email != user.email:
                clash = await db.execute(select(User.id).where(User.email == email, User.id != user.id))
                if clash.scalar_one_or_none() is not None:
                    raise ConflictError("Email already in use", field="email")
                user.email = email

        for field, value in changes.items():
            if value is not None:
                value = sanitize_input(value, PROFILE_TEXT_LIMITS[field]) or None
            if field == "username" and value and value != user.username:
                clash = await db.execute(select(User.id).where(User.username == value, User.id != user.id))
                if clash.scalar_one_or_none() is not None:
                    raise ConflictError("Username already taken", field="username")
            setattr(user, field, value)

        user.updated_at = utcnow()
        await db.flush()
        logger.info("Profile updated for user %s (%s)", user.id, ", ".join(sorted(data.model_fields_set)))
        return user

    async def delete(self, db: AsyncSession, user_id: uuid.UUID) -> None:
        """Delete the account and everything it owns."""
        user = await self.get(db, user_id)

        public_games = await db.execute(select(Game.tags).where(Game.user_id == user_id, Game.is_public.is_(True)))
        public_templates = await db.execute(
            select(Template.tags).where(Template.user_id == user_id, Template.is_public.is_(True))
        )
        for tags in [*public_games.scalars().all(), *public_templates.scalars().all()]:
            await tag_service.decrement(db, tags or [])

        owned_games = select(Game.id).where(Game.user_id == user_id)
        owned_templates = select(Template.id).where(Template.user_id == user_id)
        statements = [
            delete(GameFavorite).where(or_(GameFavorite.user_id == user_id, GameFavorite.game_id.in_(owned_games))),
            delete(GameRating).where(or_(GameRating.user_id == user_id, GameRating.game_id.in_(owned_games))),
            delete(TemplateDownload).where(
                or_(TemplateDownload.user_id == user_id, TemplateDownload.template_id.in_(owned_templates))
            ),
            delete(Game).where(Game.user_id == user_id),
            delete(Template).where(Template.user_id == user_id),
            delete(Referral).where(or_(Referral.referrer_id == user_id, Referral.referred_id == user_id)),
            delete(ReferralLink).where(ReferralLink.user_id == user_id),
        ]
        for statement in statements:
            await db.execute(statement.execution_options(synchronize_session=False))
        await db.execute(update(Feedback).where(Feedback.user_id == user_id).values(user_id=None))

        await db.delete(user)
        await db.flush()
        logger.info("User %s deleted with all owned content", user_id)

    async def stats(self, db: AsyncSession, user_id: uuid.UUID) -> UserStatsResponse:
        await self.get(db, user_id)
        rows = await db.execute(
            select(Game.type, Game.is_public, func.count(Game.id))
            .where(Game.user_id == user_id)
            .group_by(Game.type, Game.is_public)
        )
        by_type: Dict[str, int] = {}
        public = private = 0
        for game_type, is_public, count in rows.all():
            by_type[game_type] = by_type.get(game_type, 0) + count
            if is_public:
                public += count
            else:
                private += count
        return UserStatsResponse(
            total_games=public + private,
            public_games=public,
            private_games=private,
            games_by_type=by_type,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
user_service = UserService()
