"""
Compyy Backend — Template Marketplace Service
===============================================

What:  Template CRUD, the public marketplace listing, downloads, sharing,
       the caller's library ("my" templates) and applying a template to a
       game.
How:   Templates are always created private; only share() makes one
       visible in list_public(). Download rows are unique per user, so the
       `downloads` counter moves once per user.

Access rules:
    read / download / apply   public, or owned by the caller (else 403)
    share / unshare / delete  owner only (else 403)
"""

import copy
import logging
import uuid
from typing import Dict, List, Optional, Set

from sqlalchemy import String, cast, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.database import utcnow
from compyy.exceptions import DatabaseError, NotFoundError, PermissionDeniedError, ValidationError
from compyy.models.game import GAME_TYPES, Game
from compyy.models.template import Template, TemplateDownload
from compyy.schemas.common import AuthorSummary, Pagination
from compyy.schemas.template import (
    ApplyTemplateRequest,
    MyTemplateItem,
    MyTemplateListResponse,
    TemplateCreate,
    TemplateDownloadResponse,
    TemplateFromGame,
    TemplateListResponse,
    TemplateResponse,
)
from compyy.security import sanitize_input
from compyy.services.board import normalize_board, replace_content
from compyy.services.game_service import game_service
from compyy.services.tag_service import normalize_tags, tag_service
from compyy.services.user_service import user_service

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50


def to_response(
    template: Template,
    author: Optional[AuthorSummary] = None,
    include_data: bool = False,
) -> TemplateResponse:
    response = TemplateResponse.model_validate(template)
    return response.model_copy(update={
        "author": author,
        "data": template.data if include_data else None,
    })


class TemplateService:

    # ── Lookup helpers ────────────────────────────────────────────────────

    async def _get(self, db: AsyncSession, template_id: uuid.UUID) -> Template:
        template = await db.get(Template, template_id)
        if template is None:
            raise NotFoundError(resource="template", resource_id=str(template_id))
        return template

    async def get_accessible(self, db: AsyncSession, template_id: uuid.UUID, user_id: Optional[uuid.UUID]) -> Template:
        template = await self._get(db, template_id)
        if not template.is_public and template.user_id != user_id:
            raise PermissionDeniedError("This template is private")
        return template

    async def _get_owned(self, db: AsyncSession, template_id: uuid.UUID, user_id: uuid.UUID, action: str) -> Template:
        template = await self._get(db, template_id)
        if template.user_id != user_id:
            raise PermissionDeniedError(f"You can only {action} your own templates")
        return template

    async def _with_authors(self, db: AsyncSession, templates: List[Template], include_data: bool = False) -> List[TemplateResponse]:
        authors = await user_service.authors(db, [t.user_id for t in templates])
        return [to_response(t, authors.get(t.user_id), include_data) for t in templates]

    # ── Marketplace ───────────────────────────────────────────────────────

    async def list_public(
        self,
        db: AsyncSession,
        template_type: Optional[str] = None,
        featured: bool = False,
        subject: Optional[str] = None,
        difficulty: Optional[str] = None,
        grade_level: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> TemplateListResponse:
        """Public templates: featured first, then most downloaded, then newest."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)

        conditions = [Template.is_public.is_(True)]
        if template_type:
            conditions.append(Template.type == template_type.upper())
        if featured:
            conditions.append(Template.is_featured.is_(True))
        if subject:
            conditions.append(Template.subject == subject)
        if difficulty:
            conditions.append(Template.difficulty == difficulty)
        if grade_level:
            conditions.append(Template.grade_level == grade_level)
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            conditions.append(or_(
                func.lower(Template.title).like(pattern),
                func.lower(Template.description).like(pattern),
            ))

        try:
            total = (await db.execute(select(func.count(Template.id)).where(*conditions))).scalar() or 0
            result = await db.execute(
                select(Template)
                .where(*conditions)
                .order_by(Template.is_featured.desc(), Template.downloads.desc(), Template.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            templates = await self._with_authors(db, list(result.scalars().all()))
        except SQLAlchemyError as e:
            logger.error("Database error listing templates: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve templates. Please try again.",
                context={"error_type": type(e).__name__},
            )
        return TemplateListResponse(templates=templates, total=total, limit=limit, offset=offset)

    # ── Create ────────────────────────────────────────────────────────────

    async def create(self, db: AsyncSession, user_id: uuid.UUID, data: TemplateCreate) -> Template:
        title = sanitize_input(data.title, 200)
        description = sanitize_input(data.description, 5000)
        if not title or not description or not data.type or not data.data:
            raise ValidationError("Missing required fields: title, description, type, data")
        if not isinstance(data.data, dict):
            raise ValidationError("Template data must be an object", field="data")
        template_type = data.type.strip().upper()
        if template_type not in GAME_TYPES:
            raise ValidationError(f"Template type must be one of: {', '.join(GAME_TYPES)}", field="type")

        template = Template(
            user_id=user_id,
            title=title,
            description=description,
            type=template_type,
            data=copy.deepcopy(data.data),
            preview_image=data.preview_image,
            tags=normalize_tags(data.tags),
            difficulty=data.difficulty,
            grade_level=data.grade_level,
            subject=data.subject,
            is_public=False,
        )
        db.add(template)
        await db.flush()
        logger.info("Template created: %s by user %s", template.id, user_id)
        return template

    async def create_from_game(self, db: AsyncSession, user_id: uuid.UUID, data: TemplateFromGame) -> Template:
        game = await game_service.get_owned(db, data.game_id, user_id)
        template = Template(
            user_id=user_id,
            title=sanitize_input(data.title or "", 200) or game.title,
            description=sanitize_input(data.description or "", 5000) or game.description or "",
            type=game.type,
            data=copy.deepcopy(game.data),
            tags=list(game.tags or []),
            difficulty=game.difficulty,
            grade_level=game.grade_level,
            subject=game.subject,
            is_public=False,
        )
        db.add(template)
        await db.flush()
        logger.info("Template %s created from game %s", template.id, game.id)
        return template

    # ── Read & download ───────────────────────────────────────────────────

    async def get(self, db: AsyncSession, template_id: uuid.UUID, user_id: Optional[uuid.UUID]) -> TemplateResponse:
        template = await self.get_accessible(db, template_id, user_id)
        authors = await user_service.authors(db, [template.user_id])
        return to_response(template, authors.get(template.user_id), include_data=True)

    async def download(self, db: AsyncSession, template_id: uuid.UUID, user_id: uuid.UUID) -> TemplateDownloadResponse:
        template = await self.get_accessible(db, template_id, user_id)
        existing = await db.execute(
            select(TemplateDownload.id).where(
                TemplateDownload.template_id == template.id, TemplateDownload.user_id == user_id,
            )
        )
        already = existing.scalar_one_or_none() is not None
        if not already:
            db.add(TemplateDownload(template_id=template.id, user_id=user_id))
            await db.execute(
                update(Template).where(Template.id == template.id)
                .values(downloads=Template.downloads + 1)
            )
            await db.flush()
            await db.refresh(template, attribute_names=["downloads"])
            logger.info("Template %s downloaded by user %s", template.id, user_id)

        authors = await user_service.authors(db, [template.user_id])
        return TemplateDownloadResponse(
            template=to_response(template, authors.get(template.user_id), include_data=True),
            already_downloaded=already,
            message="Template already in your library" if already else "Template downloaded successfully",
        )

    # ── Visibility & delete ───────────────────────────────────────────────

    async def set_public(
        self, db: AsyncSession, template_id: uuid.UUID, user_id: uuid.UUID, is_public: bool
    ) -> Template:
        template = await self._get_owned(db, template_id, user_id, "share")
        if template.is_public != is_public:
            await tag_service.sync_visibility(
                db, template.is_public, template.tags or [], is_public, template.tags or [],
            )
            template.is_public = is_public
            template.updated_at = utcnow()
            await db.flush()
            logger.info("Template %s is now %s", template.id, "public" if is_public else "private")
        return template

    async def delete(self, db: AsyncSession, template_id: uuid.UUID, user_id: uuid.UUID) -> None:
        template = await self._get_owned(db, template_id, user_id, "delete")
        if template.is_public:
            await tag_service.decrement(db, template.tags or [])
        await db.execute(delete(TemplateDownload).where(TemplateDownload.template_id == template.id))
        await db.delete(template)
        await db.flush()
        logger.info("Template deleted: %s", template_id)

    # ── The caller's library ──────────────────────────────────────────────

    async def _downloaded_ids(self, db: AsyncSession, user_id: uuid.UUID) -> Set[uuid.UUID]:
        result = await db.execute(select(TemplateDownload.template_id).where(TemplateDownload.user_id == user_id))
        return set(result.scalars().all())

    async def list_mine(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        search: str = "",
        tags: str = "",
        page: int = 1,
        limit: int = 12,
    ) -> MyTemplateListResponse:
        """Owned and downloaded templates, each listed once, newest first."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        page = max(1, page)

        downloaded_subquery = select(TemplateDownload.template_id).where(TemplateDownload.user_id == user_id)
        conditions = [or_(Template.user_id == user_id, Template.id.in_(downloaded_subquery))]

        matchers = []
        if search.strip():
            pattern = f"%{search.strip().lower()}%"
            matchers += [
                func.lower(Template.title).like(pattern),
                func.lower(Template.description).like(pattern),
                func.lower(cast(Template.tags, String)).like(pattern),
            ]
        for tag in normalize_tags(tags.split(",")):
            matchers.append(func.lower(cast(Template.tags, String)).like(f'%"{tag}"%'))
        if matchers:
            conditions.append(or_(*matchers))

        total = (await db.execute(select(func.count(Template.id)).where(*conditions))).scalar() or 0
        result = await db.execute(
            select(Template).where(*conditions)
            .order_by(Template.created_at.desc())
            .limit(limit).offset((page - 1) * limit)
        )
        templates = list(result.scalars().all())
        downloaded = await self._downloaded_ids(db, user_id)
        authors = await user_service.authors(db, [t.user_id for t in templates])

        items = [
            MyTemplateItem(
                **to_response(t, authors.get(t.user_id)).model_dump(),
                is_owner=t.user_id == user_id,
                is_downloaded=t.id in downloaded,
            )
            for t in templates
        ]
        return MyTemplateListResponse(templates=items, pagination=Pagination.build(page, limit, total))

    async def list_downloaded(self, db: AsyncSession, user_id: uuid.UUID) -> List[TemplateResponse]:
        result = await db.execute(
            select(Template)
            .join(TemplateDownload, TemplateDownload.template_id == Template.id)
            .where(TemplateDownload.user_id == user_id)
            .order_by(TemplateDownload.downloaded_at.desc())
        )
        return await self._with_authors(db, list(result.scalars().all()))

    # ── Apply ─────────────────────────────────────────────────────────────

    async def apply(
        self, db: AsyncSession, template_id: uuid.UUID, user_id: uuid.UUID, data: ApplyTemplateRequest
    ) -> Game:
        """
        Apply a template to an owned game, or start a new game from it.

        An existing game keeps its title; its categories and styling are
        replaced with the template's.
        """
        template = await self.get_accessible(db, template_id, user_id)

        if data.game_id is not None:
            game = await game_service.get_owned(db, data.game_id, user_id)
            if game.type == "JEOPARDY" and template.type == "JEOPARDY":
                game.data = replace_content(game.data or {"title": game.title}, template.data)
            else:
                game.data = {**copy.deepcopy(template.data), "title": game.title}
                game.type = template.type
            game.updated_at = utcnow()
            await db.flush()
            logger.info("Template %s applied to game %s", template.id, game.id)
            return game

        title = sanitize_input(data.title or "", 200) or template.title
        board: Dict = copy.deepcopy(template.data)
        if template.type == "JEOPARDY":
            board = normalize_board(board)
        board["title"] = title
        game = Game(
            user_id=user_id,
            title=title,
            description=template.description,
            type=template.type,
            data=board,
            tags=list(template.tags or []),
            subject=template.subject,
            grade_level=template.grade_level,
            difficulty=template.difficulty,
            is_public=False,
        )
        db.add(game)
        await db.flush()
        logger.info("Game %s created from template %s", game.id, template.id)
        return game


# ── Singleton Instance ────────────────────────────────────────────────────
template_service = TemplateService()
