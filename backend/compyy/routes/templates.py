"""
Compyy Backend — Template Routes
==================================

The template marketplace under /api/templates. New templates start
private; the owner publishes them with POST /{id}/share and withdraws them
with DELETE /{id}/share.
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.database import get_db_session
from compyy.dependencies import get_current_user_id, get_optional_user_id
from compyy.schemas.common import ErrorResponse
from compyy.schemas.game import GameResponse
from compyy.schemas.template import (
    ApplyTemplateRequest,
    MyTemplateListResponse,
    TemplateCreate,
    TemplateDownloadResponse,
    TemplateFromGame,
    TemplateListResponse,
    TemplateResponse,
)
from compyy.services.template_service import template_service, to_response
from compyy.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/templates",
    tags=["Templates"],
    responses={
        400: {"description": "Invalid input", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
        403: {"description": "Private or not yours", "model": ErrorResponse},
        404: {"description": "Template not found", "model": ErrorResponse},
    },
)


async def _response(db: AsyncSession, template) -> TemplateResponse:
    authors = await user_service.authors(db, [template.user_id])
    return to_response(template, authors.get(template.user_id), include_data=True)


@router.get("", response_model=TemplateListResponse, summary="Browse public templates")
async def list_templates(
    template_type: Optional[str] = Query(default=None, alias="type"),
    featured: bool = Query(default=False),
    subject: Optional[str] = Query(default=None),
    difficulty: Optional[str] = Query(default=None),
    grade_level: Optional[str] = Query(default=None, alias="gradeLevel"),
    search: Optional[str] = Query(default=None, max_length=100),
    limit: int = Query(default=20, ge=1, le=50),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateListResponse:
    return await template_service.list_public(
        db,
        template_type=template_type,
        featured=featured,
        subject=subject,
        difficulty=difficulty,
        grade_level=grade_level,
        search=search,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED, summary="Create a template")
async def create_template(
    body: TemplateCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateResponse:
    return await _response(db, await template_service.create(db, user_id, body))


@router.post(
    "/from-game",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save one of your games as a template",
)
async def create_from_game(
    body: TemplateFromGame,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateResponse:
    return await _response(db, await template_service.create_from_game(db, user_id, body))


@router.get("/my", response_model=MyTemplateListResponse, summary="Templates you own or downloaded")
async def my_templates(
    search: str = Query(default="", max_length=100),
    tags: str = Query(default="", description="Comma-separated tag names"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=50),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> MyTemplateListResponse:
    return await template_service.list_mine(db, user_id, search=search, tags=tags, page=page, limit=limit)


@router.get("/downloaded", response_model=List[TemplateResponse], summary="Templates you downloaded")
async def downloaded_templates(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> List[TemplateResponse]:
    return await template_service.list_downloaded(db, user_id)


@router.get("/{template_id}", response_model=TemplateResponse, summary="Get a template with its data")
async def get_template(
    template_id: uuid.UUID,
    user_id: Optional[uuid.UUID] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateResponse:
    return await template_service.get(db, template_id, user_id)


@router.post("/{template_id}/download", response_model=TemplateDownloadResponse, summary="Add to your library")
async def download_template(
    template_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateDownloadResponse:
    return await template_service.download(db, template_id, user_id)


@router.post("/{template_id}/share", response_model=TemplateResponse, summary="Publish your template")
async def share_template(
    template_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateResponse:
    return await _response(db, await template_service.set_public(db, template_id, user_id, True))


@router.delete("/{template_id}/share", response_model=TemplateResponse, summary="Make your template private")
async def unshare_template(
    template_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateResponse:
    return await _response(db, await template_service.set_public(db, template_id, user_id, False))


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete your template")
async def delete_template(
    template_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await template_service.delete(db, template_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{template_id}/apply",
    response_model=GameResponse,
    summary="Apply to one of your games, or start a new game",
)
async def apply_template(
    template_id: uuid.UUID,
    body: ApplyTemplateRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    return GameResponse.model_validate(await template_service.apply(db, template_id, user_id, body))
