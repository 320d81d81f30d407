"""
Compyy Backend — User Routes
==============================

Profiles, search, per-user stats and the caller's referral data. Profile
changes, account deletion and referral data are restricted to the user
themselves.
"""

import logging
import uuid
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.config import settings
from compyy.database import get_db_session
from compyy.dependencies import get_current_user_id, get_optional_user_id
from compyy.exceptions import PermissionDeniedError
from compyy.schemas.common import ErrorResponse
from compyy.schemas.community import ReferralLinkResponse, ReferralSummary
from compyy.schemas.user import (
    PublicUserResponse,
    UserListResponse,
    UserResponse,
    UserStatsResponse,
    UserUpdate,
)
from compyy.services.referral_service import referral_service, referral_url
from compyy.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/users",
    tags=["Users"],
    responses={
        401: {"description": "Not signed in", "model": ErrorResponse},
        403: {"description": "Not your account", "model": ErrorResponse},
        404: {"description": "User not found", "model": ErrorResponse},
    },
)


def _require_self(user_id: uuid.UUID, current_user_id: uuid.UUID) -> None:
    if user_id != current_user_id:
        raise PermissionDeniedError("You can only manage your own account")


@router.get("", response_model=UserListResponse, summary="List or search users")
async def list_users(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    q: str = Query(default="", max_length=100, description="Matches email, username or name"),
    db: AsyncSession = Depends(get_db_session),
) -> UserListResponse:
    users, total = await user_service.list_users(db, limit=limit, offset=offset, q=q)
    return UserListResponse(
        users=[PublicUserResponse.model_validate(u) for u in users],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/me", response_model=UserResponse, summary="The signed-in user's profile")
async def get_me(
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return UserResponse.model_validate(await user_service.get(db, current_user_id))


@router.get(
    "/{user_id}",
    response_model=Union[UserResponse, PublicUserResponse],
    summary="Get a profile",
    description="The full profile for the user themselves, the public profile for everyone else.",
)
async def get_user(
    user_id: uuid.UUID,
    current_user_id: Optional[uuid.UUID] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Union[UserResponse, PublicUserResponse]:
    user = await user_service.get(db, user_id)
    if current_user_id == user_id:
        return UserResponse.model_validate(user)
    return PublicUserResponse.model_validate(user)


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    responses={409: {"description": "Email or username taken", "model": ErrorResponse}},
    summary="Update your profile",
)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    _require_self(user_id, current_user_id)
    return UserResponse.model_validate(await user_service.update(db, user_id, body))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete your account")
async def delete_user(
    user_id: uuid.UUID,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    _require_self(user_id, current_user_id)
    await user_service.delete(db, user_id)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(settings.cookie_name, path="/")
    return response


@router.get("/{user_id}/stats", response_model=UserStatsResponse, summary="Game counts for a user")
async def user_stats(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> UserStatsResponse:
    return await user_service.stats(db, user_id)


@router.get("/{user_id}/referrals", response_model=ReferralSummary, summary="Referral link, tickets and referrals")
async def user_referrals(
    user_id: uuid.UUID,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ReferralSummary:
    _require_self(user_id, current_user_id)
    return await referral_service.summary(db, user_id)


@router.post("/{user_id}/referral-link", response_model=ReferralLinkResponse, summary="Get or create your referral link")
async def referral_link(
    user_id: uuid.UUID,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ReferralLinkResponse:
    _require_self(user_id, current_user_id)
    link = await referral_service.get_or_create_link(db, user_id)
    return ReferralLinkResponse(
        code=link.code, url=referral_url(link.code), active=link.active, created_at=link.created_at,
    )
