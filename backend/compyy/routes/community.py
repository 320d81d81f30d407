"""
Compyy Backend — Community Routes
===================================

Referral code checks, the newsletter, popular tags, feedback, support
tickets and the public site counters. None of these need a session except
where noted.
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.database import get_db_session
from compyy.models.newsletter import STATUS_PENDING
from compyy.dependencies import get_current_user_id, get_optional_user_id
from compyy.schemas.common import ErrorResponse, MessageResponse
from compyy.schemas.community import (
    FeedbackCreate,
    FeedbackItem,
    NewsletterRequest,
    NewsletterStatusResponse,
    ReferralValidation,
    StatsResponse,
    SupportRequest,
    SupportResponse,
    TagItem,
    TagListResponse,
)
from compyy.services.feedback_service import feedback_service
from compyy.services.newsletter_service import newsletter_service
from compyy.services.referral_service import referral_service
from compyy.services.stats_service import site_stats
from compyy.services.tag_service import tag_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["Community"],
    responses={400: {"description": "Invalid input", "model": ErrorResponse}},
)


# ── Referrals ─────────────────────────────────────────────────────────────


@router.get("/referrals/validate", response_model=ReferralValidation, summary="Check a referral code")
async def validate_referral(
    code: Optional[str] = Query(default=None, max_length=64),
    db: AsyncSession = Depends(get_db_session),
) -> ReferralValidation:
    valid, message = await referral_service.validate(db, code)
    return ReferralValidation(valid=valid, message=message)


# ── Newsletter ────────────────────────────────────────────────────────────


@router.post(
    "/newsletter/subscribe",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Already subscribed", "model": ErrorResponse}},
    summary="Subscribe to the newsletter",
)
async def subscribe(
    body: NewsletterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    subscriber = await newsletter_service.subscribe(db, body.email)
    if subscriber.status == STATUS_PENDING:
        return MessageResponse(message="Please check your email to confirm your subscription.")
    return MessageResponse(message="Successfully subscribed to the newsletter!")


@router.get("/newsletter/confirm", response_model=MessageResponse, summary="Confirm a subscription")
async def confirm_subscription(
    token: str = Query(min_length=1, max_length=256),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await newsletter_service.confirm(db, token)
    return MessageResponse(message="Your subscription is confirmed.")


@router.post(
    "/newsletter/unsubscribe",
    response_model=MessageResponse,
    responses={404: {"description": "Unknown email", "model": ErrorResponse}},
    summary="Unsubscribe from the newsletter",
)
async def unsubscribe(
    body: NewsletterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await newsletter_service.unsubscribe(db, body.email)
    return MessageResponse(message="Successfully unsubscribed from the newsletter")


@router.get("/newsletter/status", response_model=NewsletterStatusResponse, summary="Subscription status")
async def subscription_status(
    email: str = Query(max_length=320),
    db: AsyncSession = Depends(get_db_session),
) -> NewsletterStatusResponse:
    current = await newsletter_service.status(db, email)
    return NewsletterStatusResponse(email=email.strip().lower(), status=current)


# ── Tags ──────────────────────────────────────────────────────────────────


@router.get("/tags", response_model=TagListResponse, summary="Most used tags on public content")
async def popular_tags(
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
) -> TagListResponse:
    tags = await tag_service.popular(db, limit)
    return TagListResponse(tags=[TagItem(name=t.name, usage_count=t.usage_count) for t in tags])


# ── Feedback & support ────────────────────────────────────────────────────


@router.post("/feedback", response_model=FeedbackItem, status_code=status.HTTP_201_CREATED, summary="Send feedback")
async def submit_feedback(
    body: FeedbackCreate,
    user_id: Optional[uuid.UUID] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> FeedbackItem:
    return FeedbackItem.model_validate(await feedback_service.submit_feedback(db, body.feedback, user_id))


@router.get(
    "/feedback",
    response_model=List[FeedbackItem],
    responses={401: {"description": "Not signed in", "model": ErrorResponse}},
    summary="Latest feedback",
)
async def list_feedback(
    _: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> List[FeedbackItem]:
    return [FeedbackItem.model_validate(f) for f in await feedback_service.latest_feedback(db)]


@router.post("/support", response_model=SupportResponse, status_code=status.HTTP_201_CREATED, summary="Open a support ticket")
async def open_ticket(
    body: SupportRequest,
    db: AsyncSession = Depends(get_db_session),
) -> SupportResponse:
    ticket = await feedback_service.open_ticket(db, body)
    return SupportResponse(message="Your message has been received. We'll get back to you soon.", ticket_id=ticket.id)


# ── Stats ─────────────────────────────────────────────────────────────────


@router.get("/stats", response_model=StatsResponse, summary="Public site counters")
async def stats(db: AsyncSession = Depends(get_db_session)) -> StatsResponse:
    return await site_stats(db)
