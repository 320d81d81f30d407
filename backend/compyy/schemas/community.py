"""
Compyy Backend — Referral, Newsletter, Tag, Feedback, Support and Stats Schemas
=================================================================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from compyy.schemas.common import CamelModel
from compyy.security import is_valid_email, normalize_email


# ── Referrals ─────────────────────────────────────────────────────────────

class ReferralLinkResponse(CamelModel):
    code: str
    url: str
    active: bool
    created_at: datetime


class ReferredUser(CamelModel):
    name: str
    email: str


class ReferralItem(CamelModel):
    id: uuid.UUID
    status: str
    created_at: datetime
    referred: ReferredUser


class ReferralSummary(CamelModel):
    referral_link: Optional[ReferralLinkResponse] = None
    raffle_tickets: int
    referrals: List[ReferralItem]


class ReferralValidation(CamelModel):
    valid: bool
    message: str


# ── Newsletter ────────────────────────────────────────────────────────────

class NewsletterRequest(CamelModel):
    email: str = Field(max_length=320)


class NewsletterStatusResponse(CamelModel):
    email: str
    status: str


# ── Tags ──────────────────────────────────────────────────────────────────

class TagItem(CamelModel):
    name: str
    usage_count: int


class TagListResponse(CamelModel):
    tags: List[TagItem]


# ── Feedback & Support ────────────────────────────────────────────────────

class FeedbackCreate(CamelModel):
    feedback: str = Field(max_length=5000)


class FeedbackItem(CamelModel):
    id: uuid.UUID
    feedback: str
    user_id: Optional[uuid.UUID] = None
    created_at: datetime


class SupportRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(max_length=320)
    subject: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=10, max_length=2000)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        email = normalize_email(v)
        if not is_valid_email(email):
            raise ValueError("Invalid email address")
        return email


class SupportResponse(CamelModel):
    success: bool = True
    message: str
    ticket_id: uuid.UUID


# ── Stats ─────────────────────────────────────────────────────────────────

class StatsResponse(CamelModel):
    active_teachers: str
    games_created: str
    students_engaged: str


# ── Media ─────────────────────────────────────────────────────────────────

class MediaUploadResponse(CamelModel):
    path: str
    url: str
    content_type: str
    size: int
