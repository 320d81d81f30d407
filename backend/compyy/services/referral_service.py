"""
Compyy Backend — Referral Service
===================================

What:  Share codes, referral tracking and raffle ticket rewards.
How:   Each user has at most one active ReferralLink with an 8-character
       URL-safe code. Signing up with a code records a pending Referral;
       confirming the referred user's email approves it and awards one
       raffle ticket to every referrer up the chain.

Reward chain (C confirms, B referred C, A referred B):
    B += 1, then A += 1 (A's referral of B must itself be approved)
    A visited set stops the walk on a cycle.
"""

import logging
import secrets
import uuid
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.config import settings
from compyy.exceptions import NotFoundError
from compyy.models.referral import REFERRAL_APPROVED, REFERRAL_PENDING, Referral, ReferralLink
from compyy.models.user import User
from compyy.schemas.community import (
    ReferralItem,
    ReferralLinkResponse,
    ReferralSummary,
    ReferredUser,
)

logger = logging.getLogger(__name__)

CODE_ATTEMPTS = 5


def generate_code() -> str:
    # 6 random bytes encode to exactly 8 URL-safe characters
    return secrets.token_urlsafe(6)


def referral_url(code: str) -> str:
    return f"{settings.frontend_url}/?ref={code}&register=1"


class ReferralService:

    async def find_active_link(self, db: AsyncSession, code: str) -> Optional[ReferralLink]:
        result = await db.execute(
            select(ReferralLink).where(ReferralLink.code == code.strip(), ReferralLink.active.is_(True))
        )
        return result.scalar_one_or_none()

    async def get_or_create_link(self, db: AsyncSession, user_id: uuid.UUID) -> ReferralLink:
        result = await db.execute(
            select(ReferralLink)
            .where(ReferralLink.user_id == user_id, ReferralLink.active.is_(True))
            .order_by(ReferralLink.created_at.desc())
        )
        link = result.scalars().first()
        if link is not None:
            return link

        for _ in range(CODE_ATTEMPTS):
            code = generate_code()
            taken = await db.execute(select(ReferralLink.id).where(ReferralLink.code == code))
            if taken.scalar_one_or_none() is None:
                break
        link = ReferralLink(user_id=user_id, code=code, active=True)
        db.add(link)
        await db.flush()
        logger.info("Referral link created for user %s", user_id)
        return link

    async def validate(self, db: AsyncSession, code: Optional[str]) -> Tuple[bool, str]:
        if not code or not code.strip():
            return False, "Referral code is required"
        if await self.find_active_link(db, code) is None:
            return False, "Invalid or inactive referral code"
        return True, "Valid referral code"

    async def record_signup(self, db: AsyncSession, code: str, new_user: User) -> Optional[Referral]:
        """Create a pending referral for a new account; unusable codes are ignored."""
        link = await self.find_active_link(db, code)
        if link is None:
            logger.info("Ignoring unknown or inactive referral code at signup")
            return None
        if link.user_id == new_user.id:
            logger.info("Ignoring self-referral by user %s", new_user.id)
            return None

        referral = Referral(referrer_id=link.user_id, referred_id=new_user.id, status=REFERRAL_PENDING)
        db.add(referral)
        await db.flush()
        logger.info("Referral recorded: %s referred %s", link.user_id, new_user.id)
        return referral

    async def approve_for(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        """
        Approve the user's pending referrals and reward the referrer chain.

        Returns:
            Number of raffle tickets awarded.
        """
        result = await db.execute(
            select(Referral).where(Referral.referred_id == user_id, Referral.status == REFERRAL_PENDING)
        )
        awarded = 0
        for referral in result.scalars().all():
            referral.status = REFERRAL_APPROVED

            current: Optional[uuid.UUID] = referral.referrer_id
            visited = set()
            while current is not None and current not in visited:
                visited.add(current)
                await db.execute(
                    update(User).where(User.id == current)
                    .values(raffle_tickets=User.raffle_tickets + 1)
                )
                awarded += 1
                parent = await db.execute(
                    select(Referral.referrer_id).where(
                        Referral.referred_id == current, Referral.status == REFERRAL_APPROVED,
                    )
                )
                current = parent.scalar_one_or_none()

        await db.flush()
        if awarded:
            logger.info("Referral approved for %s: %d raffle ticket(s) awarded", user_id, awarded)
        return awarded

    async def summary(self, db: AsyncSession, user_id: uuid.UUID) -> ReferralSummary:
        user = await db.get(User, user_id, populate_existing=True)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))

        link = await self.get_or_create_link(db, user_id)
        rows = await db.execute(
            select(Referral, User)
            .join(User, User.id == Referral.referred_id)
            .where(Referral.referrer_id == user_id)
            .order_by(Referral.created_at.desc())
        )
        referrals = [
            ReferralItem(
                id=referral.id,
                status=referral.status,
                created_at=referral.created_at,
                referred=ReferredUser(
                    name=" ".join(p for p in (referred.first_name, referred.last_name) if p)
                    or referred.email,
                    email=referred.email,
                ),
            )
            for referral, referred in rows.all()
        ]
        return ReferralSummary(
            referral_link=ReferralLinkResponse(
                code=link.code, url=referral_url(link.code), active=link.active, created_at=link.created_at,
            ),
            raffle_tickets=user.raffle_tickets,
            referrals=referrals,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
referral_service = ReferralService()
