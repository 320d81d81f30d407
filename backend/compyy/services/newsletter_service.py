"""
Compyy Backend — Newsletter Service
=====================================

Subscription lifecycle for the newsletter list. With
NEWSLETTER_DOUBLE_OPT_IN enabled, new and returning subscribers stay
`pending` until they follow the emailed confirmation link; otherwise they
are confirmed immediately.
"""

import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.config import settings
from compyy.database import as_utc, utcnow
from compyy.exceptions import ConflictError, NotFoundError, ValidationError
from compyy.models.newsletter import (
    STATUS_CONFIRMED,
    STATUS_PENDING,
    STATUS_UNSUBSCRIBED,
    NewsletterSubscriber,
)
from compyy.security import generate_one_time_token, hash_token, is_valid_email, normalize_email
from compyy.services.mail_service import mail_service, newsletter_confirmation_email

logger = logging.getLogger(__name__)

ALREADY_SUBSCRIBED = "This email is already subscribed."


class NewsletterService:

    async def _find(self, db: AsyncSession, email: str):
        result = await db.execute(select(NewsletterSubscriber).where(NewsletterSubscriber.email == email))
        return result.scalar_one_or_none()

    def _email(self, email: str) -> str:
        normalized = normalize_email(email or "")
        if not is_valid_email(normalized):
            raise ValidationError("Invalid email address", field="email")
        return normalized

    async def subscribe(self, db: AsyncSession, email: str) -> NewsletterSubscriber:
        """
        Add or re-activate a subscriber.

        Raises:
            ValidationError: malformed email
            ConflictError: already confirmed
            MailServiceError: confirmation email could not be sent (double opt-in)
        """
        address = self._email(email)
        subscriber = await self._find(db, address)
        if subscriber is not None and subscriber.status == STATUS_CONFIRMED:
            raise ConflictError(ALREADY_SUBSCRIBED, field="email")

        if subscriber is None:
            subscriber = NewsletterSubscriber(email=address)
            db.add(subscriber)

        token = None
        if settings.newsletter_double_opt_in:
            token = generate_one_time_token()
            subscriber.status = STATUS_PENDING
            subscriber.confirm_token_hash = hash_token(token)
            subscriber.confirm_expires_at = utcnow() + timedelta(hours=settings.newsletter_confirm_ttl_hours)
        else:
            subscriber.status = STATUS_CONFIRMED
            subscriber.confirm_token_hash = None
            subscriber.confirm_expires_at = None
        subscriber.updated_at = utcnow()
        await db.flush()

        if token is not None:
            confirm_url = f"{settings.frontend_url}/newsletter/confirm?token={token}"
            await mail_service.send(
                address, "Confirm your Compyy newsletter subscription", newsletter_confirmation_email(confirm_url),
            )
        logger.info("Newsletter subscription %s (status=%s)", subscriber.id, subscriber.status)
        return subscriber

    async def confirm(self, db: AsyncSession, token: str) -> NewsletterSubscriber:
        result = await db.execute(
            select(NewsletterSubscriber).where(NewsletterSubscriber.confirm_token_hash == hash_token(token or ""))
        )
        subscriber = result.scalar_one_or_none()
        expires_at = as_utc(subscriber.confirm_expires_at) if subscriber is not None else None
        if subscriber is None or expires_at is None or expires_at <= utcnow():
            raise ValidationError("Invalid or expired confirmation token", field="token")

        subscriber.status = STATUS_CONFIRMED
        subscriber.confirm_token_hash = None
        subscriber.confirm_expires_at = None
        subscriber.updated_at = utcnow()
        await db.flush()
        logger.info("Newsletter subscription %s confirmed", subscriber.id)
        return subscriber

    async def unsubscribe(self, db: AsyncSession, email: str) -> NewsletterSubscriber:
        subscriber = await self._find(db, normalize_email(email or ""))
        if subscriber is None:
            raise NotFoundError(resource="subscriber", message="Email not found in our newsletter list")
        subscriber.status = STATUS_UNSUBSCRIBED
        subscriber.confirm_token_hash = None
        subscriber.confirm_expires_at = None
        subscriber.updated_at = utcnow()
        await db.flush()
        logger.info("Newsletter subscription %s cancelled", subscriber.id)
        return subscriber

    async def status(self, db: AsyncSession, email: str) -> str:
        subscriber = await self._find(db, self._email(email))
        return subscriber.status if subscriber is not None else STATUS_UNSUBSCRIBED


# ── Singleton Instance ────────────────────────────────────────────────────
newsletter_service = NewsletterService()
