"""
Compyy Backend — Feedback and Support Service
===============================================
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.exceptions import ValidationError
from compyy.models.feedback import Feedback, SupportTicket
from compyy.schemas.community import SupportRequest
from compyy.security import sanitize_input

logger = logging.getLogger(__name__)

MIN_FEEDBACK_LENGTH = 3
MAX_FEEDBACK_LENGTH = 5000
FEEDBACK_PAGE = 100


class FeedbackService:

    async def submit_feedback(
        self, db: AsyncSession, text: str, user_id: Optional[uuid.UUID] = None
    ) -> Feedback:
        cleaned = sanitize_input(text or "", MAX_FEEDBACK_LENGTH)
        if len(cleaned) < MIN_FEEDBACK_LENGTH:
            raise ValidationError(
                f"Feedback must be at least {MIN_FEEDBACK_LENGTH} characters long", field="feedback",
            )
        feedback = Feedback(feedback=cleaned, user_id=user_id)
        db.add(feedback)
        await db.flush()
        logger.info("Feedback received: %s", feedback.id)
        return feedback

    async def latest_feedback(self, db: AsyncSession, limit: int = FEEDBACK_PAGE) -> List[Feedback]:
        result = await db.execute(select(Feedback).order_by(Feedback.created_at.desc()).limit(limit))
        return list(result.scalars().all())

    async def open_ticket(self, db: AsyncSession, data: SupportRequest) -> SupportTicket:
        """Field lengths and the email format are enforced by SupportRequest."""
        ticket = SupportTicket(
            name=sanitize_input(data.name, 100),
            email=data.email,
            subject=sanitize_input(data.subject, 200),
            message=sanitize_input(data.message, 2000),
        )
        db.add(ticket)
        await db.flush()
        logger.info("Support ticket opened: %s", ticket.id)
        return ticket


# ── Singleton Instance ────────────────────────────────────────────────────
feedback_service = FeedbackService()
