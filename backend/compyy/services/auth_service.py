"""
Compyy Backend — Authentication Service
=========================================

What:  Registration, login, password change and reset, email confirmation.
How:   bcrypt hashes, HS256 session JWTs (compyy.security), hashed one-time
       reset tokens stored on the user row, purpose-bound JWTs for email
       confirmation links.
Who:   Called by compyy.routes.auth.

Email side effects (confirmation on register, reset link) are best-effort:
a MailServiceError is logged and the request still succeeds, so a mail
outage never blocks sign-up and never reveals whether an account exists.
"""

import logging
import uuid
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.config import settings
from compyy.database import as_utc, utcnow
from compyy.exceptions import (
    AuthenticationError,
    CircuitBreakerOpenError,
    ConflictError,
    MailServiceError,
    NotFoundError,
    ValidationError,
)
from compyy.models.user import User
from compyy.schemas.user import RegisterRequest
from compyy.security import (
    BCRYPT_MAX_PASSWORD_BYTES,
    PURPOSE_VERIFY_EMAIL,
    create_access_token,
    create_purpose_token,
    generate_one_time_token,
    hash_password,
    hash_token,
    is_valid_email,
    normalize_email,
    sanitize_input,
    verify_password,
    verify_purpose_token,
)
from compyy.services.mail_service import (
    email_confirmation_email,
    mail_service,
    password_reset_email,
)
from compyy.services.referral_service import referral_service

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account with that email exists, we've sent a password reset link."
INVALID_RESET_TOKEN = "Invalid or expired reset token"
INVALID_CREDENTIALS = "Invalid email or password"

CONFIRM_VERIFIED = "email-verified"
CONFIRM_ALREADY_VERIFIED = "already-verified"


def _clean(value: Optional[str], max_length: int) -> Optional[str]:
    if value is None:
        return None
    return sanitize_input(value, max_length) or None


class AuthService:
    """
    Stateless; every method receives the request's AsyncSession.

    Error mapping:
        ValidationError      bad email format, short password, bad reset token
        ConflictError        duplicate email or username
        AuthenticationError  wrong credentials
    """

    # ── Helpers ───────────────────────────────────────────────────────────

    def validate_password(self, password: str) -> None:
        if len(password) < settings.password_min_length:
            raise ValidationError(
                f"Password must be at least {settings.password_min_length} characters long",
                field="password",
            )
        if len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes long",
                field="password",
            )

    def validate_email(self, email: str) -> str:
        normalized = normalize_email(email)
        if not is_valid_email(normalized):
            raise ValidationError("Invalid email address", field="email")
        return normalized

    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == normalize_email(email)))
        return result.scalar_one_or_none()

    async def get_user(self, db: AsyncSession, user_id: uuid.UUID) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        return user

    async def _send_best_effort(self, to: str, subject: str, html: str) -> None:
        try:
            await mail_service.send(to, subject, html)
        except (MailServiceError, CircuitBreakerOpenError) as e:
            logger.warning("Could not send '%s' email: %s", subject, e.message)

    # ── Registration & login ──────────────────────────────────────────────

    async def register(self, db: AsyncSession, data: RegisterRequest) -> Tuple[User, str]:
        """
        Create an account and sign it in.

        Raises:
            ValidationError: invalid email or short password
            ConflictError: email or username already in use
        """
        email = self.validate_email(data.email)
        self.validate_password(data.password)
        username = _clean(data.username, 50)

        if await self.get_by_email(db, email) is not None:
            raise ConflictError("User with this email already exists", field="email")
        if username:
            taken = await db.execute(select(User.id).where(User.username == username))
            if taken.scalar_one_or_none() is not None:
                raise ConflictError("Username already taken", field="username")

        user = User(
            email=email,
            password_hash=hash_password(data.password),
            first_name=_clean(data.first_name, 100),
            last_name=_clean(data.last_name, 100),
            username=username,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # lost a race with a concurrent registration
            raise ConflictError("User with this email already exists", field="email")
        logger.info("User registered: %s", user.id)

        if data.referral_code:
            await referral_service.record_signup(db, data.referral_code, user)

        await self.send_confirmation(user)
        return user, create_access_token(str(user.id), user.email)

    async def login(self, db: AsyncSession, email: str, password: str) -> Tuple[User, str]:
        user = await self.get_by_email(db, email)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login attempt")
            raise AuthenticationError(INVALID_CREDENTIALS)
        logger.info("User logged in: %s", user.id)
        return user, create_access_token(str(user.id), user.email)

    async def refresh_token(self, db: AsyncSession, user_id: uuid.UUID) -> str:
        user = await db.get(User, user_id)
        if user is None:
            raise AuthenticationError("User no longer exists")
        return create_access_token(str(user.id), user.email)

    # ── Passwords ─────────────────────────────────────────────────────────

    async def change_password(
        self, db: AsyncSession, user_id: uuid.UUID, current_password: str, new_password: str
    ) -> None:
        user = await self.get_user(db, user_id)
        if not verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")
        self.validate_password(new_password)

        user.password_hash = hash_password(new_password)
        user.updated_at = utcnow()
        await db.flush()
        logger.info("Password changed for user %s", user.id)

    async def initiate_password_reset(self, db: AsyncSession, email: str) -> str:
        """
        Issue a reset link when the account exists.

        Always returns the same public message.
        """
        user = await self.get_by_email(db, email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return RESET_REQUESTED_MESSAGE

        token = generate_one_time_token()
        user.reset_token_hash = hash_token(token)
        user.reset_token_expires_at = utcnow() + timedelta(minutes=settings.reset_token_ttl_minutes)
        user.updated_at = utcnow()
        await db.flush()

        reset_url = f"{settings.frontend_url}/reset-password?token={token}"
        await self._send_best_effort(
            user.email, "Reset your Compyy password", password_reset_email(user.first_name, reset_url),
        )
        logger.info("Password reset issued for user %s", user.id)
        return RESET_REQUESTED_MESSAGE

    async def _user_for_reset_token(self, db: AsyncSession, token: str) -> User:
        if not token:
            raise ValidationError(INVALID_RESET_TOKEN, field="token")
        result = await db.execute(select(User).where(User.reset_token_hash == hash_token(token)))
        user = result.scalar_one_or_none()
        expires_at = as_utc(user.reset_token_expires_at) if user is not None else None
        if user is None or expires_at is None or expires_at <= utcnow():
            raise ValidationError(INVALID_RESET_TOKEN, field="token")
        return user

    async def validate_reset_token(self, db: AsyncSession, token: str) -> User:
        return await self._user_for_reset_token(db, token)

    async def reset_password(self, db: AsyncSession, token: str, new_password: str) -> None:
        user = await self._user_for_reset_token(db, token)
        self.validate_password(new_password)

        user.password_hash = hash_password(new_password)
        user.reset_token_hash = None
        user.reset_token_expires_at = None
        user.updated_at = utcnow()
        await db.flush()
        logger.info("Password reset completed for user %s", user.id)

    # ── Email confirmation ────────────────────────────────────────────────

    def confirmation_token(self, user: User) -> str:
        return create_purpose_token(
            str(user.id), PURPOSE_VERIFY_EMAIL, timedelta(hours=settings.verify_token_ttl_hours),
        )

    async def send_confirmation(self, user: User) -> None:
        confirm_url = f"{settings.frontend_url}/auth/confirm?token={self.confirmation_token(user)}"
        await self._send_best_effort(
            user.email, "Confirm your Compyy account", email_confirmation_email(user.first_name, confirm_url),
        )

    async def confirm_email(self, db: AsyncSession, token: str) -> str:
        """
        Mark the account verified and settle its referrals.

        Returns:
            "email-verified", or "already-verified" for a repeat confirmation.
        """
        user_id = verify_purpose_token(token, PURPOSE_VERIFY_EMAIL)
        if user_id is None:
            raise ValidationError("Invalid or expired confirmation token", field="token")
        try:
            user = await db.get(User, uuid.UUID(user_id))
        except ValueError:
            user = None
        if user is None:
            raise ValidationError("Invalid or expired confirmation token", field="token")

        if user.is_verified:
            return CONFIRM_ALREADY_VERIFIED

        user.is_verified = True
        user.updated_at = utcnow()
        await db.flush()
        await referral_service.approve_for(db, user.id)
        logger.info("Email confirmed for user %s", user.id)
        return CONFIRM_VERIFIED


# ── Singleton Instance ────────────────────────────────────────────────────
auth_service = AuthService()
