"""
Compyy Backend — Outbound Email Service
=========================================

What:  Sends transactional email (password reset, email confirmation,
       newsletter confirmation) through Resend.
How:   The blocking Resend SDK call runs in a worker thread and is wrapped
       in tenacity retries (exponential backoff with jitter) plus a circuit
       breaker. Without RESEND_API_KEY the LogMailService is used instead.
Who:   A singleton `mail_service` is imported by routes and services.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient failures
    2. Circuit breaker that fails fast once the provider keeps failing
    3. Callers of "fire and forget" mail (registration, forgot-password)
       log MailServiceError instead of failing the user's request
"""

import asyncio
import html as html_lib
import logging
import time
import uuid
from typing import Optional

import resend
from tenacity import (
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from compyy.config import settings
from compyy.exceptions import CircuitBreakerOpenError, MailServiceError
from compyy.services.mail_base import MailService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker pattern around an unreliable upstream.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN
        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN
        HALF_OPEN (testing recovery)
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; all callers share one event loop.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True if the call may proceed.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = max(int(self.recovery_timeout - elapsed), 1)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Providers
# ══════════════════════════════════════════════════════════════════════════

class ResendMailService(MailService):
    """
    Resend implementation.

    Error Handling Chain:
        API call fails → tenacity retries (RETRY_MAX_ATTEMPTS with backoff)
        → all retries fail → circuit breaker records a failure → MailServiceError
        → threshold reached → later calls rejected instantly until recovery
    """

    provider = "resend"

    def __init__(self, api_key: str, sender: str):
        resend.api_key = api_key
        self.sender = sender
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        logger.info(
            "ResendMailService initialized, circuit_breaker(threshold=%d, recovery=%ds)",
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    async def send(self, to: str, subject: str, html: str) -> Optional[str]:
        send_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        logger.info("[%s] Sending '%s' email", send_id, subject)
        try:
            message_id = await self._send_with_retry(to, subject, html, send_id)
            self.circuit_breaker.record_success()
            return message_id
        except RetryError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] All mail retries exhausted: %s",
                send_id,
                str(e.last_attempt.exception()) if e.last_attempt else "Unknown error",
            )
            raise MailServiceError(
                message="We could not send the email right now. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"send_id": send_id, "attempts": settings.retry_max_attempts},
            )
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Unexpected mail error: %s", send_id, str(e), exc_info=True)
            raise MailServiceError(
                message="We could not send the email right now. Please try again later.",
                context={"send_id": send_id, "error_type": type(e).__name__},
            )

    @retry(
        retry=retry_if_exception_type(Exception),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=settings.retry_jitter,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=False,
    )
    async def _send_with_retry(self, to: str, subject: str, html: str, send_id: str) -> Optional[str]:
        """One provider call; tenacity retries the whole method."""
        start_time = time.time()
        params = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        try:
            response = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.warning(
                "[%s] Resend call failed after %.0fms: %s",
                send_id,
                (time.time() - start_time) * 1000,
                str(e),
            )
            raise

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(
            "[%s] Email accepted by Resend in %.0fms (id=%s)",
            send_id,
            (time.time() - start_time) * 1000,
            message_id,
        )
        return message_id

    async def health_check(self) -> str:
        if self.circuit_breaker.state == CircuitBreaker.OPEN:
            return "circuit_open"
        return "available"


class LogMailService(MailService):
    """Development fallback: log the message instead of delivering it."""

    provider = "log"

    async def send(self, to: str, subject: str, html: str) -> Optional[str]:
        logger.info("Email (not sent, no RESEND_API_KEY) to=%s subject=%s", to, subject)
        logger.debug("Email body:\n%s", html)
        return None

    async def health_check(self) -> str:
        return "log_only"


def build_mail_service() -> MailService:
    if settings.resend_api_key:
        return ResendMailService(settings.resend_api_key, settings.mail_from)
    logger.warning("RESEND_API_KEY not set; outgoing email will only be logged")
    return LogMailService()


# ══════════════════════════════════════════════════════════════════════════
# Message bodies
# ══════════════════════════════════════════════════════════════════════════

def _layout(heading: str, body: str, action_url: str, action_label: str, footer: str) -> str:
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #2563eb;">{heading}</h2>
  {body}
  <div style="text-align: center; margin: 30px 0;">
    <a href="{html_lib.escape(action_url, quote=True)}"
       style="background-color: #2563eb; color: white; padding: 12px 24px;
              text-decoration: none; border-radius: 6px; display: inline-block;">
      {action_label}
    </a>
  </div>
  <p style="color: #666; font-size: 14px;">Or copy and paste this link into your browser:<br>
    <a href="{html_lib.escape(action_url, quote=True)}">{html_lib.escape(action_url)}</a></p>
  <p style="color: #666; font-size: 14px;">{footer}</p>
  <hr style="border: none; border-top: 1px solid #eee; margin: 30px 0;">
  <p style="color: #999; font-size: 12px;">Compyy - Educational Game Platform</p>
</div>
"""


def password_reset_email(first_name: Optional[str], reset_url: str) -> str:
    name = html_lib.escape(first_name or "there")
    return _layout(
        "Reset Your Password",
        f"<p>Hi {name},</p><p>We received a request to reset the password for your "
        f"Compyy account. Click the button below to choose a new one:</p>",
        reset_url,
        "Reset Password",
        "This link will expire in 1 hour. If you didn't request a password reset, "
        "you can safely ignore this email.",
    )


def email_confirmation_email(first_name: Optional[str], confirm_url: str) -> str:
    name = html_lib.escape(first_name or "there")
    return _layout(
        "Confirm Your Email",
        f"<p>Hi {name},</p><p>Welcome to Compyy! Please confirm your email address "
        f"to finish setting up your account.</p>",
        confirm_url,
        "Confirm Email",
        "If you didn't create a Compyy account, you can ignore this email.",
    )


def newsletter_confirmation_email(confirm_url: str) -> str:
    return _layout(
        "Confirm Your Subscription",
        "<p>Thanks for signing up for the Compyy newsletter! Please confirm your "
        "subscription to start receiving updates.</p>",
        confirm_url,
        "Confirm Subscription",
        "This link will expire in 24 hours.",
    )


# ── Singleton Instance ────────────────────────────────────────────────────
# Shared so that circuit breaker state is shared across requests
mail_service = build_mail_service()
