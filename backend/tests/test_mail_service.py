"""
Compyy Backend — Mail Service Unit Tests
==========================================

Test Strategy:
    ✅ Circuit breaker state transitions
    ✅ Resend call retried by tenacity, then reported as MailServiceError
    ✅ Open circuit rejects sends without calling Resend
    ✅ Log-only fallback when no API key is configured
    ❌ No real network calls: resend.Emails.send is patched
"""

from unittest.mock import MagicMock, patch

import pytest

from compyy.config import settings
from compyy.exceptions import CircuitBreakerOpenError, MailServiceError
from compyy.services import mail_service as mail_module
from compyy.services.mail_service import (
    CircuitBreaker,
    LogMailService,
    ResendMailService,
    build_mail_service,
    password_reset_email,
)


class TestCircuitBreaker:

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.CLOSED
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            breaker.can_execute()

    def test_half_open_after_recovery_timeout(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30)
        breaker.record_failure()
        breaker.last_failure_time -= 31
        assert breaker.can_execute() is True
        assert breaker.state == CircuitBreaker.HALF_OPEN

        breaker.record_success()
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0

    def test_half_open_failure_reopens(self):
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=30)
        breaker.state = CircuitBreaker.HALF_OPEN
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.OPEN


class TestResendMailService:

    def setup_method(self):
        self.service = ResendMailService(api_key="re_test_key", sender="Compyy <noreply@example.com>")

    @pytest.mark.asyncio
    async def test_send_returns_message_id(self):
        with patch.object(mail_module.resend.Emails, "send", MagicMock(return_value={"id": "msg_123"})) as send:
            message_id = await self.service.send("ada@example.com", "Hello", "<p>Hi</p>")

        assert message_id == "msg_123"
        params = send.call_args.args[0]
        assert params["to"] == ["ada@example.com"]
        assert params["from"] == "Compyy <noreply@example.com>"

    @pytest.mark.asyncio
    async def test_failures_are_retried_then_raised(self):
        failing = MagicMock(side_effect=RuntimeError("provider down"))
        with patch.object(mail_module.resend.Emails, "send", failing):
            with pytest.raises(MailServiceError):
                await self.service.send("ada@example.com", "Hello", "<p>Hi</p>")

        assert failing.call_count == settings.retry_max_attempts
        assert self.service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_skips_provider(self):
        self.service.circuit_breaker.failure_threshold = 1
        self.service.circuit_breaker.record_failure()

        send = MagicMock(return_value={"id": "never"})
        with patch.object(mail_module.resend.Emails, "send", send):
            with pytest.raises(CircuitBreakerOpenError):
                await self.service.send("ada@example.com", "Hello", "<p>Hi</p>")
        send.assert_not_called()
        assert await self.service.health_check() == "circuit_open"


class TestLogMailService:

    @pytest.mark.asyncio
    async def test_log_only(self):
        service = LogMailService()
        assert await service.send("ada@example.com", "Hello", "<p>Hi</p>") is None
        assert await service.health_check() == "log_only"

    def test_no_api_key_builds_log_service(self):
        with patch.object(mail_module.settings, "resend_api_key", ""):
            assert isinstance(build_mail_service(), LogMailService)


def test_reset_email_contains_link():
    html = password_reset_email("Ada", "https://compyy.org/reset-password?token=abc")
    assert "https://compyy.org/reset-password?token=abc" in html
    assert "Ada" in html
