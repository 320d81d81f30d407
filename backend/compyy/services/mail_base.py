"""
Compyy Backend — Abstract Mail Service Interface
==================================================

What:  Contract for outbound email providers.
How:   Concrete implementations inherit from MailService and implement
       send() and health_check().
Who:   Called by the auth and newsletter flows (reset links, confirmation
       links) and by the health endpoint.

Implementations:
    - ResendMailService: Resend HTTP API with retry and circuit breaker
    - LogMailService:    writes the message to the log (no API key set)
"""

from abc import ABC, abstractmethod
from typing import Optional


class MailService(ABC):
    """
    Contract:
        - send() delivers one HTML message and returns the provider's
          message id (or None when the provider has none)
        - implementations translate provider errors into MailServiceError
        - CircuitBreakerOpenError may be raised without contacting the provider
    """

    provider: str = "unknown"

    @abstractmethod
    async def send(self, to: str, subject: str, html: str) -> Optional[str]:
        """
        Deliver an HTML email.

        Raises:
            MailServiceError: provider failed after all retries
            CircuitBreakerOpenError: too many recent consecutive failures
        """
        ...

    @abstractmethod
    async def health_check(self) -> str:
        """Return 'available', 'log_only', 'circuit_open' or 'unavailable'."""
        ...
