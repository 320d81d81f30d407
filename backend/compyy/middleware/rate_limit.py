"""
Compyy Backend — Rate Limiting
================================

What:  Per-IP sliding window rate limiting.
How:   `SlidingWindowLimiter` keeps a list of request timestamps per key.
       `RateLimitMiddleware` applies one limiter to every request;
       credential endpoints get stricter limiters through FastAPI
       dependencies (see compyy.dependencies).

Algorithm: Sliding Window Log
    1. Each key (client IP) gets a list of request timestamps
    2. On each hit, drop timestamps older than the window
    3. If the remaining count >= limit, reject with 429
    4. Otherwise record the current timestamp and allow

State lives in process memory, so limits are per worker. A multi-worker
deployment would move the windows to Redis.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from compyy.config import settings

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    """Best-effort client address, honouring X-Forwarded-For only when trusted."""
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class SlidingWindowLimiter:
    """
    In-memory sliding window counter keyed by an arbitrary string.

    hit() returns None when the request is allowed, otherwise the number of
    seconds until the oldest request in the window expires.
    """

    CLEANUP_EVERY = 1000

    def __init__(self, limit: int, window: int, name: str = "default"):
        self.limit = limit
        self.window = window
        self.name = name
        self._hits: Dict[str, List[float]] = defaultdict(list)
        self._total = 0

    def hit(self, key: str, now: Optional[float] = None) -> Optional[int]:
        now = time.time() if now is None else now
        window_start = now - self.window

        timestamps = [ts for ts in self._hits[key] if ts > window_start]
        self._hits[key] = timestamps

        if len(timestamps) >= self.limit:
            retry_after = int(timestamps[0] + self.window - now) + 1
            logger.warning(
                "Rate limit '%s' exceeded for %s: %d requests in %ds window",
                self.name,
                key,
                len(timestamps),
                self.window,
            )
            return retry_after

        timestamps.append(now)
        self._total += 1
        if self._total % self.CLEANUP_EVERY == 0:
            self._cleanup_inactive(window_start)
        return None

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._hits.clear()
        else:
            self._hits.pop(key, None)

    def _cleanup_inactive(self, window_start: float) -> None:
        """Drop keys with no requests inside the current window."""
        inactive = [
            key for key, timestamps in self._hits.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for key in inactive:
            del self._hits[key]
        if inactive:
            logger.debug("Limiter '%s' cleaned up %d inactive keys", self.name, len(inactive))


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Global per-IP limit from RATE_LIMIT_REQUESTS / RATE_LIMIT_WINDOW.

    Health and API documentation paths are never limited. Rejections are
    HTTP 429 with a Retry-After header and the standard error body.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, limiter: Optional[SlidingWindowLimiter] = None, **kwargs):
        super().__init__(app, **kwargs)
        self.limiter = limiter or SlidingWindowLimiter(
            settings.rate_limit_requests, settings.rate_limit_window, name="global"
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        retry_after = self.limiter.hit(client_ip(request))
        if retry_after is not None:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": f"Too many requests. Please wait {retry_after} seconds before retrying.",
                    "details": {"retry_after": retry_after},
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)
