"""
Compyy Backend — Security Headers Middleware
==============================================

What:  Adds conservative browser security headers to every response.
When:  Innermost custom middleware, so error responses get them too.

The API only serves JSON and uploaded media, so the Content-Security-Policy
forbids everything except same-origin images/media. The interactive docs
(/docs, /redoc) load assets from a CDN and are left without a CSP.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

API_CSP = "default-src 'none'; img-src 'self'; media-src 'self'; frame-ancestors 'none'"

DOCS_PATHS = ("/docs", "/redoc")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if not request.url.path.startswith(DOCS_PATHS):
            response.headers.setdefault("Content-Security-Policy", API_CSP)
        return response
