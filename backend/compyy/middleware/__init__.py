"""
Compyy Backend — Middleware Package
=====================================

Middleware Chain (execution order):
    Request → [Rate Limit] → [Request ID] → [Logging] → [Security Headers]
            → [GZip] → [CORS] → Route Handler

Responses travel back through the same chain in reverse, so the request ID
header and security headers are present on every handled response,
error responses included. Requests over the global rate limit are
rejected before any other middleware runs.
"""
