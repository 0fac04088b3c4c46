"""
Security middleware for the gateway:
- Security headers, with record responses marked uncacheable
- Security logging for privileged and record endpoints
"""

import time

from fastapi import Request
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Record and audit payloads are private to the caller, so every API
    response also gets Cache-Control: no-store.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"
            response.headers["Pragma"] = "no-cache"

        return response


class SecurityLoggingMiddleware(BaseHTTPMiddleware):
    """Log security-relevant requests with origin and outcome"""

    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        if path.endswith("/role") or path.startswith("/api/audit"):
            logger.warning(
                f"Privileged endpoint: {request.method} {path} from {client_ip} "
                f"-> {response.status_code} ({elapsed_ms:.1f}ms)"
            )
        elif response.status_code in (401, 403):
            logger.warning(
                f"Refused: {request.method} {path} from {client_ip} -> {response.status_code}"
            )
        elif path.startswith("/api/records"):
            logger.info(
                f"Record request: {request.method} {path} from {client_ip} "
                f"-> {response.status_code} ({elapsed_ms:.1f}ms)"
            )

        return response
