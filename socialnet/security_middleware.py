"""
Security Middleware for the SocialNet API.

- Security headers on every response
- HTTPS redirect in production
- Request ID for log correlation
"""

import logging
import uuid
from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

# JSON API: nothing should be rendered or framed from our responses
API_CSP = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    HSTS is only sent in production, where TLS is guaranteed.
    """

    def __init__(self, app: ASGIApp, environment: str = "development"):
        super().__init__(app)
        self.is_production = environment == "production"

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = API_CSP
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=(), payment=()"

        if self.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class HTTPSRedirectMiddleware(BaseHTTPMiddleware):
    """Redirect plain HTTP to HTTPS in production (honours X-Forwarded-Proto behind a proxy)."""

    def __init__(self, app: ASGIApp, environment: str = "development"):
        super().__init__(app)
        self.is_production = environment == "production"

    async def dispatch(self, request: Request, call_next):
        if self.is_production:
            proto = request.headers.get("x-forwarded-proto", request.url.scheme)
            if proto == "http":
                url = request.url.replace(scheme="https")
                logger.info(f"Redirecting HTTP request to HTTPS: {url}")
                return RedirectResponse(url=str(url), status_code=301)

        return await call_next(request)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with a unique ID, echoed back in X-Request-ID."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
