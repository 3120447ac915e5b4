"""
Security headers middleware.

Responses carry client health data (weights, photos, check-in answers), so
nothing is cached and nothing may frame the API.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from core.config import settings

BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

PRODUCTION_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none';",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Sets BASE_HEADERS everywhere and PRODUCTION_HEADERS outside DEBUG."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        headers = dict(BASE_HEADERS)
        if not settings.DEBUG:
            headers.update(PRODUCTION_HEADERS)
        for name, value in headers.items():
            response.headers.setdefault(name, value)

        return response
