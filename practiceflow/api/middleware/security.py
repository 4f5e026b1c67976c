"""
Preflight and Security Headers Middleware

Outermost middleware. Answers every OPTIONS request before routing or
authentication run, and adds security headers to every response.
"""

import logging
from typing import Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from practiceflow.config import settings

logger = logging.getLogger(__name__)

ALLOWED_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOWED_HEADERS = "Content-Type, Authorization, X-API-Key"
PREFLIGHT_MAX_AGE = "600"


def get_permissions_policy() -> str:
    """Disable browser features an API never needs."""
    features = [
        "accelerometer=()",
        "camera=()",
        "geolocation=()",
        "microphone=()",
        "payment=()",
        "usb=()",
    ]
    return ", ".join(features)


def preflight_headers(origin: str) -> dict[str, str]:
    """CORS headers for a preflight answer."""
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Max-Age": PREFLIGHT_MAX_AGE,
        "Vary": "Origin",
    }


class SecurityMiddleware(BaseHTTPMiddleware):
    """
    Preflight handling plus security headers.

    Headers added:
    - X-Frame-Options: DENY
    - X-Content-Type-Options: nosniff
    - Referrer-Policy: strict-origin-when-cross-origin
    - Strict-Transport-Security (production only)
    - Permissions-Policy
    - Cache-Control: no-store
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "OPTIONS":
            response = self._preflight(request)
        else:
            response = await call_next(request)

        self._apply_headers(response)
        return response

    def _preflight(self, request: Request) -> Response:
        origin = request.headers.get("origin")
        allowed = settings.cors_origins_list

        if origin and origin not in allowed:
            logger.warning(f"Preflight rejected for origin {origin} on {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_403_FORBIDDEN,
                content={"error": "forbidden", "message": "Origin not allowed"},
            )

        return Response(
            status_code=status.HTTP_200_OK,
            headers=preflight_headers(origin or settings.app_url),
        )

    def _apply_headers(self, response: Response) -> None:
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = get_permissions_policy()
        response.headers["Cache-Control"] = "no-store"

        if settings.is_production:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
