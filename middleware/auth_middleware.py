"""
Authentication middleware to enforce authentication on all routes except public ones.
This middleware provides an early check, but actual validation is done by FastAPI dependencies.
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from typing import List

from core.logger import logger

# Public routes that don't require authentication
PUBLIC_ROUTES: List[str] = [
    "/",
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
    # Auth endpoints (with /api/auth prefix)
    "/api/auth/login",
    "/api/auth/signup",
    "/api/auth/refresh",
]


class AuthRequiredMiddleware(BaseHTTPMiddleware):
    """
    Logs requests to protected routes that arrive without a bearer token.
    Token validation is handled by FastAPI dependencies.
    """

    def __init__(self, app, public_routes: List[str] = None):
        super().__init__(app)
        self.public_routes = public_routes or PUBLIC_ROUTES

    def is_public(self, path: str) -> bool:
        # "/" would prefix-match everything
        return any(
            path == route or (route != "/" and path.startswith(route + "/"))
            for route in self.public_routes
        )

    async def dispatch(self, request: Request, call_next):
        """Process request with authentication check."""
        path = request.url.path

        if self.is_public(path) or request.method == "OPTIONS":
            return await call_next(request)

        if not request.headers.get("authorization"):
            client = request.client.host if request.client else "unknown"
            logger.warning(f"Request without authentication headers: {request.method} {path} from {client}")

        # Continue to route handler (dependencies will validate)
        return await call_next(request)
