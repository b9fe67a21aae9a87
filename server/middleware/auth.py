"""Authentication middleware for route protection."""

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.logging import get_logger

logger = get_logger(__name__)

# Public routes that don't require authentication
PUBLIC_PATHS = frozenset([
    "/health",
    "/api/health",
    "/docs",
    "/openapi.json",
    "/redoc",
])

# Path prefixes that are public
PUBLIC_PREFIXES = (
    "/docs/",
)


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware to protect routes requiring authentication."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if self._is_public_path(path) or request.method == "OPTIONS":
            return await call_next(request)

        settings = container.settings()

        if not settings.auth_enabled:
            # Single-user development mode
            request.state.user_id = settings.anonymous_user_id
            request.state.user_email = None
            return await call_next(request)

        user_auth = container.user_auth_service()
        token = user_auth.extract_token(
            request.headers.get("authorization"),
            request.cookies.get(settings.jwt_cookie_name),
        )

        if not token:
            return JSONResponse(
                status_code=401,
                content={"detail": "Authentication required"}
            )

        payload = user_auth.verify_token(token)
        if not payload:
            return JSONResponse(
                status_code=401,
                content={"detail": "Invalid or expired token"}
            )

        # Attach user info to request state for downstream handlers
        request.state.user_id = str(payload["sub"])
        request.state.user_email = payload.get("email")

        return await call_next(request)

    def _is_public_path(self, path: str) -> bool:
        """Check if path is public (no auth required)."""
        if path in PUBLIC_PATHS:
            return True

        for prefix in PUBLIC_PREFIXES:
            if path.startswith(prefix):
                return True

        return False


def current_user_id(request: Request) -> str:
    """Route dependency returning the id attached by AuthMiddleware."""
    return request.state.user_id
