"""
Security utilities for the FastAPI application.
Provides middlewares, validators, and helpers for hardening the server.
"""

import re
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from fastapi import HTTPException

from configs.config import get_config

logger = logging.getLogger(__name__)

cfg = get_config()

# --------------- Input Validation Patterns ---------------

SESSION_ID_PATTERN = re.compile(
    r"^(offline-)?[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
)
JOIN_CODE_PATTERN = re.compile(
    rf"^[{re.escape(cfg.JOIN_CODE_ALPHABET)}]{{{cfg.JOIN_CODE_LENGTH}}}$"
)
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
)


# --------------- Middlewares ---------------


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject standard security headers on every response."""

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "camera=(), microphone=(), geolocation=()"
        )
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline'; "
            "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com; "
            "font-src 'self' https://fonts.gstatic.com; "
            "img-src 'self' data:; "
            "connect-src 'self'"
        )
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = (
                "max-age=63072000; includeSubDomains; preload"
            )
        return response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a unique X-Request-ID to every request / response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# --------------- Validators ---------------


def validate_session_id(session_id: str) -> str:
    """Validate and return a safe session_id, or raise 400."""
    if not SESSION_ID_PATTERN.match(session_id):
        logger.warning("Rejected invalid session_id: %r", session_id)
        raise HTTPException(
            status_code=400, detail="Invalid session ID format"
        )
    return session_id


def validate_join_code(join_code: str) -> str:
    """Normalise and validate a join code, or raise 400."""
    code = join_code.strip().upper()
    if not JOIN_CODE_PATTERN.match(code):
        logger.warning("Rejected invalid join_code: %r", join_code)
        raise HTTPException(status_code=400, detail="Invalid join code format")
    return code


def validate_player_id(player_id: str) -> str:
    """Validate and return a player UUID, or raise 400."""
    if not UUID_PATTERN.match(player_id):
        logger.warning("Rejected invalid player_id: %r", player_id)
        raise HTTPException(status_code=400, detail="Invalid player ID format")
    return player_id


# --------------- Error Helpers ---------------


def safe_error_response(
    exc: Exception, context: str = "operation", status_code: int = 500
):
    """
    Log the real exception but return a sanitized message to the client.
    In development mode, the real error is included for debugging.
    """
    logger.error("Error in %s: %s", context, exc, exc_info=True)
    if cfg.ENVIRONMENT == "development":
        detail = f"[DEV] {context}: {exc}"
    else:
        detail = (
            f"An internal error occurred during {context}. "
            "Please try again later."
        )
    raise HTTPException(status_code=status_code, detail=detail)


# --------------- Admin Auth ---------------


def require_admin_key(request: Request):
    """
    Dependency that checks for a valid X-Admin-Key header.
    Raises 403 if missing or incorrect.
    """
    provided_key = request.headers.get("X-Admin-Key", "")
    if not provided_key or provided_key != cfg.ADMIN_API_KEY:
        logger.warning(
            "Unauthorized admin access attempt from %s",
            request.client.host,
        )
        raise HTTPException(
            status_code=403, detail="Forbidden: invalid admin key"
        )
