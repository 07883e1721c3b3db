"""
Request throttling for Backlog Pilot.

Generation and chat calls each cost an upstream completion, so they get
the tightest budgets. Budgets are keyed on the authenticated caller when
the authorization gate has resolved one, otherwise on the client address.
"""
import logging
import os

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

RATE_LIMITS = {
    "ai_generate": os.environ.get("RATE_LIMIT_AI_GENERATE", "10/minute"),
    "ai_chat": os.environ.get("RATE_LIMIT_AI_CHAT", "30/minute"),
    "api_read": os.environ.get("RATE_LIMIT_API_READ", "100/minute"),
    "api_write": os.environ.get("RATE_LIMIT_API_WRITE", "30/minute"),
}

RETRY_AFTER_SECONDS = 60


def get_user_id_or_ip(request: Request) -> str:
    """Throttling key: the caller set on request.state by the auth dependency, or the remote IP"""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


# memory:// is per-process; point RATE_LIMIT_STORAGE_URI at redis when running several workers
limiter = Limiter(
    key_func=get_user_id_or_ip,
    default_limits=["200/minute"],
    storage_uri=os.environ.get("RATE_LIMIT_STORAGE_URI", "memory://"),
    strategy="fixed-window",
    enabled=os.environ.get("RATE_LIMIT_ENABLED", "true").lower() in ("1", "true", "yes"),
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """429 with a machine-readable code and a Retry-After hint"""
    client_id = get_user_id_or_ip(request)
    limit_text = str(getattr(exc, "detail", "") or "unknown")

    logger.warning(
        f"Throttled {client_id} on {request.method} {request.url.path}",
        extra={"client_id": client_id, "path": request.url.path, "limit": limit_text}
    )

    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "error_code": "RATE_LIMIT_EXCEEDED",
            "retry_after_seconds": RETRY_AFTER_SECONDS,
        },
        headers={
            "Retry-After": str(RETRY_AFTER_SECONDS),
            "X-RateLimit-Limit": limit_text,
        }
    )


def _budget(kind: str, override: str = None):
    return limiter.limit(override or RATE_LIMITS[kind], key_func=get_user_id_or_ip)


def limit_ai(limit: str = None):
    """Story, task and tech stack generation."""
    return _budget("ai_generate", limit)


def limit_chat(limit: str = None):
    return _budget("ai_chat", limit)


def limit_api_read(limit: str = None):
    return _budget("api_read", limit)


def limit_api_write(limit: str = None):
    return _budget("api_write", limit)
