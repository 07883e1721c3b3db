"""
Request authorization for Backlog Pilot.

Sessions are issued by the managed auth provider; this module only verifies
the access token it hands out and turns it into an explicit user id.
"""
from typing import Optional
import logging
import os

import jwt
from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# JWT Configuration
AUTH_JWT_SECRET = os.environ.get("AUTH_JWT_SECRET", "backlog-pilot-secret-key-change-in-production")
AUTH_JWT_AUDIENCE = os.environ.get("AUTH_JWT_AUDIENCE", "authenticated")
JWT_ALGORITHM = "HS256"

ACCESS_TOKEN_COOKIE = "access_token"


def extract_token(request: Request) -> Optional[str]:
    """Access token from the session cookie, falling back to the Authorization header"""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def decode_user_id(token: str) -> str:
    """Verify the token and return its subject. Raises 401 on any failure."""
    try:
        payload = jwt.decode(
            token,
            AUTH_JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            audience=AUTH_JWT_AUDIENCE
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Session expired")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected access token: {type(e).__name__}")
        raise HTTPException(status_code=401, detail="Invalid session")

    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise HTTPException(status_code=401, detail="Invalid session")
    return user_id


async def get_current_user_id(request: Request) -> str:
    """Extract and validate current user ID from request (FastAPI dependency)"""
    token = extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_id = decode_user_id(token)
    request.state.user_id = user_id
    return user_id


async def get_optional_user_id(request: Request) -> Optional[str]:
    """Like get_current_user_id, but anonymous callers resolve to None.

    A token that is present but invalid is still rejected.
    """
    token = extract_token(request)
    if not token:
        return None

    user_id = decode_user_id(token)
    request.state.user_id = user_id
    return user_id
