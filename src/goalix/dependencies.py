"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import HTTPException, Request

from goalix.config import get_settings
from goalix.database import get_session as _get_session
from goalix.redis_client import get_redis_or_none

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client (or None when Redis is not configured) as a FastAPI dependency."""
    yield get_redis_or_none()


async def get_current_user_id(request: Request) -> int:
    """Resolve the caller from the identity header set by the auth gateway."""
    header = get_settings().user_id_header
    raw = request.headers.get(header)
    if not raw:
        raise HTTPException(status_code=401, detail="Missing user identity")
    try:
        return int(raw)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user identity") from None
