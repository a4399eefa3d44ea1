import os

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import UnauthorizedError
from app.models.user import User
from app.utils.rate_limiter import InMemoryRateLimitStore, RedisRateLimitStore


def get_current_user(
    x_utorid: str | None = Header(default=None, alias="X-Utorid"),
    db: Session = Depends(get_db),
) -> User:
    """
    The authenticated user, as identified by the upstream auth layer.
    """
    if not x_utorid:
        raise UnauthorizedError(
            "Missing authenticated user. Provide X-Utorid header.",
            "MISSING_ACTOR",
        )

    user = db.query(User).filter(User.utorid == x_utorid).first()
    if not user:
        raise UnauthorizedError(f"Unknown user {x_utorid}", "UNKNOWN_ACTOR", utorid=x_utorid)
    return user


def _build_reset_limiter():
    redis_url = os.getenv("REDIS_URL")
    if redis_url:
        return RedisRateLimitStore.from_url(redis_url)
    # single process only; set REDIS_URL when running several workers
    return InMemoryRateLimitStore()


_reset_limiter = None


def get_reset_limiter():
    global _reset_limiter
    if _reset_limiter is None:
        _reset_limiter = _build_reset_limiter()
    return _reset_limiter


def get_client_key(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
