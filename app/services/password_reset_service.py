import logging
import os
import uuid
from datetime import timedelta

from sqlalchemy.orm import Session

from app.errors import GoneError, NotFoundError, TooManyRequestsError, UnauthorizedError
from app.models.reset_token import ResetToken
from app.models.user import User
from app.utils.clock import utcnow


logger = logging.getLogger(__name__)

RESET_REQUEST_WINDOW_SECONDS = int(os.getenv("RESET_REQUEST_WINDOW_SECONDS", "60"))
RESET_TOKEN_TTL_MINUTES = int(os.getenv("RESET_TOKEN_TTL_MINUTES", "60"))


def issue_reset_token(db: Session, utorid: str, ttl: timedelta) -> ResetToken:
    """Replaces any outstanding token of `utorid` with a fresh one."""
    db.query(ResetToken).filter(ResetToken.utorid == utorid).delete(synchronize_session=False)

    token = ResetToken(
        token=str(uuid.uuid4()),
        utorid=utorid,
        expires_at=utcnow() + ttl,
    )
    db.add(token)
    db.flush()
    return token


def request_password_reset(db: Session, utorid: str, client_key: str, limiter) -> ResetToken:
    throttle_key = f"{client_key}_{utorid}"
    if not limiter.hit(throttle_key, RESET_REQUEST_WINDOW_SECONDS):
        logger.warning("reset request throttled", extra={"utorid": utorid, "client_key": client_key})
        raise TooManyRequestsError(
            "Too many requests",
            "RESET_THROTTLED",
            utorid=utorid,
            windowSeconds=RESET_REQUEST_WINDOW_SECONDS,
        )

    exists = db.query(User.id).filter(User.utorid == utorid).first()
    if not exists:
        raise NotFoundError(f"User with utorid={utorid} not found", "USER_NOT_FOUND", utorid=utorid)

    token = issue_reset_token(db, utorid, timedelta(minutes=RESET_TOKEN_TTL_MINUTES))
    logger.info("issued reset token", extra={"utorid": utorid, "expires_at": token.expires_at.isoformat()})
    return token


def consume_reset_token(db: Session, token: str, utorid: str) -> ResetToken:
    """
    Validates a reset token for `utorid` and deletes every token that user holds.

    Setting the new password is left to the authentication layer.
    """
    record = db.query(ResetToken).filter(ResetToken.token == token).first()
    if not record:
        raise NotFoundError("Reset token not found", "TOKEN_NOT_FOUND")

    if record.utorid != utorid:
        raise UnauthorizedError("Reset token does not match user", "TOKEN_MISMATCH", utorid=utorid)

    if record.expires_at <= utcnow():
        raise GoneError(
            "Reset token expired",
            "TOKEN_EXPIRED",
            utorid=utorid,
            expiresAt=record.expires_at.isoformat(),
        )

    db.query(ResetToken).filter(ResetToken.utorid == utorid).delete(synchronize_session=False)
    db.flush()

    logger.info("consumed reset token", extra={"utorid": utorid})
    return record
