import logging
import os
from datetime import timedelta

from sqlalchemy.orm import Session

from app.errors import ConflictError, ForbiddenError, LedgerValidationError, NotFoundError
from app.models.user import User
from app.services.access_service import (
    CASHIER_ROLES,
    MANAGER_ROLES,
    Role,
    assignable_roles,
    require_role,
)
from app.services.password_reset_service import issue_reset_token


logger = logging.getLogger(__name__)

ACTIVATION_TOKEN_TTL_DAYS = int(os.getenv("ACTIVATION_TOKEN_TTL_DAYS", "7"))


def get_user(db: Session, utorid: str) -> User:
    user = db.query(User).filter(User.utorid == utorid).first()
    if not user:
        raise NotFoundError(f"User with utorid={utorid} not found", "USER_NOT_FOUND", utorid=utorid)
    return user


def register_user(db: Session, actor, data):
    """
    Creates a regular, unverified account. Returns (user, activation_token);
    the token is how the new user sets a first password.
    """
    require_role(actor, CASHIER_ROLES, "register a user")

    if db.query(User.id).filter(User.utorid == data.utorid).first():
        raise ConflictError(f"User with utorid={data.utorid} already exists", "USER_EXISTS", utorid=data.utorid)
    if db.query(User.id).filter(User.email == data.email).first():
        raise ConflictError(f"Email {data.email} is already registered", "EMAIL_EXISTS", email=data.email)

    user = User(
        utorid=data.utorid,
        name=data.name,
        email=data.email,
        role=Role.REGULAR.value,
        points=0,
        verified=False,
        suspicious=False,
    )
    db.add(user)
    db.flush()

    token = issue_reset_token(db, user.utorid, timedelta(days=ACTIVATION_TOKEN_TTL_DAYS))

    logger.info("registered user", extra={"utorid": user.utorid, "created_by": actor.utorid})
    return user, token


def update_user(db: Session, actor, utorid: str, data) -> tuple[User, dict]:
    """
    Applies a manager's changes to verified, suspicious and role.
    Returns the user and the dict of fields that were set.
    """
    require_role(actor, MANAGER_ROLES, "update a user")

    user = get_user(db, utorid)
    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise LedgerValidationError("No fields to update", "EMPTY_UPDATE", utorid=utorid)

    if "role" in changes:
        role = Role(changes["role"])
        if role not in assignable_roles(actor.role):
            raise ForbiddenError(
                f"Unauthorized to assign role {role.value}",
                "INSUFFICIENT_CLEARANCE",
                utorid=actor.utorid,
                role=actor.role,
                requestedRole=role.value,
            )

        suspicious = changes.get("suspicious", user.suspicious)
        if role == Role.CASHIER and user.role == Role.REGULAR.value and suspicious:
            raise LedgerValidationError(
                "A suspicious user cannot be promoted to cashier",
                "SUSPICIOUS_PROMOTION",
                utorid=utorid,
            )

    for field, value in changes.items():
        setattr(user, field, value)
    db.flush()

    logger.info("updated user", extra={"utorid": utorid, "fields": sorted(changes), "changed_by": actor.utorid})
    return user, changes
