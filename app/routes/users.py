from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.actor import get_current_user
from app.models.user import User
from app.schemas.transaction import RedemptionCreate, TransferCreate, present_transaction
from app.schemas.user import UserCreate, UserOut, UserUpdate
from app.services.access_service import CASHIER_ROLES, is_self, require_role
from app.services.transaction_service import (
    create_redemption,
    create_transfer,
    list_user_transactions,
)
from app.services.user_service import get_user, register_user, update_user


router = APIRouter(prefix="/users", tags=["users"])


@router.post("", status_code=201)
def create_user(
    payload: UserCreate,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user, token = register_user(db, actor, payload)
    db.commit()
    return {
        "id": user.id,
        "utorid": user.utorid,
        "name": user.name,
        "email": user.email,
        "verified": user.verified,
        "expiresAt": token.expires_at.isoformat(),
        "resetToken": token.token,
    }


@router.get("/me", response_model=UserOut)
def read_me(actor: User = Depends(get_current_user)):
    return actor


# /me routes are declared before /{utorid} so "me" is never read as a utorid
@router.post("/me/transactions", status_code=201)
def create_my_redemption(
    payload: RedemptionCreate,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    transaction = create_redemption(db, actor, payload)
    db.commit()
    return present_transaction(transaction, actor.role)


@router.get("/me/transactions")
def list_my_transactions(
    promotionId: int | None = None,
    type: str | None = None,
    relatedId: int | None = None,
    amount: int | None = None,
    operator: str | None = None,
    page: int = 1,
    limit: int = 10,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    count, rows = list_user_transactions(
        db,
        actor,
        promotion_id=promotionId,
        tx_type=type,
        related_id=relatedId,
        amount=amount,
        operator=operator,
        page=page,
        limit=limit,
    )
    return {
        "count": count,
        "results": [present_transaction(tx, actor.role) for tx in rows],
    }


@router.post("/{utorid}/transactions", status_code=201)
def create_user_transfer(
    utorid: str,
    payload: TransferCreate,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sent, received = create_transfer(db, actor, utorid, payload)
    db.commit()
    return {
        "id": sent.id,
        "sender": actor.utorid,
        "recipient": received.utorid,
        "type": sent.type,
        "sent": received.amount,
        "remark": sent.remark,
        "createdBy": sent.created_by,
    }


@router.get("/{utorid}", response_model=UserOut)
def read_user(
    utorid: str,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = get_user(db, utorid)
    if not is_self(actor, user):
        require_role(actor, CASHIER_ROLES, "view a user")
    return user


@router.patch("/{utorid}")
def patch_user(
    utorid: str,
    payload: UserUpdate,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user, changes = update_user(db, actor, utorid, payload)
    db.commit()
    return {"id": user.id, "utorid": user.utorid, "name": user.name, **changes}
