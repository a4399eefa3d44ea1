from typing import Annotated

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.actor import get_current_user
from app.models.user import User
from app.schemas.transaction import (
    RedemptionProcess,
    SuspiciousUpdate,
    TransactionCreate,
    present_transaction,
)
from app.services.access_service import MANAGER_ROLES, require_role
from app.services.transaction_service import (
    create_adjustment,
    create_purchase,
    get_transaction,
    list_transactions,
    process_redemption,
    set_suspicious,
)


router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.post("", status_code=201)
def create_transaction(
    payload: Annotated[TransactionCreate, Body(discriminator="type")],
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if payload.type == "purchase":
        transaction = create_purchase(db, actor, payload)
    else:
        transaction = create_adjustment(db, actor, payload)
    db.commit()
    return present_transaction(transaction, actor.role)


@router.get("")
def list_all_transactions(
    name: str | None = None,
    createdBy: str | None = None,
    suspicious: bool | None = None,
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
    count, rows = list_transactions(
        db,
        actor,
        name=name,
        created_by=createdBy,
        suspicious=suspicious,
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


@router.get("/{transaction_id}")
def read_transaction(
    transaction_id: int,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(actor, MANAGER_ROLES, "view a transaction")
    return present_transaction(get_transaction(db, transaction_id), actor.role)


@router.patch("/{transaction_id}/suspicious")
def update_suspicious(
    transaction_id: int,
    payload: SuspiciousUpdate,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    transaction = set_suspicious(db, actor, transaction_id, payload.suspicious)
    db.commit()
    return present_transaction(transaction, actor.role)


@router.patch("/{transaction_id}/processed")
def update_processed(
    transaction_id: int,
    payload: RedemptionProcess,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    transaction = process_redemption(db, actor, transaction_id)
    db.commit()
    return present_transaction(transaction, actor.role)
