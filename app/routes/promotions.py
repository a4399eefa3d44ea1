from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.actor import get_current_user
from app.models.user import User
from app.schemas.promotion import PromotionCreate, PromotionOut
from app.services.promotion_service import create_promotion, get_promotion


router = APIRouter(prefix="/promotions", tags=["promotions"])


@router.post("", response_model=PromotionOut, status_code=201)
def add_promotion(
    payload: PromotionCreate,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    promotion = create_promotion(db, actor, payload)
    db.commit()
    db.refresh(promotion)
    return promotion


@router.get("/{promotion_id}", response_model=PromotionOut)
def read_promotion(
    promotion_id: int,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_promotion(db, promotion_id)
