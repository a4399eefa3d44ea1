import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import ConflictError, LedgerValidationError, NotFoundError
from app.models.associations import user_promotions
from app.models.promotion import Promotion
from app.services.access_service import MANAGER_ROLES, require_role
from app.services.points import calc_points
from app.utils.clock import utcnow


logger = logging.getLogger(__name__)


@dataclass
class ResolvedPromotion:
    promotion: Promotion
    bonus_points: int


def get_promotion(db: Session, promotion_id: int) -> Promotion:
    promotion = db.get(Promotion, promotion_id)
    if not promotion:
        raise NotFoundError(
            f"Promotion ID={promotion_id} doesn't exist",
            "PROMOTION_NOT_FOUND",
            promotionId=promotion_id,
        )
    return promotion


def create_promotion(db: Session, actor, data) -> Promotion:
    require_role(actor, MANAGER_ROLES, "create a promotion")

    promotion = Promotion(
        name=data.name,
        description=data.description,
        type="automatic" if data.type == "automatic" else "onetime",
        start_time=data.startTime,
        end_time=data.endTime,
        min_spending=data.minSpending,
        rate=data.rate,
        points=data.points,
    )
    db.add(promotion)
    db.flush()

    logger.info("created promotion", extra={"promotion_id": promotion.id, "created_by": actor.utorid})
    return promotion


# ============================================================
# RESOLVE
# ============================================================

def resolve_promotions(
    db: Session,
    promotion_ids,
    spent,
    customer,
    *,
    check_min_spend: bool = True,
    now: datetime | None = None,
) -> list[ResolvedPromotion]:
    """
    Validates each promotion id for `customer` and computes its bonus.

    Checks run in order and the first failure wins:
    exists -> not consumed by this user -> started -> not ended -> min spend.
    The min-spend check is skipped for adjustments, which carry no spend.
    """
    ids = list(promotion_ids or [])
    if not ids:
        return []

    if len(set(ids)) != len(ids):
        raise ConflictError(
            "Promotion IDs must not repeat within one transaction",
            "DUPLICATE_PROMOTION",
            promotionIds=ids,
        )

    now = now or utcnow()
    consumed = {p.id for p in customer.promotions}

    resolved = []
    for pid in ids:
        promotion = get_promotion(db, pid)

        if pid in consumed:
            raise ConflictError(
                f"Customer already used promotion ID={pid}",
                "ALREADY_USED",
                promotionId=pid,
                utorid=customer.utorid,
            )

        if now < promotion.start_time:
            raise LedgerValidationError(
                f"Promotional period has not started for promotion ID={pid}",
                "NOT_STARTED",
                promotionId=pid,
                startTime=promotion.start_time.isoformat(),
            )

        if now >= promotion.end_time:
            raise LedgerValidationError(
                f"Promotion ID={pid} has expired",
                "EXPIRED",
                promotionId=pid,
                endTime=promotion.end_time.isoformat(),
            )

        if check_min_spend and promotion.min_spending is not None:
            if spent is None or spent < promotion.min_spending:
                raise LedgerValidationError(
                    f"Promotion ID={pid} requires a minimum spending of ${promotion.min_spending}",
                    "MIN_SPEND_NOT_MET",
                    promotionId=pid,
                    minSpending=promotion.min_spending,
                    spent=spent,
                )

        resolved.append(ResolvedPromotion(promotion=promotion, bonus_points=calc_points(spent, promotion.rate)))

    return resolved


# ============================================================
# CONSUME
# ============================================================

def consume_promotions(db: Session, customer, promotions):
    """
    Marks every promotion as used by `customer`.

    The (user, promotion) primary key on the join table is what keeps two
    concurrent requests from both consuming the same promotion.
    """
    promotions = list(promotions)
    if not promotions:
        return

    rows = [{"user_id": customer.id, "promotion_id": p.id} for p in promotions]
    try:
        db.execute(insert(user_promotions), rows)
        db.flush()
    except IntegrityError:
        raise ConflictError(
            "Customer already used one of the promotions",
            "ALREADY_USED",
            utorid=customer.utorid,
            promotionIds=[p.id for p in promotions],
        )

    db.expire(customer, ["promotions"])

    logger.info(
        "consumed promotions",
        extra={"utorid": customer.utorid, "promotion_ids": [p.id for p in promotions]},
    )
