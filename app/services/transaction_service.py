import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.errors import ForbiddenError, LedgerValidationError, NotFoundError
from app.models.promotion import Promotion
from app.models.transaction import Transaction, TransactionType
from app.models.user import User
from app.services.access_service import CASHIER_ROLES, MANAGER_ROLES, require_role
from app.services.ledger_service import (
    append_transaction,
    apply_delta,
    get_balance,
    mark_processed,
    update_transaction,
)
from app.services.points import calc_points
from app.services.promotion_service import consume_promotions, resolve_promotions
from app.services.user_service import get_user


logger = logging.getLogger(__name__)

AMOUNT_OPERATORS = ("gte", "lte")


def get_transaction(db: Session, transaction_id: int) -> Transaction:
    transaction = db.get(Transaction, transaction_id)
    if not transaction:
        raise NotFoundError(
            f"Transaction ID={transaction_id} not found",
            "TRANSACTION_NOT_FOUND",
            transactionId=transaction_id,
        )
    return transaction


# ============================================================
# PURCHASE / ADJUSTMENT
# ============================================================

def create_purchase(db: Session, actor, data) -> Transaction:
    """
    Records a purchase and credits the customer.

    Earned points are ceil(spent * 4) plus each promotion's rate bonus.
    A purchase entered by a suspicious cashier is recorded in full and
    flagged, but nothing is credited until a manager clears the flag.
    """
    require_role(actor, CASHIER_ROLES, "create a purchase")

    customer = get_user(db, data.utorid)
    resolved = resolve_promotions(db, data.promotionIds, data.spent, customer)

    amount = calc_points(data.spent) + sum(r.bonus_points for r in resolved)
    promotions = [r.promotion for r in resolved]

    if actor.suspicious:
        logger.warning(
            "purchase entered by suspicious cashier; credit withheld",
            extra={"created_by": actor.utorid, "utorid": customer.utorid, "amount": amount},
        )
    elif amount:
        apply_delta(db, customer.utorid, amount)

    transaction = append_transaction(
        db,
        utorid=customer.utorid,
        tx_type=TransactionType.PURCHASE,
        amount=amount,
        spent=data.spent,
        suspicious=actor.suspicious,
        remark=data.remark,
        created_by=actor.utorid,
        promotions=promotions,
    )
    consume_promotions(db, customer, promotions)

    return transaction


def create_adjustment(db: Session, actor, data) -> Transaction:
    require_role(actor, MANAGER_ROLES, "create an adjustment")

    customer = get_user(db, data.utorid)
    related = get_transaction(db, data.relatedId)
    if related.utorid != customer.utorid:
        raise LedgerValidationError(
            f"Transaction ID={related.id} does not belong to {customer.utorid}",
            "RELATED_MISMATCH",
            relatedId=related.id,
            utorid=customer.utorid,
        )

    # bonus is computed on the original purchase spend; no min-spend check
    resolved = resolve_promotions(db, data.promotionIds, related.spent, customer, check_min_spend=False)

    amount = data.amount + sum(r.bonus_points for r in resolved)
    promotions = [r.promotion for r in resolved]

    if amount:
        apply_delta(db, customer.utorid, amount, floor=0)

    transaction = append_transaction(
        db,
        utorid=customer.utorid,
        tx_type=TransactionType.ADJUSTMENT,
        amount=amount,
        related_id=related.id,
        remark=data.remark,
        created_by=actor.utorid,
        promotions=promotions,
    )
    consume_promotions(db, customer, promotions)

    return transaction


# ============================================================
# TRANSFER / REDEMPTION
# ============================================================

def create_transfer(db: Session, sender, receiver_utorid: str, data) -> tuple[Transaction, Transaction]:
    """
    Moves points between two users. Returns (sender_row, receiver_row).

    Both balance changes and both rows land in the caller's database
    transaction; the sender's debit is guarded so it can never overdraw.
    """
    if sender.utorid == receiver_utorid:
        raise LedgerValidationError(
            "Cannot transfer to self",
            "SELF_TRANSFER",
            utorid=sender.utorid,
        )

    receiver = get_user(db, receiver_utorid)

    if not sender.verified:
        raise ForbiddenError(
            "Sender is not verified",
            "NOT_VERIFIED",
            utorid=sender.utorid,
        )

    apply_delta(db, sender.utorid, -data.amount, floor=0)
    apply_delta(db, receiver.utorid, data.amount)

    sent = append_transaction(
        db,
        utorid=sender.utorid,
        tx_type=TransactionType.TRANSFER,
        amount=-data.amount,
        related_id=receiver.id,
        remark=data.remark,
        created_by=sender.utorid,
    )
    received = append_transaction(
        db,
        utorid=receiver.utorid,
        tx_type=TransactionType.TRANSFER,
        amount=data.amount,
        related_id=sender.id,
        remark=data.remark,
        created_by=sender.utorid,
    )

    return sent, received


def create_redemption(db: Session, actor, data) -> Transaction:
    if not actor.verified:
        raise ForbiddenError(
            "User is not verified",
            "NOT_VERIFIED",
            utorid=actor.utorid,
        )

    balance = get_balance(db, actor.utorid)
    if balance < data.amount:
        raise LedgerValidationError(
            f"Insufficient points. Current balance: {balance} points",
            "INSUFFICIENT_POINTS",
            utorid=actor.utorid,
            balance=balance,
            requested=data.amount,
        )

    # nothing is debited until a cashier processes the request
    return append_transaction(
        db,
        utorid=actor.utorid,
        tx_type=TransactionType.REDEMPTION,
        amount=data.amount,
        redeemed=data.amount,
        remark=data.remark,
        created_by=actor.utorid,
    )


def process_redemption(db: Session, actor, transaction_id: int) -> Transaction:
    require_role(actor, CASHIER_ROLES, "process a redemption")

    transaction = get_transaction(db, transaction_id)
    if transaction.type != TransactionType.REDEMPTION.value:
        raise LedgerValidationError(
            f"Transaction ID={transaction_id} is not a redemption",
            "NOT_A_REDEMPTION",
            transactionId=transaction_id,
            type=transaction.type,
        )
    if transaction.processed_by is not None:
        raise LedgerValidationError(
            f"Transaction ID={transaction_id} has already been processed",
            "ALREADY_PROCESSED",
            transactionId=transaction_id,
            processedBy=transaction.processed_by,
        )

    apply_delta(db, transaction.utorid, -transaction.redeemed, floor=0)

    # a concurrent processor that won the race leaves processed_by set
    if not mark_processed(db, transaction, actor):
        raise LedgerValidationError(
            f"Transaction ID={transaction_id} has already been processed",
            "ALREADY_PROCESSED",
            transactionId=transaction_id,
        )

    logger.info(
        "processed redemption",
        extra={"transaction_id": transaction_id, "processed_by": actor.utorid},
    )
    return transaction


# ============================================================
# SUSPICIOUS FLAG
# ============================================================

def set_suspicious(db: Session, actor, transaction_id: int, suspicious: bool) -> Transaction:
    """
    Flags or clears a transaction as suspicious.

    Flagging reverses the row's amount on the owner's balance and clearing
    re-applies it. Setting the flag to its current value changes nothing.
    This is the one balance change allowed to push a balance below zero.
    """
    require_role(actor, MANAGER_ROLES, "flag a transaction")

    transaction = get_transaction(db, transaction_id)
    if bool(transaction.suspicious) == suspicious:
        return transaction

    flipped = update_transaction(
        db,
        transaction,
        {"suspicious": suspicious},
        expected={"suspicious": not suspicious},
    )
    if not flipped:
        return transaction

    delta = -transaction.amount if suspicious else transaction.amount
    if delta:
        apply_delta(db, transaction.utorid, delta)

    logger.info(
        "toggled suspicious flag",
        extra={"transaction_id": transaction_id, "suspicious": suspicious, "changed_by": actor.utorid},
    )
    return transaction


# ============================================================
# LISTING
# ============================================================

def _apply_filters(q, *, tx_type=None, related_id=None, promotion_id=None, amount=None, operator=None):
    if related_id is not None and tx_type is None:
        raise LedgerValidationError(
            "relatedId must be used together with type",
            "INVALID_FILTER",
            relatedId=related_id,
        )
    if (amount is None) != (operator is None):
        raise LedgerValidationError(
            "amount and operator must be used together",
            "INVALID_FILTER",
            amount=amount,
            operator=operator,
        )
    if operator is not None and operator not in AMOUNT_OPERATORS:
        raise LedgerValidationError(
            f"operator must be one of {', '.join(AMOUNT_OPERATORS)}",
            "INVALID_FILTER",
            operator=operator,
        )

    if tx_type:
        q = q.filter(Transaction.type == tx_type)
    if related_id is not None:
        q = q.filter(Transaction.related_id == related_id)
    if promotion_id is not None:
        q = q.filter(Transaction.promotions.any(Promotion.id == promotion_id))
    if operator == "gte":
        q = q.filter(Transaction.amount >= amount)
    elif operator == "lte":
        q = q.filter(Transaction.amount <= amount)
    return q


def _paginate(q, page: int, limit: int):
    if page < 1 or limit < 1:
        raise LedgerValidationError(
            "page and limit must be positive",
            "INVALID_FILTER",
            page=page,
            limit=limit,
        )
    count = q.count()
    rows = q.order_by(Transaction.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return count, rows


def list_transactions(
    db: Session,
    actor,
    *,
    name: str | None = None,
    created_by: str | None = None,
    suspicious: bool | None = None,
    promotion_id: int | None = None,
    tx_type: str | None = None,
    related_id: int | None = None,
    amount: int | None = None,
    operator: str | None = None,
    page: int = 1,
    limit: int = 10,
):
    require_role(actor, MANAGER_ROLES, "list transactions")

    q = db.query(Transaction)
    if name:
        q = q.join(User, User.utorid == Transaction.utorid).filter(
            or_(User.utorid.contains(name), User.name.contains(name))
        )
    if created_by:
        q = q.filter(Transaction.created_by == created_by)
    if suspicious is not None:
        q = q.filter(Transaction.suspicious.is_(suspicious))

    q = _apply_filters(
        q,
        tx_type=tx_type,
        related_id=related_id,
        promotion_id=promotion_id,
        amount=amount,
        operator=operator,
    )
    return _paginate(q, page, limit)


def list_user_transactions(
    db: Session,
    actor,
    *,
    promotion_id: int | None = None,
    tx_type: str | None = None,
    related_id: int | None = None,
    amount: int | None = None,
    operator: str | None = None,
    page: int = 1,
    limit: int = 10,
):
    q = db.query(Transaction).filter(Transaction.utorid == actor.utorid)
    q = _apply_filters(
        q,
        tx_type=tx_type,
        related_id=related_id,
        promotion_id=promotion_id,
        amount=amount,
        operator=operator,
    )
    return _paginate(q, page, limit)
