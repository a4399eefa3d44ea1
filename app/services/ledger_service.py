import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.errors import LedgerValidationError, NotFoundError
from app.models.event import Event
from app.models.transaction import Transaction
from app.models.user import User


logger = logging.getLogger(__name__)

# the only columns of a transaction row that may change after insert
MUTABLE_TRANSACTION_FIELDS = frozenset({"suspicious", "processed_by", "related_id", "redeemed"})


def get_balance(db: Session, utorid: str) -> int:
    # column query: always hits the database, never the identity map
    balance = db.query(User.points).filter(User.utorid == utorid).scalar()
    if balance is None:
        raise NotFoundError(f"User with utorid={utorid} not found", "USER_NOT_FOUND", utorid=utorid)
    return int(balance)


def _expire_cached(db: Session, model, attrs, **match):
    for obj in list(db.identity_map.values()):
        if isinstance(obj, model) and all(getattr(obj, k) == v for k, v in match.items()):
            db.expire(obj, attrs)


# ============================================================
# USER BALANCE
# ============================================================

def apply_delta(db: Session, utorid: str, delta: int, *, floor: int | None = None) -> int:
    """
    Adds `delta` (possibly negative) to a user's balance in one UPDATE.

    With `floor` set the UPDATE only matches while the resulting balance
    stays >= floor, so concurrent debits cannot overdraw the account.
    Returns the new balance.
    """
    delta = int(delta)
    db.flush()

    stmt = update(User).where(User.utorid == utorid)
    if floor is not None:
        stmt = stmt.where(User.points + delta >= floor)
    result = db.execute(
        stmt.values(points=User.points + delta).execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        # get_balance raises NotFound for an unknown handle
        balance = get_balance(db, utorid)
        logger.info(
            "balance guard rejected delta",
            extra={"utorid": utorid, "delta": delta, "balance": balance, "floor": floor},
        )
        raise LedgerValidationError(
            f"Insufficient points. Current balance: {balance} points",
            "INSUFFICIENT_POINTS",
            utorid=utorid,
            balance=balance,
            requested=-delta,
        )

    _expire_cached(db, User, ["points"], utorid=utorid)
    balance = get_balance(db, utorid)

    logger.info("applied point delta", extra={"utorid": utorid, "delta": delta, "balance": balance})
    return balance


# ============================================================
# TRANSACTION LOG
# ============================================================

def append_transaction(
    db: Session,
    *,
    utorid: str,
    tx_type: str,
    amount: int,
    created_by: str,
    spent: float | None = None,
    redeemed: int | None = None,
    related_id: int | None = None,
    suspicious: bool = False,
    remark: str | None = None,
    promotions=(),
) -> Transaction:
    transaction = Transaction(
        utorid=utorid,
        type=getattr(tx_type, "value", tx_type),
        amount=int(amount),
        spent=spent,
        redeemed=redeemed,
        related_id=related_id,
        suspicious=bool(suspicious),
        remark=remark or "",
        created_by=created_by,
    )
    transaction.promotions = list(promotions)

    db.add(transaction)
    db.flush()

    logger.info(
        "appended transaction",
        extra={
            "transaction_id": transaction.id,
            "utorid": utorid,
            "type": transaction.type,
            "amount": transaction.amount,
        },
    )
    return transaction


def update_transaction(db: Session, transaction: Transaction, patch: dict, *, expected: dict | None = None) -> bool:
    """
    Patches the mutable fields of a transaction row.

    `expected` turns the write into a compare-and-set: the row is only
    updated while each listed column still holds the given value. Returns
    False when another writer got there first.
    """
    illegal = set(patch) - MUTABLE_TRANSACTION_FIELDS
    if illegal:
        raise LedgerValidationError(
            f"Transaction fields cannot be modified: {', '.join(sorted(illegal))}",
            "IMMUTABLE_FIELD",
            transactionId=transaction.id,
            fields=sorted(illegal),
        )

    db.flush()

    stmt = update(Transaction).where(Transaction.id == transaction.id)
    for field, value in (expected or {}).items():
        column = getattr(Transaction, field)
        stmt = stmt.where(column.is_(None) if value is None else column == value)

    result = db.execute(stmt.values(**patch).execution_options(synchronize_session=False))
    db.expire(transaction)

    return result.rowcount == 1


def mark_processed(db: Session, transaction: Transaction, processor) -> bool:
    """Stamps a redemption as processed by `processor`, only if nobody has yet."""
    return update_transaction(
        db,
        transaction,
        {
            "processed_by": processor.utorid,
            "related_id": processor.id,
            "redeemed": transaction.redeemed,
        },
        expected={"processed_by": None},
    )


# ============================================================
# EVENT POOL
# ============================================================

def move_event_pool(db: Session, event_id: int, amount: int) -> Event:
    """
    Moves `amount` points from points_remain to points_awarded.

    Single guarded UPDATE: both counters change together and the pool can
    never go below zero.
    """
    amount = int(amount)
    db.flush()

    result = db.execute(
        update(Event)
        .where(Event.id == event_id, Event.points_remain >= amount)
        .values(
            points_remain=Event.points_remain - amount,
            points_awarded=Event.points_awarded + amount,
        )
        .execution_options(synchronize_session=False)
    )

    event = db.get(Event, event_id)
    if event is None:
        raise NotFoundError(f"Event ID={event_id} not found", "EVENT_NOT_FOUND", eventId=event_id)
    db.expire(event, ["points_remain", "points_awarded"])

    if result.rowcount == 0:
        raise LedgerValidationError(
            f"Only {event.points_remain} points available for awarding guests",
            "INSUFFICIENT_POOL",
            eventId=event_id,
            pointsRemain=event.points_remain,
            requested=amount,
        )

    logger.info(
        "moved event pool",
        extra={
            "event_id": event_id,
            "amount": amount,
            "points_remain": event.points_remain,
            "points_awarded": event.points_awarded,
        },
    )
    return event
