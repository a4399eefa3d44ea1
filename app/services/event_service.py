import logging

from sqlalchemy import delete, insert, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import (
    ConflictError,
    ForbiddenError,
    GoneError,
    LedgerValidationError,
    NotFoundError,
)
from app.models.associations import event_guests, event_organizers
from app.models.event import Event
from app.models.transaction import TransactionType
from app.services.access_service import (
    MANAGER_ROLES,
    is_allowed,
    is_guest,
    is_organizer,
    require_manager_or_organizer,
    require_role,
)
from app.services.ledger_service import append_transaction, apply_delta, move_event_pool
from app.services.user_service import get_user
from app.utils.clock import utcnow


logger = logging.getLogger(__name__)


def get_event(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if not event:
        raise NotFoundError(f"Event ID={event_id} not found", "EVENT_NOT_FOUND", eventId=event_id)
    return event


def get_visible_event(db: Session, actor, event_id: int) -> Event:
    """Unpublished events only exist for managers and the event's organizers."""
    event = get_event(db, event_id)
    if not event.published and not (is_allowed(actor.role, MANAGER_ROLES) or is_organizer(event, actor)):
        raise NotFoundError(f"Event ID={event_id} not found", "EVENT_NOT_FOUND", eventId=event_id)
    return event


def _has_ended(event: Event) -> bool:
    return utcnow() >= event.end_time


def _require_not_ended(event: Event):
    if _has_ended(event):
        raise GoneError(
            f"Event ID={event.id} has ended",
            "EVENT_ENDED",
            eventId=event.id,
            endTime=event.end_time.isoformat(),
        )


def create_event(db: Session, actor, data) -> Event:
    require_role(actor, MANAGER_ROLES, "create an event")

    if db.query(Event.id).filter(Event.name == data.name).first():
        raise ConflictError(f"Event named {data.name!r} already exists", "EVENT_EXISTS", name=data.name)

    event = Event(
        name=data.name,
        description=data.description,
        location=data.location,
        start_time=data.startTime,
        end_time=data.endTime,
        capacity=data.capacity,
        num_guests=0,
        points_remain=data.points,
        points_awarded=0,
        published=False,
    )
    db.add(event)
    db.flush()

    logger.info("created event", extra={"event_id": event.id, "points": data.points, "created_by": actor.utorid})
    return event


def publish_event(db: Session, actor, event_id: int) -> Event:
    require_role(actor, MANAGER_ROLES, "publish an event")

    event = get_event(db, event_id)
    event.published = True
    db.flush()
    return event


def list_events(
    db: Session,
    actor,
    *,
    name: str | None = None,
    published: bool | None = None,
    page: int = 1,
    limit: int = 10,
):
    if page < 1 or limit < 1:
        raise LedgerValidationError("page and limit must be positive", "INVALID_FILTER", page=page, limit=limit)

    q = db.query(Event)
    if not is_allowed(actor.role, MANAGER_ROLES):
        q = q.filter(Event.published.is_(True))
    elif published is not None:
        q = q.filter(Event.published.is_(published))
    if name:
        q = q.filter(Event.name.contains(name))

    count = q.count()
    rows = q.order_by(Event.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return count, rows


# ============================================================
# ORGANIZERS
# ============================================================

def add_organizer(db: Session, actor, event_id: int, utorid: str) -> Event:
    require_role(actor, MANAGER_ROLES, "add an organizer")

    event = get_event(db, event_id)
    user = get_user(db, utorid)
    _require_not_ended(event)

    if is_guest(event, user):
        raise LedgerValidationError(
            f"{utorid} is a guest of event ID={event_id}; remove them as guest first",
            "GUEST_CONFLICT",
            eventId=event_id,
            utorid=utorid,
        )
    if is_organizer(event, user):
        raise ConflictError(
            f"{utorid} already organizes event ID={event_id}",
            "ALREADY_ORGANIZER",
            eventId=event_id,
            utorid=utorid,
        )

    db.execute(insert(event_organizers), [{"event_id": event.id, "user_id": user.id}])
    db.expire(event, ["organizers"])

    logger.info("added organizer", extra={"event_id": event_id, "utorid": utorid})
    return event


def remove_organizer(db: Session, actor, event_id: int, utorid: str) -> Event:
    require_role(actor, MANAGER_ROLES, "remove an organizer")

    event = get_event(db, event_id)
    user = get_user(db, utorid)
    if not is_organizer(event, user):
        raise NotFoundError(
            f"{utorid} does not organize event ID={event_id}",
            "NOT_ORGANIZER",
            eventId=event_id,
            utorid=utorid,
        )

    db.execute(
        delete(event_organizers).where(
            event_organizers.c.event_id == event.id,
            event_organizers.c.user_id == user.id,
        )
    )
    db.expire(event, ["organizers"])

    logger.info("removed organizer", extra={"event_id": event_id, "utorid": utorid})
    return event


# ============================================================
# GUESTS
# ============================================================

def _claim_seat(db: Session, event: Event):
    # guarded increment: two concurrent RSVPs cannot both take the last seat
    result = db.execute(
        update(Event)
        .where(
            Event.id == event.id,
            or_(Event.capacity.is_(None), Event.num_guests < Event.capacity),
        )
        .values(num_guests=Event.num_guests + 1)
        .execution_options(synchronize_session=False)
    )
    db.expire(event, ["num_guests"])

    if result.rowcount == 0:
        raise GoneError(
            f"Event ID={event.id} is full",
            "EVENT_FULL",
            eventId=event.id,
            capacity=event.capacity,
        )


def _admit(db: Session, event: Event, user):
    if is_organizer(event, user):
        raise LedgerValidationError(
            f"{user.utorid} organizes event ID={event.id} and cannot be a guest",
            "ORGANIZER_CONFLICT",
            eventId=event.id,
            utorid=user.utorid,
        )
    if is_guest(event, user):
        raise ConflictError(
            f"{user.utorid} is already a guest of event ID={event.id}",
            "ALREADY_GUEST",
            eventId=event.id,
            utorid=user.utorid,
        )
    _require_not_ended(event)

    db.flush()
    _claim_seat(db, event)
    try:
        db.execute(insert(event_guests), [{"event_id": event.id, "user_id": user.id}])
    except IntegrityError:
        raise ConflictError(
            f"{user.utorid} is already a guest of event ID={event.id}",
            "ALREADY_GUEST",
            eventId=event.id,
            utorid=user.utorid,
        )
    db.expire(event, ["guests"])

    logger.info("added guest", extra={"event_id": event.id, "utorid": user.utorid})


def _release(db: Session, event: Event, user):
    if not is_guest(event, user):
        raise NotFoundError(
            f"{user.utorid} is not a guest of event ID={event.id}",
            "NOT_GUEST",
            eventId=event.id,
            utorid=user.utorid,
        )

    db.flush()
    db.execute(
        delete(event_guests).where(
            event_guests.c.event_id == event.id,
            event_guests.c.user_id == user.id,
        )
    )
    db.execute(
        update(Event)
        .where(Event.id == event.id)
        .values(num_guests=Event.num_guests - 1)
        .execution_options(synchronize_session=False)
    )
    db.expire(event, ["guests", "num_guests"])

    logger.info("removed guest", extra={"event_id": event.id, "utorid": user.utorid})


def add_guest(db: Session, actor, event_id: int, utorid: str) -> Event:
    event = get_event(db, event_id)
    require_manager_or_organizer(actor, event, "add a guest")
    # organizers only manage guests once the event is published
    if not event.published and not is_allowed(actor.role, MANAGER_ROLES):
        raise NotFoundError(f"Event ID={event_id} not found", "EVENT_NOT_FOUND", eventId=event_id)

    _admit(db, event, get_user(db, utorid))
    return event


def remove_guest(db: Session, actor, event_id: int, utorid: str) -> Event:
    require_role(actor, MANAGER_ROLES, "remove a guest")

    event = get_event(db, event_id)
    if is_organizer(event, actor):
        raise ForbiddenError(
            "Organizers cannot remove guests",
            "INSUFFICIENT_CLEARANCE",
            utorid=actor.utorid,
            eventId=event_id,
        )

    _release(db, event, get_user(db, utorid))
    return event


def rsvp(db: Session, actor, event_id: int) -> Event:
    event = get_event(db, event_id)
    if not event.published:
        raise NotFoundError(f"Event ID={event_id} not found", "EVENT_NOT_FOUND", eventId=event_id)

    _admit(db, event, actor)
    return event


def cancel_rsvp(db: Session, actor, event_id: int) -> Event:
    event = get_event(db, event_id)
    _require_not_ended(event)

    _release(db, event, actor)
    return event


# ============================================================
# REWARDS
# ============================================================

def reward_guests(db: Session, actor, event_id: int, data) -> list:
    """
    Awards `data.amount` points to one guest (`data.utorid`) or to every guest.

    The whole award is taken from the event pool in one guarded update
    before any guest is credited, so the pool never goes negative and a
    bulk award either reaches every guest or nobody.
    """
    event = get_event(db, event_id)
    require_manager_or_organizer(actor, event, "award event points")

    guests = list(event.guests)
    if not guests:
        raise LedgerValidationError(
            f"Event ID={event_id} has no guests to reward",
            "NO_GUESTS",
            eventId=event_id,
        )

    if data.utorid:
        user = get_user(db, data.utorid)
        if not is_guest(event, user):
            raise LedgerValidationError(
                f"{data.utorid} is not a guest of event ID={event_id}",
                "NOT_GUEST",
                eventId=event_id,
                utorid=data.utorid,
            )
        recipients = [user]
    else:
        recipients = guests

    move_event_pool(db, event.id, data.amount * len(recipients))

    transactions = []
    for guest in recipients:
        apply_delta(db, guest.utorid, data.amount)
        transactions.append(
            append_transaction(
                db,
                utorid=guest.utorid,
                tx_type=TransactionType.EVENT,
                amount=data.amount,
                related_id=event.id,
                created_by=actor.utorid,
            )
        )

    logger.info(
        "rewarded event guests",
        extra={"event_id": event_id, "guests": len(recipients), "amount": data.amount, "awarded_by": actor.utorid},
    )
    return transactions
