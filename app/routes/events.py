from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.actor import get_current_user
from app.models.user import User
from app.schemas.event import (
    EventCreate,
    EventOut,
    EventPublish,
    EventRewardCreate,
    EventUserAdd,
)
from app.schemas.transaction import present_transaction
from app.services.event_service import (
    add_guest,
    add_organizer,
    cancel_rsvp,
    create_event,
    get_visible_event,
    list_events,
    publish_event,
    remove_guest,
    remove_organizer,
    reward_guests,
    rsvp,
)


router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventOut, status_code=201)
def add_event(
    payload: EventCreate,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = create_event(db, actor, payload)
    db.commit()
    return event


@router.get("")
def list_all_events(
    name: str | None = None,
    published: bool | None = None,
    page: int = 1,
    limit: int = 10,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    count, rows = list_events(db, actor, name=name, published=published, page=page, limit=limit)
    return {
        "count": count,
        "results": [EventOut.model_validate(e).model_dump(exclude={"organizers", "guests"}) for e in rows],
    }


@router.get("/{event_id}", response_model=EventOut)
def read_event(
    event_id: int,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_visible_event(db, actor, event_id)


@router.patch("/{event_id}", response_model=EventOut)
def patch_event(
    event_id: int,
    payload: EventPublish,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = publish_event(db, actor, event_id)
    db.commit()
    return event


# ─── organizers ───────────────────────────────────────────────────
@router.post("/{event_id}/organizers", response_model=EventOut, status_code=201)
def create_organizer(
    event_id: int,
    payload: EventUserAdd,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = add_organizer(db, actor, event_id, payload.utorid)
    db.commit()
    return event


@router.delete("/{event_id}/organizers/{utorid}", status_code=204)
def delete_organizer(
    event_id: int,
    utorid: str,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    remove_organizer(db, actor, event_id, utorid)
    db.commit()


# ─── guests ───────────────────────────────────────────────────────
@router.post("/{event_id}/guests/me", response_model=EventOut, status_code=201)
def create_rsvp(
    event_id: int,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = rsvp(db, actor, event_id)
    db.commit()
    return event


@router.delete("/{event_id}/guests/me", status_code=204)
def delete_rsvp(
    event_id: int,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cancel_rsvp(db, actor, event_id)
    db.commit()


@router.post("/{event_id}/guests", response_model=EventOut, status_code=201)
def create_guest(
    event_id: int,
    payload: EventUserAdd,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = add_guest(db, actor, event_id, payload.utorid)
    db.commit()
    return event


@router.delete("/{event_id}/guests/{utorid}", status_code=204)
def delete_guest(
    event_id: int,
    utorid: str,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    remove_guest(db, actor, event_id, utorid)
    db.commit()


# ─── rewards ──────────────────────────────────────────────────────
@router.post("/{event_id}/transactions", status_code=201)
def create_event_reward(
    event_id: int,
    payload: EventRewardCreate,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    transactions = reward_guests(db, actor, event_id, payload)
    db.commit()

    results = [present_transaction(tx, actor.role) for tx in transactions]
    if payload.utorid:
        return results[0]
    return results
