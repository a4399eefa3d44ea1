from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from app.errors import ConflictError, ForbiddenError, GoneError, LedgerValidationError, NotFoundError
from app.models.transaction import Transaction
from app.schemas.event import EventCreate, EventRewardCreate
from app.services.event_service import (
    add_guest,
    add_organizer,
    cancel_rsvp,
    create_event,
    list_events,
    publish_event,
    remove_guest,
    remove_organizer,
    reward_guests,
    rsvp,
)
from app.services.ledger_service import get_balance
from app.utils.clock import utcnow
from tests.factories import fresh_session, make_event, make_user


def _reward(amount, utorid=None):
    return EventRewardCreate(type="event", amount=amount, utorid=utorid)


@pytest.fixture
def guests(db):
    return [make_user(db, f"guest0{i}") for i in range(1, 4)]


# ============================================================
# REWARDS
# ============================================================

def test_reward_all_guests(db, manager, guests):
    event = make_event(db, points=300, guests=guests)

    txs = reward_guests(db, manager, event.id, _reward(50))
    db.commit()

    assert [tx.utorid for tx in txs] == ["guest01", "guest02", "guest03"]
    assert all(tx.type == "event" and tx.amount == 50 and tx.related_id == event.id for tx in txs)
    assert [get_balance(db, g.utorid) for g in guests] == [50, 50, 50]
    assert (event.points_remain, event.points_awarded) == (150, 150)


def test_reward_single_guest(db, manager, guests):
    event = make_event(db, points=100, guests=guests)

    txs = reward_guests(db, manager, event.id, _reward(30, "guest02"))
    db.commit()

    assert [tx.utorid for tx in txs] == ["guest02"]
    assert get_balance(db, "guest02") == 30
    assert get_balance(db, "guest01") == 0
    assert (event.points_remain, event.points_awarded) == (70, 30)


def test_bulk_reward_is_all_or_nothing(db, manager, guests):
    event = make_event(db, points=100, guests=guests)

    with pytest.raises(LedgerValidationError) as exc:
        reward_guests(db, manager, event.id, _reward(50))
    db.rollback()

    assert exc.value.message == "Only 100 points available for awarding guests"
    assert [get_balance(db, g.utorid) for g in guests] == [0, 0, 0]
    assert db.query(Transaction).count() == 0
    assert (event.points_remain, event.points_awarded) == (100, 0)


def test_reward_requires_guests(db, manager):
    event = make_event(db)
    with pytest.raises(LedgerValidationError) as exc:
        reward_guests(db, manager, event.id, _reward(1))
    assert exc.value.error_code == "NO_GUESTS"


def test_reward_non_guest(db, manager, guests):
    event = make_event(db, guests=guests[:1])
    make_user(db, "stranger")

    with pytest.raises(LedgerValidationError) as exc:
        reward_guests(db, manager, event.id, _reward(1, "stranger"))
    assert exc.value.error_code == "NOT_GUEST"

    with pytest.raises(NotFoundError):
        reward_guests(db, manager, event.id, _reward(1, "ghost01"))


def test_organizer_may_reward_but_outsider_may_not(db, guests):
    organizer = make_user(db, "organiz1")
    outsider = make_user(db, "outsidr1")
    event = make_event(db, guests=guests, organizers=[organizer])

    reward_guests(db, organizer, event.id, _reward(10, "guest01"))
    db.commit()
    assert get_balance(db, "guest01") == 10

    with pytest.raises(ForbiddenError):
        reward_guests(db, outsider, event.id, _reward(10, "guest01"))


@settings(max_examples=20, deadline=None)
@given(
    pool=st.integers(min_value=0, max_value=500),
    awards=st.lists(
        st.tuples(st.integers(min_value=1, max_value=120), st.sampled_from([None, "guest01", "guest02"])),
        max_size=8,
    ),
)
def test_pool_total_is_constant(pool, awards):
    with fresh_session() as db:
        manager = make_user(db, "mgr00001", role="manager")
        guests = [make_user(db, "guest01"), make_user(db, "guest02")]
        event = make_event(db, points=pool, guests=guests)

        for amount, utorid in awards:
            try:
                reward_guests(db, manager, event.id, _reward(amount, utorid))
                db.commit()
            except LedgerValidationError:
                db.rollback()

            assert event.points_remain >= 0
            assert event.points_remain + event.points_awarded == pool
            credited = sum(get_balance(db, g.utorid) for g in guests)
            assert credited == event.points_awarded


# ============================================================
# EVENTS / ORGANIZERS
# ============================================================

def _event_payload(name="Hackathon", **kw):
    start = utcnow() + timedelta(days=1)
    fields = dict(
        name=name,
        description="Overnight build",
        location="Myhal",
        startTime=start,
        endTime=start + timedelta(hours=12),
        points=500,
    )
    fields.update(kw)
    return EventCreate(**fields)


def test_create_event(db, manager):
    event = create_event(db, manager, _event_payload(capacity=2))

    assert (event.points_remain, event.points_awarded, event.num_guests) == (500, 0, 0)
    assert event.published is False
    assert event.capacity == 2


def test_event_name_is_unique(db, manager):
    create_event(db, manager, _event_payload())
    with pytest.raises(ConflictError):
        create_event(db, manager, _event_payload())


def test_event_payload_checks():
    start = utcnow()
    with pytest.raises(ValueError):
        _event_payload(startTime=start, endTime=start)
    with pytest.raises(ValueError):
        _event_payload(points=0)
    with pytest.raises(ValueError):
        _event_payload(capacity=0)


def test_publish_and_visibility(db, manager, alice):
    event = create_event(db, manager, _event_payload())
    db.commit()

    assert list_events(db, alice)[0] == 0
    assert list_events(db, manager)[0] == 1

    publish_event(db, manager, event.id)
    db.commit()

    count, rows = list_events(db, alice)
    assert count == 1 and rows[0].id == event.id


def test_organizer_management(db, manager, alice):
    event = make_event(db)

    add_organizer(db, manager, event.id, "alice01")
    assert [o.utorid for o in event.organizers] == ["alice01"]

    with pytest.raises(ConflictError):
        add_organizer(db, manager, event.id, "alice01")

    remove_organizer(db, manager, event.id, "alice01")
    assert event.organizers == []

    with pytest.raises(NotFoundError):
        remove_organizer(db, manager, event.id, "alice01")


def test_guest_cannot_become_organizer(db, manager, alice):
    event = make_event(db, guests=[alice])
    with pytest.raises(LedgerValidationError) as exc:
        add_organizer(db, manager, event.id, "alice01")
    assert exc.value.error_code == "GUEST_CONFLICT"


def test_no_organizers_after_event_ended(db, manager, alice):
    event = make_event(db, starts_in=timedelta(days=-2), lasts=timedelta(hours=1))
    with pytest.raises(GoneError) as exc:
        add_organizer(db, manager, event.id, "alice01")
    assert exc.value.error_code == "EVENT_ENDED"


# ============================================================
# GUESTS
# ============================================================

def test_rsvp_and_cancel(db, alice):
    event = make_event(db, capacity=5)

    rsvp(db, alice, event.id)
    db.commit()
    assert event.num_guests == 1
    assert [g.utorid for g in event.guests] == ["alice01"]

    with pytest.raises(ConflictError):
        rsvp(db, alice, event.id)

    cancel_rsvp(db, alice, event.id)
    db.commit()
    assert event.num_guests == 0
    assert event.guests == []


def test_capacity_is_enforced(db, manager):
    event = make_event(db, capacity=1)
    first, second = make_user(db, "first01"), make_user(db, "second01")

    add_guest(db, manager, event.id, "first01")
    with pytest.raises(GoneError) as exc:
        add_guest(db, manager, event.id, "second01")

    assert exc.value.error_code == "EVENT_FULL"
    assert event.num_guests == 1


def test_rsvp_requires_published_event(db, alice):
    event = make_event(db, published=False)
    with pytest.raises(NotFoundError):
        rsvp(db, alice, event.id)


def test_no_rsvp_after_end(db, alice):
    event = make_event(db, starts_in=timedelta(days=-2), lasts=timedelta(hours=1))
    with pytest.raises(GoneError):
        rsvp(db, alice, event.id)


def test_organizer_cannot_be_guest(db, manager, alice):
    event = make_event(db, organizers=[alice])
    with pytest.raises(LedgerValidationError) as exc:
        add_guest(db, manager, event.id, "alice01")
    assert exc.value.error_code == "ORGANIZER_CONFLICT"


def test_organizer_adds_guests_to_published_event_only(db, alice):
    make_user(db, "guest01")
    hidden = make_event(db, name="Hidden", published=False, organizers=[alice])
    shown = make_event(db, name="Shown", organizers=[alice])

    add_guest(db, alice, shown.id, "guest01")
    assert shown.num_guests == 1

    with pytest.raises(NotFoundError):
        add_guest(db, alice, hidden.id, "guest01")


def test_remove_guest_decrements_count(db, manager, alice):
    event = make_event(db, guests=[alice])

    remove_guest(db, manager, event.id, "alice01")
    db.commit()

    assert event.num_guests == 0
    assert event.guests == []


def test_organizing_manager_cannot_remove_guests(db, manager, alice):
    event = make_event(db, guests=[alice], organizers=[manager])
    with pytest.raises(ForbiddenError):
        remove_guest(db, manager, event.id, "alice01")


def test_regular_user_cannot_remove_guests(db, alice):
    other = make_user(db, "other01")
    event = make_event(db, guests=[other])
    with pytest.raises(ForbiddenError):
        remove_guest(db, alice, event.id, "other01")


def test_offset_event_times_become_naive_utc(db, manager, alice):
    minus_four = timezone(timedelta(hours=-4))
    # ended half an hour ago, written in a -04:00 wall clock
    end = (datetime.now(timezone.utc) - timedelta(minutes=30)).astimezone(minus_four)
    payload = _event_payload(startTime=end - timedelta(hours=2), endTime=end)

    assert payload.endTime.tzinfo is None
    assert payload.endTime == end.astimezone(timezone.utc).replace(tzinfo=None)

    event = create_event(db, manager, payload)
    publish_event(db, manager, event.id)

    with pytest.raises(GoneError):
        rsvp(db, alice, event.id)
