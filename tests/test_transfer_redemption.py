from unittest.mock import patch

import pytest

from app.errors import ForbiddenError, LedgerValidationError, NotFoundError
from app.models.transaction import Transaction
from app.schemas.transaction import RedemptionCreate, TransferCreate
from app.services import transaction_service
from app.services.ledger_service import get_balance
from app.services.transaction_service import (
    create_redemption,
    create_transfer,
    process_redemption,
)
from tests.factories import make_user


def _transfer(amount, remark=None):
    return TransferCreate(type="transfer", amount=amount, remark=remark)


def _redeem(amount):
    return RedemptionCreate(type="redemption", amount=amount)


# ============================================================
# TRANSFER
# ============================================================

def test_transfer_conserves_points(db):
    sender = make_user(db, "sendr01", points=100)
    receiver = make_user(db, "recvr01", points=5)

    sent, received = create_transfer(db, sender, "recvr01", _transfer(30, "lunch"))
    db.commit()

    assert get_balance(db, "sendr01") == 70
    assert get_balance(db, "recvr01") == 35

    assert (sent.utorid, sent.amount, sent.related_id) == ("sendr01", -30, receiver.id)
    assert (received.utorid, received.amount, received.related_id) == ("recvr01", 30, sender.id)
    assert sent.created_by == received.created_by == "sendr01"
    assert sent.remark == received.remark == "lunch"


def test_transfer_to_self(db):
    sender = make_user(db, "sendr01", points=100)
    with pytest.raises(LedgerValidationError) as exc:
        create_transfer(db, sender, "sendr01", _transfer(1))
    assert exc.value.error_code == "SELF_TRANSFER"


def test_transfer_to_unknown_receiver(db):
    sender = make_user(db, "sendr01", points=100)
    with pytest.raises(NotFoundError):
        create_transfer(db, sender, "ghost01", _transfer(1))


def test_unverified_sender(db):
    sender = make_user(db, "sendr01", points=100, verified=False)
    make_user(db, "recvr01")
    with pytest.raises(ForbiddenError) as exc:
        create_transfer(db, sender, "recvr01", _transfer(1))
    assert exc.value.error_code == "NOT_VERIFIED"


def test_transfer_insufficient_balance(db):
    sender = make_user(db, "sendr01", points=10)
    make_user(db, "recvr01")

    with pytest.raises(LedgerValidationError) as exc:
        create_transfer(db, sender, "recvr01", _transfer(11))
    db.rollback()

    assert exc.value.context["balance"] == 10
    assert db.query(Transaction).count() == 0


def test_transfer_rolls_back_when_receiver_credit_fails(db):
    sender = make_user(db, "sendr01", points=100)
    make_user(db, "recvr01")

    real_apply = transaction_service.apply_delta

    def failing_apply(db_, utorid, delta, **kw):
        if utorid == "recvr01":
            raise RuntimeError("connection dropped")
        return real_apply(db_, utorid, delta, **kw)

    with patch.object(transaction_service, "apply_delta", side_effect=failing_apply):
        with pytest.raises(RuntimeError):
            create_transfer(db, sender, "recvr01", _transfer(40))
    db.rollback()

    assert get_balance(db, "sendr01") == 100
    assert get_balance(db, "recvr01") == 0
    assert db.query(Transaction).count() == 0


# ============================================================
# REDEMPTION
# ============================================================

def test_redemption_waits_for_processing(db, cashier):
    bob = make_user(db, "bob02", points=100)

    tx = create_redemption(db, bob, _redeem(40))
    db.commit()

    assert (tx.type, tx.amount, tx.redeemed, tx.processed_by) == ("redemption", 40, 40, None)
    assert get_balance(db, "bob02") == 100

    processed = process_redemption(db, cashier, tx.id)
    db.commit()

    assert get_balance(db, "bob02") == 60
    assert processed.processed_by == "cash0001"
    assert processed.related_id == cashier.id


def test_redemption_processed_exactly_once(db, cashier, manager):
    bob = make_user(db, "bob02", points=100)
    tx = create_redemption(db, bob, _redeem(40))
    process_redemption(db, cashier, tx.id)
    db.commit()

    with pytest.raises(LedgerValidationError) as exc:
        process_redemption(db, manager, tx.id)
    db.rollback()

    assert exc.value.error_code == "ALREADY_PROCESSED"
    assert get_balance(db, "bob02") == 60


def test_redemption_beyond_balance(db):
    bob = make_user(db, "bob02", points=10)
    with pytest.raises(LedgerValidationError) as exc:
        create_redemption(db, bob, _redeem(11))
    assert exc.value.error_code == "INSUFFICIENT_POINTS"


def test_unverified_user_cannot_redeem(db):
    bob = make_user(db, "bob02", points=100, verified=False)
    with pytest.raises(ForbiddenError):
        create_redemption(db, bob, _redeem(1))


def test_processing_when_balance_dropped_meanwhile(db, cashier):
    bob = make_user(db, "bob02", points=50)
    make_user(db, "recvr01")
    tx = create_redemption(db, bob, _redeem(40))
    create_transfer(db, bob, "recvr01", _transfer(20))
    db.commit()

    with pytest.raises(LedgerValidationError) as exc:
        process_redemption(db, cashier, tx.id)
    db.rollback()

    assert exc.value.error_code == "INSUFFICIENT_POINTS"
    assert get_balance(db, "bob02") == 30
    assert db.get(Transaction, tx.id).processed_by is None


def test_only_redemptions_can_be_processed(db, cashier):
    bob = make_user(db, "bob02", points=50)
    make_user(db, "recvr01")
    sent, _ = create_transfer(db, bob, "recvr01", _transfer(5))
    db.commit()

    with pytest.raises(LedgerValidationError) as exc:
        process_redemption(db, cashier, sent.id)
    assert exc.value.error_code == "NOT_A_REDEMPTION"


def test_regular_user_cannot_process(db):
    bob = make_user(db, "bob02", points=50)
    tx = create_redemption(db, bob, _redeem(5))
    db.commit()

    with pytest.raises(ForbiddenError):
        process_redemption(db, bob, tx.id)
