from datetime import timedelta

import pytest

from app.deps import actor
from app.errors import GoneError, NotFoundError, TooManyRequestsError, UnauthorizedError
from app.models.reset_token import ResetToken
from app.services.password_reset_service import consume_reset_token, request_password_reset
from app.utils.clock import utcnow
from app.utils.rate_limiter import InMemoryRateLimitStore, RedisRateLimitStore
from tests.factories import make_user


class FakeRedis:
    """Answers SET NX EX the way a Redis server does, without expiry."""

    def __init__(self):
        self.keys = {}
        self.calls = []

    def set(self, name, value, nx=False, ex=None):
        self.calls.append((name, value, nx, ex))
        if nx and name in self.keys:
            return None
        self.keys[name] = value
        return True


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_store_allows_one_hit_per_window():
    clock = FakeClock()
    store = InMemoryRateLimitStore(clock=clock)

    assert store.hit("1.2.3.4_alice01", 60) is True
    assert store.hit("1.2.3.4_alice01", 60) is False
    assert store.hit("1.2.3.4_bob0002", 60) is True

    clock.now += 60
    assert store.hit("1.2.3.4_alice01", 60) is True


def test_store_evicts_expired_keys():
    clock = FakeClock()
    store = InMemoryRateLimitStore(clock=clock)
    for i in range(5):
        store.hit(f"key{i}", 10)
    assert len(store) == 5

    clock.now += 11
    assert len(store) == 0


def test_reset_request_issues_one_hour_token(db, alice):
    store = InMemoryRateLimitStore()

    token = request_password_reset(db, "alice01", "1.2.3.4", store)
    db.commit()

    assert token.utorid == "alice01"
    assert timedelta(minutes=59) < token.expires_at - utcnow() <= timedelta(hours=1)


def test_reset_requests_inside_window_are_rejected(db, alice):
    store = InMemoryRateLimitStore()
    request_password_reset(db, "alice01", "1.2.3.4", store)
    db.commit()

    with pytest.raises(TooManyRequestsError) as exc:
        request_password_reset(db, "alice01", "1.2.3.4", store)
    assert exc.value.status_code == 429

    # another client address is throttled separately
    request_password_reset(db, "alice01", "5.6.7.8", store)
    db.commit()
    assert db.query(ResetToken).count() == 1


def test_reset_for_unknown_user(db):
    with pytest.raises(NotFoundError):
        request_password_reset(db, "ghost01", "1.2.3.4", InMemoryRateLimitStore())


def test_consume_token(db, alice):
    token = request_password_reset(db, "alice01", "1.2.3.4", InMemoryRateLimitStore())
    db.commit()
    value = token.token

    consume_reset_token(db, value, "alice01")
    db.commit()

    assert db.query(ResetToken).count() == 0
    with pytest.raises(NotFoundError):
        consume_reset_token(db, value, "alice01")


def test_consume_token_for_wrong_user(db, alice):
    token = request_password_reset(db, "alice01", "1.2.3.4", InMemoryRateLimitStore())
    db.commit()

    with pytest.raises(UnauthorizedError):
        consume_reset_token(db, token.token, "bobby02")


def test_consume_expired_token(db, alice):
    db.add(ResetToken(token="0f8b4a5e-expired", utorid="alice01", expires_at=utcnow() - timedelta(seconds=1)))
    db.commit()

    with pytest.raises(GoneError):
        consume_reset_token(db, "0f8b4a5e-expired", "alice01")


def test_unknown_user_request_still_uses_the_window(db):
    store = InMemoryRateLimitStore()
    with pytest.raises(NotFoundError):
        request_password_reset(db, "carol03", "1.2.3.4", store)

    make_user(db, "carol03")

    # the throttle runs before the user lookup, so the window is already taken
    with pytest.raises(TooManyRequestsError):
        request_password_reset(db, "carol03", "1.2.3.4", store)
    assert db.query(ResetToken).count() == 0


def test_redis_store_sets_key_once_per_window():
    client = FakeRedis()
    store = RedisRateLimitStore(client)

    assert store.hit("1.2.3.4_alice01", 60) is True
    assert store.hit("1.2.3.4_alice01", 60) is False
    assert store.hit("1.2.3.4_bob0002", 60) is True

    assert client.calls[0] == ("rate_limit:1.2.3.4_alice01", 1, True, 60)


def test_redis_store_rounds_window_up_to_whole_seconds():
    client = FakeRedis()
    store = RedisRateLimitStore(client, prefix="reset:")

    store.hit("k", 0.2)
    store.hit("j", 1.5)

    assert [c[3] for c in client.calls] == [1, 2]
    assert set(client.keys) == {"reset:k", "reset:j"}


def test_reset_request_throttled_through_redis_store(db, alice):
    store = RedisRateLimitStore(FakeRedis())
    request_password_reset(db, "alice01", "1.2.3.4", store)
    db.commit()

    with pytest.raises(TooManyRequestsError):
        request_password_reset(db, "alice01", "1.2.3.4", store)


def test_reset_limiter_uses_redis_when_configured(monkeypatch):
    monkeypatch.setattr(actor, "_reset_limiter", None)
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")

    limiter = actor.get_reset_limiter()

    assert isinstance(limiter, RedisRateLimitStore)
    assert actor.get_reset_limiter() is limiter


def test_reset_limiter_in_memory_without_redis(monkeypatch):
    monkeypatch.setattr(actor, "_reset_limiter", None)
    monkeypatch.delenv("REDIS_URL", raising=False)

    assert isinstance(actor.get_reset_limiter(), InMemoryRateLimitStore)
