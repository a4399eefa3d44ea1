"""Shared fixtures: one in-memory SQLite database per test."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.actor import get_reset_limiter
from app.main import app
from app.models.user import User
from app.utils.rate_limiter import InMemoryRateLimitStore
from tests.factories import fresh_session, make_user


@pytest.fixture(scope="function")
def db():
    with fresh_session() as session:
        yield session


@pytest.fixture
def client(db: Session):
    def override_get_db():
        try:
            yield db
        except Exception:
            db.rollback()
            raise

    limiter = InMemoryRateLimitStore()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_reset_limiter] = lambda: limiter
    # not entered as a context manager: the startup hook would touch the real database
    yield TestClient(app)
    app.dependency_overrides.clear()


# ─── common cast ──────────────────────────────────────────────────
@pytest.fixture
def cashier(db: Session) -> User:
    return make_user(db, "cash0001", role="cashier")


@pytest.fixture
def manager(db: Session) -> User:
    return make_user(db, "mgr00001", role="manager")


@pytest.fixture
def superuser(db: Session) -> User:
    return make_user(db, "root0001", role="superuser")


@pytest.fixture
def alice(db: Session) -> User:
    return make_user(db, "alice01")
