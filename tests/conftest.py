"""
pytest configuration and fixtures for RepairHub tests
"""

import os
from datetime import datetime, timedelta

# Configure the app for tests before anything imports repairhub.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.pop("NOTIFICATION_WEBHOOK_URL", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from repairhub.auth import ROLE_CUSTOMER, ROLE_WORKSHOP, CurrentUser, create_access_token
from repairhub.database import Base, get_db
from repairhub.main import app

# Monday 2026-03-02 09:00 UTC
FROZEN_NOW = datetime(2026, 3, 2, 9, 0)


class FrozenClock:
    """Injectable clock for services; advance() moves time forward"""

    def __init__(self, now: datetime = FROZEN_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    """In-memory SQLite shared across threads for one test"""
    test_engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a test database session"""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def customer():
    return CurrentUser(user_id="customer-1", role=ROLE_CUSTOMER, name="Sara Customer")


@pytest.fixture
def other_customer():
    return CurrentUser(user_id="customer-2", role=ROLE_CUSTOMER, name="Omar Customer")


@pytest.fixture
def workshop_user_factory():
    def make(user_id: str) -> CurrentUser:
        return CurrentUser(user_id=user_id, role=ROLE_WORKSHOP)

    return make


@pytest.fixture
def client(db_session):
    """FastAPI test client bound to the test session"""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build Authorization headers for a user id and role"""

    def make(user_id: str, role: str = ROLE_CUSTOMER) -> dict:
        token = create_access_token(user_id, role)
        return {"Authorization": f"Bearer {token}"}

    return make
