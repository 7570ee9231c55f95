"""
Shared fixtures: in-memory MongoDB, a controllable clock, and an API client
wired to both.
"""
from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes
from storage import FeedbackStore


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def mongo_db():
    database = mongomock.MongoClient().feedback_test
    ensure_indexes(database)
    return database


@pytest.fixture
def store(mongo_db, clock):
    return FeedbackStore(mongo_db, clock=clock)


@pytest.fixture
def valid_payload():
    """The example submission from the dashboard walkthrough."""
    return {
        "name": "A",
        "phoneNumber": "9123456789",
        "location": "Shree Rath",
        "dineType": "dine_in",
        "ratings": {
            "foodQuality": 5,
            "foodTaste": 4,
            "staffBehavior": 5,
            "hygiene": 5,
            "ambience": 4,
            "serviceSpeed": 5,
        },
    }


@pytest.fixture
def client(store):
    from main import app, get_storage

    app.dependency_overrides[get_storage] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(client):
    from config import get_admin_password, get_admin_username

    response = client.post(
        "/admin/login",
        json={"username": get_admin_username(), "password": get_admin_password()},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
