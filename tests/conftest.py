import os
import uuid

import pytest

# Point the app at a throwaway database before it is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_taskboard.db")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("LOG_FORMAT", "text")

from fastapi.testclient import TestClient  # noqa: E402

from taskboard.main import app  # noqa: E402
from taskboard.database import Base, SessionLocal, engine  # noqa: E402
from taskboard.services.events import EventBus, get_event_bus  # noqa: E402


class RecordingSink:
    """Sink that keeps every pushed event in memory."""

    def __init__(self):
        self.events = []
        self.closed = False

    def push(self, event):
        self.events.append(event)

    def close(self):
        self.closed = True


# Recreate all tables for each test
@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def bus():
    """Isolated event bus wired into the app for the duration of one test."""
    bus = EventBus()
    app.dependency_overrides[get_event_bus] = lambda: bus
    yield bus
    app.dependency_overrides.pop(get_event_bus, None)


@pytest.fixture
def client(bus):
    return TestClient(app)


@pytest.fixture
def make_client(bus):
    """Return a factory producing clients already signed in as a fresh user."""
    def _make(email=None, password="Pass123!"):
        c = TestClient(app)
        email = email or f"user_{uuid.uuid4().hex[:8]}@example.com"
        r = c.post("/api/auth/signup", json={"email": email, "password": password})
        assert r.status_code == 201, r.text
        c.user_id = r.json()["data"]["id"]
        c.email = email
        return c
    return _make
