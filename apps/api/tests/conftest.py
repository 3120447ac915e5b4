"""
Pytest configuration and fixtures

Tests run against a private in-memory SQLite database: the schema is created
before each test and dropped after it, so nothing leaks between tests.
"""
import os
import sys

# Must be set before core.config is imported anywhere.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("SUPABASE_JWT_SECRET", None)
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("SENTRY_DSN", None)
os.environ.setdefault("LOG_FORMAT", "text")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from core.database import Base, SessionLocal, engine, get_db
from main import app
from models import User
from tests.auth_helpers import auth_headers


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client(db_session):
    """TestClient whose requests share the test's session."""

    def _get_db():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """
    Factory for users. Accounts default to a signup a month ago so that
    compliance weeks in the recent past are scored.
    """

    def _make(role: str = "client", coach: User = None, **kw) -> User:
        name = kw.pop("name", f"{role.title()} {uuid4().hex[:6]}")
        user = User(
            auth_id=kw.pop("auth_id", f"auth-{uuid4()}"),
            email=kw.pop("email", f"{uuid4().hex[:8]}@example.com"),
            name=name,
            role=role,
            coach_id=coach.id if coach else None,
            slug=kw.pop("slug", f"{role}-{uuid4().hex[:8]}"),
            created_at=kw.pop("created_at", datetime.now(timezone.utc) - timedelta(days=30)),
            **kw,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def coach(make_user):
    return make_user("coach", name="Kava Coach")


@pytest.fixture
def client_user(make_user, coach):
    return make_user("client", coach=coach, name="Alex Client")


@pytest.fixture
def coach_headers(coach):
    return auth_headers(coach)


@pytest.fixture
def client_headers(client_user):
    return auth_headers(client_user)
