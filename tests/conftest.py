"""Pytest configuration and shared fixtures.

Tests run against an in-memory SQLite database by default. Each test gets a
fresh schema, so commits made by the code under test are real commits.
"""

import os

# Settings are cached on first import; point them at SQLite before that happens
os.environ.setdefault("REVIEWFLOW_DATABASE_URL", "sqlite://")
os.environ.setdefault("REVIEWFLOW_SECRET_KEY", "test-secret-key")
os.environ.setdefault("REVIEWFLOW_WEBHOOK_URL", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reviewflow.db.base import Base
import reviewflow.db.models  # noqa: F401
from reviewflow.core.identity import Actor, CLIENT_CONTACT, TEAM_MEMBER
from reviewflow.core.security import create_access_token


@pytest.fixture()
def engine():
    """Fresh in-memory database with the full schema."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture()
def client(db_session):
    """FastAPI test client sharing ``db_session`` with the test."""
    from reviewflow.api.deps import get_db
    from reviewflow.api.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    """Build bearer headers for an acting party."""

    def _headers(actor_id: str = "alice", *, actor_type: str = TEAM_MEMBER, name: str = None) -> dict:
        token = create_access_token(actor_id, name=name or actor_id.title(), actor_type=actor_type)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def alice():
    return Actor(id="alice", name="Alice", actor_type=TEAM_MEMBER)


@pytest.fixture()
def bob():
    return Actor(id="bob", name="Bob", actor_type=CLIENT_CONTACT, ip_address="203.0.113.7", user_agent="pytest")


@pytest.fixture()
def carol():
    return Actor(id="carol", name="Carol", actor_type=TEAM_MEMBER)
