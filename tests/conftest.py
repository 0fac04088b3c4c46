"""
Shared pytest fixtures.

Provides:
- A fresh in-memory SQLite database per test
- Actor factories for each role
- A fixed evaluation clock
- A FastAPI TestClient with bearer-token helpers
"""
import os

os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-at-least-32-bytes-long")

from datetime import date, datetime, timedelta

import pytest
from dotenv import load_dotenv

from auth.auth_manager import get_auth_manager, reset_auth_manager
from auth.cache_manager import actor_cache
from core.config import reset_access_config
from grants.service import GrantService
from identity.models import Role
from identity.service import ActorService
from records.service import RecordService
from storage.database import DatabaseConfig, DatabaseManager

load_dotenv()


# ============================================================================
# Database
# ============================================================================

@pytest.fixture(autouse=True)
def database(monkeypatch):
    """Fresh in-memory database, config and caches for every test."""
    monkeypatch.delenv("SUPERVISOR_RESOURCE_ACCESS", raising=False)
    monkeypatch.delenv("MAX_GRANT_DURATION_DAYS", raising=False)
    reset_access_config()
    reset_auth_manager()
    actor_cache.clear()

    DatabaseManager.dispose()
    DatabaseManager.initialize(DatabaseConfig("sqlite://"))
    yield DatabaseManager
    DatabaseManager.dispose()
    reset_access_config()
    actor_cache.clear()


@pytest.fixture
def db(database):
    session = DatabaseManager.new_session()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# Clock
# ============================================================================

@pytest.fixture
def now() -> datetime:
    """Fixed evaluation time (naive UTC)."""
    return datetime(2024, 3, 1, 9, 0, 0)


# ============================================================================
# Actors
# ============================================================================

@pytest.fixture
def make_actor(db):
    counter = {"n": 0}

    def _make(role: Role, full_name: str = None, specialty: str = None):
        counter["n"] += 1
        username = f"{Role(role).value}{counter['n']}"
        return ActorService.register_actor(
            db,
            username=username,
            full_name=full_name or username.title(),
            role=Role(role),
            email=f"{username}@example.org",
            specialty=specialty
        )

    return _make


@pytest.fixture
def subject(make_actor):
    return make_actor(Role.SUBJECT, full_name="Sam Subject")


@pytest.fixture
def other_subject(make_actor):
    return make_actor(Role.SUBJECT, full_name="Olive Subject")


@pytest.fixture
def requester(make_actor):
    return make_actor(Role.REQUESTER, full_name="Dr. Rey", specialty="Cardiology")


@pytest.fixture
def other_requester(make_actor):
    return make_actor(Role.REQUESTER, full_name="Dr. Ola", specialty="Imaging")


@pytest.fixture
def supervisor(make_actor):
    return make_actor(Role.SUPERVISOR, full_name="Sue Supervisor")


# ============================================================================
# Grants and records
# ============================================================================

@pytest.fixture
def pending_grant(db, requester, subject, now):
    return GrantService.create_grant(
        db,
        actor_id=requester.id,
        subject_id=subject.id,
        purpose="Follow-up consultation",
        requested_duration_days=30,
        now=now
    )


@pytest.fixture
def approved_grant(db, subject, pending_grant, now):
    return GrantService.approve_grant(db, subject.id, pending_grant["id"], now=now)


@pytest.fixture
def subject_records(db, subject, now):
    """One Cardiology and one Imaging record owned by the subject."""
    cardio = RecordService.create_record(
        db, subject.id, subject.id,
        title="Echocardiogram",
        category="Cardiology",
        record_date=date(2024, 2, 1),
        notes="Normal ejection fraction",
        now=now - timedelta(days=1)
    )
    imaging = RecordService.create_record(
        db, subject.id, subject.id,
        title="Chest X-ray",
        category="Imaging",
        record_date=date(2024, 1, 15),
        now=now - timedelta(days=1)
    )
    return {"Cardiology": cardio, "Imaging": imaging}


# ============================================================================
# HTTP
# ============================================================================

@pytest.fixture
def client(database):
    from fastapi.testclient import TestClient
    from apps.api.main import app

    return TestClient(app)


@pytest.fixture
def auth_headers():
    def _headers(actor) -> dict:
        token = get_auth_manager().create_access_token(actor.id)
        return {"Authorization": f"Bearer {token}"}

    return _headers
