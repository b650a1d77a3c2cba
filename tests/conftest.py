"""Shared test fixtures for the ContentForge test suite.

All tests use a throwaway SQLite file database. Tables are created once at
import time and every test starts from an empty jobs table.

Settings are read at import, so the environment is configured before any
``contentforge`` module is imported.
"""

import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="contentforge-tests-")

os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL",
    f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}",
)
os.environ["LOG_FORMAT"] = "text"
os.environ["AI_PROVIDER"] = "gemini"
os.environ["AI_MODEL"] = "gemini/gemini-2.0-flash"
os.environ["AI_API_KEY"] = "test-key"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["WORKER_INSTANCE_ID"] = "worker-test"
# Use litellm's bundled model cost map instead of fetching it over the network.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest
from sqlalchemy import update
from fastapi.testclient import TestClient

from contentforge.database import get_db, init_db, SessionLocal
from contentforge.main import app
from contentforge.core.token_factory import create_token
from contentforge.core.config import settings
from contentforge.models.job import Job
from contentforge.repositories.job_repository import JobRepository

init_db()


@pytest.fixture(autouse=True)
def _clean_tables():
    """Delete all jobs before each test for isolation.

    Runs before the test (not after) so test failures leave data
    available for debugging.
    """
    db = SessionLocal()
    try:
        db.query(Job).delete()
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def client(db):
    """FastAPI TestClient with the DB dependency overridden to use the test session."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_auth_headers(user_id: str) -> dict:
    token = create_token(subject=user_id, secret=settings.jwt_secret_key)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers() -> dict:
    """Valid JWT auth headers for the default test principal."""
    return make_auth_headers("user-a")


@pytest.fixture()
def other_auth_headers() -> dict:
    """Auth headers for a second principal, used for ownership checks."""
    return make_auth_headers("user-b")


def make_job(
    db,
    job_type: str = "KEYWORDS",
    payload: Optional[Dict[str, Any]] = None,
    user_id: str = "user-a",
    created_offset_seconds: Optional[int] = None,
) -> Job:
    """Insert a PENDING job, optionally pinning its creation time."""
    job = JobRepository(db).insert(user_id, job_type, payload if payload is not None else {"seed": "electric bikes"})
    if created_offset_seconds is not None:
        created = datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=created_offset_seconds)
        db.execute(update(Job).where(Job.id == job.id).values(created_at=created))
        db.commit()
    return job


def reload_job(job_id: str) -> Job:
    """Read a job through a fresh session so no identity-map state leaks in."""
    session = SessionLocal()
    try:
        return session.get(Job, job_id)
    finally:
        session.close()
