"""Pytest configuration: in-memory SQLite test database and FastAPI TestClient."""

from __future__ import annotations

import os
import tempfile
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Override env BEFORE importing app modules so Settings picks up test values.
os.environ.update(
    {
        "DATABASE_URL": "sqlite:///:memory:",
        "APP_ENV": "test",
        "AUTO_CREATE_DB": "false",
        "JWT_SECRET": "test-secret-for-pytest",
        "RATE_LIMIT": "10000/minute",
        "ISSUE_CACHE_TTL": "0",
        "UPLOAD_DIR": tempfile.mkdtemp(prefix="swn-uploads-"),
        "LOG_LEVEL": "WARNING",
    }
)

from standwithnepal.auth.security import get_password_hash  # noqa: E402
from standwithnepal.db import Base, get_db  # noqa: E402
from standwithnepal.main import app  # noqa: E402
from standwithnepal.models.models import Issue, User, utcnow  # noqa: E402
from standwithnepal.services.issue_cache import issue_list_cache  # noqa: E402
from standwithnepal.services.seed import seed_locations  # noqa: E402

# ── In-memory SQLite engine shared across the request threadpool ─────

_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(_engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


_TestSession = sessionmaker(bind=_engine, class_=Session, expire_on_commit=False)


@pytest.fixture(autouse=True)
def _create_tables():
    """Create all tables before each test and drop after."""
    Base.metadata.create_all(bind=_engine)
    issue_list_cache.invalidate()
    yield
    Base.metadata.drop_all(bind=_engine)


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    session = _TestSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    def _override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc
    app.dependency_overrides.clear()


@pytest.fixture()
def locations(db: Session) -> None:
    seed_locations(db)


# ── Accounts ────────────────────────────────────────────────────────

@pytest.fixture()
def make_user(db: Session) -> Callable[..., User]:
    def _make(
        email: str,
        password: str = "secret123",
        user_type: str = "citizen",
        full_name: str = "Test User",
        **fields,
    ) -> User:
        user = User(
            full_name=full_name,
            email=email,
            password_hash=get_password_hash(password),
            user_type=user_type,
            **fields,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture()
def citizen(make_user) -> User:
    return make_user("sita@example.com", full_name="Sita Sharma")


@pytest.fixture()
def official(make_user) -> User:
    return make_user(
        "ram.thapa@ktm.gov.np",
        password="official123",
        user_type="official",
        full_name="Ram Bahadur Thapa",
        official_id="KTM001",
        jurisdiction="ward",
        district="Kathmandu",
        municipality="Kathmandu Metropolitan City",
        ward_no=5,
        verified=True,
    )


@pytest.fixture()
def admin(make_user) -> User:
    return make_user(
        "admin@standwithnepal.org",
        password="admin123",
        user_type="admin",
        full_name="System Administrator",
    )


def login(client: TestClient, **body) -> dict:
    """Log in and return Bearer headers; the cookie jar is left empty."""
    resp = client.post("/api/auth/login", json=body)
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture()
def citizen_headers(client, citizen) -> dict:
    return login(client, user_type="citizen", email="sita@example.com", password="secret123")


@pytest.fixture()
def official_headers(client, official) -> dict:
    return login(client, user_type="official", official_id="KTM001", password="official123")


@pytest.fixture()
def admin_headers(client, admin) -> dict:
    return login(client, user_type="admin", username="admin", password="admin123", admin_code="SWN2025")


# ── Issues ──────────────────────────────────────────────────────────

@pytest.fixture()
def make_issue(db: Session) -> Callable[..., Issue]:
    """Insert an issue row directly, bypassing the API."""

    def _make(**fields) -> Issue:
        values = {
            "title": "Broken streetlight",
            "description": "Dark at night",
            "category": "electricity",
            "severity": "medium",
            "status": "new",
            "province_id": 3,
            "district": "Kathmandu",
            "municipality": "Kathmandu Metropolitan City",
            "ward_no": 5,
            "anonymous": False,
        }
        values.update(fields)
        values.setdefault("created_at", utcnow())
        issue = Issue(**values)
        db.add(issue)
        db.commit()
        return issue

    return _make


ISSUE_PAYLOAD = {
    "title": "Pothole",
    "description": "Deep pothole near the school gate",
    "category": "road",
    "province": "3",
    "district": "Kathmandu",
    "municipality": "KMC",
    "ward": "10",
}
