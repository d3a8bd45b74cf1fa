"""Shared fixtures. Environment is pinned before any application module is imported."""

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="foamops-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["DOCUMENTS_DIR"] = os.path.join(_TMP_DIR, "documents")
os.environ["OPS_LOCK_TIMEOUT_SECONDS"] = "0.5"
os.environ["AUTH_LOCK_TIMEOUT_SECONDS"] = "0.5"
os.environ["LOCK_POLL_INTERVAL_SECONDS"] = "0.05"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import models.models  # noqa: E402,F401
from database import Base, engine as app_engine  # noqa: E402
from models.models import Tenant  # noqa: E402
from services.record_store import RecordStore  # noqa: E402

TENANT_ID = "tenant-1"


@pytest.fixture
def session_factory():
    """Sessions on a fresh in-memory database shared by every connection."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db_session):
    """Record store of a registered tenant with default settings."""
    db_session.add(Tenant(id=TENANT_ID, username="acme", password_hash="x", company_name="Acme Foam", crew_pin="1234"))
    db_session.flush()
    record_store = RecordStore(db_session, TENANT_ID)
    record_store.ensure_schema({"companyName": "Acme Foam", "crewAccessPin": "1234"})
    return record_store


@pytest.fixture
def client():
    """API client on a freshly reset application database."""
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    from main import app

    with TestClient(app) as test_client:
        yield test_client


def call(client, endpoint: str, action: str, payload: dict | None = None):
    return client.post(f"/api/{endpoint}", json={"action": action, "payload": payload or {}})


@pytest.fixture
def account(client):
    """A signed-up company. Returns the session record (with crewPin)."""
    response = call(client, "auth", "SIGNUP", {
        "username": "acme",
        "password": "s3cret",
        "companyName": "Acme Foam",
        "email": "office@acme.test",
    })
    assert response.status_code == 200
    return response.json()["data"]
