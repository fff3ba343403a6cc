import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-secret"
os.environ["GEOCODER"] = "offline"
os.environ.pop("SUPABASE_URL", None)
os.environ.pop("ROUTING_RULES_PATH", None)

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from civicseva.config.db import SessionLocal
from civicseva.database.migrations import create_tables, drop_tables
from civicseva.database.models import Report, utcnow
from civicseva.main import app
from civicseva.middleware.auth import Principal
from civicseva.services.events import ChangeFeed
from civicseva.utils.jwt import create_access_token


@pytest.fixture(autouse=True)
def tables():
    create_tables()
    yield
    drop_tables()


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def citizen():
    return Principal(user_id="citizen-1", email="asha@example.com", name="Asha Rao")


def auth_headers(user_id, email, role=None, name=None):
    claims = {"sub": user_id, "email": email}
    if role:
        claims["app_metadata"] = {"role": role}
    if name:
        claims["user_metadata"] = {"full_name": name}
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest.fixture
def citizen_headers():
    return auth_headers("citizen-1", "asha@example.com", name="Asha Rao")


@pytest.fixture
def other_citizen_headers():
    return auth_headers("citizen-2", "vikram@example.com")


@pytest.fixture
def staff_headers():
    return auth_headers("staff-1", "officer@city.gov", role="staff", name="Ward Officer")


@pytest.fixture
def make_report(db):
    """Insert a report row directly, bypassing submission and routing."""

    def _make(**fields):
        now = utcnow()
        values = {
            "title": "Broken streetlight",
            "description": "Light out near the bus stop",
            "category": "lighting",
            "priority": "medium",
            "status": "submitted",
            "reporter_name": "Asha Rao",
            "reporter_email": "asha@example.com",
            "created_at": now,
            "updated_at": now,
        }
        if "age_days" in fields:
            age = fields.pop("age_days")
            values["created_at"] = values["updated_at"] = now - timedelta(days=age)
        values.update(fields)
        report = Report(**values)
        db.add(report)
        db.commit()
        db.refresh(report)
        return report

    return _make
