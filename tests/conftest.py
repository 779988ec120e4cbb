import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("SUPABASE_URL", "https://janconnect-test.supabase.co")
os.environ.setdefault("SUPABASE_SECRET", "service-role-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from config import settings
from database import get_auth_client, get_supabase
from fakes import FakeSupabase
from models import Actor, UserType

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    return FakeSupabase(now=NOW)


@pytest.fixture
def citizen(db):
    db.seed("profiles", {"id": "citizen-1", "email": "asha@example.com", "full_name": "Asha Rao",
                         "user_type": "user", "points": 0})
    return Actor(id="citizen-1", email="asha@example.com", user_type=UserType.USER)


@pytest.fixture
def admin(db):
    db.seed("profiles", {"id": "admin-1", "email": "ops@example.com", "full_name": "Ward Office",
                         "user_type": "admin", "points": 0})
    return Actor(id="admin-1", email="ops@example.com", user_type=UserType.ADMIN)


@pytest.fixture
def contractor(db):
    db.seed("profiles", {"id": "tender-1", "email": "build@example.com", "full_name": "BuildCo",
                         "user_type": "tender", "points": 0})
    return Actor(id="tender-1", email="build@example.com", user_type=UserType.TENDER)


@pytest.fixture
def pending_issue(db, citizen):
    return db.seed("issues", {
        "user_id": citizen.id,
        "title": "Pothole on MG Road",
        "description": "Large pothole near the bus stop",
        "category": "roads",
        "priority": "high",
        "status": "pending",
        "location_name": "MG Road bus stop",
        "area": "Central",
        "ward": "Ward 12",
        "upvotes": 0,
        "downvotes": 0,
        "comments_count": 0,
        "views_count": 0,
        "created_at": (NOW - timedelta(days=3)).isoformat(),
    })


def make_token(user_id, secret=None, **claims):
    payload = {
        "sub": user_id,
        "aud": settings.JWT_AUDIENCE,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        **claims,
    }
    return jwt.encode(payload, secret or settings.SUPABASE_JWT_SECRET, algorithm=settings.ALGORITHM)


def auth_header(actor):
    return {"Authorization": f"Bearer {make_token(actor.id)}"}


@pytest.fixture
def api(db):
    from app import app

    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[get_auth_client] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()
