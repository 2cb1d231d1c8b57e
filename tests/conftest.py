from __future__ import annotations

import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import pytest


_TEST_ROOT = Path(tempfile.mkdtemp(prefix="steadfast_test_"))
_DB_PATH = _TEST_ROOT / "steadfast_test.db"

os.environ["STEADFAST_DB_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["STEADFAST_AUTH_JWT_SECRET"] = "test-secret"
os.environ["STEADFAST_RATE_LIMIT_ENABLED"] = "false"
os.environ["STEADFAST_BACKDATED_CHECKIN_POLICY"] = "reject"


@pytest.fixture(scope="session")
def seeded_db() -> None:
    from steadfast_api.achievement_catalog import seed_default_achievements
    from steadfast_api.db import Base, SessionLocal, engine
    from steadfast_api.models import User

    Base.metadata.create_all(engine)

    now = datetime.now(UTC)
    with SessionLocal() as session:
        if session.get(User, "user_demo"):
            return
        seed_default_achievements(session, now=now)
        session.add(
            User(
                id="user_demo",
                username="demo",
                display_name="Demo Walker",
                timezone="UTC",
                is_active=True,
                created_at=now,
            )
        )
        session.add(
            User(
                id="user_partner",
                username="partner",
                display_name="Faithful Friend",
                timezone="EST",
                is_active=True,
                created_at=now,
            )
        )
        session.commit()


@pytest.fixture()
def make_user(seeded_db):
    """Factory for throwaway users so tests never share progress rows."""
    from steadfast_api.db import SessionLocal
    from steadfast_api.models import User

    def _make(*, timezone: str | None = "UTC", is_active: bool = True) -> str:
        suffix = uuid4().hex[:12]
        user_id = f"user_t_{suffix}"
        with SessionLocal() as session:
            session.add(
                User(
                    id=user_id,
                    username=f"t_{suffix}",
                    display_name=f"Tester {suffix}",
                    timezone=timezone,
                    is_active=is_active,
                    created_at=datetime.now(UTC),
                )
            )
            session.commit()
        return user_id

    return _make


@pytest.fixture()
def api_client(seeded_db):
    from fastapi.testclient import TestClient

    from steadfast_api.main import app

    return TestClient(app)


@pytest.fixture()
def auth_headers(api_client):
    def _headers(user_id: str) -> dict[str, str]:
        username = "demo" if user_id == "user_demo" else None
        if username is None:
            username = "partner" if user_id == "user_partner" else f"t_{user_id[7:]}"
        login = api_client.post("/api/auth/login", json={"username": username})
        assert login.status_code == 200, login.text
        token = login.json()["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _headers
