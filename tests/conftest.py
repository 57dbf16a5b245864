"""Shared test fixtures for all test modules."""

import os
import tempfile
from datetime import timedelta

import pytest

# ── Environment overrides (must be set before importing lazyuncle modules) ──
_tmp = tempfile.mkdtemp(prefix="lu_pytest_")
os.environ["LAZYUNCLE_DATA_DIR"] = _tmp
os.environ["LAZYUNCLE_DB_PATH"] = os.path.join(_tmp, "test.db")
os.environ["LAZYUNCLE_SECRET_KEY"] = "pytest-secret-key"
os.environ["LAZYUNCLE_BASE_URL"] = "http://testserver"
os.environ["LAZYUNCLE_ENVIRONMENT"] = "development"
os.environ["LAZYUNCLE_SMTP_HOST"] = ""
os.environ["LAZYUNCLE_ENABLE_BACKGROUND_JOBS"] = "false"


@pytest.fixture(autouse=True)
def reset_process_state():
    """Clear the in-memory limiter, security counters and retry queue."""
    from lazyuncle.routers import auth as auth_router
    from lazyuncle.services import notification_service, security_middleware
    from lazyuncle.services.rate_limiter import rate_limiter

    rate_limiter.reset()
    security_middleware.reset_security_stats()
    notification_service.clear_pending_notifications()
    auth_router._login_attempts.clear()
    yield
    rate_limiter.reset()
    notification_service.clear_pending_notifications()


@pytest.fixture
async def db(tmp_path):
    """A fresh, migrated database for one test."""
    import lazyuncle.database as db_mod
    from lazyuncle.config import settings

    original_db_path = settings.db_path
    settings.db_path = tmp_path / "lazyuncle_test.db"

    if db_mod._db is not None:
        await db_mod.close_db()
    await db_mod.init_db()

    yield await db_mod.get_db()

    await db_mod.close_db()
    settings.db_path = original_db_path


@pytest.fixture
def make_user(db):
    """Factory creating users: ``await make_user("a@example.com")``."""
    from lazyuncle.auth import create_user

    async def _make(email: str = "owner@example.com", name: str | None = "Owner"):
        return await create_user(email, "correct horse battery", name)

    return _make


@pytest.fixture
async def owner(make_user):
    return await make_user()


@pytest.fixture
def insert_link(db):
    """Insert a sharing link row directly, with explicit timestamps."""
    import secrets

    from lazyuncle import clock

    async def _insert(
        user_id: int,
        token: str | None = None,
        is_active: bool = True,
        expires_at: str | None = None,
        created_at: str | None = None,
        description: str | None = None,
    ) -> dict:
        token = token or secrets.token_urlsafe(32)
        cursor = await db.execute(
            """INSERT INTO sharing_links (token, user_id, description, is_active, expires_at, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                token,
                user_id,
                description,
                int(is_active),
                expires_at or clock.to_db(clock.utcnow() + timedelta(days=7)),
                created_at or clock.now_db(),
            ),
        )
        await db.commit()
        return {"id": cursor.lastrowid, "token": token, "user_id": user_id}

    return _insert


@pytest.fixture
def insert_submission(db):
    """Insert a submission row directly, bypassing every check."""
    from lazyuncle import clock

    async def _insert(
        sharing_link_id: int,
        name: str = "Avery",
        year: int | None = 2015,
        month: int = 3,
        day: int = 2,
        status: str = "PENDING",
        created_at: str | None = None,
        submitter_ip: str | None = None,
        submitter_email: str | None = None,
        submitter_name: str | None = None,
    ) -> int:
        cursor = await db.execute(
            """INSERT INTO birthday_submissions
                   (sharing_link_id, name, year, month, day, submitter_name,
                    submitter_email, submitter_ip, status, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                sharing_link_id, name, year, month, day, submitter_name,
                submitter_email, submitter_ip, status, created_at or clock.now_db(),
            ),
        )
        await db.commit()
        return cursor.lastrowid

    return _insert


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing notification emails instead of logging them."""
    from lazyuncle.services import notification_service

    outbox = []

    async def _fake_send(to, subject, html, text):
        outbox.append({"to": to, "subject": subject, "html": html, "text": text})

    monkeypatch.setattr(notification_service, "send_email", _fake_send)
    return outbox


@pytest.fixture
async def client(db):
    """HTTP client bound to the app; the ``db`` fixture stands in for lifespan."""
    import httpx

    from lazyuncle.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
def auth_headers():
    from lazyuncle.auth import create_access_token

    def _headers(user: dict) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user['id'])}"}

    return _headers
