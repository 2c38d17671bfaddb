"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against the database in TEST_DATABASE_URL, in-memory SQLite
    by default (Flask-SQLAlchemy pins in-memory SQLite to one connection).
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order and the
    forgot-password limiter is emptied, so tests are isolated.
  - The email sender is replaced by RecordingEmailSender, which keeps every
    message in memory. Tests read reset codes from it.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)       → response body with user + tokens
  - login(client, ...)          → response body with user + tokens
  - auth_headers(token)         → {"Authorization": "Bearer <token>"}
  - create_admin(app, ...)      → id of a new admin (admins have no sign-up)
  - refresh_rows(app, user_id)  → the user's ledger rows (unordered)

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select, text

from mrgcar.app import create_app
from mrgcar.app.extensions import ATTEMPT_LIMITER_KEY, EMAIL_SENDER_KEY
from mrgcar.app.extensions import db as _db
from mrgcar.app.services.email_service import EmailResult, EmailSender


class RecordingEmailSender(EmailSender):
    """Keeps sent reset emails in memory; can be told to fail."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail_with: str | None = None

    def send_password_reset_email(self, email, code, name=None) -> EmailResult:
        if self.fail_with is not None:
            return EmailResult(success=False, error=self.fail_with)
        self.sent.append({"email": email, "code": code, "name": name})
        return EmailResult(success=True, id=f"test-{len(self.sent)}")

    def last_code_for(self, email: str) -> str:
        for message in reversed(self.sent):
            if message["email"] == email:
                return message["code"]
        raise AssertionError(f"no reset email sent to {email}")


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.

    Steps:
      1. Create app with TestingConfig.
      2. Swap in the recording email sender.
      3. Run db.create_all() to create all tables.
      4. Yield the app for the test session.
      5. Drop all tables at teardown.
    """
    flask_app = create_app("testing")
    flask_app.extensions[EMAIL_SENDER_KEY] = RecordingEmailSender()

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows between tests in FK-safe order.

    autouse=True means this runs around EVERY test in the integration suite
    without needing to be declared in each test function.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM password_reset_tokens"))
            conn.execute(text("DELETE FROM refresh_tokens"))
            conn.execute(text("DELETE FROM users"))
            conn.execute(text("DELETE FROM admin_users"))
            conn.commit()

    app.extensions[ATTEMPT_LIMITER_KEY].reset()
    sender = app.extensions[EMAIL_SENDER_KEY]
    sender.sent.clear()
    sender.fail_with = None


# ═══════════════════════════════════════════════════════════════════════════
# Client fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """
    Flask test client without a cookie jar.

    Every request carries exactly the credentials the test passes, like a
    mobile client. Use `browser` for cookie behaviour.
    """
    return app.test_client(use_cookies=False)


@pytest.fixture
def browser(app):
    """Flask test client that stores and replays cookies."""
    return app.test_client()


@pytest.fixture
def mailbox(app) -> RecordingEmailSender:
    return app.extensions[EMAIL_SENDER_KEY]


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    name: str = "Alice",
    email: str | None = None,
    password: str = "Password1",
) -> dict:
    """
    Registers a new user and returns the response body.
    Returns: {"success": True, "user": {...}, "accessToken": "...", "refreshToken": "..."}
    """
    if email is None:
        email = f"{name.lower()}@test.com"
    resp = client.post(
        "/auth/register",
        json={"name": name, "email": email, "password": password},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()


def login(client, email: str, password: str = "Password1") -> dict:
    """
    Logs in a user and returns the response body.
    Returns: {"success": True, "user": {...}, "accessToken": "...", "refreshToken": "..."}
    """
    resp = client.post(
        "/auth/login",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()


def refresh(client, refresh_token: str):
    """Redeems a refresh token. Returns the HTTP response."""
    return client.post("/auth/refresh", json={"refreshToken": refresh_token})


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def create_admin(
    app,
    email: str = "admin@mrgcar.test",
    password: str = "AdminPass1",
    role: str = "admin",
):
    """Creates an admin account directly (there is no admin sign-up endpoint)."""
    from mrgcar.app.services import admin_service

    with app.app_context():
        admin, _ = admin_service.upsert_admin(email, password, _db.session, role=role)
        _db.session.commit()
        return admin.id


def refresh_rows(app, user_id: str) -> list:
    """Returns the user's refresh-token ledger rows, detached from the session."""
    from mrgcar.app.models.refresh_token import RefreshToken

    with app.app_context():
        rows = _db.session.execute(
            select(RefreshToken)
            .where(RefreshToken.user_id == uuid.UUID(user_id))
        ).scalars().all()
        _db.session.expunge_all()
        return rows
