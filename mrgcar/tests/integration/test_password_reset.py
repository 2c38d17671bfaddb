"""
tests/integration/test_password_reset.py — Forgot / verify / reset password.

Endpoints covered:
  POST /auth/forgot-password     → 200 (same body for every email)
  POST /auth/verify-reset-token  → 200 {valid, resetToken}
  POST /auth/reset-password      → 200

Error cases:
  RATE_LIMITED           429 — 4th request for one email inside an hour
  EMAIL_DELIVERY_FAILED  500 — email provider rejected the message
  INVALID_CODE           400 — wrong / expired code, or unknown email
  INVALID_RESET_TOKEN    400 — unknown, expired or already used reset token
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, update

from mrgcar.app.extensions import db as _db
from mrgcar.app.models.password_reset_token import PasswordResetToken

from .conftest import login, refresh, register


def forgot(client, email: str):
    return client.post("/auth/forgot-password", json={"email": email})


def verify(client, email: str, code: str):
    return client.post("/auth/verify-reset-token", json={"email": email, "code": code})


def reset(client, reset_token: str, new_password: str = "BrandNew9"):
    return client.post(
        "/auth/reset-password",
        json={"resetToken": reset_token, "newPassword": new_password},
    )


def obtain_reset_token(client, mailbox, email: str = "alice@test.com") -> str:
    assert forgot(client, email).status_code == 200
    resp = verify(client, email, mailbox.last_code_for(email))
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["resetToken"]


def live_code_rows(app, user_id: str) -> int:
    with app.app_context():
        return _db.session.execute(
            select(func.count())
            .select_from(PasswordResetToken)
            .where(PasswordResetToken.user_id == uuid.UUID(user_id))
            .where(PasswordResetToken.used_at.is_(None))
        ).scalar_one()


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/forgot-password
# ═══════════════════════════════════════════════════════════════════════════

class TestForgotPassword:

    def test_registered_email_gets_a_six_digit_code(self, client, mailbox):
        register(client, "alice")
        resp = forgot(client, "alice@test.com")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["message"]

        assert len(mailbox.sent) == 1
        assert mailbox.sent[0]["email"] == "alice@test.com"
        assert mailbox.sent[0]["name"] == "Alice"
        assert re.fullmatch(r"\d{6}", mailbox.sent[0]["code"])

    def test_unknown_email_gets_the_identical_answer(self, client, mailbox):
        register(client, "alice")
        known = forgot(client, "alice@test.com")
        unknown = forgot(client, "ghost@test.com")

        assert unknown.status_code == known.status_code == 200
        assert unknown.get_json() == known.get_json()
        assert [m["email"] for m in mailbox.sent] == ["alice@test.com"]

    def test_new_request_replaces_the_previous_code(self, app, client):
        user_id = register(client, "alice")["user"]["id"]
        forgot(client, "alice@test.com")
        forgot(client, "alice@test.com")

        assert live_code_rows(app, user_id) == 1

    def test_fourth_request_within_the_window_is_rate_limited(self, client, mailbox):
        register(client, "alice")
        for _ in range(3):
            assert forgot(client, "alice@test.com").status_code == 200

        resp = forgot(client, "alice@test.com")
        assert resp.status_code == 429
        assert resp.get_json()["error"]["code"] == "RATE_LIMITED"
        assert len(mailbox.sent) == 3

    def test_rate_limit_applies_to_unknown_emails_too(self, client):
        for _ in range(3):
            forgot(client, "ghost@test.com")
        assert forgot(client, "ghost@test.com").status_code == 429

    def test_rate_limit_is_per_email(self, client):
        for _ in range(3):
            forgot(client, "first@test.com")
        assert forgot(client, "second@test.com").status_code == 200

    def test_rate_limit_ignores_email_case(self, client):
        for _ in range(3):
            forgot(client, "alice@test.com")
        assert forgot(client, "ALICE@Test.com").status_code == 429

    def test_delivery_failure_returns_500(self, client, mailbox):
        register(client, "alice")
        mailbox.fail_with = "Email service config missing"

        resp = forgot(client, "alice@test.com")
        assert resp.status_code == 500
        error = resp.get_json()["error"]
        assert error["code"] == "EMAIL_DELIVERY_FAILED"
        assert "Email service config missing" in error["message"]

    def test_missing_email_returns_400(self, client):
        resp = client.post("/auth/forgot-password", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/verify-reset-token
# ═══════════════════════════════════════════════════════════════════════════

class TestVerifyResetCode:

    def test_valid_code_returns_a_reset_token(self, client, mailbox):
        register(client, "alice")
        forgot(client, "alice@test.com")

        resp = verify(client, "alice@test.com", mailbox.last_code_for("alice@test.com"))
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["valid"] is True
        assert re.fullmatch(r"[0-9a-f]{64}", body["resetToken"])

    def test_wrong_code_returns_400_invalid_code(self, client, mailbox):
        register(client, "alice")
        forgot(client, "alice@test.com")
        code = mailbox.last_code_for("alice@test.com")
        wrong = "000000" if code != "000000" else "111111"

        resp = verify(client, "alice@test.com", wrong)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_CODE"

    def test_wrong_code_does_not_burn_the_real_one(self, client, mailbox):
        register(client, "alice")
        forgot(client, "alice@test.com")
        code = mailbox.last_code_for("alice@test.com")
        wrong = "000000" if code != "000000" else "111111"

        verify(client, "alice@test.com", wrong)
        assert verify(client, "alice@test.com", code).status_code == 200

    def test_unknown_email_gets_the_same_error_as_a_wrong_code(self, client, mailbox):
        register(client, "alice")
        forgot(client, "alice@test.com")
        code = mailbox.last_code_for("alice@test.com")
        wrong = "000000" if code != "000000" else "111111"

        wrong_code = verify(client, "alice@test.com", wrong)
        unknown = verify(client, "ghost@test.com", code)
        assert unknown.status_code == wrong_code.status_code == 400
        assert unknown.get_json() == wrong_code.get_json()

    def test_expired_code_is_rejected(self, app, client, mailbox):
        user_id = register(client, "alice")["user"]["id"]
        forgot(client, "alice@test.com")
        with app.app_context():
            _db.session.execute(
                update(PasswordResetToken)
                .where(PasswordResetToken.user_id == uuid.UUID(user_id))
                .values(expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))
            )
            _db.session.commit()

        resp = verify(client, "alice@test.com", mailbox.last_code_for("alice@test.com"))
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_CODE"

    def test_code_of_another_user_is_rejected(self, client, mailbox):
        register(client, "alice")
        register(client, "bob")
        forgot(client, "alice@test.com")

        resp = verify(client, "bob@test.com", mailbox.last_code_for("alice@test.com"))
        assert resp.status_code == 400


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/reset-password
# ═══════════════════════════════════════════════════════════════════════════

class TestResetPassword:

    def test_full_flow_changes_the_password(self, client, mailbox):
        register(client, "alice")
        reset_token = obtain_reset_token(client, mailbox)

        resp = reset(client, reset_token, "BrandNew9")
        assert resp.status_code == 200
        assert resp.get_json()["success"] is True

        login(client, "alice@test.com", "BrandNew9")
        old = client.post("/auth/login", json={
            "email": "alice@test.com", "password": "Password1",
        })
        assert old.status_code == 401

    def test_reset_token_is_single_use(self, client, mailbox):
        register(client, "alice")
        reset_token = obtain_reset_token(client, mailbox)

        assert reset(client, reset_token).status_code == 200
        resp = reset(client, reset_token, "Another99")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_RESET_TOKEN"

    def test_reset_revokes_existing_sessions(self, client, mailbox):
        data = register(client, "alice")
        reset_token = obtain_reset_token(client, mailbox)
        reset(client, reset_token)

        resp = refresh(client, data["refreshToken"])
        assert resp.status_code == 401

    def test_unknown_reset_token_returns_400(self, client):
        resp = reset(client, "f" * 64)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_RESET_TOKEN"

    def test_the_code_itself_is_not_a_reset_token(self, client, mailbox):
        register(client, "alice")
        forgot(client, "alice@test.com")

        resp = reset(client, mailbox.last_code_for("alice@test.com"))
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_RESET_TOKEN"

    def test_expired_reset_token_returns_400(self, app, client, mailbox):
        user_id = register(client, "alice")["user"]["id"]
        reset_token = obtain_reset_token(client, mailbox)
        with app.app_context():
            _db.session.execute(
                update(PasswordResetToken)
                .where(PasswordResetToken.user_id == uuid.UUID(user_id))
                .values(expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))
            )
            _db.session.commit()

        resp = reset(client, reset_token)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_RESET_TOKEN"

    def test_short_new_password_returns_400(self, client, mailbox):
        register(client, "alice")
        reset_token = obtain_reset_token(client, mailbox)

        resp = reset(client, reset_token, "abc")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "newPassword"

        # Token still usable after a validation failure.
        assert reset(client, reset_token).status_code == 200
