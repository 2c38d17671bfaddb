"""
tests/integration/test_cli.py — `flask create-admin` and `flask purge-expired-tokens`.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import update

from mrgcar.app.extensions import db as _db
from mrgcar.app.models.refresh_token import RefreshToken

from .conftest import refresh_rows, register


class TestCreateAdmin:

    def test_creates_an_admin_that_can_log_in(self, app, client):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "create-admin", "Ops@MRGCar.test", "--password", "LongEnough1",
        ])

        assert result.exit_code == 0, result.output
        assert "Created admin ops@mrgcar.test (role=admin)." in result.output

        resp = client.post("/admin/login", json={
            "email": "ops@mrgcar.test", "password": "LongEnough1",
        })
        assert resp.status_code == 200

    def test_second_run_resets_the_password(self, app, client):
        runner = app.test_cli_runner()
        runner.invoke(args=["create-admin", "ops@mrgcar.test", "--password", "LongEnough1"])
        result = runner.invoke(args=[
            "create-admin", "ops@mrgcar.test", "--password", "EvenLonger22",
        ])

        assert result.exit_code == 0, result.output
        assert "Updated admin" in result.output

        old = client.post("/admin/login", json={
            "email": "ops@mrgcar.test", "password": "LongEnough1",
        })
        assert old.status_code == 401

    def test_short_password_is_refused(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["create-admin", "ops@mrgcar.test", "--password", "short"])
        assert result.exit_code != 0


class TestPurgeExpiredTokens:

    def test_deletes_only_expired_ledger_rows(self, app, client):
        expired_user = register(client, "alice")["user"]["id"]
        live_user = register(client, "bob")["user"]["id"]

        with app.app_context():
            _db.session.execute(
                update(RefreshToken)
                .where(RefreshToken.user_id == uuid.UUID(expired_user))
                .values(expires_at=datetime.now(timezone.utc) - timedelta(days=1))
            )
            _db.session.commit()

        result = app.test_cli_runner().invoke(args=["purge-expired-tokens"])

        assert result.exit_code == 0, result.output
        assert "Deleted 1 refresh token(s)" in result.output
        assert refresh_rows(app, expired_user) == []
        assert len(refresh_rows(app, live_user)) == 1
