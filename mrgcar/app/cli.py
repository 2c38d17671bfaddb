"""
cli.py — Operational `flask` commands.

  flask create-admin EMAIL [--role admin]   create / re-password an admin
  flask purge-expired-tokens                drop expired ledger and reset rows

Admin accounts have no HTTP sign-up; this command is how they are made.
The password is prompted (hidden, confirmed) unless --password is given.
"""

from __future__ import annotations

from datetime import datetime, timezone

import click
from flask import Flask
from sqlalchemy import delete, or_

from mrgcar.app.extensions import db


def register_commands(app: Flask) -> None:

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.option(
        "--password",
        prompt=True,
        hide_input=True,
        confirmation_prompt=True,
        help="Password for the admin account.",
    )
    @click.option("--role", default="admin", show_default=True)
    def create_admin(email: str, password: str, role: str) -> None:
        """Create an admin account, or reset the password of an existing one."""
        from mrgcar.app.services import admin_service

        if len(password) < 8:
            raise click.BadParameter("must be at least 8 characters", param_hint="--password")

        admin, created = admin_service.upsert_admin(email, password, db.session, role=role)
        db.session.commit()
        verb = "Created" if created else "Updated"
        click.echo(f"{verb} admin {admin.email} (role={admin.role}).")

    @app.cli.command("purge-expired-tokens")
    def purge_expired_tokens() -> None:
        """Delete expired refresh-token ledger rows and stale password reset rows."""
        from mrgcar.app.models.password_reset_token import PasswordResetToken
        from mrgcar.app.services import token_ledger

        now = datetime.now(timezone.utc)
        refresh_rows = token_ledger.purge_expired(db.session, now=now)
        reset_rows = db.session.execute(
            delete(PasswordResetToken)
            .where(or_(
                PasswordResetToken.expires_at < now,
                PasswordResetToken.used_at.is_not(None),
            ))
            .execution_options(synchronize_session=False)
        ).rowcount
        db.session.commit()
        click.echo(
            f"Deleted {refresh_rows} refresh token(s) and {reset_rows} password reset row(s)."
        )
