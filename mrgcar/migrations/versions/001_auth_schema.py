"""Initial schema — users, admin accounts, refresh-token ledger, reset codes.

Revision: 001_auth_schema
Created:  2026-10-17

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. users, admin_users (no FKs)
  2. refresh_tokens, password_reset_tokens (FK → users)
  3. Indexes

ON DELETE policies:
  refresh_tokens.user_id        → CASCADE  (ledger rows owned by user)
  password_reset_tokens.user_id → CASCADE  (reset codes owned by user)

Index names follow SQLAlchemy's ix_<table>_<column> convention so that
autogenerate sees the models and this file as identical.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_auth_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── Step 1: users ──────────────────────────────────────────────────────
    # Emails are stored lower-cased; the unique index doubles as the
    # case-insensitive lookup index.

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("banner_url", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_users_email_format"),
    )

    # ── Step 2: admin_users ────────────────────────────────────────────────
    # Provisioned with `flask create-admin`; only role = 'admin' passes the gate.

    op.create_table(
        "admin_users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default="admin"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_admin_users"),
    )

    # ── Step 3: refresh_tokens ─────────────────────────────────────────────
    # token_hash is the SHA-256 hex digest of the bearer value (64 chars).
    # family_id groups every rotation of one login session.

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_refresh_tokens_user"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("family_id", sa.Uuid(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "revoked",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_refresh_tokens"),
        sa.UniqueConstraint("token_hash", name="uq_refresh_tokens_token_hash"),
    )

    # ── Step 4: password_reset_tokens ──────────────────────────────────────

    op.create_table(
        "password_reset_tokens",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey(
                "users.id",
                ondelete="CASCADE",
                name="fk_password_reset_tokens_user",
            ),
            nullable=False,
        ),
        sa.Column("code", sa.String(6), nullable=False),
        sa.Column("reset_token", sa.String(64), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_password_reset_tokens"),
    )

    # ── Step 5: Indexes ────────────────────────────────────────────────────

    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_admin_users_email", "admin_users", ["email"], unique=True)

    # Revocation queries: per user (password reset) and per family (reuse).
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])
    op.create_index("ix_refresh_tokens_family_id", "refresh_tokens", ["family_id"])

    op.create_index(
        "ix_password_reset_tokens_user_id",
        "password_reset_tokens",
        ["user_id"],
    )
    op.create_index(
        "ix_password_reset_tokens_code",
        "password_reset_tokens",
        ["code"],
    )
    op.create_index(
        "ix_password_reset_tokens_reset_token",
        "password_reset_tokens",
        ["reset_token"],
    )
    op.create_index(
        "ix_password_reset_tokens_expires_at",
        "password_reset_tokens",
        ["expires_at"],
    )


def downgrade() -> None:
    """
    Drop all objects created in upgrade(), in reverse dependency order.

    For local development reset only; production uses corrective migrations.
    """
    op.drop_index("ix_password_reset_tokens_expires_at",  table_name="password_reset_tokens")
    op.drop_index("ix_password_reset_tokens_reset_token", table_name="password_reset_tokens")
    op.drop_index("ix_password_reset_tokens_code",        table_name="password_reset_tokens")
    op.drop_index("ix_password_reset_tokens_user_id",     table_name="password_reset_tokens")
    op.drop_index("ix_refresh_tokens_family_id",          table_name="refresh_tokens")
    op.drop_index("ix_refresh_tokens_user_id",            table_name="refresh_tokens")
    op.drop_index("ix_admin_users_email",                 table_name="admin_users")
    op.drop_index("ix_users_email",                       table_name="users")

    op.drop_table("password_reset_tokens")
    op.drop_table("refresh_tokens")
    op.drop_table("admin_users")
    op.drop_table("users")
