"""
models/admin_user.py — AdminUser table definition.

Admin accounts are provisioned outside the HTTP API (see `flask create-admin`);
the auth core only reads them during admin login.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from mrgcar.app.extensions import db
from mrgcar.app.models.types import UTCDateTime


class AdminUser(db.Model):
    __tablename__ = "admin_users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Only the literal "admin" passes require_admin.
    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="admin",
        server_default="admin",
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<AdminUser id={self.id} email={self.email!r} role={self.role!r}>"
