"""
models/password_reset_token.py — PasswordResetToken table definition.

A row starts life holding a 6-digit code. Verifying the code swaps in a
64-char reset_token with a fresh expiry; consuming the reset_token sets
used_at. Rows with used_at set are never matched again.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mrgcar.app.extensions import db
from mrgcar.app.models.types import UTCDateTime


class PasswordResetToken(db.Model):
    __tablename__ = "password_reset_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    code: Mapped[str] = mapped_column(String(6), nullable=False, index=True)

    reset_token: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )

    # Code expiry (10 min) until verified, then reset-token expiry (15 min).
    expires_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        index=True,
    )

    used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="password_reset_tokens",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<PasswordResetToken id={self.id} "
            f"user_id={self.user_id} "
            f"used={self.used_at is not None}>"
        )
