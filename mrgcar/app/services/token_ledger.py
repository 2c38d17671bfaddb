"""
services/token_ledger.py — Persistent record of issued refresh tokens.

The ledger is the only authority on whether a refresh token may still be
redeemed. A structurally valid, unexpired JWT whose row is revoked or absent
is rejected by the rotation flow.

Rows are keyed by the SHA-256 hex digest of the bearer value. The raw token
is never stored, so a leaked ledger does not yield usable tokens.

All writes are single UPDATE/INSERT statements. `claim()` is the
check-and-set used by rotation: it flips `revoked` only if it is still
false and reports whether this caller was the one that flipped it.

Session handling follows the service-layer rule: flush, never commit.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from mrgcar.app.models.refresh_token import RefreshToken


@dataclass(frozen=True)
class LedgerEntry:
    user_id: uuid.UUID
    family_id: uuid.UUID
    revoked: bool
    expires_at: datetime


def hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token string."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def new_family_id() -> uuid.UUID:
    return uuid.uuid4()


def store(
        user_id: uuid.UUID,
        token: str,
        family_id: uuid.UUID,
        session: Session,
        expires_in: timedelta | None = None,
) -> RefreshToken:
    """Inserts the hashed token with an expiry of now + refresh TTL."""
    if expires_in is None:
        expires_in = current_app.config["JWT_REFRESH_TOKEN_EXPIRES"]

    row = RefreshToken(
        user_id=user_id,
        token_hash=hash_token(token),
        family_id=family_id,
        revoked=False,
        expires_at=datetime.now(timezone.utc) + expires_in,
    )
    session.add(row)
    session.flush()
    return row


def lookup(token_hash: str, session: Session) -> LedgerEntry | None:
    row = session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == token_hash)
    ).scalar_one_or_none()
    if row is None:
        return None
    return LedgerEntry(
        user_id=row.user_id,
        family_id=row.family_id,
        revoked=row.revoked,
        expires_at=row.expires_at,
    )


def revoke(token_hash: str, session: Session) -> None:
    """Marks one row revoked. No-op if already revoked or absent."""
    session.execute(
        update(RefreshToken)
        .where(RefreshToken.token_hash == token_hash)
        .where(RefreshToken.revoked.is_(False))
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )


def claim(token_hash: str, session: Session) -> bool:
    """
    Atomically revokes a not-yet-revoked row.

    Returns True for exactly one caller per row. A concurrent redeemer of the
    same token sees False, and the rotation flow treats that as reuse.
    """
    result = session.execute(
        update(RefreshToken)
        .where(RefreshToken.token_hash == token_hash)
        .where(RefreshToken.revoked.is_(False))
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def revoke_family(family_id: uuid.UUID, session: Session) -> int:
    """Revokes every row in the family, whatever its expiry. Returns rows changed."""
    result = session.execute(
        update(RefreshToken)
        .where(RefreshToken.family_id == family_id)
        .where(RefreshToken.revoked.is_(False))
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def revoke_all_for_user(user_id: uuid.UUID, session: Session) -> int:
    """Revokes every family of a user (used after a password reset)."""
    result = session.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id)
        .where(RefreshToken.revoked.is_(False))
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def purge_expired(session: Session, now: datetime | None = None) -> int:
    """Deletes rows whose expiry has passed. Returns rows deleted."""
    if now is None:
        now = datetime.now(timezone.utc)
    result = session.execute(
        delete(RefreshToken)
        .where(RefreshToken.expires_at < now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
