"""
services/auth_service.py — User authentication business logic.

Responsibilities:
  - Registration, login and Google sign-in
  - Refresh token rotation with reuse detection
  - Logout, current-user profile, profile update, change password

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, cookies or HTTP responses
  - current_app is used only for config and the app logger

Refresh token lifecycle:
  ISSUED ──rotate──▶ ROTATED (revoked, one successor ISSUED in the same family)
     │
     ├──logout──▶ REVOKED
     └──time────▶ EXPIRED (noticed lazily at the next redemption)

  Presenting a ROTATED/REVOKED token again is treated as theft: the whole
  family is revoked, so every descendant stops working too. Other families
  of the same user (other devices) are untouched.

Session handling: services flush, routes commit. The exception is the two
rejection paths of rotation that must persist a revocation before raising;
those commit explicitly because the error handler rolls the session back.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, fields
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mrgcar.app.errors import AppError, ErrorCode
from mrgcar.app.models.user import User
from mrgcar.app.services import token_codec, token_ledger
from mrgcar.app.services.email_service import redact_email
from mrgcar.app.services.google_identity import GoogleTokenVerifier
from mrgcar.app.services.passwords import check_password, hash_password, unusable_password_hash


_INVALID_CREDENTIALS_MESSAGE = "Invalid email or password."


UNSET = object()


@dataclass
class ProfileUpdate:
    """
    Partial update of the self-editable profile fields.

    A field left as UNSET is not touched. avatar_url / banner_url accept None
    to clear the value; a None name is ignored.
    """
    name: object = UNSET
    avatar_url: object = UNSET
    banner_url: object = UNSET

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is UNSET for f in fields(self))


# ── Private helpers ────────────────────────────────────────────────────────

def find_user_by_email(email: str, session: Session) -> User | None:
    return session.execute(
        select(User).where(User.email == email.strip().lower())
    ).scalar_one_or_none()


def _issue_token_pair(
        user: User,
        session: Session,
        family_id: uuid.UUID | None = None,
) -> dict:
    """
    Mints an access + refresh pair and records the refresh token.

    family_id=None starts a new family (a new login session); rotation passes
    the family of the redeemed token.
    """
    if family_id is None:
        family_id = token_ledger.new_family_id()

    refresh_token = token_codec.issue_user_refresh(user)
    token_ledger.store(user.id, refresh_token, family_id, session)

    return {
        "accessToken": token_codec.issue_user_access(user),
        "refreshToken": refresh_token,
    }


def _build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": str(user.id),
        "name": user.name,
        "email": user.email,
        "avatar_url": user.avatar_url,
        "banner_url": user.banner_url,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _get_user_or_404(user_id: uuid.UUID, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "User not found.",
            404,
        )
    return user


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        name: str,
        email: str,
        password: str,
        session: Session,
) -> dict:
    """
    Creates a new user account and starts a session for it.

    Raises:
      AppError(CONFLICT, 409) — email already registered

    Returns: {"user": {...}, "accessToken": "...", "refreshToken": "..."}
    """
    email = email.strip().lower()

    if find_user_by_email(email, session) is not None:
        raise AppError(
            ErrorCode.CONFLICT,
            "This email address is already registered.",
            409,
            field="email",
        )

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
    )
    session.add(user)
    try:
        session.flush()  # populate user.id before creating the refresh token
    except IntegrityError:
        # Lost a race with a concurrent registration of the same email.
        session.rollback()
        raise AppError(
            ErrorCode.CONFLICT,
            "This email address is already registered.",
            409,
            field="email",
        )

    tokens = _issue_token_pair(user, session)

    return {
        "user": _build_user_dict(user),
        **tokens,
    }


def login_user(
        email: str,
        password: str,
        session: Session,
) -> dict:
    """
    Validates credentials and starts a new session (new token family).

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — unknown email or wrong password.
      One error for both so the response never reveals which was wrong.
    """
    user = find_user_by_email(email, session)

    if user is None or not check_password(password, user.password_hash):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            _INVALID_CREDENTIALS_MESSAGE,
            401,
        )

    tokens = _issue_token_pair(user, session)

    return {
        "user": _build_user_dict(user),
        **tokens,
    }


def google_sign_in(
        email: str | None,
        name: str | None,
        photo_url: str | None,
        id_token: str | None,
        session: Session,
        verifier: GoogleTokenVerifier | None = None,
) -> dict:
    """
    Signs in (or signs up) a Google user.

    With a verifier configured the ID token is mandatory and the identity it
    carries replaces the client-supplied email/name/photo. Without one, the
    client-supplied identity is trusted as-is (legacy mobile clients).

    Existing account: logged in; a missing avatar is backfilled from the
    Google photo. New account: created with an unusable password hash.
    """
    if verifier is not None:
        if not id_token:
            raise AppError(
                ErrorCode.MISSING_FIELD,
                "idToken is required for Google sign-in.",
                400,
                field="idToken",
            )
        identity = verifier.verify(id_token)
        email = identity.email
        name = identity.name or name
        photo_url = identity.picture or photo_url
    else:
        current_app.logger.warning(
            "Google sign-in for %s accepted without ID token verification "
            "(GOOGLE_CLIENT_ID not configured).",
            redact_email(email or ""),
        )

    if not email:
        raise AppError(
            ErrorCode.MISSING_FIELD,
            "email is required.",
            400,
            field="email",
        )

    email = email.strip().lower()
    user = find_user_by_email(email, session)

    if user is None:
        user = User(
            name=name or email.split("@", 1)[0],
            email=email,
            password_hash=unusable_password_hash(),
            avatar_url=photo_url,
        )
        session.add(user)
        try:
            session.flush()
        except IntegrityError:
            # Lost a race with a concurrent first sign-in for the same email.
            session.rollback()
            user = find_user_by_email(email, session)
            if user is None:
                raise
        else:
            current_app.logger.info(
                "Created account via Google sign-in for %s", redact_email(email)
            )
    elif not user.avatar_url and photo_url:
        user.avatar_url = photo_url
        session.flush()

    tokens = _issue_token_pair(user, session)

    return {
        "user": _build_user_dict(user),
        **tokens,
    }


def rotate_refresh_token(
        raw_refresh_token: str,
        session: Session,
) -> dict:
    """
    Redeems a refresh token exactly once and issues its successor.

    Steps:
      1. Verify signature / expiry          → INVALID_OR_EXPIRED
      2. Look the hash up in the ledger     → NOT_FOUND
      3. Already revoked = reuse            → revoke family, SECURITY_VIOLATION
      4. Ledger expiry passed               → revoke row, REFRESH_TOKEN_EXPIRED
      5. Claim the row (atomic revoke). Losing the claim means a concurrent
         redemption won; handled as reuse, same as step 3.
      6. Issue a new pair in the same family.

    Returns: {"accessToken": "...", "refreshToken": "..."}
    """
    try:
        token_codec.verify_user_refresh(raw_refresh_token)
    except token_codec.TokenError:
        raise AppError(
            ErrorCode.INVALID_OR_EXPIRED,
            "The refresh token is invalid or has expired.",
            401,
        )

    token_hash = token_ledger.hash_token(raw_refresh_token)
    entry = token_ledger.lookup(token_hash, session)

    if entry is None:
        raise AppError(
            ErrorCode.NOT_FOUND,
            "The refresh token is not recognised.",
            401,
        )

    if entry.revoked:
        _reject_reuse(entry, session)

    if entry.expires_at <= datetime.now(timezone.utc):
        token_ledger.revoke(token_hash, session)
        session.commit()
        raise AppError(
            ErrorCode.REFRESH_TOKEN_EXPIRED,
            "The refresh token has expired. Please sign in again.",
            401,
        )

    if not token_ledger.claim(token_hash, session):
        _reject_reuse(entry, session)

    user = session.get(User, entry.user_id)
    if user is None:
        # Account removed after the token was issued.
        raise AppError(
            ErrorCode.NOT_FOUND,
            "The refresh token is not recognised.",
            401,
        )

    return _issue_token_pair(user, session, family_id=entry.family_id)


def _reject_reuse(entry: token_ledger.LedgerEntry, session: Session) -> None:
    revoked = token_ledger.revoke_family(entry.family_id, session)
    session.commit()
    current_app.logger.warning(
        "Refresh token reuse detected: user_id=%s family_id=%s "
        "(%d token(s) revoked)",
        entry.user_id,
        entry.family_id,
        revoked,
    )
    raise AppError(
        ErrorCode.SECURITY_VIOLATION,
        "This session has been revoked for security reasons. Please sign in again.",
        401,
    )


def logout_user(
        raw_refresh_token: str | None,
        session: Session,
) -> None:
    """
    Revokes the presented refresh token, if any.

    Always succeeds: unknown, revoked, malformed or missing tokens are all
    accepted silently, so logout cannot be used to probe token validity.
    """
    if not raw_refresh_token:
        return
    token_ledger.revoke(token_ledger.hash_token(raw_refresh_token), session)


def get_current_user(user_id: uuid.UUID, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404) — account deleted after the token was issued.
    """
    return _build_user_dict(_get_user_or_404(user_id, session))


def update_profile(
        user_id: uuid.UUID,
        changes: ProfileUpdate,
        session: Session,
) -> dict:
    """
    Applies a partial profile update, one assignment per provided field.

    Raises:
      AppError(NO_FIELDS_TO_UPDATE, 400) — nothing to change
      AppError(USER_NOT_FOUND, 404)
    """
    if changes.is_empty():
        raise AppError(
            ErrorCode.NO_FIELDS_TO_UPDATE,
            "No fields to update were provided.",
            400,
        )

    user = _get_user_or_404(user_id, session)

    if changes.name is not UNSET and changes.name is not None:
        user.name = changes.name
    if changes.avatar_url is not UNSET:
        user.avatar_url = changes.avatar_url
    if changes.banner_url is not UNSET:
        user.banner_url = changes.banner_url

    session.flush()
    return _build_user_dict(user)


def change_password(
        user_id: uuid.UUID,
        current_password: str,
        new_password: str,
        session: Session,
) -> None:
    """
    Replaces the password of an authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404)
      AppError(INVALID_CREDENTIALS, 401) — current password does not match;
        the stored hash is left untouched.
    """
    user = _get_user_or_404(user_id, session)

    if not check_password(current_password, user.password_hash):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The current password is incorrect.",
            401,
            field="currentPassword",
        )

    user.password_hash = hash_password(new_password)
    session.flush()
    current_app.logger.info("Password changed for user %s", user.id)
