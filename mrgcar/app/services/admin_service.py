"""
services/admin_service.py — Admin panel authentication.

Admin tokens are plain access tokens signed with JWT_ADMIN_SECRET. There is
no admin refresh token; the panel signs in again when the token expires.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from mrgcar.app.errors import AppError, ErrorCode
from mrgcar.app.models.admin_user import AdminUser
from mrgcar.app.services import token_codec
from mrgcar.app.services.passwords import check_password, hash_password


def _build_admin_dict(admin: AdminUser) -> dict:
    return {
        "id": str(admin.id),
        "email": admin.email,
        "role": admin.role,
    }


def find_admin_by_email(email: str, session: Session) -> AdminUser | None:
    # Stored lower-cased; a plain equality keeps the unique index usable.
    return session.execute(
        select(AdminUser).where(AdminUser.email == email.strip().lower())
    ).scalar_one_or_none()


def login_admin(email: str, password: str, session: Session) -> dict:
    """
    Raises:
      AppError(INVALID_CREDENTIALS, 401) — unknown email or wrong password.

    Returns: {"token": "...", "admin": {...}}
    """
    admin = find_admin_by_email(email, session)

    if admin is None or not check_password(password, admin.password_hash):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "Invalid email or password.",
            401,
        )

    return {
        "token": token_codec.issue_admin_access(admin),
        "admin": _build_admin_dict(admin),
    }


def upsert_admin(
        email: str,
        password: str,
        session: Session,
        role: str = "admin",
) -> tuple[AdminUser, bool]:
    """
    Creates an admin account, or resets password and role of an existing one.

    Used by the `flask create-admin` command. Returns (admin, created).
    """
    email = email.strip().lower()
    admin = find_admin_by_email(email, session)

    created = admin is None
    if created:
        admin = AdminUser(email=email, password_hash=hash_password(password), role=role)
        session.add(admin)
    else:
        admin.password_hash = hash_password(password)
        admin.role = role

    session.flush()
    return admin, created
