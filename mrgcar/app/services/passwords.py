"""
services/passwords.py — bcrypt hashing shared by user and admin flows.

Cost factor comes from current_app.config["BCRYPT_LOG_ROUNDS"].
Raw passwords are never stored and never logged.
"""

from __future__ import annotations

import secrets

import bcrypt
from flask import current_app


def hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 10)
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def check_password(password: str, password_hash: str | None) -> bool:
    """Constant-time bcrypt comparison. False for a missing or malformed hash."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash (e.g. imported legacy row).
        return False


def unusable_password_hash() -> str:
    """Hash of a random secret nobody knows; used for federated-only accounts."""
    return hash_password(secrets.token_urlsafe(32))
