"""
services/token_codec.py — Signing and verification of the three JWT kinds.

Token kinds:
  - user access  : {userId, email},       15 min,  JWT_ACCESS_SECRET
  - user refresh : {userId, email},       90 days, JWT_REFRESH_SECRET
  - admin access : {adminId, email, role}, 12 h,   JWT_ADMIN_SECRET

Each kind is signed with its own secret, so a token minted for one purpose
fails signature verification under the others. The `type` claim is checked
as well, which keeps the kinds apart even if two secrets were ever
misconfigured to the same value.

This module never consults the refresh-token ledger. Verification is a pure
function of (token, secret, current time).
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

USER_ACCESS = "access"
USER_REFRESH = "refresh"
ADMIN_ACCESS = "admin"

_REQUIRED_CLAIMS = ["exp", "iat", "sub"]


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpired(TokenError):
    """Signature is valid but the exp claim has passed."""


class TokenInvalid(TokenError):
    """Bad signature, malformed token, wrong kind or missing claims."""


def encode(
        claims: dict,
        secret: str,
        expires_in: timedelta,
        kind: str,
        algorithm: str = "HS256",
) -> str:
    """
    Signs `claims` with `secret`, adding iat, exp, jti and the kind marker.

    The jti makes every issued token unique even when two are minted for the
    same user within the same second, which the ledger's unique token_hash
    relies on.
    """
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "type": kind,
        "iat": now,
        "exp": now + expires_in,
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def verify(
        token: str,
        secret: str,
        kind: str | None = None,
        algorithm: str = "HS256",
) -> dict:
    """
    Verifies signature and expiry and returns the claims.

    Raises:
      TokenExpired — exp has passed.
      TokenInvalid — anything else: bad signature, malformed, missing
                     required claims, or a `type` claim other than `kind`.
    """
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": _REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpired(str(exc)) from exc
    except jwt.InvalidTokenError as exc:
        raise TokenInvalid(str(exc)) from exc

    if kind is not None and claims.get("type") != kind:
        raise TokenInvalid(f"expected a {kind} token")

    return claims


# ── Issuers bound to the app config ────────────────────────────────────────

def _algorithm() -> str:
    return current_app.config.get("JWT_ALGORITHM", "HS256")


def issue_user_access(user) -> str:
    return encode(
        {"sub": str(user.id), "userId": str(user.id), "email": user.email},
        current_app.config["JWT_ACCESS_SECRET"],
        current_app.config["JWT_ACCESS_TOKEN_EXPIRES"],
        USER_ACCESS,
        algorithm=_algorithm(),
    )


def issue_user_refresh(user) -> str:
    return encode(
        {"sub": str(user.id), "userId": str(user.id), "email": user.email},
        current_app.config["JWT_REFRESH_SECRET"],
        current_app.config["JWT_REFRESH_TOKEN_EXPIRES"],
        USER_REFRESH,
        algorithm=_algorithm(),
    )


def issue_admin_access(admin) -> str:
    return encode(
        {
            "sub": str(admin.id),
            "adminId": str(admin.id),
            "email": admin.email,
            "role": admin.role,
        },
        current_app.config["JWT_ADMIN_SECRET"],
        current_app.config["JWT_ADMIN_TOKEN_EXPIRES"],
        ADMIN_ACCESS,
        algorithm=_algorithm(),
    )


def verify_user_access(token: str) -> dict:
    return verify(token, current_app.config["JWT_ACCESS_SECRET"], USER_ACCESS, _algorithm())


def verify_user_refresh(token: str) -> dict:
    return verify(token, current_app.config["JWT_REFRESH_SECRET"], USER_REFRESH, _algorithm())


def verify_admin_access(token: str) -> dict:
    return verify(token, current_app.config["JWT_ADMIN_SECRET"], ADMIN_ACCESS, _algorithm())
