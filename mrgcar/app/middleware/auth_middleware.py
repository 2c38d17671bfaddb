"""
middleware/auth_middleware.py — JWT authentication decorators.

@require_user:
  1. Reads "Authorization: Bearer <token>" or, failing that, the
     access_token cookie
  2. Verifies it with JWT_ACCESS_SECRET (signature, expiry, token type)
  3. Attaches the claims to flask.g.user and the UUID to flask.g.user_id

@require_admin:
  1. Accepts the legacy X-Admin-Token header when it matches ADMIN_TOKEN
  2. Otherwise reads the bearer header or the admin_token cookie
  3. Verifies it with JWT_ADMIN_SECRET
  4. Requires role == "admin" exactly; anything else is 403
  5. Attaches the claims to flask.g.admin

Both gates are pure functions of (credential, clock, secret). Neither one
touches the database or the refresh-token ledger.

Error codes:
  TOKEN_MISSING  (401) — no credential presented
  TOKEN_INVALID  (401) — malformed header, bad signature, wrong token kind
  TOKEN_EXPIRED  (401) — valid token whose exp claim is in the past
  FORBIDDEN      (403) — admin-signed token for a role other than "admin"
"""

from __future__ import annotations

import functools
import hmac
import uuid
from typing import Callable

from flask import current_app, g, request

from mrgcar.app.errors import AppError, ErrorCode
from mrgcar.app.services import token_codec

ACCESS_COOKIE = "access_token"
ADMIN_COOKIE = "admin_token"
LEGACY_ADMIN_HEADER = "X-Admin-Token"


def require_user(f: Callable) -> Callable:
    """
    Route decorator that enforces user authentication.

    Usage:
        @auth_bp.route("/me")
        @require_user
        def me():
            user_id = g.user_id  # uuid.UUID when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_user()
        return f(*args, **kwargs)

    return decorated


def require_admin(f: Callable) -> Callable:
    """Route decorator that enforces admin authentication and role."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_admin()
        return f(*args, **kwargs)

    return decorated


def extract_token(cookie_name: str) -> str | None:
    """
    Returns the bearer token from the Authorization header, else the cookie.

    A present but malformed Authorization header is an error rather than a
    reason to fall back to the cookie.
    """
    auth_header = request.headers.get("Authorization", "")

    if auth_header:
        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AppError(
                ErrorCode.TOKEN_INVALID,
                "Authorization header must be in the format: Bearer <token>.",
                401,
            )
        return parts[1]

    return request.cookies.get(cookie_name) or None


def _verify(token: str, verifier: Callable[[str], dict]) -> dict:
    try:
        return verifier(token)
    except token_codec.TokenExpired:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired.",
            401,
        )
    except token_codec.TokenInvalid:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid.",
            401,
        )


def _authenticate_user() -> None:
    """
    Performs the user authentication sequence and sets flask.g.user / g.user_id.

    Raises AppError on any failure; the global error handler renders it.
    """
    raw_token = extract_token(ACCESS_COOKIE)
    if not raw_token:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token.",
            401,
        )

    claims = _verify(raw_token, token_codec.verify_user_access)

    try:
        user_id = uuid.UUID(str(claims.get("userId") or claims.get("sub")))
    except (TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token does not carry a valid user id.",
            401,
        )

    g.user = claims
    g.user_id = user_id


def _legacy_admin_token_ok() -> bool:
    """
    Operational escape hatch: X-Admin-Token equal to ADMIN_TOKEN.

    Disabled when ADMIN_TOKEN is unset. Rotating ADMIN_TOKEN revokes it
    independently of the JWT secrets.
    """
    expected = current_app.config.get("ADMIN_TOKEN")
    presented = request.headers.get(LEGACY_ADMIN_HEADER)
    if not expected or not presented:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def _authenticate_admin() -> None:
    """Performs the admin authentication sequence and sets flask.g.admin."""
    if _legacy_admin_token_ok():
        current_app.logger.info(
            "Admin request authorised via %s header: %s %s",
            LEGACY_ADMIN_HEADER,
            request.method,
            request.path,
        )
        g.admin = {"role": "admin", "legacy": True}
        return

    raw_token = extract_token(ADMIN_COOKIE)
    if not raw_token:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide an admin Bearer token.",
            401,
        )

    claims = _verify(raw_token, token_codec.verify_admin_access)

    if claims.get("role") != "admin":
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Admin role required.",
            403,
        )

    g.admin = claims
