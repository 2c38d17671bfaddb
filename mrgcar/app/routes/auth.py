"""
routes/auth.py — User authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function
  - Commit the DB session
  - Return {"success": true, ...} and, for token-issuing endpoints, set the
    token cookies

No business logic here. No DB queries. AppError propagates to the global
error handler in app/__init__.py — routes never catch it.

Endpoints (url_prefix = AUTH_URL_PREFIX, default /auth):
  POST   /login               → 200
  POST   /register            → 201
  POST   /google              → 200
  POST   /refresh             → 200
  POST   /logout              → 200 (always)
  GET    /me                  → 200  (user token)
  PATCH  /profile             → 200  (user token)
  POST   /forgot-password     → 200 (generic)
  POST   /verify-reset-token  → 200
  POST   /reset-password      → 200
  POST   /change-password     → 200  (user token)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from mrgcar.app.errors import AppError, ErrorCode
from mrgcar.app.extensions import (
    ATTEMPT_LIMITER_KEY,
    EMAIL_SENDER_KEY,
    GOOGLE_VERIFIER_KEY,
    db,
)
from mrgcar.app.middleware.auth_middleware import require_user
from mrgcar.app.middleware.cookies import REFRESH_COOKIE, clear_auth_cookies, set_auth_cookies
from mrgcar.app.schemas.auth_schema import (
    ChangePasswordSchema,
    ForgotPasswordSchema,
    GoogleSignInSchema,
    LoginSchema,
    ProfileUpdateSchema,
    RefreshTokenSchema,
    RegisterSchema,
    ResetPasswordSchema,
    VerifyResetCodeSchema,
)
from mrgcar.app.services import auth_service, password_reset_service

auth_bp = Blueprint("auth", __name__)


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _presented_refresh_token() -> str | None:
    """Body wins over cookie so non-browser clients are never shadowed."""
    data = RefreshTokenSchema().load(_body())
    return data["refreshToken"] or request.cookies.get(REFRESH_COOKIE) or None


def _logout_refresh_token() -> str | None:
    """Like _presented_refresh_token, but never rejects: logout always succeeds."""
    raw = _body().get("refreshToken")
    if not isinstance(raw, str):
        raw = None
    return raw or request.cookies.get(REFRESH_COOKIE) or None


def _session_response(result: dict, status: int = 200):
    response = jsonify({"success": True, **result})
    set_auth_cookies(response, result)
    return response, status


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login — Authenticate; return tokens. (No auth required.)"""
    data = LoginSchema().load(_body())
    result = auth_service.login_user(
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    db.session.commit()
    return _session_response(result)


@auth_bp.route("/register", methods=["POST"])
def register():
    """POST /auth/register — Create account; return tokens. (No auth required.)"""
    data = RegisterSchema().load(_body())
    result = auth_service.register_user(
        name=data["name"],
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    db.session.commit()
    return _session_response(result, 201)


@auth_bp.route("/google", methods=["POST"])
def google():
    """POST /auth/google — Sign in or sign up with a Google account."""
    data = GoogleSignInSchema().load(_body())
    result = auth_service.google_sign_in(
        email=data["email"],
        name=data["name"],
        photo_url=data["photoUrl"],
        id_token=data["idToken"],
        session=db.session,
        verifier=current_app.extensions.get(GOOGLE_VERIFIER_KEY),
    )
    db.session.commit()
    return _session_response(result)


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh — Redeem a refresh token for a new token pair."""
    raw_token = _presented_refresh_token()
    if not raw_token:
        raise AppError(
            ErrorCode.MISSING_FIELD,
            "A refresh token is required.",
            400,
            field="refreshToken",
        )
    result = auth_service.rotate_refresh_token(
        raw_refresh_token=raw_token,
        session=db.session,
    )
    db.session.commit()
    return _session_response(result)


@auth_bp.route("/logout", methods=["POST"])
def logout():
    """POST /auth/logout — Revoke the refresh token, if any. Always succeeds."""
    auth_service.logout_user(
        raw_refresh_token=_logout_refresh_token(),
        session=db.session,
    )
    db.session.commit()
    response = jsonify({"success": True})
    clear_auth_cookies(response)
    return response, 200


@auth_bp.route("/me", methods=["GET"])
@require_user
def me():
    """GET /auth/me — Return current user profile. (Auth required.)"""
    user = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"success": True, "user": user}), 200


@auth_bp.route("/profile", methods=["PATCH"])
@require_user
def update_profile():
    """PATCH /auth/profile — Update name / avatar / banner. (Auth required.)"""
    data = ProfileUpdateSchema().load(_body())
    user = auth_service.update_profile(
        user_id=g.user_id,
        changes=auth_service.ProfileUpdate(**data),
        session=db.session,
    )
    db.session.commit()
    return jsonify({"success": True, "user": user}), 200


@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    """POST /auth/forgot-password — Email a reset code. Same answer for every email."""
    data = ForgotPasswordSchema().load(_body())
    result = password_reset_service.request_password_reset(
        email=data["email"],
        session=db.session,
        limiter=current_app.extensions[ATTEMPT_LIMITER_KEY],
        email_sender=current_app.extensions[EMAIL_SENDER_KEY],
    )
    db.session.commit()
    return jsonify({"success": True, **result}), 200


@auth_bp.route("/verify-reset-token", methods=["POST"])
def verify_reset_token():
    """POST /auth/verify-reset-token — Exchange the emailed code for a reset token."""
    data = VerifyResetCodeSchema().load(_body())
    result = password_reset_service.verify_reset_code(
        email=data["email"],
        code=data["code"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"success": True, **result}), 200


@auth_bp.route("/reset-password", methods=["POST"])
def reset_password():
    """POST /auth/reset-password — Set a new password with a reset token."""
    data = ResetPasswordSchema().load(_body())
    result = password_reset_service.reset_password(
        reset_token=data["resetToken"],
        new_password=data["newPassword"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"success": True, **result}), 200


@auth_bp.route("/change-password", methods=["POST"])
@require_user
def change_password():
    """POST /auth/change-password — Replace the password. (Auth required.)"""
    data = ChangePasswordSchema().load(_body())
    auth_service.change_password(
        user_id=g.user_id,
        current_password=data["currentPassword"],
        new_password=data["newPassword"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"success": True, "message": "Your password has been changed."}), 200
