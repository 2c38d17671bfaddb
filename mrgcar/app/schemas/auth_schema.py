"""
schemas/auth_schema.py — Marshmallow schemas for the /auth and /admin endpoints.

Validation responsibility:
  - This file: field presence, types, lengths, formats.
  - services/: everything that needs the database (duplicate email,
    credential checks, code / token matching).

Request bodies use the camelCase keys the mobile app and admin panel send
(refreshToken, currentPassword, ...); profile fields keep their snake_case
column names, as the clients already send them that way.

IMPORTANT: All schemas inherit from marshmallow.Schema directly.
           Do NOT use ma.Schema — it requires an active Flask app context
           and breaks unit tests. See extensions.py.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, fields, post_load, validate

PASSWORD_MIN_LENGTH = 6

_password_length = validate.Length(
    min=PASSWORD_MIN_LENGTH,
    max=72,
    error=f"Password must be between {PASSWORD_MIN_LENGTH} and 72 characters.",
)


class _BaseSchema(Schema):
    """Ignores unknown keys; clients send extra fields we do not use."""

    class Meta:
        unknown = EXCLUDE


class _EmailMixin:

    @post_load
    def normalise_email(self, data: dict, **kwargs) -> dict:
        if data.get("email"):
            data["email"] = data["email"].strip().lower()
        return data


class LoginSchema(_EmailMixin, _BaseSchema):
    """POST /auth/login. Credential correctness is checked in auth_service."""

    email = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True)


class RegisterSchema(_EmailMixin, _BaseSchema):
    """
    POST /auth/register

    The duplicate-email check needs the DB and lives in auth_service.
    """

    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255, error="Name must not be empty."),
    )
    email = fields.Email(required=True, validate=validate.Length(max=255))
    password = fields.Str(required=True, load_only=True, validate=_password_length)


class GoogleSignInSchema(_EmailMixin, _BaseSchema):
    """
    POST /auth/google

    email is optional here because, with server-side verification enabled,
    the verified ID token is the source of the email.
    """

    email = fields.Email(load_default=None)
    name = fields.Str(load_default=None, allow_none=True)
    photoUrl = fields.Str(load_default=None, allow_none=True)
    idToken = fields.Str(load_default=None, allow_none=True)


class RefreshTokenSchema(_BaseSchema):
    """
    POST /auth/refresh and POST /auth/logout

    Optional in the body: browsers send the refresh_token cookie instead.
    """

    refreshToken = fields.Str(load_default=None, allow_none=True)


class ProfileUpdateSchema(_BaseSchema):
    """PATCH /auth/profile — every field optional; at least one required (service)."""

    name = fields.Str(validate=validate.Length(min=1, max=255), allow_none=True)
    avatar_url = fields.Str(allow_none=True)
    banner_url = fields.Str(allow_none=True)


class ForgotPasswordSchema(_EmailMixin, _BaseSchema):
    """POST /auth/forgot-password"""

    email = fields.Email(required=True)


class VerifyResetCodeSchema(_EmailMixin, _BaseSchema):
    """
    POST /auth/verify-reset-token

    The code format is not validated here: a malformed code gets the same
    generic INVALID_CODE answer as a wrong one.
    """

    email = fields.Email(required=True)
    code = fields.Str(required=True)


class ResetPasswordSchema(_BaseSchema):
    """POST /auth/reset-password"""

    resetToken = fields.Str(required=True)
    newPassword = fields.Str(required=True, load_only=True, validate=_password_length)


class ChangePasswordSchema(_BaseSchema):
    """POST /auth/change-password"""

    currentPassword = fields.Str(required=True, load_only=True)
    newPassword = fields.Str(required=True, load_only=True, validate=_password_length)


class AdminLoginSchema(_EmailMixin, _BaseSchema):
    """POST /admin/login"""

    email = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True)
