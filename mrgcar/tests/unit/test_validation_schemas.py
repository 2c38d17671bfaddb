"""
tests/unit/test_validation_schemas.py — Unit tests for the marshmallow schemas.

What this file proves:
  - Every schema accepts valid input without raising
  - Every schema rejects invalid input with a ValidationError on the right field
  - Emails are normalised (trimmed, lower-cased) after load
  - Unknown keys are dropped, never rejected
  - Database rules (duplicate email, credential checks) are NOT tested here;
    they belong in services

Unit test constraints:
  - No database and no Flask application context. Schemas inherit from
    marshmallow.Schema directly (not ma.Schema), which is why they can be
    instantiated here (extensions.py note).
"""

from __future__ import annotations

import pytest
from marshmallow import ValidationError

from mrgcar.app.schemas.auth_schema import (
    AdminLoginSchema,
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


# ═══════════════════════════════════════════════════════════════════════════
# RegisterSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestRegisterSchema:

    def _load(self, data: dict):
        return RegisterSchema().load(data)

    def test_valid_payload(self):
        result = self._load({
            "name": "Alice",
            "email": "alice@example.com",
            "password": "Secure1!",
        })
        assert result["name"]  == "Alice"
        assert result["email"] == "alice@example.com"

    def test_email_is_normalised(self):
        result = self._load({
            "name": "Alice",
            "email": "Alice@Example.COM",
            "password": "Secure1!",
        })
        assert result["email"] == "alice@example.com"

    def test_password_at_minimum_length_passes(self):
        result = self._load({"name": "A", "email": "a@b.com", "password": "x" * 6})
        assert result["password"] == "xxxxxx"

    def test_password_too_short_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"name": "A", "email": "a@b.com", "password": "x" * 5})
        assert "password" in exc.value.messages

    def test_password_too_long_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"name": "A", "email": "a@b.com", "password": "x" * 73})
        assert "password" in exc.value.messages

    def test_empty_name_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"name": "", "email": "a@b.com", "password": "Secure1!"})
        assert "name" in exc.value.messages

    def test_invalid_email_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"name": "A", "email": "not-an-email", "password": "Secure1!"})
        assert "email" in exc.value.messages

    def test_missing_fields_raise(self):
        with pytest.raises(ValidationError) as exc:
            self._load({})
        assert set(exc.value.messages) == {"name", "email", "password"}

    def test_unknown_keys_are_dropped(self):
        result = self._load({
            "name": "A",
            "email": "a@b.com",
            "password": "Secure1!",
            "role": "admin",
        })
        assert "role" not in result


# ═══════════════════════════════════════════════════════════════════════════
# LoginSchema / AdminLoginSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestLoginSchemas:

    @pytest.mark.parametrize("schema_cls", [LoginSchema, AdminLoginSchema])
    def test_valid_payload(self, schema_cls):
        result = schema_cls().load({"email": "Bob@Example.com", "password": "x"})
        assert result == {"email": "bob@example.com", "password": "x"}

    @pytest.mark.parametrize("schema_cls", [LoginSchema, AdminLoginSchema])
    def test_missing_password_raises(self, schema_cls):
        with pytest.raises(ValidationError) as exc:
            schema_cls().load({"email": "bob@example.com"})
        assert "password" in exc.value.messages

    def test_login_does_not_enforce_password_length(self):
        # Length rules apply when setting a password, not when presenting one.
        result = LoginSchema().load({"email": "bob@example.com", "password": "a"})
        assert result["password"] == "a"


# ═══════════════════════════════════════════════════════════════════════════
# GoogleSignInSchema / RefreshTokenSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestOptionalBodySchemas:

    def test_google_all_fields_optional(self):
        assert GoogleSignInSchema().load({}) == {
            "email": None,
            "name": None,
            "photoUrl": None,
            "idToken": None,
        }

    def test_google_email_normalised(self):
        result = GoogleSignInSchema().load({"email": "Gina@Gmail.com"})
        assert result["email"] == "gina@gmail.com"

    def test_google_invalid_email_raises(self):
        with pytest.raises(ValidationError):
            GoogleSignInSchema().load({"email": "gina"})

    def test_refresh_token_optional(self):
        assert RefreshTokenSchema().load({}) == {"refreshToken": None}

    def test_refresh_token_must_be_a_string(self):
        with pytest.raises(ValidationError):
            RefreshTokenSchema().load({"refreshToken": 123})


# ═══════════════════════════════════════════════════════════════════════════
# ProfileUpdateSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestProfileUpdateSchema:

    def test_only_provided_fields_are_returned(self):
        assert ProfileUpdateSchema().load({"name": "New"}) == {"name": "New"}

    def test_null_clears_urls(self):
        result = ProfileUpdateSchema().load({"avatar_url": None, "banner_url": None})
        assert result == {"avatar_url": None, "banner_url": None}

    def test_empty_payload_loads_empty(self):
        assert ProfileUpdateSchema().load({}) == {}

    def test_email_is_not_editable(self):
        assert ProfileUpdateSchema().load({"email": "x@y.com"}) == {}

    def test_empty_name_raises(self):
        with pytest.raises(ValidationError) as exc:
            ProfileUpdateSchema().load({"name": ""})
        assert "name" in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# Password reset schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestPasswordResetSchemas:

    def test_forgot_password_normalises_email(self):
        assert ForgotPasswordSchema().load({"email": "A@B.com"}) == {"email": "a@b.com"}

    def test_forgot_password_requires_email(self):
        with pytest.raises(ValidationError) as exc:
            ForgotPasswordSchema().load({})
        assert "email" in exc.value.messages

    def test_verify_code_accepts_any_code_string(self):
        # Malformed codes get the generic INVALID_CODE answer from the service.
        result = VerifyResetCodeSchema().load({"email": "a@b.com", "code": "12"})
        assert result["code"] == "12"

    def test_reset_password_enforces_new_password_length(self):
        with pytest.raises(ValidationError) as exc:
            ResetPasswordSchema().load({"resetToken": "t", "newPassword": "short"})
        assert "newPassword" in exc.value.messages

    def test_reset_password_requires_token(self):
        with pytest.raises(ValidationError) as exc:
            ResetPasswordSchema().load({"newPassword": "LongEnough1"})
        assert "resetToken" in exc.value.messages

    def test_change_password_requires_both(self):
        with pytest.raises(ValidationError) as exc:
            ChangePasswordSchema().load({})
        assert set(exc.value.messages) == {"currentPassword", "newPassword"}
