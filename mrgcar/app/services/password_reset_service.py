"""
services/password_reset_service.py — Forgot / verify / reset password flows.

Flow:
  1. request_password_reset(email)  → 6-digit code, valid 10 min, emailed
  2. verify_reset_code(email, code) → 64-hex reset token, valid 15 min
  3. reset_password(token, new)     → password replaced, row marked used

Anti-enumeration:
  - Step 1 answers with the same body whether or not the email exists.
  - Step 2 answers with the same error whether the email or the code is wrong.

Step 1 is throttled per email by an AttemptLimiter (3 per rolling hour by
default). The limiter is passed in by the route so deployments can back it
with Redis instead of process memory.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from mrgcar.app.errors import AppError, ErrorCode
from mrgcar.app.models.password_reset_token import PasswordResetToken
from mrgcar.app.models.user import User
from mrgcar.app.services import token_ledger
from mrgcar.app.services.attempt_limiter import AttemptLimiter
from mrgcar.app.services.auth_service import find_user_by_email
from mrgcar.app.services.email_service import EmailSender, redact_email
from mrgcar.app.services.passwords import hash_password


RESET_REQUESTED_MESSAGE = (
    "If this email is registered, a password reset code has been sent."
)
CODE_VERIFIED_MESSAGE = "Code verified. You can now set a new password."
PASSWORD_RESET_MESSAGE = (
    "Your password has been changed. You can now sign in with your new password."
)


def generate_reset_code() -> str:
    """Uniformly random 6-digit code, 100000–999999."""
    return str(100000 + secrets.randbelow(900000))


def generate_reset_token() -> str:
    """32 random bytes, hex encoded (64 chars)."""
    return secrets.token_hex(32)


def request_password_reset(
        email: str,
        session: Session,
        limiter: AttemptLimiter,
        email_sender: EmailSender,
) -> dict:
    """
    Issues a reset code for `email` if it belongs to an account.

    Raises:
      AppError(RATE_LIMITED, 429)          — too many requests for this email
      AppError(EMAIL_DELIVERY_FAILED, 500) — provider rejected the message

    Returns the generic message in every other case.
    """
    if not limiter.hit(email):
        raise AppError(
            ErrorCode.RATE_LIMITED,
            "Too many attempts. Please try again in an hour.",
            429,
        )

    user = find_user_by_email(email, session)
    if user is None:
        current_app.logger.info(
            "Password reset requested for unknown email %s", redact_email(email)
        )
        return {"message": RESET_REQUESTED_MESSAGE}

    # Only one live code per user.
    session.execute(
        delete(PasswordResetToken)
        .where(PasswordResetToken.user_id == user.id)
        .where(PasswordResetToken.used_at.is_(None))
    )

    code = generate_reset_code()
    session.add(PasswordResetToken(
        user_id=user.id,
        code=code,
        expires_at=datetime.now(timezone.utc)
        + current_app.config["PASSWORD_RESET_CODE_EXPIRES"],
    ))
    session.flush()

    result = email_sender.send_password_reset_email(user.email, code, user.name or None)
    if not result.success:
        current_app.logger.error(
            "Failed to send reset email to %s: %s", redact_email(user.email), result.error
        )
        raise AppError(
            ErrorCode.EMAIL_DELIVERY_FAILED,
            f"The reset email could not be sent: {result.error}",
            500,
        )

    current_app.logger.info("Password reset code issued for %s", redact_email(user.email))
    return {"message": RESET_REQUESTED_MESSAGE}


def _invalid_code() -> AppError:
    return AppError(
        ErrorCode.INVALID_CODE,
        "The code is invalid or has expired.",
        400,
    )


def verify_reset_code(
        email: str,
        code: str,
        session: Session,
) -> dict:
    """
    Exchanges a valid code for a reset token.

    Only an unused, unexpired row for this user and code matches. On a miss
    nothing is written.

    Raises:
      AppError(INVALID_CODE, 400) — unknown email, wrong code, expired or used.

    Returns: {"valid": True, "resetToken": "...", "message": "..."}
    """
    user = find_user_by_email(email, session)
    if user is None:
        raise _invalid_code()

    now = datetime.now(timezone.utc)
    record = session.execute(
        select(PasswordResetToken)
        .where(PasswordResetToken.user_id == user.id)
        .where(PasswordResetToken.code == code)
        .where(PasswordResetToken.expires_at > now)
        .where(PasswordResetToken.used_at.is_(None))
        .order_by(PasswordResetToken.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()

    if record is None:
        raise _invalid_code()

    reset_token = generate_reset_token()
    record.reset_token = reset_token
    record.expires_at = now + current_app.config["PASSWORD_RESET_TOKEN_EXPIRES"]
    session.flush()

    return {
        "valid": True,
        "resetToken": reset_token,
        "message": CODE_VERIFIED_MESSAGE,
    }


def reset_password(
        reset_token: str,
        new_password: str,
        session: Session,
) -> dict:
    """
    Consumes a reset token and sets the new password.

    Every refresh token of the user is revoked afterwards, so sessions opened
    with the old password cannot be extended.

    Raises:
      AppError(INVALID_RESET_TOKEN, 400) — unknown, expired or already used.
    """
    now = datetime.now(timezone.utc)
    record = session.execute(
        select(PasswordResetToken)
        .where(PasswordResetToken.reset_token == reset_token)
        .where(PasswordResetToken.expires_at > now)
        .where(PasswordResetToken.used_at.is_(None))
    ).scalar_one_or_none()

    if record is None:
        raise AppError(
            ErrorCode.INVALID_RESET_TOKEN,
            "The reset token is invalid or has expired. Please start again.",
            400,
        )

    user = session.get(User, record.user_id)
    if user is None:
        raise AppError(
            ErrorCode.INVALID_RESET_TOKEN,
            "The reset token is invalid or has expired. Please start again.",
            400,
        )

    user.password_hash = hash_password(new_password)
    record.used_at = now
    revoked = token_ledger.revoke_all_for_user(user.id, session)
    session.flush()

    current_app.logger.info(
        "Password reset completed for %s (%d refresh token(s) revoked)",
        redact_email(user.email),
        revoked,
    )
    return {"message": PASSWORD_RESET_MESSAGE}
