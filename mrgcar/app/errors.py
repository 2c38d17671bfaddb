"""
errors.py — AppError base class and error code registry.

Every error returned by the MRGCar auth API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
  - Auth failures never say which field was wrong (anti-enumeration).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"success": False, "error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    NO_FIELDS_TO_UPDATE        = "NO_FIELDS_TO_UPDATE"
    INVALID_CODE               = "INVALID_CODE"
    INVALID_RESET_TOKEN        = "INVALID_RESET_TOKEN"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    CONFLICT                   = "CONFLICT"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403 — role mismatch
    GOOGLE_TOKEN_INVALID       = "GOOGLE_TOKEN_INVALID"   # 401

    # ── Refresh Rotation Errors (401) ──────────────────────────────────────
    INVALID_OR_EXPIRED         = "INVALID_OR_EXPIRED"     # bad signature / exp
    NOT_FOUND                  = "NOT_FOUND"              # no ledger row
    REFRESH_TOKEN_EXPIRED      = "REFRESH_TOKEN_EXPIRED"  # ledger row expired
    SECURITY_VIOLATION         = "SECURITY_VIOLATION"     # reuse → family revoked

    # ── Throttling (429) ───────────────────────────────────────────────────
    RATE_LIMITED               = "RATE_LIMITED"

    # ── System Errors (500) ────────────────────────────────────────────────
    EMAIL_DELIVERY_FAILED      = "EMAIL_DELIVERY_FAILED"
    SERVER_ERROR               = "SERVER_ERROR"
