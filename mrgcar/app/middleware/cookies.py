"""
middleware/cookies.py — Token cookies for browser clients.

Every successful auth response carries the tokens twice: in the JSON body
for mobile / non-browser clients and as HttpOnly cookies for browsers.

Flags:
  HttpOnly always; Secure when COOKIE_SECURE; SameSite=None when
  COOKIE_CROSS_SITE (admin panel / website on another domain), else Lax.
  SameSite=None is only ever sent together with Secure.

Paths:
  access_token  → "/"             (sent on every API call)
  refresh_token → AUTH_URL_PREFIX (only reaches /auth/*)
  admin_token   → "/"
"""

from __future__ import annotations

from flask import Response, current_app

from mrgcar.app.middleware.auth_middleware import ACCESS_COOKIE, ADMIN_COOKIE

REFRESH_COOKIE = "refresh_token"


def _flags() -> dict:
    cross_site = bool(current_app.config.get("COOKIE_CROSS_SITE"))
    secure = bool(current_app.config.get("COOKIE_SECURE")) or cross_site
    return {
        "httponly": True,
        "secure": secure,
        "samesite": "None" if cross_site else "Lax",
    }


def _seconds(config_key: str) -> int:
    return int(current_app.config[config_key].total_seconds())


def set_auth_cookies(response: Response, tokens: dict) -> Response:
    flags = _flags()
    response.set_cookie(
        ACCESS_COOKIE,
        tokens["accessToken"],
        max_age=_seconds("JWT_ACCESS_TOKEN_EXPIRES"),
        path="/",
        **flags,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        tokens["refreshToken"],
        max_age=_seconds("JWT_REFRESH_TOKEN_EXPIRES"),
        path=current_app.config["AUTH_URL_PREFIX"],
        **flags,
    )
    return response


def clear_auth_cookies(response: Response) -> Response:
    flags = _flags()
    response.delete_cookie(ACCESS_COOKIE, path="/", **flags)
    response.delete_cookie(
        REFRESH_COOKIE,
        path=current_app.config["AUTH_URL_PREFIX"],
        **flags,
    )
    return response


def set_admin_cookie(response: Response, token: str) -> Response:
    response.set_cookie(
        ADMIN_COOKIE,
        token,
        max_age=_seconds("JWT_ADMIN_TOKEN_EXPIRES"),
        path="/",
        **_flags(),
    )
    return response
