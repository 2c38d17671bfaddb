"""
services/google_identity.py — Server-side check of Google ID tokens.

Used by POST /auth/google when GOOGLE_CLIENT_ID is configured. The token is
sent to Google's tokeninfo endpoint; the sign-in is accepted only if Google
vouches for it, the audience is our client id, the issuer is Google, and the
email is verified. The identity returned here replaces whatever the client
put in the request body.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from mrgcar.app.errors import AppError, ErrorCode

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


@dataclass(frozen=True)
class GoogleIdentity:
    subject: str
    email: str
    name: str | None
    picture: str | None


class GoogleTokenVerifier:

    def __init__(
            self,
            client_id: str,
            tokeninfo_url: str = "https://oauth2.googleapis.com/tokeninfo",
            timeout: float = 10.0,
            logger: logging.Logger | None = None,
            transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.tokeninfo_url = tokeninfo_url
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self._transport = transport

    def verify(self, id_token: str) -> GoogleIdentity:
        """
        Raises:
          AppError(GOOGLE_TOKEN_INVALID, 401) — rejected by Google or claims mismatch.
          AppError(SERVER_ERROR, 500)         — Google could not be reached.
        """
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(self.tokeninfo_url, params={"id_token": id_token})
        except httpx.HTTPError as exc:
            self.logger.error("Google tokeninfo unreachable: %s", exc)
            raise AppError(
                ErrorCode.SERVER_ERROR,
                "Google sign-in could not be verified right now. Please try again later.",
                500,
            ) from exc

        if response.status_code != 200:
            raise _invalid()

        try:
            info = response.json()
        except ValueError:
            raise _invalid()

        if not isinstance(info, dict):
            raise _invalid()
        if info.get("aud") != self.client_id:
            self.logger.warning("Google ID token issued for another audience")
            raise _invalid()
        if info.get("iss") not in GOOGLE_ISSUERS:
            raise _invalid()
        if str(info.get("email_verified", "")).lower() != "true" or not info.get("email"):
            raise _invalid()

        return GoogleIdentity(
            subject=str(info.get("sub", "")),
            email=info["email"].strip().lower(),
            name=info.get("name"),
            picture=info.get("picture"),
        )


def _invalid() -> AppError:
    return AppError(
        ErrorCode.GOOGLE_TOKEN_INVALID,
        "The Google sign-in token is invalid or has expired.",
        401,
    )


def build_google_verifier(config, logger: logging.Logger) -> GoogleTokenVerifier | None:
    client_id = config.get("GOOGLE_CLIENT_ID")
    if not client_id:
        return None
    return GoogleTokenVerifier(
        client_id=client_id,
        tokeninfo_url=config["GOOGLE_TOKENINFO_URL"],
        timeout=config.get("HTTP_TIMEOUT_SECONDS", 10.0),
        logger=logger,
    )
