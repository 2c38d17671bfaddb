"""
services/email_service.py — Password reset email delivery.

The auth flows depend only on EmailSender.send_password_reset_email().
Failures come back as EmailResult(success=False, error=...) and the caller
turns them into a 500 response; nothing is swallowed here.

Backends:
  - ResendEmailSender: Resend HTTP API (RESEND_API_KEY).
  - LoggingEmailSender: development only, writes the message to the log
    instead of sending it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx
from markupsafe import escape

DEFAULT_RECIPIENT_NAME = "Değerli Kullanıcımız"
RESET_EMAIL_SUBJECT = "MRGCar - Şifre Sıfırlama Kodu"


@dataclass(frozen=True)
class EmailResult:
    success: bool
    id: str | None = None
    error: str | None = None


def redact_email(email: str) -> str:
    """Redacts an address for log lines: 'alice@x.com' → 'al***@x.com'."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def render_password_reset(code: str, name: str | None) -> tuple[str, str]:
    """Returns (text, html) bodies for the reset email."""
    name = name or DEFAULT_RECIPIENT_NAME
    text = (
        f"Merhaba {name},\n\n"
        f"Şifre sıfırlama kodunuz: {code}\n"
        "Bu kod 10 dakika geçerlidir.\n\n"
        "Bu isteği siz yapmadıysanız bu e-postayı yok sayabilirsiniz.\n"
    )
    html = (
        f"<p>Merhaba {escape(name)},</p>"
        f"<p>Şifre sıfırlama kodunuz: <strong>{code}</strong></p>"
        "<p>Bu kod 10 dakika geçerlidir.</p>"
        "<p>Bu isteği siz yapmadıysanız bu e-postayı yok sayabilirsiniz.</p>"
    )
    return text, html


class EmailSender(ABC):

    @abstractmethod
    def send_password_reset_email(
            self,
            email: str,
            code: str,
            name: str | None = None,
    ) -> EmailResult:
        ...


class ResendEmailSender(EmailSender):

    def __init__(
            self,
            api_key: str,
            from_email: str,
            api_url: str = "https://api.resend.com/emails",
            timeout: float = 10.0,
            logger: logging.Logger | None = None,
            transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.api_url = api_url
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self._transport = transport

    def send_password_reset_email(
            self,
            email: str,
            code: str,
            name: str | None = None,
    ) -> EmailResult:
        if not self.api_key:
            self.logger.error("RESEND_API_KEY is not configured; cannot send email.")
            return EmailResult(success=False, error="Email service config missing")

        text, html = render_password_reset(code, name)
        payload = {
            "from": self.from_email,
            "to": [email],
            "subject": RESET_EMAIL_SUBJECT,
            "html": html,
            "text": text,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            self.logger.error(
                "Email transport error for %s: %s", redact_email(email), exc
            )
            return EmailResult(success=False, error=str(exc))

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.is_success:
            self.logger.info("Reset email sent to %s (id=%s)", redact_email(email), data.get("id"))
            return EmailResult(success=True, id=data.get("id"))

        error = data.get("message") or f"Email provider rejected request ({response.status_code})"
        self.logger.error(
            "Email provider error for %s: %s", redact_email(email), error
        )
        return EmailResult(success=False, error=error)


class LoggingEmailSender(EmailSender):
    """Development stand-in: logs the reset code instead of delivering it."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def send_password_reset_email(
            self,
            email: str,
            code: str,
            name: str | None = None,
    ) -> EmailResult:
        self.logger.info(
            "[dev mail] password reset code for %s: %s", redact_email(email), code
        )
        return EmailResult(success=True, id="dev")


def build_email_sender(config, logger: logging.Logger) -> EmailSender:
    """Resend when an API key is configured; log-only sender in debug mode."""
    if config.get("RESEND_API_KEY") or not config.get("DEBUG"):
        return ResendEmailSender(
            api_key=config.get("RESEND_API_KEY", ""),
            from_email=config["EMAIL_FROM"],
            api_url=config["RESEND_API_URL"],
            timeout=config.get("HTTP_TIMEOUT_SECONDS", 10.0),
            logger=logger,
        )
    return LoggingEmailSender(logger=logger)
