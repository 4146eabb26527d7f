# backend/app/services/mailer.py
from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from ..config import settings
from ..errors import UpstreamError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Email:
    to: str
    subject: str
    html: str


class Mailer(Protocol):
    def send(self, email: Email) -> None: ...


class ResendMailer:
    def __init__(self) -> None:
        self.base = settings.resend_base_url.rstrip("/")
        self.api_key = settings.resend_api_key

    def enabled(self) -> bool:
        return bool(self.api_key)

    def send(self, email: Email) -> None:
        if not self.api_key:
            raise UpstreamError("resend_api_key not set")

        try:
            with httpx.Client(timeout=15.0) as client:
                r = client.post(
                    f"{self.base}/emails",
                    json={"from": settings.mail_from, "to": [email.to], "subject": email.subject, "html": email.html},
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                r.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamError(f"resend error: {e}") from e


def get_mailer() -> Mailer:
    return ResendMailer()


def welcome_email(*, to: str, full_name: str, password: str, role: str) -> Email:
    login_url = f"{settings.app_public_url.rstrip('/')}/login"
    role_label = "Agency Administrator" if role == "agency_admin" else role.replace("_", " ").title()
    body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #2563eb;">Welcome to Secura</h1>
  <p>Hello {html.escape(full_name)},</p>
  <p>An account has been created for you as <strong>{role_label}</strong>.</p>
  <p>Email: <strong>{html.escape(to)}</strong><br/>Temporary password: <strong>{html.escape(password)}</strong></p>
  <p>Please sign in at <a href="{login_url}">{login_url}</a> and change your password.</p>
</div>
""".strip()
    return Email(to=to, subject="Welcome to Secura - Your Agency Account", html=body)


def password_reset_email(*, to: str, full_name: str, password: str) -> Email:
    login_url = f"{settings.app_public_url.rstrip('/')}/login"
    body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #2563eb;">Your password was reset</h1>
  <p>Hello {html.escape(full_name)},</p>
  <p>Your new temporary password is <strong>{html.escape(password)}</strong>.</p>
  <p>Sign in at <a href="{login_url}">{login_url}</a>.</p>
</div>
""".strip()
    return Email(to=to, subject="Secura - Password Reset", html=body)


def send_best_effort(mailer: Mailer, email: Email) -> bool:
    """Mail is never allowed to fail the calling request."""
    try:
        mailer.send(email)
        return True
    except UpstreamError as e:
        log.warning("email_send_failed subject=%s err=%s", email.subject, e.message)
        return False
