# backend/app/services/sms.py
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Protocol

import httpx
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.audit import log_event
from ..domain.phone import normalize_phone, redact_phone
from ..errors import RateLimited, UpstreamError
from ..models import Client, utcnow

log = logging.getLogger(__name__)


class SmsSender(Protocol):
    def send(self, to: str, body: str) -> None: ...


class TwilioSmsClient:
    def __init__(self) -> None:
        self.base = settings.twilio_base_url.rstrip("/")
        self.account_sid = settings.twilio_account_sid
        self.auth_token = settings.twilio_auth_token
        self.from_number = settings.twilio_from_number

    def enabled(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def send(self, to: str, body: str) -> None:
        if not self.enabled():
            raise UpstreamError("Twilio credentials not configured")

        url = f"{self.base}/Accounts/{self.account_sid}/Messages.json"
        try:
            with httpx.Client(timeout=15.0) as client:
                r = client.post(
                    url,
                    data={"To": to, "From": self.from_number, "Body": body},
                    auth=(self.account_sid, self.auth_token),
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"twilio transport error: {e}") from e

        if r.status_code >= 400:
            detail = r.text
            try:
                detail = r.json().get("message") or detail
            except ValueError:
                pass
            raise UpstreamError(f"twilio {r.status_code}: {detail}")


class LoggingSmsSender:
    """Local/dev sender: writes the message to the log instead of the network."""

    def send(self, to: str, body: str) -> None:
        log.info("sms_dev_delivery to=***%s body=%s", redact_phone(to), body)


def get_sms_sender() -> SmsSender:
    client = TwilioSmsClient()
    if client.enabled():
        return client
    if (settings.app_env or "local").lower() in ("local", "dev", "test"):
        return LoggingSmsSender()
    return client


def otp_message(code: str) -> str:
    return f"Your Secura verification code is {code}. It expires in {int(settings.otp_ttl_minutes)} minutes."


def ensure_sms_allowed(client: Optional[Client]) -> None:
    """One code per client per rate-limit window, measured from the row's last update."""
    if client is None or client.updated_at is None:
        return
    window = timedelta(seconds=int(settings.otp_rate_limit_seconds))
    elapsed = utcnow() - client.updated_at
    if elapsed < window:
        wait = int((window - elapsed).total_seconds()) + 1
        raise RateLimited(
            f"otp rate limit: client={client.id} wait={wait}s",
            public_message=f"Please wait {wait} seconds before requesting another code.",
            details={"retry_after_seconds": wait},
        )


def send_otp_sms(
    db: Session,
    sender: SmsSender,
    *,
    phone: str,
    code: str,
    client_id: Optional[int] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    """
    Deliver an OTP and record the attempt in the generic audit log either way.

    On failure any pending changes in the session are discarded and the failed
    attempt is committed on its own.
    """
    phone = normalize_phone(phone)
    details = {"phone_last4": redact_phone(phone)}
    try:
        sender.send(phone, otp_message(code))
    except UpstreamError as e:
        log.warning("sms_send_failed %s", e.message, extra={"client_id": client_id})
        db.rollback()
        log_event(
            db,
            action="sms_sent",
            client_id=client_id,
            resource_type="sms",
            details={**details, "success": False, "error": e.message[:200]},
            ip_address=ip_address,
            user_agent=user_agent,
            commit=True,
        )
        raise

    log_event(
        db,
        action="sms_sent",
        client_id=client_id,
        resource_type="sms",
        details={**details, "success": True},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    log.info("sms_sent", extra={"client_id": client_id})
