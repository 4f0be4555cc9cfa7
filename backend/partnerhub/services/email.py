from __future__ import annotations

import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

import httpx

from partnerhub.core.settings import settings


@dataclass
class EmailSendResult:
    provider: str
    message_id: Optional[str] = None


class EmailSendError(RuntimeError):
    pass


def email_enabled() -> bool:
    return (settings.email_provider or "disabled").lower() not in {"disabled", "none"}


def send_email(*, to_address: str, subject: str, text: str, html: str | None = None) -> EmailSendResult:
    provider = (settings.email_provider or "disabled").lower()
    if provider in {"disabled", "none"}:
        raise EmailSendError("EMAIL_PROVIDER disabled")
    if not settings.email_from:
        raise EmailSendError("EMAIL_FROM not configured")

    if provider == "resend":
        return _send_resend(to_address=to_address, subject=subject, text=text, html=html)
    if provider == "postmark":
        return _send_postmark(to_address=to_address, subject=subject, text=text, html=html)
    if provider == "smtp":
        return _send_smtp(to_address=to_address, subject=subject, text=text, html=html)

    raise EmailSendError(f"Unsupported EMAIL_PROVIDER: {settings.email_provider}")


def _post(url: str, *, payload: dict, headers: dict, provider: str) -> httpx.Response:
    try:
        with httpx.Client(timeout=settings.email_http_timeout_seconds) as client:
            resp = client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        raise EmailSendError(f"{provider} request failed: {exc}") from exc
    if resp.status_code >= 400:
        raise EmailSendError(f"{provider} error: {resp.status_code} {resp.text}")
    return resp


def _send_resend(*, to_address: str, subject: str, text: str, html: str | None) -> EmailSendResult:
    if not settings.email_api_key:
        raise EmailSendError("EMAIL_API_KEY not configured for Resend")
    payload = {
        "from": settings.email_from,
        "to": [to_address],
        "subject": subject,
        "text": text,
    }
    if html:
        payload["html"] = html
    headers = {
        "Authorization": f"Bearer {settings.email_api_key}",
        "Content-Type": "application/json",
    }
    resp = _post("https://api.resend.com/emails", payload=payload, headers=headers, provider="Resend")
    return EmailSendResult(provider="resend", message_id=resp.json().get("id"))


def _send_postmark(*, to_address: str, subject: str, text: str, html: str | None) -> EmailSendResult:
    if not settings.email_api_key:
        raise EmailSendError("EMAIL_API_KEY not configured for Postmark")
    payload = {
        "From": settings.email_from,
        "To": to_address,
        "Subject": subject,
        "TextBody": text,
    }
    if html:
        payload["HtmlBody"] = html
    headers = {
        "X-Postmark-Server-Token": settings.email_api_key,
        "Content-Type": "application/json",
    }
    resp = _post("https://api.postmarkapp.com/email", payload=payload, headers=headers, provider="Postmark")
    return EmailSendResult(provider="postmark", message_id=resp.json().get("MessageID"))


def _send_smtp(*, to_address: str, subject: str, text: str, html: str | None) -> EmailSendResult:
    if not settings.smtp_host:
        raise EmailSendError("SMTP_HOST not configured")
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = settings.email_from
    message["To"] = to_address
    message.set_content(text)
    if html:
        message.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.email_http_timeout_seconds) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_username and settings.smtp_password:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailSendError(f"SMTP error: {exc}") from exc
    return EmailSendResult(provider="smtp")
