from __future__ import annotations

import smtplib
from collections.abc import Sequence
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

from signalradar.settings import settings


class EmailSendError(RuntimeError):
    pass


def _smtp_credentials() -> tuple[str, str, str, str]:
    host = (settings.smtp_host or "").strip()
    user = (settings.smtp_user or "").strip()
    password = settings.smtp_password or ""
    from_email = (settings.smtp_from_email or "").strip()
    if not (host and user and password and from_email):
        raise EmailSendError("SMTP not configured (SIGNALRADAR_SMTP_HOST/USER/PASSWORD/FROM_EMAIL)")
    return host, user, password, from_email


def build_digest_message(
    *,
    from_email: str,
    to_emails: Sequence[str],
    subject: str,
    text_body: str,
    html_body: Optional[str] = None,
) -> EmailMessage:
    """Plain-text body with an optional HTML alternative, addressed to every recipient at once."""

    recipients = list(dict.fromkeys(e.strip() for e in to_emails if e and e.strip()))
    if not recipients:
        raise EmailSendError("No recipients")

    msg = EmailMessage()
    msg["From"] = formataddr((settings.smtp_from_name, from_email))
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = subject
    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    return msg


def send_email_smtp(
    *,
    to_emails: Sequence[str],
    subject: str,
    text_body: str,
    html_body: Optional[str] = None,
) -> None:
    host, user, password, from_email = _smtp_credentials()
    msg = build_digest_message(
        from_email=from_email,
        to_emails=to_emails,
        subject=subject,
        text_body=text_body,
        html_body=html_body,
    )

    port = int(settings.smtp_port)
    try:
        if settings.smtp_use_starttls:
            with smtplib.SMTP(host, port, timeout=30) as conn:
                conn.ehlo()
                conn.starttls()
                conn.login(user, password)
                conn.send_message(msg)
        else:
            with smtplib.SMTP_SSL(host, port, timeout=30) as conn:
                conn.login(user, password)
                conn.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise EmailSendError(str(e)) from e
