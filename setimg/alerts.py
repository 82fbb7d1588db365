from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from .db import log_event
from .settings import settings


def send_email(subject: str, body: str) -> bool:
    """Send an email if SMTP settings are configured.

    Environment variables:
      - SETIMG_ENABLE_EMAIL=true
      - SETIMG_SMTP_HOST / SETIMG_SMTP_PORT
      - SETIMG_SMTP_USER / SETIMG_SMTP_PASSWORD
      - SETIMG_EMAIL_FROM / SETIMG_EMAIL_TO
    """
    if not settings.enable_email:
        return False
    if not all(
        [
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_user,
            settings.smtp_password,
            settings.email_from,
            settings.email_to,
        ]
    ):
        return False

    msg = MIMEMultipart()
    msg["From"] = settings.email_from
    msg["To"] = settings.email_to
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "plain"))

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.email_from, [settings.email_to], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        log_event("WARN", f"Alert email not sent: {type(e).__name__}: {e}")
        return False
    return True
