# backend/portfolio/notifier/email_sender.py

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from ..config import Settings

logger = logging.getLogger(__name__)

SENDER_NAME = "Portfolio"


def build_message(settings: Settings, to_email: str, subject: str, html: str) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["From"] = formataddr((SENDER_NAME, settings.email_from))
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(html, "html", "utf-8"))
    return msg


def send_email(settings: Settings, to_email: str, subject: str, html: str) -> None:
    """
    Send one HTML email over SMTP.

    Port 465 uses implicit TLS, anything else STARTTLS when credentials are set.
    Raises on failure; the notifier decides about retries.
    """
    msg = build_message(settings, to_email, subject, html)

    if settings.smtp_port == 465:
        server = smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=10)
    else:
        server = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10)

    try:
        if settings.smtp_port != 465 and settings.smtp_user:
            server.starttls()
        if settings.smtp_user:
            server.login(settings.smtp_user, settings.smtp_password)
        server.sendmail(settings.email_from, [to_email], msg.as_string())
    finally:
        server.quit()

    logger.info(f"Email sent to {to_email}: {subject}")
