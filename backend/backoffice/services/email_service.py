# Overview: SMTP transport for outbound notification email.

"""
Email transport over SMTP (Gmail app-password by default).

GMAIL_USER / GMAIL_APP_PASSWORD missing means email is disabled: send_email
returns False without touching the network. Transport errors propagate so
the caller decides how to log them.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

logger = logging.getLogger(__name__)


def is_configured(config) -> bool:
    return bool(config.get("GMAIL_USER") and config.get("GMAIL_APP_PASSWORD"))


def build_message(sender: str, to: list[str], subject: str, text: str, html: str | None = None) -> MIMEMultipart:
    msg = MIMEMultipart('alternative')
    msg['Subject'] = subject
    msg['From'] = sender
    msg['To'] = ", ".join(to)

    msg.attach(MIMEText(text, 'plain', 'utf-8'))
    if html:
        msg.attach(MIMEText(html, 'html', 'utf-8'))
    return msg


def send_email(config, to: list[str], subject: str, text: str, html: str | None = None) -> bool:
    """
    Send one multipart message to every recipient.

    Returns:
        True if handed to the SMTP server, False if email is not configured
        or there are no recipients.
    """
    if not is_configured(config):
        logger.debug("Email not configured, skipping: %s", subject)
        return False
    if not to:
        return False

    sender = config["GMAIL_USER"]
    msg = build_message(sender, to, subject, text, html)

    with smtplib.SMTP(config.get("SMTP_HOST", "smtp.gmail.com"), int(config.get("SMTP_PORT", 587))) as server:
        server.starttls()
        server.login(sender, config["GMAIL_APP_PASSWORD"])
        server.sendmail(sender, to, msg.as_string())

    logger.info("Email sent to %d recipient(s): %s", len(to), subject)
    return True
