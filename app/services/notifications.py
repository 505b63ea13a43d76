"""Email delivery for workflow notifications.

Delivery is best effort and always runs from the outbox worker, never inside
the request that changed state.
"""

import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Iterable, List

logger = logging.getLogger(__name__)


def smtp_configured() -> bool:
    return bool(os.getenv("SMTP_HOST") and os.getenv("MAIL_FROM"))


def manager_recipients() -> List[str]:
    raw = os.getenv("NOTIFY_MANAGER_EMAILS", "")
    return [addr.strip() for addr in raw.split(",") if addr.strip()]


def send_email(to: Iterable[str], subject: str, body: str) -> bool:
    recipients = [addr for addr in to if addr]
    if not recipients:
        logger.info("Email skipped: no recipients", extra={"subject": subject})
        return False

    if not smtp_configured():
        logger.info(
            "Email skipped: SMTP not configured",
            extra={"subject": subject, "recipients": recipients},
        )
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = os.getenv("MAIL_FROM")
    msg["To"] = ", ".join(recipients)
    msg.set_content(body)

    host = os.getenv("SMTP_HOST")
    port = int(os.getenv("SMTP_PORT", "587"))
    username = os.getenv("SMTP_USERNAME")
    password = os.getenv("SMTP_PASSWORD")
    use_tls = os.getenv("SMTP_TLS", "true").strip().lower() not in {"0", "false", "no"}

    with smtplib.SMTP(host, port) as s:
        if use_tls:
            s.starttls()
        if username and password:
            s.login(username, password)
        s.send_message(msg)

    logger.info("Email sent", extra={"subject": subject, "recipients": recipients})
    return True
