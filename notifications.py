import logging
import os
import smtplib
from email.mime.text import MIMEText

import requests

from config import _parse_datetime
from db import get_db

logger = logging.getLogger(__name__)


def _send_email(to_email: str, subject: str, text_body: str) -> bool:
    """Send an email via SMTP (preferred), fallback to Mailgun API."""
    smtp_host = os.environ.get("SMTP_HOST", "")
    smtp_port = int(os.environ.get("SMTP_PORT", "587"))
    smtp_user = os.environ.get("SMTP_USER", "")
    smtp_pass = os.environ.get("SMTP_PASSWORD", "")
    smtp_from = os.environ.get("SMTP_FROM", smtp_user)
    if smtp_host and smtp_user and smtp_pass:
        msg = MIMEText(text_body)
        msg["Subject"] = subject
        msg["From"] = smtp_from
        msg["To"] = to_email
        try:
            with smtplib.SMTP(smtp_host, smtp_port, timeout=20) as s:
                s.starttls()
                s.login(smtp_user, smtp_pass)
                s.sendmail(smtp_from, [to_email], msg.as_string())
            return True
        except (smtplib.SMTPException, OSError):
            logger.exception("SMTP reminder email send failed")

    mailgun_api_key = os.environ.get("MAILGUN_API_KEY", "")
    mailgun_domain = os.environ.get("MAILGUN_DOMAIN", "")
    mailgun_from = os.environ.get("MAILGUN_FROM", "")
    if mailgun_api_key and mailgun_domain:
        sender = mailgun_from or f"no-reply@{mailgun_domain}"
        try:
            resp = requests.post(
                f"https://api.mailgun.net/v3/{mailgun_domain}/messages",
                auth=("api", mailgun_api_key),
                data={
                    "from": sender,
                    "to": [to_email],
                    "subject": subject,
                    "text": text_body,
                },
                timeout=15,
            )
            if 200 <= resp.status_code < 300:
                return True
            logger.warning(
                "Mailgun reminder email send failed with status %s: %s",
                resp.status_code,
                (resp.text or "")[:200],
            )
        except requests.RequestException:
            logger.exception("Mailgun API reminder email send failed")
    return False


def _describe(appointment: dict) -> str:
    when = _parse_datetime(appointment["date"])
    parts = [f"on {when.strftime('%A, %B %d at %H:%M')}"]
    if appointment.get("doctorName"):
        parts.insert(0, f"with {appointment['doctorName']}")
    if appointment.get("location"):
        parts.append(f"at {appointment['location']}")
    return " ".join(parts)


def send_appointment_reminder(appointment: dict) -> bool:
    """Notify the owner of an upcoming appointment.

    Emails the user when they have an address and a mail transport is
    configured; the reminder is always logged. Returns True when an email went
    out.
    """
    user_id = appointment["userId"]
    with get_db() as conn:
        user = conn.execute(
            "SELECT username, email FROM users WHERE uid = ?", (user_id,)
        ).fetchone()
    logger.info("Reminder sent to user %s for appointment on %s", user_id, appointment["date"])
    if not user or not user["email"]:
        return False
    body = (
        f"Hi {user['username']},\n\n"
        f"This is a reminder of your appointment {_describe(appointment)}.\n"
    )
    if appointment.get("notes"):
        body += f"\nNotes: {appointment['notes']}\n"
    return _send_email(user["email"], "Upcoming appointment reminder", body)
