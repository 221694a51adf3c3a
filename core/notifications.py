# core/notifications.py
import requests
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import List, Optional
from core.config import settings
from core.logging_config import logger


# -----------------------------------------------------
# 📨 Send webhook (audit sink, Slack, etc.)
# -----------------------------------------------------
def send_webhook_message(payload: dict, url: Optional[str] = None) -> bool:
    """
    POST a JSON payload. Never raises; returns True when the sink accepted it.
    """
    webhook_url = url or settings.AUDIT_WEBHOOK_URL
    if not webhook_url:
        logger.debug("Webhook URL not configured, skipping.")
        return False

    try:
        response = requests.post(webhook_url, json=payload, timeout=5)
    except Exception as e:
        logger.warning(f"Webhook failed: {e}")
        return False

    if not response.ok:
        logger.warning(f"Webhook rejected event (status {response.status_code})")
    return response.ok


# -----------------------------------------------------
# 📧 Send email (SMTP)
# -----------------------------------------------------
def _recipients(to: Optional[str], recipients: Optional[List[str]]) -> List[str]:
    if recipients:
        return list(recipients)
    if to:
        return [to]
    # Operational mail (sweep failures) goes to the admin inbox
    return [settings.SMTP_TO] if settings.SMTP_TO else []


def build_message(subject: str, body: str, recipients: List[str], html_body: Optional[str] = None) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["From"] = settings.SMTP_USER
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = subject

    msg.attach(MIMEText(body, "plain"))
    if html_body:
        msg.attach(MIMEText(html_body, "html"))
    return msg


def send_email(
    subject: str,
    body: str,
    to: str = None,
    recipients: Optional[List[str]] = None,
    html_body: Optional[str] = None,
) -> bool:
    """
    Send email via SMTP_SSL.

    Returns False (and logs) when there is nobody to send to or SMTP is not
    configured. Raises when the SMTP server itself fails.
    """
    recipient_list = _recipients(to, recipients)
    if not recipient_list:
        logger.warning("No recipients specified, skipping email.")
        return False

    if not all([settings.SMTP_HOST, settings.SMTP_PORT, settings.SMTP_USER, settings.SMTP_PASS]):
        logger.warning(f"Email credentials missing, not sending '{subject}'.")
        return False

    msg = build_message(subject, body, recipient_list, html_body)
    try:
        with smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            server.login(settings.SMTP_USER, settings.SMTP_PASS)
            server.send_message(msg)
    except Exception as e:
        logger.error(f"Email failed: {e}")
        raise

    logger.info(f"Email sent to {', '.join(recipient_list)}")
    return True


def format_invitation_email(invitation, accept_url: Optional[str] = None) -> str:
    lines = [
        "Hello,",
        "",
        f"You have been invited to join {settings.PROJECT_NAME} as '{invitation.role}'.",
    ]
    if invitation.department:
        lines.append(f"Department: {invitation.department}")
    if invitation.personal_message:
        lines += ["", invitation.personal_message]
    lines += [
        "",
        f"Accept your invitation: {accept_url or invitation.token}",
        f"This invitation expires on {invitation.expires_at:%Y-%m-%d %H:%M} UTC.",
    ]
    return "\n".join(lines)
