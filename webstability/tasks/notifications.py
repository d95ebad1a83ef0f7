"""
Notification delivery worker.

``CeleryNotifier`` enqueues ``notifications.send_notification`` after a
lifecycle mutation has committed. Mail only leaves the worker when
``settings.send_emails`` is on; otherwise the rendered message is logged.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Any

from celery import shared_task

from webstability.config import settings

logger = logging.getLogger(__name__)

PHASE_SUBJECTS = {
    "design": "Je design is in de maak",
    "feedback": "Je design is klaar voor feedback",
    "revisie": "We verwerken je feedback",
    "payment": "Je project is klaar voor betaling",
    "domain": "We zetten je domein en e-mail klaar",
    "live": "Je website is live!",
}

SUBJECTS = {
    "change_request_submitted": "Nieuw wijzigingsverzoek van {business_name}",
    "change_request_completed": "Je wijziging is doorgevoerd",
    "referral_code_issued": "Je persoonlijke referralcode",
    "payment_confirmed": "Betaling ontvangen",
    "feedback_submitted": "Nieuwe feedback van {business_name}",
}


def render_notification(kind: str, payload: dict[str, Any]) -> tuple[str, str]:
    """Return ``(subject, body)`` for a notification."""
    if kind == "phase_changed":
        subject = PHASE_SUBJECTS.get(payload.get("to_phase"), "Update over je project")
    else:
        subject = SUBJECTS.get(kind, "Update over je project")
    subject = subject.format(business_name=payload.get("business_name", ""))

    project_id = payload.get("project_id", "")
    lines = [subject, ""]
    for key, value in payload.items():
        if value is None or key == "business_name":
            continue
        lines.append(f"{key.replace('_', ' ')}: {value}")
    lines += ["", f"{settings.site_url}/project/{project_id}", "", "Team Webstability"]
    return f"{subject} ({project_id})", "\n".join(lines)


def deliver_email(recipient: str, subject: str, body: str) -> None:
    message = EmailMessage()
    message["From"] = settings.smtp_from
    message["To"] = recipient
    message["Subject"] = subject
    message.set_content(body)

    with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=30) as smtp:
        if settings.smtp_user:
            smtp.login(settings.smtp_user, settings.smtp_password)
        smtp.send_message(message)


@shared_task(
    name="notifications.send_notification",
    autoretry_for=(smtplib.SMTPException, OSError),
    retry_backoff=True,
    max_retries=3,
)
def send_notification(kind: str, recipient: str, payload: dict[str, Any]) -> dict:
    subject, body = render_notification(kind, payload)

    if not settings.send_emails or not settings.smtp_host:
        logger.info(f"Email sending disabled, would send '{subject}' to {recipient}")
        return {"status": "skipped", "kind": kind, "recipient": recipient}

    deliver_email(recipient, subject, body)
    logger.info(f"Sent '{kind}' notification to {recipient}")
    return {"status": "sent", "kind": kind, "recipient": recipient}
