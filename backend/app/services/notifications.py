"""
Transactional email.

Notifications are best effort: a mail failure never rolls back or fails
the database change that triggered it. Without SMTP settings the message
is only logged.
"""

import smtplib
from email.message import EmailMessage
from typing import Iterable

from app import config
from app.logging_config import get_logger, log_with_context

logger = get_logger("mail")


class Notifier:
    """Sends a plain-text message to one or more recipients."""

    def send(self, recipients: Iterable[str], subject: str, body: str) -> None:
        raise NotImplementedError


class SmtpNotifier(Notifier):

    def __init__(self, host=None, port=None, user=None, password=None, sender=None):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user

    @property
    def configured(self) -> bool:
        return bool(self.host and self.port and self.user and self.password and self.sender)

    def send(self, recipients: Iterable[str], subject: str, body: str) -> None:
        recipients = [r for r in recipients if r]
        if not recipients:
            return
        if not self.configured:
            log_with_context(logger, "INFO", "SMTP not configured, dropping email: {}".format(subject),
                             extra_data={"recipients": len(recipients)})
            return

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = self.sender if len(recipients) > 1 else recipients[0]
        if len(recipients) > 1:
            msg["Bcc"] = ", ".join(recipients)
        msg.set_content(body)

        # Port 465 is implicit TLS, everything else upgrades with STARTTLS
        if self.port == 465:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=30) as s:
                s.login(self.user, self.password)
                s.send_message(msg)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=30) as s:
                s.ehlo()
                s.starttls()
                s.ehlo()
                s.login(self.user, self.password)
                s.send_message(msg)
        log_with_context(logger, "INFO", "Email sent: {}".format(subject),
                         extra_data={"recipients": len(recipients)})


def _deliver(notifier: Notifier, recipients, subject: str, body: str, context: dict = None):
    try:
        notifier.send(recipients, subject, body)
    except Exception as e:
        log_with_context(logger, "ERROR", "Email delivery failed: {}".format(subject),
                         context=context, extra_data={"error": str(e)})


def send_payment_approved(notifier: Notifier, email: str, student_name: str,
                          course_title: str, course_id: str):
    """Tell a student their receipt was accepted and the course is unlocked."""
    subject = "{}: enrollment approved for {}".format(config.APP_NAME, course_title)
    body = (
        "Hi {name},\n\n"
        "Your payment for \"{course}\" has been verified. The course content is now "
        "available at {url}/courses/{course_id}.\n\n"
        "{app}"
    ).format(name=student_name, course=course_title, url=config.APP_URL.rstrip("/"),
             course_id=course_id, app=config.APP_NAME)
    _deliver(notifier, [email], subject, body, context={"course_id": course_id})


def send_announcement(notifier: Notifier, recipients, title: str, description: str,
                      announcement_id: str):
    summary = description if len(description) <= 240 else description[:237] + "..."
    subject = "{}: {}".format(config.APP_NAME, title)
    body = "{}\n\n{}\n\n{}/announcements".format(title, summary, config.APP_URL.rstrip("/"))
    _deliver(notifier, recipients, subject, body, context={"announcement_id": announcement_id})


def send_password_reset_code(notifier: Notifier, email: str, code: str, valid_minutes: int):
    subject = "{}: password reset code".format(config.APP_NAME)
    body = (
        "Your password reset code is {code}.\n\n"
        "It expires in {minutes} minutes. If you did not ask to reset your password "
        "you can ignore this email.\n\n"
        "{app}"
    ).format(code=code, minutes=valid_minutes, app=config.APP_NAME)
    _deliver(notifier, [email], subject, body)


_default_notifier = SmtpNotifier(
    host=config.SMTP_HOST,
    port=config.SMTP_PORT,
    user=config.SMTP_USER,
    password=config.SMTP_PASS,
    sender=config.SMTP_FROM,
)


def get_notifier() -> Notifier:
    """FastAPI dependency returning the configured notifier."""
    return _default_notifier
