"""
Notification Service for CollegeSync
====================================
Assignment notifications delivered over SMTP:
- New test pushed to a college (college must accept or reject)
- Test assigned to a student

Dispatch is fire-and-forget. Delivery problems are logged and never reach
the operation that produced the notification.
"""

import aiosmtplib
from html import escape
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Iterable

from app.core.config import settings
from app.core.logging_config import logger
from app.models.college import College
from app.models.test_catalog import TestDefinition
from app.models.user import User

COLLEGE_ASSIGNMENT = "college_assignment"
STUDENT_ASSIGNMENT = "student_assignment"


@dataclass
class NotificationIntent:
    """What to tell whom. Rendering happens at dispatch time."""
    kind: str
    to_email: Optional[str]
    recipient_name: str
    test_name: str
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    college_name: Optional[str] = None

    @classmethod
    def for_college(cls, college: College, test: TestDefinition) -> "NotificationIntent":
        return cls(
            kind=COLLEGE_ASSIGNMENT,
            to_email=college.email,
            recipient_name=college.name,
            test_name=test.name,
            start_at=test.start_at,
            end_at=test.end_at,
            duration_minutes=test.duration_minutes,
            college_name=college.name,
        )

    @classmethod
    def for_student(cls, student: User, test: TestDefinition) -> "NotificationIntent":
        return cls(
            kind=STUDENT_ASSIGNMENT,
            to_email=student.email,
            recipient_name=student.full_name or "Student",
            test_name=test.name,
            start_at=test.start_at,
            end_at=test.end_at,
            duration_minutes=test.duration_minutes,
        )


def _format_time(value: datetime) -> str:
    return value.strftime("%d %b %Y, %H:%M UTC")


class NotificationService:
    """Async SMTP notifier"""

    def __init__(self):
        self.enabled = settings.NOTIFICATIONS_ENABLED
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.timeout = settings.SMTP_TIMEOUT
        self.from_email = settings.EMAIL_FROM
        self.from_name = settings.EMAIL_FROM_NAME
        self.frontend_url = settings.FRONTEND_URL

    @property
    def is_configured(self) -> bool:
        """Check if SMTP delivery is possible"""
        return self.enabled and bool(self.smtp_user and self.smtp_password)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send one email. Returns True if the SMTP server accepted it.
        Raises whatever aiosmtplib raises; ``dispatch`` is the error boundary.
        """
        if not self.is_configured:
            logger.warning(f"[Notify] SMTP not configured, skipping email to {to_email}")
            return False

        message = MIMEMultipart("alternative")
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = to_email
        message["Subject"] = subject
        if text_content:
            message.attach(MIMEText(text_content, "plain"))
        message.attach(MIMEText(html_content, "html"))

        await aiosmtplib.send(
            message,
            hostname=self.smtp_host,
            port=self.smtp_port,
            username=self.smtp_user,
            password=self.smtp_password,
            start_tls=True,
            timeout=self.timeout,
        )
        logger.info(f"[Notify] Sent '{subject}' to {to_email}")
        return True

    # =====================================================
    # Templates
    # =====================================================

    def render(self, intent: NotificationIntent):
        """Returns (subject, html, text)"""
        login_url = f"{self.frontend_url}/login"
        window = f"{_format_time(intent.start_at)} to {_format_time(intent.end_at)}"
        recipient = escape(intent.recipient_name)
        test_name = escape(intent.test_name)

        if intent.kind == COLLEGE_ASSIGNMENT:
            subject = f"New Test Assignment - {intent.test_name}"
            text = (
                f"Hello, {intent.recipient_name}!\n\n"
                f"A new test has been assigned to your college: {intent.college_name}\n"
                f"Test: {intent.test_name}\nWindow: {window}\n\n"
                f"Please log in to accept or reject this assignment: {login_url}\n"
            )
            html = f"""
            <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2>Hello, {recipient}!</h2>
                <p>A new test has been assigned to your college: <strong>{escape(intent.college_name or "")}</strong></p>
                <p><strong>Test Name:</strong> {test_name}<br>
                   <strong>Start:</strong> {_format_time(intent.start_at)}<br>
                   <strong>End:</strong> {_format_time(intent.end_at)}</p>
                <p>Please log in to your dashboard to accept or reject this test assignment.</p>
                <p><a href="{login_url}">View Dashboard</a></p>
            </div>
            """
        else:
            subject = f"Test Assignment - {intent.test_name}"
            text = (
                f"Hello, {intent.recipient_name}!\n\n"
                f"You have been assigned a new test: {intent.test_name}\n"
                f"Duration: {intent.duration_minutes} minutes\nAvailable: {window}\n\n"
                f"Log in to take the test: {login_url}\n"
            )
            html = f"""
            <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2>Hello, {recipient}!</h2>
                <p>You have been assigned a new test to complete.</p>
                <p><strong>Test Name:</strong> {test_name}<br>
                   <strong>Duration:</strong> {intent.duration_minutes} minutes<br>
                   <strong>Available From:</strong> {_format_time(intent.start_at)}<br>
                   <strong>Available Until:</strong> {_format_time(intent.end_at)}</p>
                <p><a href="{login_url}">Take Test</a></p>
            </div>
            """
        return subject, html, text

    # =====================================================
    # Dispatch
    # =====================================================

    async def dispatch(self, intents: Iterable[NotificationIntent]) -> int:
        """Deliver each intent independently. Returns how many were sent."""
        sent = 0
        for intent in intents:
            if not intent.to_email:
                logger.warning(f"[Notify] No email address for {intent.recipient_name}, skipping {intent.kind}")
                continue
            try:
                subject, html, text = self.render(intent)
                if await self.send_email(intent.to_email, subject, html, text):
                    sent += 1
            except Exception as e:
                logger.log_error_with_context(
                    e,
                    "notification dispatch",
                    notification_kind=intent.kind,
                    recipient=intent.to_email,
                    test_name=intent.test_name,
                )
        return sent

    async def notify_college_assignment(self, college: College, test: TestDefinition) -> bool:
        return await self.dispatch([NotificationIntent.for_college(college, test)]) == 1

    async def notify_student_assignment(self, student: User, test: TestDefinition) -> bool:
        return await self.dispatch([NotificationIntent.for_student(student, test)]) == 1


_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """FastAPI dependency returning the shared notifier"""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
