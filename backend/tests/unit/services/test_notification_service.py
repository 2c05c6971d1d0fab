"""
Unit Tests for the Notification Service
"""
import pytest
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock

from app.services import notification_service
from app.services.notification_service import (
    COLLEGE_ASSIGNMENT,
    STUDENT_ASSIGNMENT,
    NotificationIntent,
    NotificationService,
)


@pytest.fixture
def test_definition():
    return SimpleNamespace(
        name='Aptitude Round 1',
        start_at=datetime(2026, 3, 2, 9, 0),
        end_at=datetime(2026, 3, 2, 12, 0),
        duration_minutes=30,
    )


@pytest.fixture
def configured_service():
    service = NotificationService()
    service.enabled = True
    service.smtp_user = 'mailer@example.com'
    service.smtp_password = 'app-password'
    return service


class TestIntents:

    def test_college_intent_targets_college_email(self, test_definition):
        college = SimpleNamespace(name='North Campus', email='office@north.example')

        intent = NotificationIntent.for_college(college, test_definition)

        assert intent.kind == COLLEGE_ASSIGNMENT
        assert intent.to_email == 'office@north.example'
        assert intent.college_name == 'North Campus'

    def test_student_intent_falls_back_to_generic_name(self, test_definition):
        student = SimpleNamespace(full_name=None, email='s1@example.com')

        intent = NotificationIntent.for_student(student, test_definition)

        assert intent.kind == STUDENT_ASSIGNMENT
        assert intent.recipient_name == 'Student'

    def test_render_subjects(self, test_definition):
        service = NotificationService()
        college = SimpleNamespace(name='North Campus', email='office@north.example')
        student = SimpleNamespace(full_name='Asha', email='asha@example.com')

        college_subject, college_html, _ = service.render(NotificationIntent.for_college(college, test_definition))
        student_subject, _, student_text = service.render(NotificationIntent.for_student(student, test_definition))

        assert college_subject == 'New Test Assignment - Aptitude Round 1'
        assert 'accept or reject' in college_html
        assert student_subject == 'Test Assignment - Aptitude Round 1'
        assert 'Duration: 30 minutes' in student_text

    def test_names_are_escaped_in_html(self, test_definition):
        test_definition.name = 'Round <1> & "final"'
        college = SimpleNamespace(name='<b>North</b>', email='office@north.example')

        subject, html, text = NotificationService().render(NotificationIntent.for_college(college, test_definition))

        assert '&lt;b&gt;North&lt;/b&gt;' in html
        assert 'Round &lt;1&gt; &amp; &quot;final&quot;' in html
        assert '<b>North</b>' not in html
        assert subject == 'New Test Assignment - Round <1> & "final"'
        assert 'Test: Round <1> & "final"' in text


class TestDispatch:

    @pytest.mark.asyncio
    async def test_unconfigured_service_sends_nothing(self, test_definition, monkeypatch):
        send = AsyncMock()
        monkeypatch.setattr(notification_service.aiosmtplib, 'send', send)
        service = NotificationService()
        service.enabled = False
        student = SimpleNamespace(full_name='Asha', email='asha@example.com')

        sent = await service.dispatch([NotificationIntent.for_student(student, test_definition)])

        assert sent == 0
        send.assert_not_called()

    @pytest.mark.asyncio
    async def test_configured_service_uses_smtp(self, configured_service, test_definition, monkeypatch):
        send = AsyncMock()
        monkeypatch.setattr(notification_service.aiosmtplib, 'send', send)
        student = SimpleNamespace(full_name='Asha', email='asha@example.com')

        assert await configured_service.notify_student_assignment(student, test_definition) is True

        message = send.call_args.args[0]
        assert message['To'] == 'asha@example.com'
        assert send.call_args.kwargs['start_tls'] is True

    @pytest.mark.asyncio
    async def test_failures_are_isolated_per_recipient(self, configured_service, test_definition, monkeypatch):
        async def flaky_send(message, **kwargs):
            if message['To'] == 'broken@example.com':
                raise ConnectionError('connection refused')

        monkeypatch.setattr(notification_service.aiosmtplib, 'send', flaky_send)
        intents = [
            NotificationIntent.for_student(SimpleNamespace(full_name='A', email='broken@example.com'), test_definition),
            NotificationIntent.for_student(SimpleNamespace(full_name='B', email=None), test_definition),
            NotificationIntent.for_student(SimpleNamespace(full_name='C', email='ok@example.com'), test_definition),
        ]

        assert await configured_service.dispatch(intents) == 1
