# tests/test_email_service.py
from types import SimpleNamespace

import pytest

from smartcare.services.email_service import EmailService
from smartcare.services.push_service import PushService, user_topic

REQUEST_CONTEXT = {
    "subject": "New Appointment Request - Pat Jones",
    "doctor_name": "Reyes",
    "patient_name": "Pat Jones",
    "date_display": "March 10, 2025",
    "time": "9:00 AM",
    "appointment_type": "Consultation",
    "mode_display": "In-person Visit",
    "notes": None,
}


class StubSendGrid:
    def __init__(self, status_code=202, error=None):
        self.status_code = status_code
        self.error = error
        self.mails = []

    def send(self, mail):
        self.mails.append(mail)
        if self.error:
            raise self.error
        return SimpleNamespace(status_code=self.status_code, headers={"X-Message-Id": "msg-123"})


@pytest.fixture
def live_email():
    service = EmailService(api_key="SG.test-key", sender_email="noreply@test.smartcare")
    service.sg = StubSendGrid()
    return service


def test_render_request_template():
    body = EmailService(api_key="").render("appointment_request", REQUEST_CONTEXT)

    assert body.startswith("Dear Dr. Reyes,")
    assert "Patient: Pat Jones" in body
    assert "Status: Pending Approval" in body
    assert "Reason/Notes" not in body


@pytest.mark.asyncio
async def test_without_api_key_sends_are_simulated():
    service = EmailService(api_key="")

    outcome = await service.send_email("pat@example.com", "Hello", "Body", recipient_id="patient-1")

    assert service.enabled is False
    assert outcome.delivered is True
    assert outcome.simulated is True


@pytest.mark.asyncio
async def test_missing_address_is_skipped():
    outcome = await EmailService(api_key="").send_email(None, "Hello", "Body", recipient_id="patient-1")

    assert outcome.delivered is False
    assert outcome.error == "missing email address"


@pytest.mark.asyncio
async def test_sendgrid_accepted(live_email):
    outcome = await live_email.send_templated_email("dana@example.com", "appointment_request", REQUEST_CONTEXT,
                                                    recipient_id="doctor-1")

    assert outcome.delivered is True
    assert outcome.simulated is False
    assert outcome.reference == "msg-123"
    assert len(live_email.sg.mails) == 1


@pytest.mark.asyncio
async def test_sendgrid_rejection_is_an_outcome(live_email):
    live_email.sg = StubSendGrid(status_code=500)

    outcome = await live_email.send_email("dana@example.com", "Hello", "Body")

    assert outcome.delivered is False
    assert "500" in outcome.error


@pytest.mark.asyncio
async def test_sendgrid_timeout_is_flagged(live_email):
    live_email.sg = StubSendGrid(error=OSError("connect ETIMEDOUT 1.2.3.4:443"))

    outcome = await live_email.send_email("dana@example.com", "Hello", "Body")

    assert outcome.delivered is False
    assert outcome.timed_out is True


@pytest.mark.asyncio
async def test_missing_template_variable_fails_softly(live_email):
    outcome = await live_email.send_templated_email("dana@example.com", "appointment_request",
                                                    {"subject": "Incomplete"})

    assert outcome.delivered is False
    assert live_email.sg.mails == []


def test_user_topic_is_fcm_safe():
    assert user_topic("doctor-1") == "user-doctor-1"
    assert user_topic("a b@c") == "user-a_b_c"


def test_push_message_shape():
    service = PushService(credentials_file="", default_icon="/SmartCare.png")

    message = service.build_message(
        "patient-1", "Appointment Rescheduled", body="Moved to March 12",
        data={"appointment_id": "apt-1", "has_summary": True, "notes": None},
    )

    assert message.topic == "user-patient-1"
    assert message.data == {"appointment_id": "apt-1", "has_summary": "True", "url": "/"}
    assert message.webpush.notification.icon == "/SmartCare.png"
    assert message.webpush.notification.badge == "/SmartCare.png"
    assert message.webpush.notification.tag == "appointment-notification"


@pytest.mark.asyncio
async def test_push_without_credentials_is_simulated():
    service = PushService(credentials_file="")

    sent = await service.send_push("patient-1", "Title", body="Body", tag="appointment-summary")
    skipped = await service.send_push(None, "Title", body="Body")

    assert sent.delivered and sent.simulated
    assert not skipped.delivered
