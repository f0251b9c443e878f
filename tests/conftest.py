# tests/conftest.py
import os

# Settings are cached on first use; point them at throwaway backends before any import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SENDGRID_API_KEY"] = ""
os.environ["FIREBASE_CREDENTIALS_FILE"] = ""
os.environ["CLINIC_TIMEZONE"] = "UTC"
os.environ["JSON_LOGS"] = "false"

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from smartcare.compliance_logger import ActivityLogger
from smartcare.database import create_tables
from smartcare.models import UserRole
from smartcare.services.appointment_service import AppointmentCoordinator
from smartcare.services.directory import UserDirectory
from smartcare.services.email_service import EmailService
from smartcare.services.notification_service import InAppNotifier, NotificationDispatcher, NotificationOutcome
from smartcare.services.push_service import PushService
from smartcare.store import DocumentStore

PATIENT_ID = "patient-1"
DOCTOR_ID = "doctor-1"


class Clock:
    """Settable wall clock shared by the store and the coordinator."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingEmailService(EmailService):
    """Renders the real templates but records instead of calling SendGrid."""

    def __init__(self):
        super().__init__(api_key="", sender_email="noreply@test.smartcare")
        self.sent = []

    async def send_email(self, to_email, subject, body, recipient_id=None):
        if not to_email:
            return NotificationOutcome.skipped(self.channel, recipient_id, "missing email address")
        self.sent.append({"to": to_email, "subject": subject, "body": body, "recipient_id": recipient_id})
        return NotificationOutcome.sent(self.channel, recipient_id, simulated=True)


class RecordingPushService(PushService):
    def __init__(self):
        super().__init__(credentials_file="", default_icon="/SmartCare.png")
        self.sent = []

    async def send_push(self, recipient_id, title, *, body, tag=None, icon=None, badge=None, data=None):
        message = self.build_message(recipient_id, title, body=body, tag=tag, icon=icon, badge=badge, data=data)
        self.sent.append({
            "recipient_id": recipient_id,
            "title": title,
            "body": body,
            "tag": tag,
            "icon": message.webpush.notification.icon,
            "badge": message.webpush.notification.badge,
            "data": message.data,
            "topic": message.topic,
        })
        return NotificationOutcome.sent(self.channel, recipient_id, simulated=True)


@pytest.fixture
def clock():
    return Clock(datetime(2025, 3, 5, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def store(session_factory, clock):
    return DocumentStore(session_factory, clock=clock)


@pytest.fixture
def users(store):
    store.create("users", {
        "email": "pat@example.com",
        "display_name": "Pat Jones",
        "photo_url": "https://cdn.example.com/pat.png",
        "role": UserRole.patient,
        "unread_notifications": 0,
        "recent_notifications": [],
    }, doc_id=PATIENT_ID)
    store.create("users", {
        "email": "dana@example.com",
        "display_name": "Dana Reyes",
        "photo_url": "https://cdn.example.com/dana.png",
        "specialty": "Cardiology",
        "role": UserRole.doctor,
        "unread_notifications": 0,
        "recent_notifications": [],
    }, doc_id=DOCTOR_ID)
    return {"patient": PATIENT_ID, "doctor": DOCTOR_ID}


@pytest.fixture
def email():
    return RecordingEmailService()


@pytest.fixture
def push():
    return RecordingPushService()


@pytest.fixture
def coordinator(store, users, email, push, clock):
    return AppointmentCoordinator(
        store=store,
        directory=UserDirectory(store),
        activity=ActivityLogger(store),
        email=email,
        push=push,
        in_app=InAppNotifier(store, recent_limit=5),
        dispatcher=NotificationDispatcher(),
        clock=clock,
        tz=timezone.utc,
    )


@pytest.fixture
def booking():
    """Patient request for Dr. Reyes; the caller sets created_by."""
    return {
        "patient_id": PATIENT_ID,
        "doctor_id": DOCTOR_ID,
        "patient_name": "Pat Jones",
        "doctor_name": "Reyes",
        "specialty": "Cardiology",
        "date": "2025-03-10",
        "time": "9:00 AM",
        "mode": "online",
        "type": "Follow-up consultation",
        "notes": "Chest pain review",
        "created_by": PATIENT_ID,
    }
