from functools import lru_cache

from .compliance_logger import ActivityLogger
from .config import get_settings
from .database import SessionLocal
from .services.appointment_service import AppointmentCoordinator
from .services.directory import UserDirectory
from .services.email_service import email_service
from .services.notification_service import InAppNotifier, NotificationDispatcher
from .services.push_service import push_service
from .store import DocumentStore


@lru_cache()
def get_store() -> DocumentStore:
    return DocumentStore(SessionLocal)


@lru_cache()
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


@lru_cache()
def get_coordinator() -> AppointmentCoordinator:
    """Process-wide coordinator; tests swap it through ``app.dependency_overrides``."""
    settings = get_settings()
    store = get_store()
    return AppointmentCoordinator(
        store=store,
        directory=UserDirectory(store),
        activity=ActivityLogger(store),
        email=email_service,
        push=push_service,
        in_app=InAppNotifier(store, recent_limit=settings.recent_notifications_limit),
        dispatcher=get_dispatcher(),
    )
