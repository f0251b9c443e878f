import asyncio
import logging
import re
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials, messaging

from ..config import get_settings
from .notification_service import NotificationOutcome, is_timeout_error, sanitize_metadata

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "smartcare-push"
_TOPIC_UNSAFE = re.compile(r"[^a-zA-Z0-9\-_.~%]")


def user_topic(user_id: str) -> str:
    """Each signed-in client subscribes its FCM token to this topic."""
    return "user-" + _TOPIC_UNSAFE.sub("_", user_id)


class PushService:
    """Web push through Firebase Cloud Messaging, addressed per recipient topic."""

    channel = "push"

    def __init__(self, credentials_file: Optional[str] = None, default_icon: Optional[str] = None):
        settings = get_settings()
        self.credentials_file = credentials_file if credentials_file is not None else settings.firebase_credentials_file
        self.default_icon = default_icon or settings.push_icon
        self.enabled = bool(self.credentials_file)
        self._app = None

        if not self.enabled:
            logger.warning("FIREBASE_CREDENTIALS_FILE not set - push delivery will be simulated")

    def _get_app(self):
        if self._app is None:
            try:
                self._app = firebase_admin.get_app(FIREBASE_APP_NAME)
            except ValueError:
                cred = credentials.Certificate(self.credentials_file)
                self._app = firebase_admin.initialize_app(cred, name=FIREBASE_APP_NAME)
                logger.info("Firebase Admin initialized for push notifications")
        return self._app

    def build_message(self, recipient_id: str, title: str, *, body: str, tag: Optional[str] = None,
                      icon: Optional[str] = None, badge: Optional[str] = None,
                      data: Optional[Dict[str, Any]] = None) -> messaging.Message:
        payload = {key: str(value) for key, value in sanitize_metadata(data).items()}
        payload.setdefault("url", "/")
        return messaging.Message(
            topic=user_topic(recipient_id),
            notification=messaging.Notification(title=title, body=body),
            data=payload,
            webpush=messaging.WebpushConfig(
                notification=messaging.WebpushNotification(
                    title=title,
                    body=body,
                    icon=icon or self.default_icon,
                    badge=badge or self.default_icon,
                    tag=tag or "appointment-notification",
                ),
            ),
        )

    async def send_push(self, recipient_id: Optional[str], title: str, *, body: str,
                        tag: Optional[str] = None, icon: Optional[str] = None,
                        badge: Optional[str] = None, data: Optional[Dict[str, Any]] = None) -> NotificationOutcome:
        if not recipient_id:
            return NotificationOutcome.skipped(self.channel, recipient_id, "missing recipient")

        message = self.build_message(recipient_id, title, body=body, tag=tag, icon=icon, badge=badge, data=data)

        if not self.enabled:
            logger.info(f"[SIMULATED] push to {message.topic}: {title}")
            return NotificationOutcome.sent(self.channel, recipient_id, simulated=True)

        try:
            message_id = await asyncio.to_thread(messaging.send, message, app=self._get_app())
        except Exception as e:
            if is_timeout_error(e):
                return NotificationOutcome.failed(self.channel, recipient_id, e, timed_out=True)
            logger.error(f"Error sending push '{title}' to {recipient_id}: {e}")
            return NotificationOutcome.failed(self.channel, recipient_id, e)

        logger.info(f"Push sent to {message.topic}: {title}")
        return NotificationOutcome.sent(self.channel, recipient_id, reference=message_id)


push_service = PushService()
