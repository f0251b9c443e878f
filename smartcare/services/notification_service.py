import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional

from ..store import DocumentNotFound, DocumentStore, StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationOutcome:
    """Result of one best-effort delivery attempt. Never raised, only returned."""
    channel: str
    recipient: Optional[str]
    delivered: bool
    reference: Optional[str] = None
    error: Optional[str] = None
    timed_out: bool = False
    simulated: bool = False

    @classmethod
    def sent(cls, channel: str, recipient: Optional[str], reference: Optional[str] = None,
             simulated: bool = False) -> "NotificationOutcome":
        return cls(channel, recipient, True, reference=reference, simulated=simulated)

    @classmethod
    def failed(cls, channel: str, recipient: Optional[str], error: Any,
               timed_out: bool = False) -> "NotificationOutcome":
        return cls(channel, recipient, False, error=str(error), timed_out=timed_out)

    @classmethod
    def skipped(cls, channel: str, recipient: Optional[str], reason: str) -> "NotificationOutcome":
        return cls(channel, recipient, False, error=reason)


def is_timeout_error(error: BaseException) -> bool:
    """Connection timeouts may still have delivered; they are not reported as errors."""
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return True
    message = str(error)
    return "ETIMEDOUT" in message or "timeout" in message.lower()


def sanitize_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep only non-null, non-callable, JSON-serializable values."""
    clean = {}
    for key, value in (metadata or {}).items():
        if value is None or callable(value):
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            continue
        clean[key] = value
    return clean


class InAppNotifier:
    """Writes notification documents and keeps the recipient's badge counters current."""

    def __init__(self, store: DocumentStore, recent_limit: int = 10):
        self.store = store
        self.recent_limit = recent_limit

    def send(
        self,
        user_id: str,
        *,
        title: str,
        message: str,
        type: str = "info",
        action_link: Optional[str] = None,
        action_text: Optional[str] = None,
        image_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Persist the notification and return its id. Counter updates are best-effort."""
        notification_type = type or "info"
        notification_id = self.store.create("notifications", {
            "user_id": user_id,
            "title": title,
            "message": message,
            "type": notification_type,
            "read": False,
            "action_link": action_link or None,
            "action_text": action_text or None,
            "image_url": image_url or None,
            "metadata": sanitize_metadata(metadata),
        })

        try:
            user = self.store.get("users", user_id)
            self.store.increment("users", user_id, "unread_notifications")
            recent = [{
                "id": notification_id,
                "title": title,
                "created_at": datetime.now(timezone.utc).isoformat(),
                "type": notification_type,
            }] + list(user.get("recent_notifications") or [])
            self.store.update("users", user_id, {"recent_notifications": recent[:self.recent_limit]})
        except DocumentNotFound:
            logger.info(f"No user record for {user_id}; notification {notification_id} stored without counter update")
        except StoreError as e:
            logger.warning(f"Could not update notification counter for user {user_id}: {e}")

        return notification_id

    async def deliver(self, user_id: str, **notification: Any) -> NotificationOutcome:
        try:
            notification_id = self.send(user_id, **notification)
        except StoreError as e:
            logger.error(f"Error sending in-app notification to {user_id}: {e}")
            return NotificationOutcome.failed("in_app", user_id, e)
        return NotificationOutcome.sent("in_app", user_id, reference=notification_id)

    def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[dict]:
        filters = [("user_id", "==", user_id)]
        if unread_only:
            filters.append(("read", "==", False))
        return self.store.query("notifications", filters, order_by="-created_at", limit=limit)


class NotificationDispatcher:
    """Runs notification fan-out in the background so callers never wait on it."""

    def __init__(self):
        self._tasks: set = set()

    def fire(self, fan_out: Awaitable[List[NotificationOutcome]], label: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._guard(fan_out, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, fan_out: Awaitable[List[NotificationOutcome]], label: str) -> List[NotificationOutcome]:
        try:
            outcomes = list(await fan_out or [])
        except Exception as e:
            if not is_timeout_error(e):
                logger.exception(f"Error sending {label} notifications: {e}")
            return []
        for outcome in outcomes:
            if not outcome.delivered and not outcome.timed_out:
                logger.warning(f"{label}: {outcome.channel} notification to {outcome.recipient} not delivered ({outcome.error})")
        return outcomes

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every launched fan-out has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
