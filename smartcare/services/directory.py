import logging
from dataclasses import dataclass
from typing import Optional

from ..store import DocumentNotFound, DocumentStore, StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserProfile:
    id: str
    email: Optional[str]
    display_name: Optional[str]
    photo_url: Optional[str]
    specialty: Optional[str]
    role: Optional[str]


class UserDirectory:
    """Resolves user ids to the profile fields used in notifications."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get_user(self, user_id: Optional[str]) -> Optional[UserProfile]:
        if not user_id:
            return None
        try:
            doc = self.store.get("users", user_id)
        except DocumentNotFound:
            return None
        except StoreError as e:
            logger.warning(f"User lookup failed for {user_id}: {e}")
            return None
        role = doc.get("role")
        return UserProfile(
            id=doc["id"],
            email=doc.get("email"),
            display_name=doc.get("display_name"),
            photo_url=doc.get("photo_url"),
            specialty=doc.get("specialty"),
            role=role.value if hasattr(role, "value") else role,
        )
