import logging
from typing import Any, Optional

from smartcare.models import UserRole
from smartcare.store import DocumentStore, StoreError

logger = logging.getLogger(__name__)


class ActivityLogger:
	"""Appends appointment activity to the activityLogs collection.

	Recording is best-effort: failures are logged and never reach the caller.
	"""

	def __init__(self, store: DocumentStore, category: str = 'APPOINTMENT'):
		self.store = store
		self.category = category

	def record(
		self,
		actor_role: str,
		action: str,
		details: Optional[str] = None,
		actor_id: Optional[str] = None,
		resource_id: Optional[str] = None,
		severity: str = 'INFO',
		**extra: Any
	) -> Optional[str]:
		"""Store one audit entry; returns its id or None when the write failed."""
		role = actor_role.value if isinstance(actor_role, UserRole) else str(actor_role)
		payload = {'message': details}
		if extra:
			payload.update(extra)
		try:
			return self.store.create('activityLogs', {
				'actor_id': actor_id,
				'actor_role': role,
				'action': action,
				'category': self.category,
				'severity': severity,
				'resource_type': 'appointment' if resource_id else None,
				'resource_id': resource_id,
				'details': payload,
			})
		except StoreError as e:
			logger.error(f"Failed to record activity '{action}' for {role} {actor_id}: {e}")
			return None

	def log_patient_activity(self, action: str, details: str, patient_id: str, **kwargs: Any) -> Optional[str]:
		return self.record(UserRole.patient, action, details, actor_id=patient_id, **kwargs)

	def log_doctor_activity(self, action: str, details: str, doctor_id: str, **kwargs: Any) -> Optional[str]:
		return self.record(UserRole.doctor, action, details, actor_id=doctor_id, **kwargs)
