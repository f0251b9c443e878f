"""Appointment status transitions.

Explicit status changes go through ``resolve_transition``; rescheduling is the
one path back to ``pending`` and does not use this table.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from .models import AppointmentStatus, UserRole

Status = AppointmentStatus

# current status -> statuses a caller may request
ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset] = {
    Status.pending: frozenset({Status.approved, Status.confirmed, Status.declined, Status.cancelled}),
    Status.approved: frozenset({Status.completed, Status.cancelled}),
    Status.confirmed: frozenset({Status.completed, Status.cancelled}),
}

ACTIVITY_ACTIONS = {
    Status.approved: "Appointment Approved",
    Status.declined: "Appointment Declined",
    Status.cancelled: "Appointment Cancelled",
    Status.completed: "Appointment Completed",
    Status.pending: "Appointment Status Changed",
    Status.confirmed: "Appointment Confirmed",
}

TIMESTAMP_FIELDS = {
    Status.approved: "approved_at",
    Status.declined: "declined_at",
    Status.cancelled: "cancelled_at",
    Status.completed: "completed_at",
}


class InvalidTransitionError(Exception):
    def __init__(self, current, requested, reason: Optional[str] = None):
        self.current = current
        self.requested = requested
        message = f"Cannot move appointment from '{current}' to '{requested}'"
        super().__init__(f"{message}: {reason}" if reason else message)


def _coerce_status(value) -> AppointmentStatus:
    try:
        return AppointmentStatus(value)
    except ValueError:
        raise InvalidTransitionError("?", value, "unknown status") from None


def _coerce_role(value) -> Optional[UserRole]:
    if value in (None, ""):
        return None
    try:
        return UserRole(value)
    except ValueError:
        raise InvalidTransitionError("?", "?", f"unknown actor role '{value}'") from None


@dataclass(frozen=True)
class Transition:
    current: AppointmentStatus
    requested: AppointmentStatus
    final_status: AppointmentStatus
    cancelled_by: Optional[UserRole] = None

    @property
    def is_decline(self) -> bool:
        return self.final_status == Status.declined

    @property
    def notifications(self) -> dict:
        """Which party has an unacknowledged change after this transition."""
        if self.final_status in (Status.declined, Status.approved):
            return {"patient": True, "doctor": False}
        if self.final_status == Status.cancelled:
            return {
                "patient": self.cancelled_by != UserRole.patient,
                "doctor": self.cancelled_by != UserRole.doctor,
            }
        return {"patient": True, "doctor": True}

    @property
    def timestamp_field(self) -> Optional[str]:
        return TIMESTAMP_FIELDS.get(self.final_status)

    @property
    def activity_action(self) -> str:
        return ACTIVITY_ACTIONS.get(self.final_status, "Appointment Status Updated")

    @property
    def notify_role(self) -> Optional[UserRole]:
        """Party that receives email and in-app messages for this change, if any."""
        if self.final_status == Status.approved:
            return UserRole.patient
        if self.final_status in (Status.declined, Status.cancelled):
            if self.cancelled_by == UserRole.doctor:
                return UserRole.patient
            if self.cancelled_by == UserRole.patient:
                return UserRole.doctor
        return None

    def update_fields(self, now: datetime, note: Optional[str] = None) -> dict:
        fields = {"status": self.final_status, "notifications": self.notifications}
        if note:
            fields["note"] = note
        if self.timestamp_field:
            fields[self.timestamp_field] = now
        if self.final_status == Status.declined:
            fields["declined_by"] = UserRole.doctor.value
        elif self.final_status == Status.cancelled and self.cancelled_by:
            fields["cancelled_by"] = self.cancelled_by.value
        return fields


def resolve_transition(
    current: Union[str, AppointmentStatus],
    requested: Union[str, AppointmentStatus],
    cancelled_by: Union[str, UserRole, None] = None,
) -> Transition:
    """Look up the outcome of asking for ``requested`` while in ``current``.

    A doctor cancelling a request that was never accepted declines it.
    Raises InvalidTransitionError for pairs outside ALLOWED_TRANSITIONS.
    """
    current = _coerce_status(current)
    requested = _coerce_status(requested)
    actor = _coerce_role(cancelled_by)

    if requested not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        reason = "terminal status" if current.is_terminal else None
        raise InvalidTransitionError(current.value, requested.value, reason)

    final = requested
    if actor == UserRole.doctor and current == Status.pending and requested == Status.cancelled:
        final = Status.declined

    return Transition(current=current, requested=requested, final_status=final, cancelled_by=actor)
