"""Appointment lifecycle coordination.

Creation, status transitions, rescheduling, lazy auto-completion and slot
computation. Document writes are awaited by the caller; email, push and
in-app messages are handed to the NotificationDispatcher and never block or
fail the operation that triggered them.
"""

import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, List, Optional

from ..compliance_logger import ActivityLogger
from ..lifecycle import resolve_transition, Transition
from ..models import AppointmentMode, AppointmentStatus, UserRole
from ..scheduling import (
    InvalidDateError, InvalidTimeSlotError, TimeSlot, clinic_timezone,
    format_date_for_display, is_video_call_type, normalize_date, parse_appointment_datetime,
)
from ..store import DocumentNotFound, DocumentStore, StoreError
from .directory import UserDirectory, UserProfile
from .email_service import EmailService
from .notification_service import InAppNotifier, NotificationDispatcher, NotificationOutcome
from .push_service import PushService

logger = logging.getLogger(__name__)

ROUTES = {
    UserRole.patient: "/dashboard/appointments",
    UserRole.doctor: "/doctor/appointments",
}
ACTIVE_BOOKING_STATUSES = [AppointmentStatus.pending.value, AppointmentStatus.approved.value]
SUMMARY_FIELDS = ("diagnosis", "recommendations", "follow_up")
PATIENT_LIST_LIMIT = 50
COMPLETED_LOOKUP_LIMIT = 100


class AppointmentError(Exception):
    """Base class for appointment failures surfaced to callers."""


class AppointmentNotFound(AppointmentError):
    def __init__(self, appointment_id: str):
        super().__init__(f"Appointment {appointment_id} not found")
        self.appointment_id = appointment_id


class AppointmentValidationError(AppointmentError, ValueError):
    """Missing or malformed input."""


class SlotUnavailableError(AppointmentError):
    """The requested slot is blacked out or already held by another booking."""

    def __init__(self, doctor_id: str, date: str, time: str, reason: str):
        super().__init__(f"{time} on {date} is not available with doctor {doctor_id}: {reason}")
        self.doctor_id = doctor_id
        self.date = date
        self.time = time
        self.reason = reason


def mode_display(mode) -> str:
    return "Online (Video Call)" if _value(mode) == AppointmentMode.online.value else "In-person Visit"


def _value(field) -> Any:
    return field.value if hasattr(field, "value") else field


def _status_of(appointment: Dict[str, Any]) -> Optional[AppointmentStatus]:
    try:
        return AppointmentStatus(appointment.get("status"))
    except ValueError:
        return None


def empty_slot_result(unavailable_dates: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "available": [],
        "unavailable": [],
        "is_fully_booked": False,
        "is_date_unavailable": False,
        "unavailable_dates": list(unavailable_dates or []),
    }


class AppointmentCoordinator:
    def __init__(
        self,
        store: DocumentStore,
        directory: UserDirectory,
        activity: ActivityLogger,
        email: EmailService,
        push: PushService,
        in_app: InAppNotifier,
        dispatcher: NotificationDispatcher,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[tzinfo] = None,
    ):
        self.store = store
        self.directory = directory
        self.activity = activity
        self.email = email
        self.push = push
        self.in_app = in_app
        self.dispatcher = dispatcher
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._tz = tz

    @property
    def tz(self) -> tzinfo:
        return self._tz or clinic_timezone()

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------ reads

    def get_appointment(self, appointment_id: str) -> Dict[str, Any]:
        if not appointment_id:
            raise AppointmentValidationError("Appointment ID is required")
        try:
            return self.store.get("appointments", appointment_id)
        except DocumentNotFound:
            raise AppointmentNotFound(appointment_id) from None

    # --------------------------------------------------------------- creation

    async def create_appointment(self, data: Dict[str, Any]) -> str:
        """Persist a new appointment and notify the party that did not create it.

        A doctor-created appointment is approved immediately; a patient
        request starts as pending.
        """
        for required in ("patient_id", "doctor_id", "date", "time", "created_by"):
            if not data.get(required):
                raise AppointmentValidationError(f"'{required}' is required")

        patient_id, doctor_id, created_by = data["patient_id"], data["doctor_id"], data["created_by"]
        if created_by not in (patient_id, doctor_id):
            raise AppointmentValidationError("created_by must be the patient or the doctor on the appointment")

        normalized_date = self._normalize(data["date"])
        slot = self._slot(data["time"])
        try:
            mode = AppointmentMode(_value(data.get("mode") or AppointmentMode.in_person))
        except ValueError:
            raise AppointmentValidationError(f"Unknown appointment mode '{data.get('mode')}'") from None

        self._ensure_slot_free(doctor_id, normalized_date, slot)

        status = AppointmentStatus.approved if created_by == doctor_id else AppointmentStatus.pending
        fields = {
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            "patient_name": data.get("patient_name"),
            "doctor_name": data.get("doctor_name"),
            "specialty": data.get("specialty"),
            "date": normalized_date,
            "time": slot.value,
            "mode": mode,
            "type": data.get("type"),
            "notes": data.get("notes"),
            "status": status,
            "created_by": created_by,
            "auto_completed": False,
            "notifications": {
                "patient": status == AppointmentStatus.approved,
                "doctor": status == AppointmentStatus.pending,
            },
        }
        appointment_id = self.store.create("appointments", fields)

        if created_by == patient_id:
            self.activity.log_patient_activity(
                "Appointment Requested",
                f"Patient requested an appointment with doctor (ID: {doctor_id}) for {normalized_date}",
                patient_id, resource_id=appointment_id,
            )
        else:
            self.activity.log_doctor_activity(
                "Appointment Created",
                f"Doctor created an appointment with patient (ID: {patient_id}) for {normalized_date}",
                doctor_id, resource_id=appointment_id,
            )

        appointment = {**fields, "id": appointment_id}
        self.dispatcher.fire(self._notify_created(appointment), "appointment creation")
        return appointment_id

    # ------------------------------------------------------------ transitions

    async def update_appointment_status(self, appointment_id: str, status: str,
                                        note: Optional[str] = None,
                                        cancelled_by: Optional[str] = None) -> Dict[str, Any]:
        """Apply an explicit status change and return the updated appointment.

        When ``cancelled_by`` is omitted the activity entry is attributed to
        the doctor, as older callers expect.
        """
        appointment = self.get_appointment(appointment_id)
        transition = resolve_transition(appointment["status"], status, cancelled_by)

        self.store.update("appointments", appointment_id, transition.update_fields(self.now(), note))
        self._log_status_change(appointment, transition)

        if transition.notify_role is not None:
            self.dispatcher.fire(self._notify_status_change(appointment, transition, note),
                                 f"appointment {transition.final_status.value}")
        return self.get_appointment(appointment_id)

    def _log_status_change(self, appointment: Dict[str, Any], transition: Transition) -> None:
        final = transition.final_status.value
        action = transition.activity_action
        resource_id = appointment["id"]

        if transition.cancelled_by == UserRole.doctor:
            verb = final if transition.final_status in (AppointmentStatus.declined, AppointmentStatus.cancelled) else "updated"
            self.activity.log_doctor_activity(
                action,
                f"Doctor {verb} appointment status to {final} for patient (ID: {appointment['patient_id']})",
                appointment["doctor_id"], resource_id=resource_id,
            )
        elif transition.cancelled_by == UserRole.patient:
            verb = "cancelled" if transition.final_status == AppointmentStatus.cancelled else "updated"
            self.activity.log_patient_activity(
                action,
                f"Patient {verb} appointment status to {final} with doctor (ID: {appointment['doctor_id']})",
                appointment["patient_id"], resource_id=resource_id,
            )
        elif transition.cancelled_by == UserRole.admin:
            self.activity.record(
                UserRole.admin, action,
                f"Admin updated appointment status to {final}",
                resource_id=resource_id,
            )
        else:
            self.activity.log_doctor_activity(
                action,
                f"Doctor updated appointment status to {final} for patient (ID: {appointment['patient_id']})",
                appointment["doctor_id"], resource_id=resource_id,
            )

    async def reschedule_appointment(self, appointment_id: str, new_date, new_time: str,
                                     notes: Optional[str] = None,
                                     rescheduled_by_role: Optional[str] = None,
                                     rescheduled_by_id: Optional[str] = None) -> Dict[str, Any]:
        """Move an appointment to a new slot. Always returns it to pending."""
        if not appointment_id or not new_date or not new_time:
            raise AppointmentValidationError("Missing required parameters for rescheduling")

        appointment = self.get_appointment(appointment_id)
        normalized_date = self._normalize(new_date)
        slot = self._slot(new_time)

        if rescheduled_by_role:
            try:
                role = UserRole(_value(rescheduled_by_role))
            except ValueError:
                raise AppointmentValidationError(f"Unknown role '{rescheduled_by_role}'") from None
        else:
            role = UserRole.patient if rescheduled_by_id == appointment["patient_id"] else UserRole.doctor

        self._ensure_slot_free(appointment["doctor_id"], normalized_date, slot, exclude_id=appointment_id)

        actor_id = rescheduled_by_id or (
            appointment["patient_id"] if role == UserRole.patient else appointment["doctor_id"]
        )
        fields = {
            "date": normalized_date,
            "time": slot.value,
            "status": AppointmentStatus.pending,
            "rescheduled_at": self.now(),
            "rescheduled_by": role.value,
            "rescheduled_by_id": actor_id,
            "notifications": {"patient": True, "doctor": True},
        }
        if notes:
            fields["notes"] = notes
        self.store.update("appointments", appointment_id, fields)

        if role == UserRole.patient:
            self.activity.log_patient_activity(
                "Appointment Rescheduled",
                f"Patient rescheduled appointment with doctor (ID: {appointment['doctor_id']}) to {normalized_date} at {slot.value}",
                appointment["patient_id"], resource_id=appointment_id,
            )
        else:
            self.activity.log_doctor_activity(
                "Appointment Rescheduled",
                f"Doctor rescheduled appointment with patient (ID: {appointment['patient_id']}) to {normalized_date} at {slot.value}",
                appointment["doctor_id"], resource_id=appointment_id,
            )

        self.dispatcher.fire(
            self._notify_rescheduled(appointment, normalized_date, slot.value, notes, role),
            "appointment reschedule",
        )
        return self.get_appointment(appointment_id)

    async def update_appointment_summary(self, appointment_id: str, summary: Dict[str, Any]) -> Dict[str, Any]:
        """Attach the post-visit summary; the patient hears about it in-app and by push."""
        appointment = self.get_appointment(appointment_id)
        clean = {key: (summary or {}).get(key) for key in SUMMARY_FIELDS}
        self.store.update("appointments", appointment_id, {"summary": clean})

        self.activity.log_doctor_activity(
            "Appointment Summary Added",
            f"Doctor added summary to appointment with patient (ID: {appointment['patient_id']})",
            appointment["doctor_id"], resource_id=appointment_id,
        )
        self.dispatcher.fire(self._notify_summary(appointment), "appointment summary")
        return self.get_appointment(appointment_id)

    def mark_appointment_notifications_read(self, appointment_id: str, role: str) -> bool:
        if not appointment_id or not role:
            raise AppointmentValidationError("Appointment ID and user role are required")
        try:
            role = UserRole(_value(role))
        except ValueError:
            raise AppointmentValidationError(f"Unknown role '{role}'") from None

        appointment = self.get_appointment(appointment_id)
        notifications = dict(appointment.get("notifications") or {})
        notifications[role.value] = False
        self.store.update("appointments", appointment_id, {"notifications": notifications})
        return True

    # ---------------------------------------------------------- auto-complete

    def _is_past_due(self, appointment: Dict[str, Any], now: Optional[datetime] = None) -> bool:
        status = _status_of(appointment)
        if status is None or not status.is_confirmed:
            return False
        scheduled = parse_appointment_datetime(appointment.get("date"), appointment.get("time"), self.tz)
        if scheduled is None:
            return False
        return (now or self.now()) > scheduled

    def _mark_completed(self, appointment_id: str) -> bool:
        try:
            self.store.update("appointments", appointment_id, {
                "status": AppointmentStatus.completed,
                "completed_at": self.now(),
                "auto_completed": True,
            })
        except StoreError as e:
            logger.error(f"Error marking appointment {appointment_id} completed: {e}")
            return False
        logger.info(f"Appointment {appointment_id} automatically marked as completed")
        return True

    def check_and_update_appointment_status(self, appointment: Optional[Dict[str, Any]]) -> bool:
        """Complete an approved appointment whose scheduled time has passed. No notifications."""
        if not appointment or not appointment.get("id"):
            return False
        if not self._is_past_due(appointment):
            return False
        return self._mark_completed(appointment["id"])

    def batch_check_appointment_status(self, appointments: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        updated = []
        now = self.now()
        for appointment in appointments or []:
            if not appointment.get("id") or not self._is_past_due(appointment, now):
                continue
            if self._mark_completed(appointment["id"]):
                updated.append({**appointment, "status": AppointmentStatus.completed, "auto_completed": True})
        return updated

    def _complete_past_due(self, appointments: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        now = self.now()
        result = []
        for appointment in appointments:
            if self._is_past_due(appointment, now):
                self._mark_completed(appointment["id"])
                appointment = {**appointment, "status": AppointmentStatus.completed, "auto_completed": True}
            result.append(appointment)
        return result

    @staticmethod
    def _participant_field(role) -> str:
        return "doctor_id" if _value(role) == UserRole.doctor.value else "patient_id"

    def get_user_appointments(self, user_id: str, role: str,
                              callback: Callable[[List[Dict[str, Any]]], None]) -> Callable[[], None]:
        """Stream a user's appointments ordered by date.

        Every emission completes past-due approved appointments before the
        callback sees them. Returns the unsubscribe function.
        """
        if not user_id:
            logger.error("User ID is required to watch appointments")
            callback([])
            return lambda: None

        def on_change(appointments: List[Dict[str, Any]]) -> None:
            callback(self._complete_past_due(appointments))

        return self.store.subscribe(
            "appointments", [(self._participant_field(role), "==", user_id)], "date", on_change,
        )

    def list_user_appointments(self, user_id: str, role: str) -> List[Dict[str, Any]]:
        appointments = self.store.query(
            "appointments", [(self._participant_field(role), "==", user_id)], order_by="date",
        )
        return self._complete_past_due(appointments)

    # ------------------------------------------------------------ availability

    def _blackout_dates(self, doctor_id: str) -> List[str]:
        try:
            record = self.store.get("doctorAvailability", doctor_id)
        except DocumentNotFound:
            return []
        except StoreError as e:
            logger.error(f"Error getting availability for doctor {doctor_id}: {e}")
            return []
        dates = []
        for value in record.get("unavailable_dates") or []:
            try:
                dates.append(normalize_date(value, self.tz))
            except InvalidDateError:
                logger.warning(f"Skipping malformed blackout date {value!r} for doctor {doctor_id}")
        return dates

    def get_available_time_slots(self, doctor_id: str, date) -> Dict[str, Any]:
        """Free and booked slots for one doctor on one day.

        A blacked-out day reports no slots at all. Lookup failures give an
        empty result instead of an error.
        """
        if not doctor_id or not date:
            logger.error("Missing doctor or date for slot lookup")
            return empty_slot_result()
        try:
            normalized_date = normalize_date(date, self.tz)
        except InvalidDateError as e:
            logger.error(f"Slot lookup for doctor {doctor_id}: {e}")
            return empty_slot_result()

        unavailable_dates = self._blackout_dates(doctor_id)
        if normalized_date in unavailable_dates:
            result = empty_slot_result(unavailable_dates)
            result["is_date_unavailable"] = True
            return result

        try:
            bookings = self.store.query("appointments", [
                ("doctor_id", "==", doctor_id),
                ("date", "==", normalized_date),
                ("status", "in", ACTIVE_BOOKING_STATUSES),
            ])
        except StoreError as e:
            logger.error(f"Error getting bookings for doctor {doctor_id} on {normalized_date}: {e}")
            return empty_slot_result()

        booked = [booking["time"] for booking in bookings]
        available = [label for label in TimeSlot.labels() if label not in booked]
        return {
            "available": available,
            "unavailable": [{"time": label, "reason": "Already Booked"} for label in booked],
            "is_fully_booked": not available and bool(booked),
            "is_date_unavailable": False,
            "unavailable_dates": unavailable_dates,
        }

    def set_doctor_availability(self, doctor_id: str, unavailable_dates: List[Any]) -> List[str]:
        if not doctor_id:
            raise AppointmentValidationError("Doctor ID is required")
        normalized = sorted({self._normalize(value) for value in unavailable_dates or [] if value})

        try:
            self.store.update("doctorAvailability", doctor_id, {"unavailable_dates": normalized})
        except DocumentNotFound:
            self.store.create("doctorAvailability", {
                "doctor_id": doctor_id,
                "unavailable_dates": normalized,
            }, doc_id=doctor_id)

        self.activity.log_doctor_activity(
            "Availability Updated",
            f"Doctor updated their availability schedule ({len(normalized)} unavailable dates)",
            doctor_id,
        )
        return normalized

    def get_doctor_availability(self, doctor_id: str) -> List[str]:
        if not doctor_id:
            raise AppointmentValidationError("Doctor ID is required")
        return self._blackout_dates(doctor_id)

    def get_all_doctors(self) -> List[Dict[str, Any]]:
        try:
            users = self.store.query("users", [("role", "==", UserRole.doctor.value)], order_by="display_name")
        except StoreError as e:
            logger.error(f"Error getting doctors: {e}")
            return []
        return [
            {
                "id": user["id"],
                "name": user.get("display_name") or "Unknown Doctor",
                "specialty": user.get("specialty") or "General Practitioner",
                "photo_url": user.get("photo_url"),
                "unavailable_dates": self._blackout_dates(user["id"]),
            }
            for user in users
        ]

    def get_available_patients(self, doctor_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Patients a doctor may act for; with ``doctor_id``, only those they have completed a visit with."""
        try:
            patients = self.store.query("users", [("role", "==", UserRole.patient.value)],
                                        order_by="display_name", limit=PATIENT_LIST_LIMIT)
        except StoreError as e:
            logger.error(f"Error getting patients: {e}")
            return []

        if doctor_id:
            try:
                completed = self.store.query("appointments", [
                    ("doctor_id", "==", doctor_id),
                    ("status", "==", AppointmentStatus.completed.value),
                ], limit=COMPLETED_LOOKUP_LIMIT)
            except StoreError as e:
                logger.error(f"Error filtering patients by completed appointments: {e}")
            else:
                seen = {appointment["patient_id"] for appointment in completed}
                patients = [patient for patient in patients if patient["id"] in seen]

        return [
            {
                "id": patient["id"],
                "name": patient.get("display_name") or "Unknown Patient",
                "email": patient.get("email"),
                "photo_url": patient.get("photo_url"),
            }
            for patient in patients
        ]

    def get_appointment_counts(self, user_id: str, role: str) -> Dict[str, int]:
        if not user_id or not role:
            raise AppointmentValidationError("User ID and role are required")
        counts = {"upcoming": 0, "total": 0}
        counts.update({status.value: 0 for status in AppointmentStatus})

        try:
            appointments = self.store.query("appointments", [(self._participant_field(role), "==", user_id)])
        except StoreError as e:
            logger.error(f"Error getting appointment counts for {user_id}: {e}")
            return counts

        today = normalize_date(self.now(), self.tz)
        for appointment in appointments:
            counts["total"] += 1
            status = _status_of(appointment)
            if status is None:
                continue
            counts[status.value] += 1
            if status == AppointmentStatus.approved and appointment.get("date", "") >= today:
                counts["upcoming"] += 1
        return counts

    # ---------------------------------------------------------------- queries

    @staticmethod
    def has_summary(appointment: Optional[Dict[str, Any]]) -> bool:
        summary = (appointment or {}).get("summary") or {}
        return any(summary.get(key) for key in SUMMARY_FIELDS)

    @staticmethod
    def is_eligible_for_video_call(appointment: Optional[Dict[str, Any]], role: str = UserRole.patient.value) -> bool:
        """Only the doctor starts calls, and only for confirmed follow-up/virtual visits."""
        if not appointment:
            return False
        status = _status_of(appointment)
        if status is None or not status.is_confirmed:
            return False
        return is_video_call_type(appointment.get("type")) and _value(role) == UserRole.doctor.value

    # ----------------------------------------------------------------- helpers

    def _normalize(self, value) -> str:
        try:
            normalized = normalize_date(value, self.tz)
        except InvalidDateError as e:
            raise AppointmentValidationError(str(e)) from e
        if not normalized:
            raise AppointmentValidationError("Date is required")
        return normalized

    def _ensure_slot_free(self, doctor_id: str, normalized_date: str, slot: TimeSlot,
                          exclude_id: Optional[str] = None) -> None:
        """Only one pending or approved appointment may hold a doctor's slot."""
        if normalized_date in self._blackout_dates(doctor_id):
            raise SlotUnavailableError(doctor_id, normalized_date, slot.value, "Doctor unavailable on this date")
        holders = self.store.query("appointments", [
            ("doctor_id", "==", doctor_id),
            ("date", "==", normalized_date),
            ("time", "==", slot.value),
            ("status", "in", ACTIVE_BOOKING_STATUSES),
        ])
        if any(holder["id"] != exclude_id for holder in holders):
            raise SlotUnavailableError(doctor_id, normalized_date, slot.value, "Already Booked")

    @staticmethod
    def _slot(label: str) -> TimeSlot:
        try:
            return TimeSlot.parse(label)
        except InvalidTimeSlotError as e:
            raise AppointmentValidationError(str(e)) from e

    def _context(self, appointment: Dict[str, Any], patient: Optional[UserProfile],
                 doctor: Optional[UserProfile], **extra: Any) -> Dict[str, Any]:
        patient_name = appointment.get("patient_name") or (patient and patient.display_name) or "Patient"
        doctor_name = appointment.get("doctor_name") or (doctor and doctor.display_name) or "Doctor"
        specialty = appointment.get("specialty")
        context = {
            "patient_name": patient_name,
            "doctor_name": doctor_name,
            "doctor_label": f"{doctor_name} ({specialty})" if specialty else doctor_name,
            "date_display": format_date_for_display(appointment.get("date")),
            "time": appointment.get("time"),
            "appointment_type": appointment.get("type") or "Consultation",
            "mode_display": mode_display(appointment.get("mode")),
            "is_online": _value(appointment.get("mode")) == AppointmentMode.online.value,
            "notes": appointment.get("notes"),
            "note": None,
        }
        context.update(extra)
        return context

    async def _email(self, profile: Optional[UserProfile], recipient_id: str, template: str,
                     context: Dict[str, Any]) -> NotificationOutcome:
        return await self.email.send_templated_email(
            profile.email if profile else None, template, context, recipient_id=recipient_id,
        )

    # ----------------------------------------------------------- fan-out bodies

    async def _notify_created(self, appointment: Dict[str, Any]) -> List[NotificationOutcome]:
        patient = self.directory.get_user(appointment["patient_id"])
        doctor = self.directory.get_user(appointment["doctor_id"])
        patient_photo = patient.photo_url if patient else None
        doctor_photo = doctor.photo_url if doctor else None

        if appointment["status"] == AppointmentStatus.pending:
            context = self._context(appointment, patient, doctor,
                                    subject=f"New Appointment Request - {appointment.get('patient_name') or 'Patient'}")
            email = await self._email(doctor, appointment["doctor_id"], "appointment_request", context)
            in_app = await self.in_app.deliver(
                appointment["doctor_id"],
                title="New Appointment Request",
                message=f"{context['patient_name']} has requested an appointment on {context['date_display']} at {context['time']}",
                type="appointment",
                action_link=ROUTES[UserRole.doctor],
                action_text="View Appointment",
                image_url=patient_photo,
                metadata={
                    "appointment_id": appointment["id"],
                    "patient_id": appointment["patient_id"],
                    "patient_name": context["patient_name"],
                    "patient_photo_url": patient_photo,
                    "date": appointment["date"],
                    "time": appointment["time"],
                    "appointment_type": context["appointment_type"],
                    "scheduled_by": UserRole.patient.value,
                },
            )
            return [email, in_app]

        context = self._context(appointment, patient, doctor,
                                subject=f"Follow-up Appointment Scheduled - Dr. {appointment.get('doctor_name') or 'Doctor'}")
        email = await self._email(patient, appointment["patient_id"], "appointment_scheduled", context)
        in_app = await self.in_app.deliver(
            appointment["patient_id"],
            title="Appointment Scheduled",
            message=(f"Dr. {context['doctor_name']} has scheduled you for a follow-up appointment on "
                     f"{context['date_display']} at {context['time']}. The appointment has been automatically confirmed."),
            type="appointment",
            action_link=ROUTES[UserRole.patient],
            action_text="View Appointment",
            image_url=doctor_photo,
            metadata={
                "appointment_id": appointment["id"],
                "doctor_id": appointment["doctor_id"],
                "doctor_name": context["doctor_name"],
                "doctor_photo_url": doctor_photo,
                "date": appointment["date"],
                "time": appointment["time"],
                "status": AppointmentStatus.approved.value,
                "scheduled_by": UserRole.doctor.value,
                "appointment_type": "Follow-up",
            },
        )
        return [email, in_app]

    async def _notify_status_change(self, appointment: Dict[str, Any], transition: Transition,
                                    note: Optional[str]) -> List[NotificationOutcome]:
        patient = self.directory.get_user(appointment["patient_id"])
        doctor = self.directory.get_user(appointment["doctor_id"])
        patient_photo = patient.photo_url if patient else None
        doctor_photo = doctor.photo_url if doctor else None
        final = transition.final_status
        context = self._context(appointment, patient, doctor, note=note, is_decline=transition.is_decline)

        if final == AppointmentStatus.approved:
            context["subject"] = f"Appointment Approved - Dr. {context['doctor_name']}"
            email = await self._email(patient, appointment["patient_id"], "appointment_approved", context)
            in_app = await self.in_app.deliver(
                appointment["patient_id"],
                title="Appointment Approved",
                message=(f"Your booking has been approved{f'. {note}' if note else ''} "
                         f"on {context['date_display']} at {context['time']}"),
                type="appointment",
                action_link=ROUTES[UserRole.patient],
                action_text="View Appointment",
                image_url=doctor_photo,
                metadata={
                    "appointment_id": appointment["id"],
                    "doctor_id": appointment["doctor_id"],
                    "doctor_name": context["doctor_name"],
                    "doctor_photo_url": doctor_photo,
                    "date": appointment["date"],
                    "time": appointment["time"],
                    "status": final.value,
                    "doctor_note": note,
                },
            )
            return [email, in_app]

        if transition.notify_role == UserRole.patient:
            if transition.is_decline:
                context["subject"] = f"Appointment Request Declined - Dr. {context['doctor_name']}"
                title = "Appointment Request Declined"
                message = (f"Your booking was declined{f' due to {note}' if note else ''} "
                           f"on {context['date_display']} at {context['time']}")
            else:
                context["subject"] = f"Appointment Cancelled - Dr. {context['doctor_name']}"
                title = "Appointment Cancelled"
                message = (f"Dr. {context['doctor_name']} has cancelled your appointment on "
                           f"{context['date_display']} at {context['time']}{f'. Reason: {note}' if note else ''}")
            email = await self._email(patient, appointment["patient_id"], "appointment_withdrawn_patient", context)
            in_app = await self.in_app.deliver(
                appointment["patient_id"],
                title=title,
                message=message,
                type="appointment",
                action_link=ROUTES[UserRole.patient],
                action_text="View Appointments",
                image_url=doctor_photo,
                metadata={
                    "appointment_id": appointment["id"],
                    "doctor_id": appointment["doctor_id"],
                    "doctor_name": context["doctor_name"],
                    "doctor_photo_url": doctor_photo,
                    "date": appointment["date"],
                    "time": appointment["time"],
                    "status": final.value,
                    "cancelled_by": None if transition.is_decline else UserRole.doctor.value,
                    "declined_by": UserRole.doctor.value if transition.is_decline else None,
                    "is_decline": transition.is_decline,
                    "reason": note,
                },
            )
            return [email, in_app]

        context["subject"] = f"Appointment Cancelled - {context['patient_name']}"
        email = await self._email(doctor, appointment["doctor_id"], "appointment_cancelled_doctor", context)
        in_app = await self.in_app.deliver(
            appointment["doctor_id"],
            title="Appointment Cancelled",
            message=(f"{context['patient_name']} has cancelled their appointment on {context['date_display']} "
                     f"at {context['time']}{f'. Reason: {note}' if note else ''}"),
            type="appointment",
            action_link=ROUTES[UserRole.doctor],
            action_text="View Appointments",
            image_url=patient_photo,
            metadata={
                "appointment_id": appointment["id"],
                "patient_id": appointment["patient_id"],
                "patient_name": context["patient_name"],
                "patient_photo_url": patient_photo,
                "date": appointment["date"],
                "time": appointment["time"],
                "status": final.value,
                "cancelled_by": UserRole.patient.value,
                "reason": note,
            },
        )
        return [email, in_app]

    async def _notify_rescheduled(self, appointment: Dict[str, Any], new_date: str, new_time: str,
                                  notes: Optional[str], rescheduled_by: UserRole) -> List[NotificationOutcome]:
        patient = self.directory.get_user(appointment["patient_id"])
        doctor = self.directory.get_user(appointment["doctor_id"])
        patient_photo = patient.photo_url if patient else None
        doctor_photo = doctor.photo_url if doctor else None

        moved = {**appointment, "date": new_date, "time": new_time, "notes": notes}
        context = self._context(
            moved, patient, doctor,
            old_date_display=format_date_for_display(appointment.get("date")),
            old_time=appointment.get("time"),
            rescheduled_by=rescheduled_by.value,
        )
        by_patient = rescheduled_by == UserRole.patient
        if by_patient:
            recipient_id, recipient = appointment["doctor_id"], doctor
            actor_label, actor_photo = context["patient_name"], patient_photo
            route, closing = ROUTES[UserRole.doctor], "Please review and approve."
            context["subject"] = f"Appointment Rescheduled by {actor_label}"
        else:
            recipient_id, recipient = appointment["patient_id"], patient
            actor_label, actor_photo = f"Dr. {context['doctor_name']}", doctor_photo
            route, closing = ROUTES[UserRole.patient], "Please review and confirm."
            context["subject"] = f"Appointment Rescheduled by {actor_label}"

        metadata = {
            "appointment_id": appointment["id"],
            "patient_id": appointment["patient_id"],
            "patient_name": context["patient_name"],
            "doctor_id": appointment["doctor_id"],
            "doctor_name": context["doctor_name"],
            "actor_photo_url": actor_photo,
            "date": new_date,
            "time": new_time,
            "old_date": appointment.get("date"),
            "old_time": appointment.get("time"),
            "status": AppointmentStatus.pending.value,
            "rescheduled_by": rescheduled_by.value,
            "notes": notes,
        }

        email = await self._email(recipient, recipient_id, "appointment_rescheduled", context)
        in_app = await self.in_app.deliver(
            recipient_id,
            title="Appointment Rescheduled",
            message=(f"{actor_label} rescheduled your appointment from {context['old_date_display']} at "
                     f"{context['old_time']} to {context['date_display']} at {new_time}. {closing}"),
            type="appointment",
            action_link=route,
            action_text="View Appointment",
            image_url=actor_photo,
            metadata=metadata,
        )
        push = await self.push.send_push(
            recipient_id,
            "Appointment Rescheduled",
            body=f"{actor_label} rescheduled your appointment to {context['date_display']} at {new_time}",
            tag="appointment-rescheduled",
            icon=actor_photo,
            badge=self.push.default_icon,
            data={"url": route, **metadata},
        )
        return [email, in_app, push]

    async def _notify_summary(self, appointment: Dict[str, Any]) -> List[NotificationOutcome]:
        doctor = self.directory.get_user(appointment["doctor_id"])
        doctor_photo = doctor.photo_url if doctor else None
        context = self._context(appointment, None, doctor)
        message = (f"Your appointment summary with Dr. {context['doctor_name']} "
                   f"from {context['date_display']} is now available.")
        metadata = {
            "appointment_id": appointment["id"],
            "doctor_id": appointment["doctor_id"],
            "doctor_name": context["doctor_name"],
            "doctor_photo_url": doctor_photo,
            "patient_id": appointment["patient_id"],
            "date": appointment.get("date"),
            "time": appointment.get("time"),
            "status": AppointmentStatus.completed.value,
            "has_summary": True,
        }

        in_app = await self.in_app.deliver(
            appointment["patient_id"],
            title="Appointment Summary Available",
            message=message,
            type="appointment",
            action_link=ROUTES[UserRole.patient],
            action_text="View Summary",
            image_url=doctor_photo,
            metadata=metadata,
        )
        push = await self.push.send_push(
            appointment["patient_id"],
            "Appointment Summary Available",
            body=message,
            tag="appointment-summary",
            icon=doctor_photo,
            badge=self.push.default_icon,
            data={"url": ROUTES[UserRole.patient], **metadata},
        )
        return [in_app, push]
