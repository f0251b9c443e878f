# smartcare/routers/appointments.py
import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from .. import schemas, security
from ..dependencies import get_coordinator
from ..lifecycle import InvalidTransitionError
from ..models import AppointmentStatus, UserRole
from ..services.appointment_service import (
    AppointmentCoordinator, AppointmentError, AppointmentNotFound, AppointmentValidationError,
    SlotUnavailableError,
)
from ..store import StoreError

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Appointments"],
    responses={404: {"description": "Not found"}},
)

DOCTOR_ONLY_STATUSES = {
    AppointmentStatus.approved,
    AppointmentStatus.confirmed,
    AppointmentStatus.declined,
    AppointmentStatus.completed,
}


def http_error(exc: Exception) -> HTTPException:
    """Map coordinator failures onto HTTP responses."""
    if isinstance(exc, AppointmentNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (InvalidTransitionError, SlotUnavailableError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, AppointmentValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    logger.error(f"Appointment operation failed: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred while saving the appointment.",
    )


class LatestSnapshot:
    """Single-slot mailbox; a slow reader only ever sees the newest appointment list."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)

    def publish(self, appointments: list) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(appointments)

    @property
    def has_update(self) -> bool:
        return not self._queue.empty()

    async def next(self) -> list:
        return await self._queue.get()


def to_response(coordinator: AppointmentCoordinator, appointment: dict, role: str) -> schemas.AppointmentResponse:
    return schemas.AppointmentResponse(
        **{**appointment, "notifications": appointment.get("notifications") or {}},
        has_summary=coordinator.has_summary(appointment),
        video_call_eligible=coordinator.is_eligible_for_video_call(appointment, role),
    )


def _load_for_participant(coordinator: AppointmentCoordinator, appointment_id: str,
                          user: schemas.TokenData) -> dict:
    try:
        appointment = coordinator.get_appointment(appointment_id)
    except (AppointmentError, StoreError) as e:
        raise http_error(e) from e
    if user.role != UserRole.admin and user.user_id not in (appointment["patient_id"], appointment["doctor_id"]):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a participant of this appointment")
    return appointment


@router.post("/appointments", response_model=schemas.AppointmentCreated, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    appointment: schemas.AppointmentCreate,
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    """Book (patient) or schedule (doctor) an appointment. The caller is recorded as its creator."""
    if current_user.user_id not in (appointment.patient_id, appointment.doctor_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Appointments can only be created by the patient or the doctor involved.",
        )
    try:
        appointment_id = await coordinator.create_appointment({
            **appointment.model_dump(),
            "created_by": current_user.user_id,
        })
        created = coordinator.get_appointment(appointment_id)
    except (AppointmentError, StoreError) as e:
        raise http_error(e) from e
    return schemas.AppointmentCreated(id=appointment_id, status=created["status"])


@router.get("/appointments", response_model=List[schemas.AppointmentResponse])
async def list_my_appointments(
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    try:
        appointments = coordinator.list_user_appointments(current_user.user_id, current_user.role.value)
    except StoreError as e:
        raise http_error(e) from e
    return [to_response(coordinator, item, current_user.role.value) for item in appointments]


@router.get("/appointments/counts", response_model=schemas.AppointmentCounts)
async def appointment_counts(
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    return coordinator.get_appointment_counts(current_user.user_id, current_user.role.value)


@router.get("/appointments/{appointment_id}", response_model=schemas.AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    appointment = _load_for_participant(coordinator, appointment_id, current_user)
    return to_response(coordinator, appointment, current_user.role.value)


@router.patch("/appointments/{appointment_id}/status", response_model=schemas.AppointmentResponse)
async def update_appointment_status(
    appointment_id: str,
    update: schemas.AppointmentStatusUpdate,
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    """Approve, decline, cancel or complete. A doctor cancelling a pending request declines it."""
    _load_for_participant(coordinator, appointment_id, current_user)
    if current_user.role == UserRole.patient and update.status in DOCTOR_ONLY_STATUSES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Patients may only cancel appointments")
    try:
        updated = await coordinator.update_appointment_status(
            appointment_id, update.status.value, note=update.note, cancelled_by=current_user.role.value,
        )
    except (AppointmentError, InvalidTransitionError, StoreError) as e:
        raise http_error(e) from e
    return to_response(coordinator, updated, current_user.role.value)


@router.post("/appointments/{appointment_id}/reschedule", response_model=schemas.AppointmentResponse)
async def reschedule_appointment(
    appointment_id: str,
    reschedule: schemas.AppointmentReschedule,
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    _load_for_participant(coordinator, appointment_id, current_user)
    try:
        updated = await coordinator.reschedule_appointment(
            appointment_id, reschedule.date, reschedule.time, notes=reschedule.notes,
            rescheduled_by_role=current_user.role.value, rescheduled_by_id=current_user.user_id,
        )
    except (AppointmentError, StoreError) as e:
        raise http_error(e) from e
    return to_response(coordinator, updated, current_user.role.value)


@router.put("/appointments/{appointment_id}/summary", response_model=schemas.AppointmentResponse)
async def update_appointment_summary(
    appointment_id: str,
    summary: schemas.AppointmentSummary,
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.require_role(UserRole.doctor.value)),
):
    appointment = _load_for_participant(coordinator, appointment_id, current_user)
    if appointment["doctor_id"] != current_user.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the treating doctor can add a summary")
    try:
        updated = await coordinator.update_appointment_summary(appointment_id, summary.model_dump())
    except (AppointmentError, StoreError) as e:
        raise http_error(e) from e
    return to_response(coordinator, updated, current_user.role.value)


@router.post("/appointments/{appointment_id}/notifications/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_notifications_read(
    appointment_id: str,
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.require_role(UserRole.patient.value, UserRole.doctor.value)),
):
    _load_for_participant(coordinator, appointment_id, current_user)
    try:
        coordinator.mark_appointment_notifications_read(appointment_id, current_user.role.value)
    except (AppointmentError, StoreError) as e:
        raise http_error(e) from e


@router.websocket("/appointments/live")
async def stream_appointments(
    websocket: WebSocket,
    token: Optional[str] = None,
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
):
    """Push the caller's full appointment list whenever any appointment changes."""
    user = security.user_from_token(token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    updates = LatestSnapshot()
    unsubscribe = coordinator.get_user_appointments(user.user_id, user.role.value, updates.publish)

    async def forward():
        while True:
            appointments = await updates.next()
            await websocket.send_json([
                to_response(coordinator, item, user.role.value).model_dump(mode="json") for item in appointments
            ])

    sender = asyncio.create_task(forward())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Appointment stream closed for user {user.user_id}")
    finally:
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
        unsubscribe()
