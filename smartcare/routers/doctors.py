# smartcare/routers/doctors.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .. import schemas, security
from ..dependencies import get_coordinator
from ..models import UserRole
from ..services.appointment_service import AppointmentCoordinator, AppointmentError
from ..store import StoreError
from .appointments import http_error

router = APIRouter(
    prefix="/doctors",
    tags=["Doctors & Availability"],
    responses={404: {"description": "Not found"}},
)


def _ensure_self_or_admin(doctor_id: str, current_user: schemas.TokenData) -> None:
    if current_user.role == UserRole.admin:
        return
    if current_user.role != UserRole.doctor or current_user.user_id != doctor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to manage this doctor's schedule.",
        )


@router.get("", response_model=List[schemas.DoctorSummary])
async def list_doctors(
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    return coordinator.get_all_doctors()


@router.get("/{doctor_id}/slots", response_model=schemas.SlotAvailability)
async def available_slots(
    doctor_id: str,
    date: str = Query(..., description="Day to check, YYYY-MM-DD"),
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    """Free and booked slots. A blacked-out day reports is_date_unavailable with no slots listed."""
    return coordinator.get_available_time_slots(doctor_id, date)


@router.get("/{doctor_id}/availability", response_model=schemas.AvailabilityResponse)
async def get_availability(
    doctor_id: str,
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    return schemas.AvailabilityResponse(
        doctor_id=doctor_id,
        unavailable_dates=coordinator.get_doctor_availability(doctor_id),
    )


@router.put("/{doctor_id}/availability", response_model=schemas.AvailabilityResponse)
async def set_availability(
    doctor_id: str,
    update: schemas.AvailabilityUpdate,
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    _ensure_self_or_admin(doctor_id, current_user)
    try:
        dates = coordinator.set_doctor_availability(doctor_id, update.unavailable_dates)
    except (AppointmentError, StoreError) as e:
        raise http_error(e) from e
    return schemas.AvailabilityResponse(doctor_id=doctor_id, unavailable_dates=dates)


@router.get("/{doctor_id}/patients", response_model=List[schemas.PatientSummary])
async def patients_seen(
    doctor_id: str,
    coordinator: AppointmentCoordinator = Depends(get_coordinator),
    current_user: schemas.TokenData = Depends(security.get_current_user),
):
    """Patients with at least one completed visit with this doctor."""
    _ensure_self_or_admin(doctor_id, current_user)
    return coordinator.get_available_patients(doctor_id)
