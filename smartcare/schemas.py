# smartcare/schemas.py
from datetime import datetime, date as CalendarDate
from typing import List, Optional, Dict, Any, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import AppointmentMode, AppointmentStatus, UserRole
from .scheduling import TimeSlot, InvalidTimeSlotError


class NotificationFlags(BaseModel):
    patient: bool = False
    doctor: bool = False


class AppointmentSummary(BaseModel):
    diagnosis: Optional[str] = None
    recommendations: Optional[str] = None
    follow_up: Optional[str] = None


def _check_slot(value: str) -> str:
    try:
        return TimeSlot.parse(value).value
    except InvalidTimeSlotError as e:
        raise ValueError(str(e)) from e


# --- Appointment Schemas ---
class AppointmentCreate(BaseModel):
    patient_id: str
    doctor_id: str
    date: Union[CalendarDate, str]
    time: str
    mode: AppointmentMode = AppointmentMode.in_person
    type: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None
    patient_name: Optional[str] = None
    doctor_name: Optional[str] = None
    specialty: Optional[str] = None

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        return _check_slot(v)


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    note: Optional[str] = None


class AppointmentReschedule(BaseModel):
    date: Union[CalendarDate, str]
    time: str
    notes: Optional[str] = None

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        return _check_slot(v)


class AppointmentResponse(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    patient_name: Optional[str] = None
    doctor_name: Optional[str] = None
    specialty: Optional[str] = None
    date: str
    time: str
    mode: AppointmentMode
    type: Optional[str] = None
    notes: Optional[str] = None
    status: AppointmentStatus
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    rescheduled_at: Optional[datetime] = None
    note: Optional[str] = None
    cancelled_by: Optional[str] = None
    declined_by: Optional[str] = None
    rescheduled_by: Optional[str] = None
    rescheduled_by_id: Optional[str] = None
    auto_completed: bool = False
    notifications: NotificationFlags = Field(default_factory=NotificationFlags)
    summary: Optional[AppointmentSummary] = None
    has_summary: bool = False
    video_call_eligible: bool = False

    model_config = ConfigDict(from_attributes=True)


class AppointmentCreated(BaseModel):
    id: str
    status: AppointmentStatus


class AppointmentCounts(BaseModel):
    upcoming: int = 0
    pending: int = 0
    approved: int = 0
    declined: int = 0
    cancelled: int = 0
    completed: int = 0
    confirmed: int = 0
    total: int = 0


# --- Availability Schemas ---
class UnavailableSlot(BaseModel):
    time: str
    reason: str


class SlotAvailability(BaseModel):
    available: List[str]
    unavailable: List[UnavailableSlot]
    is_fully_booked: bool
    is_date_unavailable: bool
    unavailable_dates: List[str]


class AvailabilityUpdate(BaseModel):
    unavailable_dates: List[Union[CalendarDate, str]] = Field(default_factory=list)


class AvailabilityResponse(BaseModel):
    doctor_id: str
    unavailable_dates: List[str]


class DoctorSummary(BaseModel):
    id: str
    name: str
    specialty: str
    photo_url: Optional[str] = None
    unavailable_dates: List[str] = Field(default_factory=list)


class PatientSummary(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    photo_url: Optional[str] = None


# --- Notification Schemas ---
class NotificationResponse(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    type: str
    read: bool
    action_link: Optional[str] = None
    action_text: Optional[str] = None
    image_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


# --- Auth ---
class TokenData(BaseModel):
    user_id: str
    role: UserRole
