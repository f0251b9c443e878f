# smartcare/models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Boolean, JSON, Index,
    Enum as SQLAlchemyEnum,
)
from .database import Base
import enum


class UserRole(str, enum.Enum):
    patient = "patient"
    doctor = "doctor"
    admin = "admin"


class AppointmentStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    declined = "declined"
    cancelled = "cancelled"
    completed = "completed"
    # Legacy value still present on older records; treated like approved
    confirmed = "confirmed"

    @property
    def is_active_booking(self) -> bool:
        """Occupies its slot for availability purposes."""
        return self in (AppointmentStatus.pending, AppointmentStatus.approved)

    @property
    def is_confirmed(self) -> bool:
        return self in (AppointmentStatus.approved, AppointmentStatus.confirmed)

    @property
    def is_terminal(self) -> bool:
        return self in (
            AppointmentStatus.declined,
            AppointmentStatus.cancelled,
            AppointmentStatus.completed,
        )


class AppointmentMode(str, enum.Enum):
    online = "online"
    in_person = "in-person"


class User(Base):
    """Profile record for patients, doctors and admins"""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True, index=True)
    display_name = Column(String(255), nullable=True)
    photo_url = Column(String(1024), nullable=True)
    specialty = Column(String(255), nullable=True)
    role = Column(SQLAlchemyEnum(UserRole, name="user_role"), nullable=False, default=UserRole.patient, index=True)

    # Notification badge bookkeeping
    unread_notifications = Column(Integer, nullable=False, default=0)
    recent_notifications = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class Appointment(Base):
    """A requested or scheduled encounter between one patient and one doctor"""
    __tablename__ = "appointments"
    __table_args__ = (
        Index('idx_appointments_doctor_date', 'doctor_id', 'date'),
        Index('idx_appointments_patient_date', 'patient_id', 'date'),
        Index('idx_appointments_status_date', 'status', 'date'),
    )

    id = Column(String(64), primary_key=True)
    patient_id = Column(String(64), nullable=False, index=True)
    doctor_id = Column(String(64), nullable=False, index=True)
    patient_name = Column(String(255), nullable=True)
    doctor_name = Column(String(255), nullable=True)
    specialty = Column(String(255), nullable=True)

    # Scheduling: normalized YYYY-MM-DD date plus one of the fixed slot labels
    date = Column(String(10), nullable=False)
    time = Column(String(16), nullable=False)
    mode = Column(SQLAlchemyEnum(AppointmentMode, name="appointment_mode", values_callable=lambda e: [m.value for m in e]),
                  nullable=False, default=AppointmentMode.in_person)
    type = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # Lifecycle
    status = Column(SQLAlchemyEnum(AppointmentStatus, name="appointment_status"), nullable=False,
                    default=AppointmentStatus.pending, index=True)
    created_by = Column(String(64), nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    declined_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    rescheduled_at = Column(DateTime(timezone=True), nullable=True)

    # Transition metadata
    note = Column(Text, nullable=True)
    cancelled_by = Column(String(20), nullable=True)
    declined_by = Column(String(20), nullable=True)
    rescheduled_by = Column(String(20), nullable=True)
    rescheduled_by_id = Column(String(64), nullable=True)
    auto_completed = Column(Boolean, nullable=False, default=False)

    # {"patient": bool, "doctor": bool}: which party has an unacknowledged change
    notifications = Column(JSON, nullable=True)
    # {"diagnosis", "recommendations", "follow_up"}
    summary = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class DoctorAvailability(Base):
    """Blackout dates for one doctor, keyed by the doctor id. Absent means fully available."""
    __tablename__ = "doctor_availability"

    id = Column(String(64), primary_key=True)
    doctor_id = Column(String(64), nullable=False, unique=True)
    unavailable_dates = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class Notification(Base):
    """In-app notification shown in a user's notification centre"""
    __tablename__ = "notifications"
    __table_args__ = (
        Index('idx_notifications_user_created', 'user_id', 'created_at'),
    )

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False, default="info")
    read = Column(Boolean, nullable=False, default=False)
    action_link = Column(String(1024), nullable=True)
    action_text = Column(String(255), nullable=True)
    image_url = Column(String(1024), nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class ActivityLog(Base):
    """Audit trail of appointment activity, tagged by actor role"""
    __tablename__ = "activity_logs"
    __table_args__ = (
        Index('idx_activity_actor_date', 'actor_id', 'created_at'),
        Index('idx_activity_resource', 'resource_type', 'resource_id'),
    )

    id = Column(String(64), primary_key=True)
    actor_id = Column(String(64), nullable=True)
    actor_role = Column(String(20), nullable=False)
    action = Column(String(100), nullable=False)
    category = Column(String(50), nullable=False, default="APPOINTMENT", index=True)
    severity = Column(String(20), nullable=False, default="INFO")  # INFO, WARN, ERROR
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(64), nullable=True)
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
