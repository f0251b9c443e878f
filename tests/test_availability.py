# tests/test_availability.py
from datetime import date

import pytest

from smartcare.models import AppointmentMode, AppointmentStatus, UserRole
from smartcare.scheduling import TimeSlot
from smartcare.services.appointment_service import AppointmentValidationError

from conftest import DOCTOR_ID, PATIENT_ID


def book(store, time, status=AppointmentStatus.approved, day="2025-03-10", doctor_id=DOCTOR_ID):
    return store.create("appointments", {
        "patient_id": PATIENT_ID,
        "doctor_id": doctor_id,
        "date": day,
        "time": time,
        "mode": AppointmentMode.in_person,
        "status": status,
        "created_by": PATIENT_ID,
        "notifications": {"patient": False, "doctor": False},
    })


def test_open_day_lists_every_slot(coordinator):
    result = coordinator.get_available_time_slots(DOCTOR_ID, "2025-03-10")

    assert result["available"] == TimeSlot.labels()
    assert result["unavailable"] == []
    assert result["is_fully_booked"] is False
    assert result["is_date_unavailable"] is False
    assert result["unavailable_dates"] == []


def test_only_pending_and_approved_bookings_hold_a_slot(coordinator, store):
    book(store, "9:00 AM", AppointmentStatus.pending)
    book(store, "9:30 AM", AppointmentStatus.approved)
    book(store, "10:00 AM", AppointmentStatus.cancelled)
    book(store, "10:30 AM", AppointmentStatus.declined)
    book(store, "11:00 AM", AppointmentStatus.approved, day="2025-03-11")
    book(store, "11:30 AM", AppointmentStatus.approved, doctor_id="doctor-2")

    result = coordinator.get_available_time_slots(DOCTOR_ID, date(2025, 3, 10))

    assert "9:00 AM" not in result["available"]
    assert "9:30 AM" not in result["available"]
    assert len(result["available"]) == 12
    assert sorted(item["time"] for item in result["unavailable"]) == ["9:00 AM", "9:30 AM"]
    assert {item["reason"] for item in result["unavailable"]} == {"Already Booked"}
    assert result["is_fully_booked"] is False


def test_fully_booked_day(coordinator, store):
    for label in TimeSlot.labels():
        book(store, label)

    result = coordinator.get_available_time_slots(DOCTOR_ID, "2025-03-10")

    assert result["available"] == []
    assert len(result["unavailable"]) == 14
    assert result["is_fully_booked"] is True


def test_blackout_dates_are_normalized_deduplicated_and_sorted(coordinator, store):
    saved = coordinator.set_doctor_availability(DOCTOR_ID, ["2025-03-12", date(2025, 3, 10), "2025-03-12", None])

    assert saved == ["2025-03-10", "2025-03-12"]
    assert coordinator.get_doctor_availability(DOCTOR_ID) == ["2025-03-10", "2025-03-12"]
    assert store.get("doctorAvailability", DOCTOR_ID)["doctor_id"] == DOCTOR_ID

    [log] = store.query("activityLogs", [("action", "==", "Availability Updated")])
    assert log["actor_id"] == DOCTOR_ID


def test_availability_is_replaced_on_update(coordinator):
    coordinator.set_doctor_availability(DOCTOR_ID, ["2025-03-10"])
    coordinator.set_doctor_availability(DOCTOR_ID, ["2025-04-01"])

    assert coordinator.get_doctor_availability(DOCTOR_ID) == ["2025-04-01"]


def test_blacked_out_day_reports_no_slots(coordinator, store):
    book(store, "9:00 AM")
    coordinator.set_doctor_availability(DOCTOR_ID, ["2025-03-10"])

    result = coordinator.get_available_time_slots(DOCTOR_ID, "2025-03-10")

    assert result == {
        "available": [],
        "unavailable": [],
        "is_fully_booked": False,
        "is_date_unavailable": True,
        "unavailable_dates": ["2025-03-10"],
    }
    assert coordinator.get_available_time_slots(DOCTOR_ID, "2025-03-11")["unavailable_dates"] == ["2025-03-10"]


@pytest.mark.parametrize("doctor_id,day", [("", "2025-03-10"), (DOCTOR_ID, ""), (DOCTOR_ID, "tomorrow-ish")])
def test_bad_lookup_gives_empty_result(coordinator, doctor_id, day):
    result = coordinator.get_available_time_slots(doctor_id, day)

    assert result["available"] == []
    assert result["is_date_unavailable"] is False


def test_invalid_blackout_date_is_rejected(coordinator):
    with pytest.raises(AppointmentValidationError):
        coordinator.set_doctor_availability(DOCTOR_ID, ["2025-02-30"])
    with pytest.raises(AppointmentValidationError):
        coordinator.set_doctor_availability("", ["2025-03-10"])


def test_doctor_directory(coordinator, store):
    store.create("users", {"role": UserRole.doctor, "unread_notifications": 0}, doc_id="doctor-2")
    coordinator.set_doctor_availability(DOCTOR_ID, ["2025-03-10"])

    doctors = {doctor["id"]: doctor for doctor in coordinator.get_all_doctors()}

    assert set(doctors) == {DOCTOR_ID, "doctor-2"}
    assert doctors[DOCTOR_ID]["name"] == "Dana Reyes"
    assert doctors[DOCTOR_ID]["specialty"] == "Cardiology"
    assert doctors[DOCTOR_ID]["unavailable_dates"] == ["2025-03-10"]
    assert doctors["doctor-2"]["name"] == "Unknown Doctor"
    assert doctors["doctor-2"]["specialty"] == "General Practitioner"
    assert doctors["doctor-2"]["unavailable_dates"] == []


def test_patients_seen_by_doctor(coordinator, store):
    store.create("users", {"display_name": "Sam Lee", "role": UserRole.patient, "unread_notifications": 0},
                 doc_id="patient-2")

    everyone = [patient["id"] for patient in coordinator.get_available_patients()]
    assert everyone == ["patient-1", "patient-2"]
    assert coordinator.get_available_patients(DOCTOR_ID) == []

    book(store, "9:00 AM", AppointmentStatus.completed)
    [seen] = coordinator.get_available_patients(DOCTOR_ID)
    assert seen == {
        "id": PATIENT_ID,
        "name": "Pat Jones",
        "email": "pat@example.com",
        "photo_url": "https://cdn.example.com/pat.png",
    }
