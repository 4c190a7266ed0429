"""Callable operations: authenticated, single-record mutations and exports.

Each operation takes the caller's uid (``None`` when signed out) and the
request payload, and either returns a ``{"success": ..., ...}`` dict or raises
``HttpsError``. Storage failures never escape raw; they are re-raised as
``internal`` errors carrying the underlying message.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Optional

import records
from config import _now_local, _parse_datetime
from db import get_db
from export import records_to_csv
from records import APPOINTMENTS, MEDICATION_REMINDERS

logger = logging.getLogger(__name__)

MAX_MED_NAME_LEN = 120
MAX_DOSE_LEN = 80
MAX_DOCTOR_NAME_LEN = 120
MAX_LOCATION_LEN = 200
MAX_NOTES_LEN = 1000

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

EXPORT_TYPES = {
    "medications": MEDICATION_REMINDERS,
    "appointments": APPOINTMENTS,
}


class HttpsError(Exception):
    """Typed callable error, rendered as ``{"error": {"status", "message"}}``."""

    STATUSES = {
        "unauthenticated": ("UNAUTHENTICATED", 401),
        "invalid-argument": ("INVALID_ARGUMENT", 400),
        "not-found": ("NOT_FOUND", 404),
        "internal": ("INTERNAL", 500),
    }

    def __init__(self, code: str, message: str):
        if code not in self.STATUSES:
            raise ValueError(f"Unknown callable error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def status(self) -> str:
        return self.STATUSES[self.code][0]

    @property
    def http_status(self) -> int:
        return self.STATUSES[self.code][1]

    def to_dict(self) -> dict:
        return {"status": self.status, "message": self.message}


def _require_caller(caller_uid: Optional[str], message: str) -> str:
    if not caller_uid:
        raise HttpsError("unauthenticated", message)
    return caller_uid


def _text(payload: dict, key: str) -> str:
    value = payload.get(key)
    return "" if value is None else str(value).strip()


def _next_dose(time_str: str, now: datetime) -> str:
    """Next local occurrence of ``HH:MM`` at or after ``now``, as ``YYYY-MM-DDTHH:MM``."""
    hour, minute = (int(p) for p in time_str.split(":"))
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate < now:
        candidate += timedelta(days=1)
    return candidate.strftime("%Y-%m-%dT%H:%M")


def _validate_medication(payload: dict, now: datetime):
    name = _text(payload, "medicationName")
    dosage = _text(payload, "dosage")
    time_str = _text(payload, "time")
    notes = _text(payload, "notes")
    if not name:
        return ("Medication name is required", None)
    if len(name) > MAX_MED_NAME_LEN:
        return (f"Medication name must be {MAX_MED_NAME_LEN} characters or fewer", None)
    if len(dosage) > MAX_DOSE_LEN:
        return (f"Dosage must be {MAX_DOSE_LEN} characters or fewer", None)
    if len(notes) > MAX_NOTES_LEN:
        return (f"Notes must be {MAX_NOTES_LEN} characters or fewer", None)
    if time_str and not _TIME_RE.match(time_str):
        return ("Time must be in HH:MM format", None)
    next_dose = _text(payload, "nextDose")
    if next_dose:
        try:
            _parse_datetime(next_dose)
        except ValueError:
            return ("Invalid next dose format", None)
    elif time_str:
        next_dose = _next_dose(time_str, now)
    return (None, {
        "medicationName": name,
        "dosage": dosage,
        "frequency": _text(payload, "frequency"),
        "time": time_str,
        "nextDose": next_dose,
        "notes": notes,
    })


def _validate_appointment(payload: dict):
    doctor = _text(payload, "doctorName")
    location = _text(payload, "location")
    date_str = _text(payload, "date")
    time_str = _text(payload, "time")
    notes = _text(payload, "notes")
    if not doctor:
        return ("Doctor name is required", None)
    if len(doctor) > MAX_DOCTOR_NAME_LEN:
        return (f"Doctor name must be {MAX_DOCTOR_NAME_LEN} characters or fewer", None)
    if len(location) > MAX_LOCATION_LEN:
        return (f"Location must be {MAX_LOCATION_LEN} characters or fewer", None)
    if len(notes) > MAX_NOTES_LEN:
        return (f"Notes must be {MAX_NOTES_LEN} characters or fewer", None)
    if time_str and not _TIME_RE.match(time_str):
        return ("Time must be in HH:MM format", None)
    if not date_str:
        return ("Appointment date is required", None)
    try:
        when = _parse_datetime(date_str)
    except ValueError:
        return ("Invalid date format", None)
    # A bare calendar date takes its time of day from the separate time field
    if len(date_str) == 10 and time_str:
        hour, minute = (int(p) for p in time_str.split(":"))
        when = when.replace(hour=hour, minute=minute)
    return (None, {
        "doctorName": doctor,
        "speciality": _text(payload, "speciality"),
        "location": location,
        "date": when,
        "time": time_str,
        "notes": notes,
        "status": "scheduled",
        "notified": False,
    })


def _payload(data) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise HttpsError("invalid-argument", "Request data must be an object")
    return data


def create_medication_reminder(caller_uid: Optional[str], data, now: Optional[datetime] = None) -> dict:
    uid = _require_caller(caller_uid, "You must be logged in to create a reminder")
    error, values = _validate_medication(_payload(data), now or _now_local())
    if error:
        raise HttpsError("invalid-argument", error)
    try:
        with get_db() as conn:
            record_id = records.add_record(conn, MEDICATION_REMINDERS, uid, values)
    except Exception as exc:
        logger.exception("Failed to create medication reminder for %s", uid)
        raise HttpsError("internal", str(exc)) from exc
    return {
        "success": True,
        "id": record_id,
        "message": "Medication reminder created successfully",
    }


def schedule_appointment(caller_uid: Optional[str], data) -> dict:
    uid = _require_caller(caller_uid, "You must be logged in to schedule an appointment")
    error, values = _validate_appointment(_payload(data))
    if error:
        raise HttpsError("invalid-argument", error)
    try:
        with get_db() as conn:
            record_id = records.add_record(conn, APPOINTMENTS, uid, values)
    except Exception as exc:
        logger.exception("Failed to schedule appointment for %s", uid)
        raise HttpsError("internal", str(exc)) from exc
    return {
        "success": True,
        "id": record_id,
        "message": "Appointment scheduled successfully",
    }


def export_health_data(caller_uid: Optional[str], data) -> dict:
    uid = _require_caller(caller_uid, "You must be logged in to export data")
    data_type = _payload(data).get("dataType")
    collection = EXPORT_TYPES.get(data_type) if isinstance(data_type, str) else None
    if collection is None:
        raise HttpsError("invalid-argument", "Invalid data type specified")
    try:
        with get_db() as conn:
            rows = records.query_owned(conn, collection, uid, order_by="createdAt")
        csv_text = records_to_csv(collection, rows)
    except Exception as exc:
        logger.exception("Failed to export %s for %s", collection.name, uid)
        raise HttpsError("internal", str(exc)) from exc
    if not rows:
        return {"success": True, "data": "", "message": "No data found to export"}
    return {"success": True, "data": csv_text, "message": "Data exported successfully"}


CALLABLES = {
    "createMedicationReminder": create_medication_reminder,
    "scheduleAppointment": schedule_appointment,
    "exportHealthData": export_health_data,
}
