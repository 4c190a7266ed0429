"""Session-scoped cache of the signed-in user's medications and appointments.

The store is a read cache, never the source of truth: every change goes to the
service first and the cache is refreshed from the result. The one exception is
a confirmed delete, which just drops the record locally.

Every action returns ``None`` when nobody is signed in, otherwise a result
dict; failures are recorded in ``error`` and returned as
``{"success": False, "error": ...}``, never raised.
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, Optional

from client import HealthApiClient, HealthApiError
from config import _parse_datetime, _today_local

logger = logging.getLogger(__name__)

MEDICATIONS = "medicationReminders"
APPOINTMENTS = "appointments"
HEALTH_SURVEYS = "healthSurveys"


def _date_key(record: dict) -> tuple:
    try:
        return (0, _parse_datetime(record.get("date")))
    except ValueError:
        # undated records sort last
        return (1, None)


def _dose_day(value) -> Optional[date]:
    try:
        return _parse_datetime(value).date()
    except ValueError:
        return None


class HealthStore:
    def __init__(self, api: HealthApiClient, today: Optional[Callable[[], date]] = None):
        self.api = api
        self._today = today or _today_local
        self.medications: list[dict] = []
        self.appointments: list[dict] = []
        self.health_survey: Optional[dict] = None
        self.loading = False
        self.error: Optional[str] = None

    # -- derived views ---------------------------------------------------

    @property
    def upcoming_appointments(self) -> list[dict]:
        """Appointments sorted by date, nearest first (the cache is left as is)."""
        dated = [a for a in self.appointments if _date_key(a)[0] == 0]
        undated = [a for a in self.appointments if _date_key(a)[0] == 1]
        return sorted(dated, key=lambda a: _date_key(a)[1]) + undated

    @property
    def today_medications(self) -> list[dict]:
        today = self._today()
        return [m for m in self.medications if m.get("nextDose") and _dose_day(m["nextDose"]) == today]

    # -- plumbing --------------------------------------------------------

    @property
    def signed_in(self) -> bool:
        return self.api.uid is not None

    @contextmanager
    def _busy(self):
        self.loading = True
        self.error = None
        try:
            yield
        finally:
            self.loading = False

    def _fail(self, action: str, exc: Exception, default: str, use_message: bool) -> dict:
        logger.warning("Error %s: %s", action, exc)
        message = str(exc) if use_message and str(exc) else default
        self.error = message
        return {"success": False, "error": message}

    async def _load_medications(self) -> None:
        self.medications = await self.api.list_records(MEDICATIONS, order_by="createdAt", descending=True)

    async def _load_appointments(self) -> None:
        self.appointments = await self.api.list_records(APPOINTMENTS, order_by="date")

    async def _create(self, function: str, data: dict, default: str) -> str:
        result = await self.api.call(function, data)
        if not result.get("success"):
            raise HealthApiError("internal", result.get("message") or default)
        return result["id"]

    # -- actions ---------------------------------------------------------

    async def fetch_medications(self) -> Optional[dict]:
        if not self.signed_in:
            return None
        with self._busy():
            try:
                await self._load_medications()
                return {"success": True}
            except Exception as exc:
                return self._fail("fetching medications", exc, "Failed to load medications. Please try again.", False)

    async def fetch_appointments(self) -> Optional[dict]:
        if not self.signed_in:
            return None
        with self._busy():
            try:
                await self._load_appointments()
                return {"success": True}
            except Exception as exc:
                return self._fail("fetching appointments", exc, "Failed to load appointments. Please try again.", False)

    async def add_medication(self, data: dict) -> Optional[dict]:
        if not self.signed_in:
            return None
        with self._busy():
            try:
                new_id = await self._create("createMedicationReminder", data, "Failed to add medication")
                await self._load_medications()
                return {"success": True, "id": new_id}
            except Exception as exc:
                return self._fail("adding medication", exc, "Failed to add medication. Please try again.", True)

    async def add_appointment(self, data: dict) -> Optional[dict]:
        if not self.signed_in:
            return None
        with self._busy():
            try:
                new_id = await self._create("scheduleAppointment", data, "Failed to schedule appointment")
                await self._load_appointments()
                return {"success": True, "id": new_id}
            except Exception as exc:
                return self._fail(
                    "scheduling appointment", exc, "Failed to schedule appointment. Please try again.", True
                )

    async def update_medication(self, record_id: str, changes: dict) -> Optional[dict]:
        if not self.signed_in:
            return None
        with self._busy():
            try:
                await self.api.update_record(MEDICATIONS, record_id, changes)
                await self._load_medications()
                return {"success": True}
            except Exception as exc:
                return self._fail("updating medication", exc, "Failed to update medication. Please try again.", False)

    async def update_appointment(self, record_id: str, changes: dict) -> Optional[dict]:
        if not self.signed_in:
            return None
        with self._busy():
            try:
                await self.api.update_record(APPOINTMENTS, record_id, changes)
                await self._load_appointments()
                return {"success": True}
            except Exception as exc:
                return self._fail("updating appointment", exc, "Failed to update appointment. Please try again.", False)

    async def delete_medication(self, record_id: str) -> Optional[dict]:
        if not self.signed_in:
            return None
        with self._busy():
            try:
                await self.api.delete_record(MEDICATIONS, record_id)
                self.medications = [m for m in self.medications if m["id"] != record_id]
                return {"success": True}
            except Exception as exc:
                return self._fail("deleting medication", exc, "Failed to delete medication. Please try again.", False)

    async def delete_appointment(self, record_id: str) -> Optional[dict]:
        if not self.signed_in:
            return None
        with self._busy():
            try:
                await self.api.delete_record(APPOINTMENTS, record_id)
                self.appointments = [a for a in self.appointments if a["id"] != record_id]
                return {"success": True}
            except Exception as exc:
                return self._fail("deleting appointment", exc, "Failed to delete appointment. Please try again.", False)

    async def save_health_survey(self, survey: dict) -> Optional[dict]:
        """Store a new survey; earlier surveys are kept, never overwritten."""
        if not self.signed_in:
            return None
        with self._busy():
            try:
                record = await self.api.add_record(HEALTH_SURVEYS, {
                    "payload": survey,
                    "createdAt": datetime.now().astimezone().isoformat(),
                })
                self.health_survey = survey
                return {"success": True, "id": record["id"]}
            except Exception as exc:
                return self._fail("saving health survey", exc, "Failed to save health survey. Please try again.", False)

    async def fetch_health_survey(self) -> Optional[dict]:
        if not self.signed_in:
            return None
        with self._busy():
            try:
                surveys = await self.api.list_records(HEALTH_SURVEYS, order_by="createdAt", descending=True)
                self.health_survey = surveys[0]["payload"] if surveys else None
                return {"success": True}
            except Exception as exc:
                return self._fail("loading health survey", exc, "Failed to load health survey. Please try again.", False)

    async def export_data(self, data_type: str) -> Optional[dict]:
        if not self.signed_in:
            return None
        with self._busy():
            try:
                result = await self.api.call("exportHealthData", {"dataType": data_type})
                if not result.get("success"):
                    raise HealthApiError("internal", result.get("message") or "Export failed")
                return {"success": True, "data": result["data"], "message": result.get("message")}
            except Exception as exc:
                return self._fail("exporting data", exc, "Failed to export data. Please try again.", True)
