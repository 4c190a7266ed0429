import asyncio
import json
import unittest
from datetime import date

import httpx

from client import HealthApiClient
from store import HealthStore
from support import TempDatabaseMixin


class FakeService:
    """Minimal stand-in for the HTTP service, recording every request."""

    def __init__(self):
        self.requests = []
        self.medications = [
            {"id": "m1", "medicationName": "Aspirin", "nextDose": "2024-05-01T09:00"},
            {"id": "m2", "medicationName": "Metformin", "nextDose": "2024-05-02T09:00"},
        ]
        self.appointments = [{"id": "a1", "doctorName": "Dr. Chen", "date": "2024-05-03"}]
        self.callable_results = {}
        self.fail_paths = set()
        self.gate = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        if self.gate is not None:
            await self.gate.wait()
        if path in self.fail_paths:
            return httpx.Response(500, json={"error": "boom"})
        if path == "/api/records/medicationReminders" and request.method == "GET":
            return httpx.Response(200, json={"ok": True, "records": self.medications})
        if path == "/api/records/appointments" and request.method == "GET":
            return httpx.Response(200, json={"ok": True, "records": self.appointments})
        if path.startswith("/api/callable/"):
            name = path.rsplit("/", 1)[1]
            result = self.callable_results.get(name, {"success": True, "id": "new-id", "message": "ok"})
            if isinstance(result, httpx.Response):
                return result
            return httpx.Response(200, json={"result": result})
        if path.endswith("/delete") or path.endswith("/edit"):
            record_id = path.split("/")[-2]
            known = {r["id"] for r in self.medications + self.appointments}
            if record_id in known:
                return httpx.Response(200, json={"ok": True, "record": {}})
        if path == "/api/records/healthSurveys" and request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "record": {"id": "s1", **body}})
        return httpx.Response(404, json={"ok": False, "error": "Record not found"})


class HealthStoreTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.service = FakeService()
        self.api = HealthApiClient("http://testserver", transport=httpx.MockTransport(self.service))
        self.api._http.cookies.set("csrf_token", "token")
        self.api.uid = "alice-uid"
        self.store = HealthStore(self.api, today=lambda: date(2024, 5, 1))

    async def asyncTearDown(self):
        await self.api.aclose()

    async def test_actions_are_noops_when_signed_out(self):
        self.api.uid = None
        self.assertIsNone(await self.store.fetch_medications())
        self.assertIsNone(await self.store.add_appointment({"doctorName": "Dr. Chen"}))
        self.assertIsNone(await self.store.delete_medication("m1"))
        self.assertIsNone(await self.store.save_health_survey({"sleep": 7}))
        self.assertEqual(self.service.requests, [])
        self.assertFalse(self.store.loading)

    async def test_fetch_replaces_cache_and_uses_creation_order(self):
        self.store.medications = [{"id": "stale"}]
        result = await self.store.fetch_medications()
        self.assertEqual(result, {"success": True})
        self.assertEqual([m["id"] for m in self.store.medications], ["m1", "m2"])
        self.assertEqual(self.service.requests, [("GET", "/api/records/medicationReminders")])

    async def test_fetch_failure_sets_error_and_releases_loading(self):
        self.service.fail_paths.add("/api/records/appointments")
        result = await self.store.fetch_appointments()
        message = "Failed to load appointments. Please try again."
        self.assertEqual(result, {"success": False, "error": message})
        self.assertEqual(self.store.error, message)
        self.assertFalse(self.store.loading)

    async def test_loading_is_set_while_a_request_is_in_flight(self):
        self.service.gate = asyncio.Event()
        task = asyncio.create_task(self.store.fetch_medications())
        for _ in range(5):
            await asyncio.sleep(0)
        self.assertTrue(self.store.loading)
        self.service.gate.set()
        await task
        self.assertFalse(self.store.loading)

    async def test_error_is_cleared_by_the_next_action(self):
        self.store.error = "old problem"
        await self.store.fetch_medications()
        self.assertIsNone(self.store.error)

    async def test_add_medication_calls_gateway_then_refetches(self):
        result = await self.store.add_medication({"medicationName": "Aspirin"})
        self.assertEqual(result, {"success": True, "id": "new-id"})
        self.assertEqual(
            self.service.requests,
            [
                ("POST", "/api/callable/createMedicationReminder"),
                ("GET", "/api/records/medicationReminders"),
            ],
        )
        self.assertEqual(len(self.store.medications), 2)

    async def test_add_reports_gateway_message_when_not_successful(self):
        self.service.callable_results["scheduleAppointment"] = {"success": False, "message": "Slot taken"}
        result = await self.store.add_appointment({"doctorName": "Dr. Chen"})
        self.assertEqual(result, {"success": False, "error": "Slot taken"})
        self.assertEqual(self.store.error, "Slot taken")

    async def test_add_falls_back_to_default_message(self):
        self.service.callable_results["createMedicationReminder"] = {"success": False}
        result = await self.store.add_medication({"medicationName": "Aspirin"})
        self.assertEqual(result["error"], "Failed to add medication")

    async def test_add_surfaces_typed_callable_errors(self):
        self.service.callable_results["createMedicationReminder"] = httpx.Response(
            400,
            json={"error": {"status": "INVALID_ARGUMENT", "message": "Medication name is required"}},
        )
        result = await self.store.add_medication({})
        self.assertEqual(result, {"success": False, "error": "Medication name is required"})
        self.assertEqual(len(self.service.requests), 1)

    async def test_update_goes_to_record_endpoint_then_refetches(self):
        result = await self.store.update_appointment("a1", {"notes": "bring scans"})
        self.assertEqual(result, {"success": True})
        self.assertEqual(
            self.service.requests,
            [("POST", "/api/records/appointments/a1/edit"), ("GET", "/api/records/appointments")],
        )

    async def test_delete_removes_only_that_record_without_refetch(self):
        self.store.medications = [{"id": "m1"}, {"id": "m2"}, {"id": "m3"}]
        result = await self.store.delete_medication("m2")
        self.assertEqual(result, {"success": True})
        self.assertEqual([m["id"] for m in self.store.medications], ["m1", "m3"])
        self.assertEqual(self.service.requests, [("POST", "/api/records/medicationReminders/m2/delete")])

    async def test_failed_delete_keeps_cache(self):
        self.store.appointments = [{"id": "a1"}]
        result = await self.store.delete_appointment("missing")
        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "Failed to delete appointment. Please try again.")
        self.assertEqual(self.store.appointments, [{"id": "a1"}])
        self.assertEqual(self.store.error, "Failed to delete appointment. Please try again.")
        self.assertFalse(self.store.loading)

    async def test_save_health_survey_always_creates(self):
        first = await self.store.save_health_survey({"sleep": 7})
        second = await self.store.save_health_survey({"sleep": 6})
        self.assertTrue(first["success"] and second["success"])
        self.assertEqual(
            self.service.requests,
            [("POST", "/api/records/healthSurveys"), ("POST", "/api/records/healthSurveys")],
        )
        self.assertEqual(self.store.health_survey, {"sleep": 6})

    async def test_export_data_returns_csv(self):
        self.service.callable_results["exportHealthData"] = {
            "success": True, "data": "", "message": "No data found to export",
        }
        result = await self.store.export_data("medications")
        self.assertEqual(result, {"success": True, "data": "", "message": "No data found to export"})

    def test_upcoming_appointments_sorted_without_touching_cache(self):
        self.store.appointments = [
            {"id": "c", "date": "2024-05-03"},
            {"id": "a", "date": "2024-05-01"},
            {"id": "d", "date": None},
            {"id": "e", "date": "2024-05-10T00:00:00+00:00"},
        ]
        self.assertEqual([a["id"] for a in self.store.upcoming_appointments], ["a", "c", "e", "d"])
        self.assertEqual([a["id"] for a in self.store.appointments], ["c", "a", "d", "e"])
        self.assertIsNot(self.store.upcoming_appointments, self.store.appointments)

    def test_upcoming_appointments_is_stable_for_equal_dates(self):
        self.store.appointments = [
            {"id": "x", "date": "2024-05-01T09:00:00+00:00"},
            {"id": "y", "date": "2024-05-01T09:00:00+00:00"},
        ]
        self.assertEqual([a["id"] for a in self.store.upcoming_appointments], ["x", "y"])

    def test_today_medications_compares_calendar_dates(self):
        self.store.medications = [
            {"id": "m1", "nextDose": "2024-05-01T09:00"},
            {"id": "m2", "nextDose": "2024-05-02T09:00"},
            {"id": "m3", "nextDose": ""},
            {"id": "m4", "nextDose": "not a date"},
        ]
        self.assertEqual([m["id"] for m in self.store.today_medications], ["m1"])


class HealthStoreServiceTests(TempDatabaseMixin, unittest.IsolatedAsyncioTestCase):
    """End to end against the FastAPI app, without a network."""

    async def asyncSetUp(self):
        self.setUpDatabase()
        app = self.fresh_app()
        self.api = HealthApiClient("http://testserver", transport=httpx.ASGITransport(app=app))
        self.store = HealthStore(self.api)

    async def asyncTearDown(self):
        await self.api.aclose()
        self.forget_app()
        self.tearDownDatabase()

    async def test_full_session(self):
        self.assertIsNone(await self.api.refresh_session())
        self.assertIsNone(await self.store.fetch_appointments())

        await self.api.signup("alice", "password123", email="alice@example.com")
        self.assertIsNotNone(self.api.uid)

        first = await self.store.add_appointment(
            {"doctorName": "Dr. Chen", "date": "2030-03-10", "time": "09:00"}
        )
        second = await self.store.add_appointment(
            {"doctorName": "Dr. Patel", "date": "2030-02-01", "time": "15:00"}
        )
        self.assertTrue(first["success"] and second["success"])
        self.assertEqual([a["doctorName"] for a in self.store.appointments], ["Dr. Patel", "Dr. Chen"])
        self.assertTrue(all(a["userId"] == self.api.uid for a in self.store.appointments))

        updated = await self.store.update_appointment(first["id"], {"status": "cancelled"})
        self.assertTrue(updated["success"])
        cancelled = next(a for a in self.store.appointments if a["id"] == first["id"])
        self.assertEqual(cancelled["status"], "cancelled")

        rejected = await self.store.update_appointment(first["id"], {"notified": True})
        self.assertFalse(rejected["success"])

        added = await self.store.add_medication({"medicationName": "Aspirin", "dosage": "81mg", "time": "08:00"})
        self.assertTrue(added["success"])
        self.assertEqual(self.store.medications[0]["medicationName"], "Aspirin")

        bad = await self.store.add_medication({"medicationName": ""})
        self.assertEqual(bad, {"success": False, "error": "Medication name is required"})

        exported = await self.store.export_data("appointments")
        self.assertTrue(exported["success"])
        self.assertEqual(len(exported["data"].split("\n")), 3)

        invalid = await self.store.export_data("bogus")
        self.assertEqual(invalid, {"success": False, "error": "Invalid data type specified"})

        saved = await self.store.save_health_survey({"sleepHours": 7})
        self.assertTrue(saved["success"])
        self.store.health_survey = None
        await self.store.fetch_health_survey()
        self.assertEqual(self.store.health_survey, {"sleepHours": 7})

        deleted = await self.store.delete_appointment(second["id"])
        self.assertTrue(deleted["success"])
        self.assertEqual([a["id"] for a in self.store.appointments], [first["id"]])

        report = await self.api.get_report("appointments")
        self.assertIn("Dr. Chen", report)

        await self.api.logout()
        self.assertIsNone(await self.store.fetch_medications())


if __name__ == "__main__":
    unittest.main()
