import unittest
from datetime import date

import config
from export import appointments_report_html, medications_report_html, records_to_csv
from records import APPOINTMENTS, MEDICATION_REMINDERS, Collection


class RecordsToCsvTests(unittest.TestCase):
    def setUp(self):
        self._old_timezone = config.APP_TIMEZONE
        config.APP_TIMEZONE = "UTC"

    def tearDown(self):
        config.APP_TIMEZONE = self._old_timezone

    def test_empty_record_set_is_empty_text(self):
        self.assertEqual(records_to_csv(MEDICATION_REMINDERS, []), "")

    def test_cells_are_quoted_and_timestamps_are_iso(self):
        rows = [{
            "id": "abc",
            "userId": "owner-1",
            "doctorName": 'Dr. "Bones" McCoy',
            "speciality": "General, Family",
            "location": "",
            "date": "2024-05-03T14:30:00+00:00",
            "time": "14:30",
            "notes": None,
            "status": "scheduled",
            "notified": True,
            "notifiedAt": "2024-05-02T08:00:00.123456+00:00",
            "createdAt": "2024-04-20T10:00:00+02:00",
        }]
        header, line = records_to_csv(APPOINTMENTS, rows).split("\n")
        self.assertEqual(
            header,
            "doctorName,speciality,location,date,time,notes,status,notified,notifiedAt,createdAt",
        )
        self.assertEqual(
            line,
            '"Dr. ""Bones"" McCoy","General, Family","","2024-05-03T14:30:00.000Z","14:30","",'
            '"scheduled","true","2024-05-02T08:00:00.123Z","2024-04-20T08:00:00.000Z"',
        )

    def test_missing_optional_fields_become_empty_columns(self):
        rows = [
            {"medicationName": "Aspirin", "dosage": "81mg", "createdAt": "2024-05-01T00:00:00+00:00"},
            {"medicationName": "Metformin", "frequency": "twice daily", "nextDose": "2024-05-01T08:00"},
        ]
        lines = records_to_csv(MEDICATION_REMINDERS, rows).split("\n")
        self.assertEqual(len(lines), 3)
        self.assertEqual(lines[1], '"Aspirin","81mg","","","","","2024-05-01T00:00:00.000Z"')
        self.assertEqual(lines[2], '"Metformin","","twice daily","","2024-05-01T08:00","",""')
        for line in lines[1:]:
            self.assertEqual(line.count('","'), 6)

    def test_object_values_are_serialised_as_json(self):
        surveys = Collection(
            name="surveys",
            table="health_surveys",
            columns={"payload": "payload", "createdAt": "created_at"},
            editable=frozenset(),
            export_fields=("payload", "createdAt"),
            json_fields=frozenset({"payload"}),
        )
        text = records_to_csv(surveys, [{"payload": {"sleep": 7}, "createdAt": None}])
        self.assertEqual(text.split("\n")[1], '"{""sleep"": 7}",""')


class HtmlReportTests(unittest.TestCase):
    def test_medications_report_escapes_and_marks_unscheduled(self):
        page = medications_report_html(
            [{"medicationName": "<b>Aspirin</b>", "dosage": "81mg", "nextDose": ""}],
            today=date(2024, 5, 1),
        )
        self.assertIn("Medications Report - 2024-05-01", page)
        self.assertIn("&lt;b&gt;Aspirin&lt;/b&gt;", page)
        self.assertIn("Not scheduled", page)
        self.assertIn("Generated on May 01, 2024", page)

    def test_appointments_report_hides_location_detail(self):
        page = appointments_report_html(
            [
                {"doctorName": "Dr. Chen", "date": "2024-05-03T14:30:00+00:00", "location": "Room 4"},
                {"doctorName": "Dr. Patel", "date": "2024-05-04T09:00:00+00:00", "location": ""},
            ],
            today=date(2024, 5, 1),
        )
        self.assertIn("<td>Specified</td>", page)
        self.assertIn("<td>Not specified</td>", page)
        self.assertNotIn("Room 4", page)

    def test_empty_reports_are_valid_pages(self):
        page = appointments_report_html([], today=date(2024, 5, 1))
        self.assertIn("<tbody></tbody>", page)


if __name__ == "__main__":
    unittest.main()
