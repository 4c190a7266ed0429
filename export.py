"""Flat text exports of a user's records: CSV for download, HTML for printing."""
import html
import json
from datetime import date, datetime, timezone
from typing import Optional

from config import _as_local, _parse_datetime, _today_local
from records import Collection


def _iso_utc(value) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2024-05-01T09:00:00.000Z."""
    dt = value if isinstance(value, datetime) else _parse_datetime(value)
    dt = _as_local(dt).astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def _cell(collection: Collection, name: str, value) -> str:
    if value is None or value == "":
        text = ""
    elif name in collection.timestamp_fields:
        text = _iso_utc(value)
    elif isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, (dict, list)):
        text = json.dumps(value)
    else:
        text = str(value)
    return '"' + text.replace('"', '""') + '"'


def records_to_csv(collection: Collection, rows: list[dict]) -> str:
    """Render records as CSV with one quoted cell per exported field.

    The header is the collection's fixed export schema, so records missing an
    optional field still line up (the cell is empty). The owner field is never
    part of the schema.
    """
    if not rows:
        return ""
    lines = [",".join(collection.export_fields)]
    for row in rows:
        lines.append(",".join(_cell(collection, name, row.get(name)) for name in collection.export_fields))
    return "\n".join(lines)


REPORT_STYLE = """
  <style>
    body { font-family: Arial, sans-serif; margin: 20px; }
    h1 { color: #0056b3; }
    table { width: 100%; border-collapse: collapse; margin-top: 20px; }
    th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
    th { background-color: #f2f2f2; }
    tr:nth-child(even) { background-color: #f9f9f9; }
    .footer { margin-top: 30px; text-align: center; font-size: 12px; color: #666; }
  </style>
"""


def _report_page(title: str, headers: list[str], body_rows: list[list[str]], today: date) -> str:
    head = "".join(f"<th>{html.escape(h)}</th>" for h in headers)
    rows = "".join(
        "<tr>" + "".join(f"<td>{html.escape(c)}</td>" for c in cells) + "</tr>"
        for cells in body_rows
    )
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>{html.escape(title)} - {today.isoformat()}</title>
  {REPORT_STYLE}
</head>
<body>
  <h1>{html.escape(title)}</h1>
  <p>Generated on {today.strftime("%B %d, %Y")}</p>
  <table>
    <thead><tr>{head}</tr></thead>
    <tbody>{rows}</tbody>
  </table>
  <div class="footer">
    <p>This report was generated from your Health Companion records</p>
  </div>
  <script>window.onload = function() {{ window.print(); }}</script>
</body>
</html>
"""


def medications_report_html(rows: list[dict], today: Optional[date] = None) -> str:
    body = [
        [
            r.get("medicationName") or "",
            r.get("dosage") or "",
            r.get("frequency") or "",
            r.get("time") or "",
            r.get("nextDose") or "Not scheduled",
            r.get("notes") or "",
        ]
        for r in rows
    ]
    headers = ["Medication", "Dosage", "Frequency", "Time", "Next Dose", "Notes"]
    return _report_page("Medications Report", headers, body, today or _today_local())


def appointments_report_html(rows: list[dict], today: Optional[date] = None) -> str:
    body = []
    for r in rows:
        when = r.get("date")
        body.append([
            r.get("doctorName") or "",
            r.get("speciality") or "",
            _parse_datetime(when).date().isoformat() if when else "",
            r.get("time") or "",
            "Specified" if r.get("location") else "Not specified",
            r.get("notes") or "",
        ])
    headers = ["Doctor", "Specialty", "Date", "Time", "Location", "Notes"]
    return _report_page("Appointments Report", headers, body, today or _today_local())
