from fastapi import APIRouter
from fastapi.responses import HTMLResponse, JSONResponse

import records
from config import _current_user_id
from db import get_db
from export import appointments_report_html, medications_report_html

router = APIRouter()


@router.get("/api/reports/{data_type}", response_class=HTMLResponse)
def api_report(data_type: str):
    uid = _current_user_id.get()
    if data_type == "medications":
        with get_db() as conn:
            rows = records.query_owned(conn, records.MEDICATION_REMINDERS, uid, "createdAt", descending=True)
        return HTMLResponse(medications_report_html(rows))
    if data_type == "appointments":
        with get_db() as conn:
            rows = records.query_owned(conn, records.APPOINTMENTS, uid, "date")
        return HTMLResponse(appointments_report_html(rows))
    return JSONResponse({"ok": False, "error": "Invalid data type specified"}, status_code=400)
