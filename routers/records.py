"""Owner-scoped record endpoints.

The direct store path used by the client for reads, edits and deletes (and for
creating health surveys). Every query is filtered by the session's uid, so a
record owned by someone else is indistinguishable from a missing one.
"""
from typing import Optional

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse

import records
from config import _current_user_id, _parse_datetime
from db import get_db

router = APIRouter()


def _collection_or_404(name: str):
    try:
        return records.get_collection(name), None
    except ValueError as exc:
        return None, JSONResponse({"ok": False, "error": str(exc)}, status_code=404)


@router.get("/api/records/{collection_name}")
def api_records_list(collection_name: str, orderBy: str = "", direction: str = "asc"):
    collection, error = _collection_or_404(collection_name)
    if error:
        return error
    if direction not in {"asc", "desc"}:
        return JSONResponse({"ok": False, "error": "direction must be asc or desc"}, status_code=400)
    uid = _current_user_id.get()
    try:
        with get_db() as conn:
            rows = records.query_owned(
                conn, collection, uid,
                order_by=orderBy or collection.default_order,
                descending=direction == "desc",
            )
    except ValueError as exc:
        return JSONResponse({"ok": False, "error": str(exc)}, status_code=400)
    return JSONResponse({"ok": True, "records": rows})


@router.get("/api/records/{collection_name}/{record_id}")
def api_records_get(collection_name: str, record_id: str):
    collection, error = _collection_or_404(collection_name)
    if error:
        return error
    with get_db() as conn:
        record = records.get_owned(conn, collection, record_id, _current_user_id.get())
    if record is None:
        return JSONResponse({"ok": False, "error": "Record not found"}, status_code=404)
    return JSONResponse({"ok": True, "record": record})


@router.post("/api/records/{collection_name}")
def api_records_create(collection_name: str, payload: Optional[dict] = Body(None)):
    collection, error = _collection_or_404(collection_name)
    if error:
        return error
    if not collection.client_creatable:
        return JSONResponse(
            {"ok": False, "error": f"{collection.name} records are created through callable functions"},
            status_code=400,
        )
    values = dict(payload or {})
    created_at = values.pop("createdAt", None)
    uid = _current_user_id.get()
    try:
        with get_db() as conn:
            record_id = records.add_record(
                conn, collection, uid, values,
                created_at=_parse_datetime(created_at) if created_at else None,
            )
            record = records.get_owned(conn, collection, record_id, uid)
    except ValueError as exc:
        return JSONResponse({"ok": False, "error": str(exc)}, status_code=400)
    return JSONResponse({"ok": True, "record": record})


@router.post("/api/records/{collection_name}/{record_id}/edit")
def api_records_edit(collection_name: str, record_id: str, payload: Optional[dict] = Body(None)):
    collection, error = _collection_or_404(collection_name)
    if error:
        return error
    uid = _current_user_id.get()
    try:
        with get_db() as conn:
            found = records.update_owned(conn, collection, record_id, uid, payload or {})
            record = records.get_owned(conn, collection, record_id, uid) if found else None
    except ValueError as exc:
        return JSONResponse({"ok": False, "error": str(exc)}, status_code=400)
    if record is None:
        return JSONResponse({"ok": False, "error": "Record not found"}, status_code=404)
    return JSONResponse({"ok": True, "record": record})


@router.post("/api/records/{collection_name}/{record_id}/delete")
def api_records_delete(collection_name: str, record_id: str):
    collection, error = _collection_or_404(collection_name)
    if error:
        return error
    with get_db() as conn:
        found = records.delete_owned(conn, collection, record_id, _current_user_id.get())
    if not found:
        return JSONResponse({"ok": False, "error": "Record not found"}, status_code=404)
    return JSONResponse({"ok": True})
