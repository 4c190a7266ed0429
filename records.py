"""Typed access to the owner-scoped record collections.

Every collection is described by a ``Collection`` so that callers (the
callable gateway, the record endpoints, the reminder job and the exporter)
work with API field names while the sqlite layer keeps snake_case columns.
Timestamps are stored as fixed-width UTC text, see ``config.STORAGE_FORMAT``.
"""
import json
import secrets
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from config import _from_utc_storage, _parse_datetime, _to_utc_storage, _utc_now

OWNER_FIELD = "userId"
APPOINTMENT_STATUSES = ("scheduled", "completed", "cancelled")


@dataclass(frozen=True)
class Collection:
    name: str
    table: str
    columns: dict
    editable: frozenset
    export_fields: tuple = ()
    timestamp_fields: frozenset = frozenset({"createdAt"})
    bool_fields: frozenset = frozenset()
    json_fields: frozenset = frozenset()
    client_creatable: bool = False
    default_order: Optional[str] = None


APPOINTMENTS = Collection(
    name="appointments",
    table="appointments",
    columns={
        "doctorName": "doctor_name",
        "speciality": "speciality",
        "location": "location",
        "date": "date",
        "time": "time",
        "notes": "notes",
        "status": "status",
        "notified": "notified",
        "notifiedAt": "notified_at",
        "createdAt": "created_at",
    },
    editable=frozenset({"doctorName", "speciality", "location", "date", "time", "notes", "status"}),
    export_fields=(
        "doctorName", "speciality", "location", "date", "time", "notes",
        "status", "notified", "notifiedAt", "createdAt",
    ),
    timestamp_fields=frozenset({"date", "notifiedAt", "createdAt"}),
    bool_fields=frozenset({"notified"}),
    default_order="date",
)

MEDICATION_REMINDERS = Collection(
    name="medicationReminders",
    table="medication_reminders",
    columns={
        "medicationName": "medication_name",
        "dosage": "dosage",
        "frequency": "frequency",
        "time": "time",
        "nextDose": "next_dose",
        "notes": "notes",
        "createdAt": "created_at",
    },
    editable=frozenset({"medicationName", "dosage", "frequency", "time", "nextDose", "notes"}),
    export_fields=("medicationName", "dosage", "frequency", "time", "nextDose", "notes", "createdAt"),
    default_order="createdAt",
)

HEALTH_SURVEYS = Collection(
    name="healthSurveys",
    table="health_surveys",
    columns={"payload": "payload", "createdAt": "created_at"},
    editable=frozenset(),
    json_fields=frozenset({"payload"}),
    client_creatable=True,
    default_order="createdAt",
)

COLLECTIONS = {c.name: c for c in (APPOINTMENTS, MEDICATION_REMINDERS, HEALTH_SURVEYS)}


def get_collection(name: str) -> Collection:
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise ValueError(f"Unknown collection: {name}") from None


def _new_id() -> str:
    return secrets.token_hex(10)


def _encode(collection: Collection, name: str, value: Any):
    if name in collection.timestamp_fields:
        if value is None or value == "":
            return ""
        return _to_utc_storage(_parse_datetime(value))
    if name in collection.bool_fields:
        return 1 if value else 0
    if name in collection.json_fields:
        return json.dumps(value if value is not None else {})
    if name == "status" and value not in APPOINTMENT_STATUSES:
        raise ValueError(f"Invalid status: {value}")
    return "" if value is None else str(value)


def _decode(collection: Collection, name: str, value: Any):
    if name in collection.timestamp_fields:
        return _from_utc_storage(value).isoformat() if value else None
    if name in collection.bool_fields:
        return bool(value)
    if name in collection.json_fields:
        return json.loads(value) if value else {}
    return value


def row_to_record(collection: Collection, row: sqlite3.Row) -> dict:
    record = {"id": row["id"], OWNER_FIELD: row["user_id"]}
    for name, column in collection.columns.items():
        record[name] = _decode(collection, name, row[column])
    return record


def query_owned(
    conn,
    collection: Collection,
    owner: str,
    order_by: Optional[str] = None,
    descending: bool = False,
) -> list[dict]:
    direction = "DESC" if descending else "ASC"
    order_sql = f"rowid {direction}"
    if order_by:
        if order_by not in collection.columns:
            raise ValueError(f"Cannot order {collection.name} by '{order_by}'")
        order_sql = f"{collection.columns[order_by]} {direction}, {order_sql}"
    rows = conn.execute(
        f"SELECT * FROM {collection.table} WHERE user_id = ? ORDER BY {order_sql}",
        (owner,),
    ).fetchall()
    return [row_to_record(collection, r) for r in rows]


def get_owned(conn, collection: Collection, record_id: str, owner: str) -> Optional[dict]:
    row = conn.execute(
        f"SELECT * FROM {collection.table} WHERE id = ? AND user_id = ?",
        (record_id, owner),
    ).fetchone()
    return row_to_record(collection, row) if row else None


def add_record(
    conn,
    collection: Collection,
    owner: str,
    values: dict,
    created_at: Optional[datetime] = None,
) -> str:
    """Insert a record owned by ``owner`` and return its new id.

    ``createdAt`` comes only from the ``created_at`` argument (default: now);
    a ``createdAt`` key in ``values`` is ignored.
    """
    unknown = set(values) - set(collection.columns)
    if unknown:
        raise ValueError(f"Unknown field(s) for {collection.name}: {', '.join(sorted(unknown))}")
    record_id = _new_id()
    columns = ["id", "user_id", "created_at"]
    params = [record_id, owner, _to_utc_storage(created_at or _utc_now())]
    for name, value in values.items():
        if name == "createdAt":
            continue
        columns.append(collection.columns[name])
        params.append(_encode(collection, name, value))
    placeholders = ", ".join("?" for _ in columns)
    conn.execute(
        f"INSERT INTO {collection.table} ({', '.join(columns)}) VALUES ({placeholders})",
        params,
    )
    conn.commit()
    return record_id


def update_owned(conn, collection: Collection, record_id: str, owner: str, changes: dict) -> bool:
    if not changes:
        raise ValueError("No fields to update")
    for name in changes:
        if name not in collection.editable:
            raise ValueError(f"Field '{name}' cannot be updated")
    assignments = ", ".join(f"{collection.columns[name]} = ?" for name in changes)
    params = [_encode(collection, name, value) for name, value in changes.items()]
    cur = conn.execute(
        f"UPDATE {collection.table} SET {assignments} WHERE id = ? AND user_id = ?",
        (*params, record_id, owner),
    )
    conn.commit()
    return cur.rowcount > 0


def delete_owned(conn, collection: Collection, record_id: str, owner: str) -> bool:
    cur = conn.execute(
        f"DELETE FROM {collection.table} WHERE id = ? AND user_id = ?",
        (record_id, owner),
    )
    conn.commit()
    return cur.rowcount > 0


# ------------------------------------------------------------------
# Reminder scan access (all owners)
# ------------------------------------------------------------------


def scheduled_appointments_between(conn, start: datetime, end: datetime) -> list[dict]:
    """Scheduled appointments with ``start < date <= end``, earliest first."""
    rows = conn.execute(
        "SELECT * FROM appointments WHERE status = 'scheduled' AND date > ? AND date <= ?"
        " ORDER BY date ASC, rowid ASC",
        (_to_utc_storage(start), _to_utc_storage(end)),
    ).fetchall()
    return [row_to_record(APPOINTMENTS, r) for r in rows]


def mark_appointment_notified(conn, record_id: str, at: datetime) -> bool:
    # notified_at keeps the first notification time
    cur = conn.execute(
        "UPDATE appointments SET notified = 1,"
        " notified_at = CASE WHEN notified_at = '' THEN ? ELSE notified_at END"
        " WHERE id = ?",
        (_to_utc_storage(at), record_id),
    )
    conn.commit()
    return cur.rowcount > 0
