"""
Seed script: populates demo data for the Jamie Rivera account.

- Safe to run on a server where the account already exists.
- Clears any existing appointments/medication reminders/surveys for Jamie,
  then inserts fresh demo data, including appointments inside the next
  reminder window.
- Does NOT touch other user accounts.

Usage:
    python3 seed.py
"""

import secrets
from datetime import timedelta

import records
from config import _now_local, _to_utc_storage, _utc_now
from db import get_db, init_db
from security import _hash_password

USERNAME = "jamie"
PASSWORD = "demo1234"
EMAIL = "jamie@example.com"

MEDICATIONS = [
    ("Lisinopril", "10mg", "once daily", "08:00", "Take with water"),
    ("Metformin", "500mg", "twice daily", "08:30", "With breakfast and dinner"),
    ("Atorvastatin", "20mg", "once daily", "21:00", ""),
    ("Vitamin D", "1000 IU", "once daily", "08:00", ""),
]

# (doctor, speciality, location, days from today, hour, status)
APPOINTMENTS = [
    ("Dr. Alvarez", "Cardiology", "St. Mary's Clinic, Room 4", 1, 10, "scheduled"),
    ("Dr. Chen", "Endocrinology", "Downtown Medical Center", 5, 14, "scheduled"),
    ("Dr. Patel", "General Practice", "", 21, 9, "scheduled"),
    ("Dr. Alvarez", "Cardiology", "St. Mary's Clinic, Room 4", -30, 11, "completed"),
]


def _ensure_user(conn) -> str:
    row = conn.execute("SELECT uid FROM users WHERE username = ?", (USERNAME,)).fetchone()
    if row:
        print(f"Found existing account: {USERNAME} (uid={row['uid']})")
        return row["uid"]
    uid = secrets.token_hex(14)
    conn.execute(
        "INSERT INTO users (uid, username, email, password_hash, created_at) VALUES (?, ?, ?, ?, ?)",
        (uid, USERNAME, EMAIL, _hash_password(PASSWORD), _to_utc_storage(_utc_now())),
    )
    conn.commit()
    print(f"Created account: {USERNAME} / {PASSWORD} (uid={uid})")
    return uid


def main():
    init_db()
    now = _now_local()
    with get_db() as conn:
        uid = _ensure_user(conn)
        for collection in records.COLLECTIONS.values():
            conn.execute(f"DELETE FROM {collection.table} WHERE user_id = ?", (uid,))
        conn.commit()

        for name, dosage, frequency, at, notes in MEDICATIONS:
            hour, minute = (int(p) for p in at.split(":"))
            next_dose = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
            if next_dose < now:
                next_dose += timedelta(days=1)
            records.add_record(conn, records.MEDICATION_REMINDERS, uid, {
                "medicationName": name,
                "dosage": dosage,
                "frequency": frequency,
                "time": at,
                "nextDose": next_dose.strftime("%Y-%m-%dT%H:%M"),
                "notes": notes,
            })

        for doctor, speciality, location, offset, hour, status in APPOINTMENTS:
            when = (now + timedelta(days=offset)).replace(hour=hour, minute=0, second=0, microsecond=0)
            records.add_record(conn, records.APPOINTMENTS, uid, {
                "doctorName": doctor,
                "speciality": speciality,
                "location": location,
                "date": when,
                "time": f"{hour:02d}:00",
                "notes": "",
                "status": status,
                "notified": status != "scheduled",
            })

        records.add_record(conn, records.HEALTH_SURVEYS, uid, {
            "payload": {"sleepHours": 7, "exerciseDaysPerWeek": 3, "smoker": False, "stressLevel": 4},
        })

    print(f"Seeded {len(MEDICATIONS)} medication reminders and {len(APPOINTMENTS)} appointments.")


if __name__ == "__main__":
    main()
