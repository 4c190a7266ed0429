import sqlite3
from contextlib import contextmanager

from config import DB_PATH


def init_db():
    with sqlite3.connect(DB_PATH) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id            INTEGER PRIMARY KEY AUTOINCREMENT,
                uid           TEXT    NOT NULL UNIQUE,
                username      TEXT    NOT NULL UNIQUE,
                email         TEXT    NOT NULL DEFAULT '',
                password_hash TEXT    NOT NULL DEFAULT '',
                created_at    TEXT    NOT NULL DEFAULT ''
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS appointments (
                id          TEXT    PRIMARY KEY,
                user_id     TEXT    NOT NULL,
                doctor_name TEXT    NOT NULL DEFAULT '',
                speciality  TEXT    NOT NULL DEFAULT '',
                location    TEXT    NOT NULL DEFAULT '',
                date        TEXT    NOT NULL,
                time        TEXT    NOT NULL DEFAULT '',
                notes       TEXT    NOT NULL DEFAULT '',
                status      TEXT    NOT NULL DEFAULT 'scheduled',
                notified    INTEGER NOT NULL DEFAULT 0,
                notified_at TEXT    NOT NULL DEFAULT '',
                created_at  TEXT    NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS medication_reminders (
                id              TEXT PRIMARY KEY,
                user_id         TEXT NOT NULL,
                medication_name TEXT NOT NULL DEFAULT '',
                dosage          TEXT NOT NULL DEFAULT '',
                frequency       TEXT NOT NULL DEFAULT '',
                time            TEXT NOT NULL DEFAULT '',
                next_dose       TEXT NOT NULL DEFAULT '',
                notes           TEXT NOT NULL DEFAULT '',
                created_at      TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS health_surveys (
                id         TEXT PRIMARY KEY,
                user_id    TEXT NOT NULL,
                payload    TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            )
        """)
        # Migrate appointments created before reminder tracking existed
        appt_cols = [row[1] for row in conn.execute("PRAGMA table_info(appointments)")]
        if "notified" not in appt_cols:
            conn.execute("ALTER TABLE appointments ADD COLUMN notified INTEGER NOT NULL DEFAULT 0")
        if "notified_at" not in appt_cols:
            conn.execute("ALTER TABLE appointments ADD COLUMN notified_at TEXT NOT NULL DEFAULT ''")
        # Indexes for common query patterns (owner lookups, reminder window scan)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_appointments_user_id ON appointments(user_id)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_appointments_status_date"
            " ON appointments(status, date)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_med_reminders_user_id ON medication_reminders(user_id)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_health_surveys_user_id ON health_surveys(user_id)")
        conn.commit()


@contextmanager
def get_db():
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()
