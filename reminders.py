"""Daily appointment reminder scan.

Selects every ``scheduled`` appointment dated after now and up to the end of
tomorrow (in APP_TIMEZONE), flags each one as notified and hands it to the
notifier. The job never raises: the scheduler must see every run succeed.

Usage:
    python3 reminders.py
"""
import asyncio
import logging
from datetime import datetime, time, timedelta
from typing import Callable, Optional

import records
from config import _as_local, _utc_now
from db import get_db
from notifications import send_appointment_reminder

logger = logging.getLogger(__name__)

Notifier = Callable[[dict], object]


def lookahead_window(now: datetime) -> tuple[datetime, datetime]:
    """Return ``(now, end of tomorrow)``; the window is open at the start."""
    local_now = _as_local(now)
    tomorrow = local_now.date() + timedelta(days=1)
    end = datetime.combine(tomorrow, time(23, 59, 59, 999000), tzinfo=local_now.tzinfo)
    return now, end


def _due_appointments(start: datetime, end: datetime) -> list[dict]:
    with get_db() as conn:
        return records.scheduled_appointments_between(conn, start, end)


def _mark_notified(record_id: str, at: datetime) -> bool:
    with get_db() as conn:
        return records.mark_appointment_notified(conn, record_id, at)


async def _remind(appointment: dict, at: datetime, notify: Notifier) -> None:
    await asyncio.to_thread(_mark_notified, appointment["id"], at)
    await asyncio.to_thread(notify, appointment)


async def send_appointment_reminders(
    now: Optional[datetime] = None,
    notify: Optional[Notifier] = None,
) -> Optional[dict]:
    """Run one reminder scan. Returns a summary, or None if the scan itself failed."""
    started = now or _utc_now()
    notify = notify or send_appointment_reminder
    try:
        start, end = lookahead_window(started)
        due = await asyncio.to_thread(_due_appointments, start, end)
        results = await asyncio.gather(
            *(_remind(appt, started, notify) for appt in due),
            return_exceptions=True,
        )
    except Exception:
        logger.exception("Error sending appointment reminders")
        return None

    failed = 0
    for appt, result in zip(due, results):
        if isinstance(result, BaseException):
            failed += 1
            logger.error(
                "Reminder for appointment %s (user %s) failed: %s",
                appt["id"], appt["userId"], result,
            )
    summary = {"matched": len(due), "notified": len(due) - failed, "failed": failed}
    logger.info(
        "Appointment reminder scan through %s: %d matched, %d notified, %d failed",
        end.isoformat(), summary["matched"], summary["notified"], summary["failed"],
    )
    return summary


if __name__ == "__main__":
    from config import LOG_LEVEL
    from db import init_db

    logging.basicConfig(level=LOG_LEVEL)
    init_db()
    print(asyncio.run(send_appointment_reminders()))
