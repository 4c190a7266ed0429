import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from config import APP_TIMEZONE, REMINDER_HOUR, REMINDER_MINUTE
from reminders import send_appointment_reminders

logger = logging.getLogger(__name__)

REMINDER_JOB_ID = "appointment_reminders"


def build_scheduler() -> AsyncIOScheduler:
    """Scheduler running the appointment reminder scan once a day."""
    scheduler = AsyncIOScheduler(timezone=APP_TIMEZONE)
    scheduler.add_job(
        send_appointment_reminders,
        CronTrigger(hour=REMINDER_HOUR, minute=REMINDER_MINUTE, timezone=APP_TIMEZONE),
        id=REMINDER_JOB_ID,
        name="Send Appointment Reminders",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    return scheduler


def start_scheduler() -> AsyncIOScheduler:
    scheduler = build_scheduler()
    scheduler.start()
    job = scheduler.get_job(REMINDER_JOB_ID)
    logger.info(
        "Reminder scheduler started; next run at %s",
        job.next_run_time.isoformat() if job and job.next_run_time else "unknown",
    )
    return scheduler


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Reminder scheduler stopped")
