import os
import secrets
from contextvars import ContextVar
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

DB_PATH = os.environ.get("DB_PATH", "health.db")
SECRET_KEY_PATH = Path(".app_secret_key")
SESSION_TTL_SECONDS = 60 * 60 * 24 * 14
SESSION_COOKIE_NAME = "health_session"
CSRF_COOKIE_NAME = "csrf_token"

APP_TIMEZONE = os.environ.get("APP_TIMEZONE", "UTC")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Daily appointment reminder run, local to APP_TIMEZONE
SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "1").lower() in {"1", "true", "yes", "on"}
REMINDER_HOUR = int(os.environ.get("REMINDER_HOUR", "8"))
REMINDER_MINUTE = int(os.environ.get("REMINDER_MINUTE", "0"))

_current_user_id: ContextVar[Optional[str]] = ContextVar("_current_user_id", default=None)

PUBLIC_PATHS = {"/", "/login", "/signup", "/logout", "/api/session"}
CALLABLE_PREFIX = "/api/callable/"

STORAGE_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def _app_tz() -> ZoneInfo:
    return ZoneInfo(APP_TIMEZONE)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _now_local() -> datetime:
    return _utc_now().astimezone(_app_tz())


def _today_local() -> date:
    return _now_local().date()


def _as_local(dt: datetime) -> datetime:
    """Attach APP_TIMEZONE to naive datetimes; convert aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=_app_tz())
    return dt.astimezone(_app_tz())


def _parse_datetime(value) -> datetime:
    """Parse a datetime, date or ISO-8601 string into an aware datetime.

    Naive values (including bare ``YYYY-MM-DD`` dates, taken as midnight) are
    read in APP_TIMEZONE. Raises ValueError for anything else.
    """
    if isinstance(value, datetime):
        return _as_local(value)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time(), tzinfo=_app_tz())
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid date: {value!r}")
    return _as_local(datetime.fromisoformat(value.strip()))


def _to_utc_storage(dt: datetime) -> str:
    """Convert a datetime (naive means APP_TIMEZONE) to UTC storage format."""
    dt_utc = _as_local(dt).astimezone(timezone.utc).replace(tzinfo=None)
    return dt_utc.strftime(STORAGE_FORMAT)


def _from_utc_storage(ts: str) -> datetime:
    """Convert UTC storage string to an aware UTC datetime."""
    return datetime.strptime(ts, STORAGE_FORMAT).replace(tzinfo=timezone.utc)


def _load_secret_key() -> str:
    env_key = os.environ.get("APP_SECRET_KEY", "").strip()
    if env_key:
        return env_key
    if SECRET_KEY_PATH.exists():
        return SECRET_KEY_PATH.read_text(encoding="utf-8").strip()
    key = secrets.token_hex(32)
    SECRET_KEY_PATH.write_text(key, encoding="utf-8")
    return key


SECRET_KEY = _load_secret_key()
