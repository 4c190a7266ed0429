import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import CALLABLE_PREFIX, LOG_LEVEL, PUBLIC_PATHS, SCHEDULER_ENABLED, _current_user_id
from db import init_db
from gateway import HttpsError
from routers import auth, callables, records, reports
from security import _csrf_header_valid, _ensure_csrf_cookie, _get_authenticated_user, _is_same_origin

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

init_db()


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if SCHEDULER_ENABLED:
        from scheduler import start_scheduler

        scheduler = start_scheduler()
    else:
        logger.info("Reminder scheduler disabled via SCHEDULER_ENABLED")
    try:
        yield
    finally:
        if scheduler is not None:
            from scheduler import stop_scheduler

            stop_scheduler(scheduler)


app = FastAPI(lifespan=lifespan)


@app.exception_handler(HttpsError)
async def https_error_handler(request: Request, exc: HttpsError):
    return callables.callable_error_response(exc)


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    path = request.url.path
    if request.method in {"POST", "PUT", "PATCH", "DELETE"}:
        if not _is_same_origin(request):
            return JSONResponse({"error": "forbidden"}, status_code=403)
        if path.startswith("/api/") and not _csrf_header_valid(request):
            return JSONResponse({"error": "forbidden"}, status_code=403)

    if path in PUBLIC_PATHS:
        _current_user_id.set(None)
        return _ensure_csrf_cookie(request, await call_next(request))

    user = _get_authenticated_user(request)
    _current_user_id.set(user["uid"] if user else None)
    # Callables report a missing caller themselves, as an UNAUTHENTICATED error
    if not user and not path.startswith(CALLABLE_PREFIX):
        return JSONResponse({"error": "unauthorized"}, status_code=401)
    return _ensure_csrf_cookie(request, await call_next(request))


@app.get("/")
def root():
    return JSONResponse({"ok": True, "service": "health-companion"})


app.include_router(auth.router)
app.include_router(callables.router)
app.include_router(records.router)
app.include_router(reports.router)
