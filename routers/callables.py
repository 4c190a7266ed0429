from typing import Optional

from fastapi import APIRouter, Body
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from config import _current_user_id
from gateway import CALLABLES, HttpsError

router = APIRouter()


def callable_error_response(exc: HttpsError) -> JSONResponse:
    return JSONResponse({"error": exc.to_dict()}, status_code=exc.http_status)


@router.post("/api/callable/{name}")
async def api_callable(name: str, body: Optional[dict] = Body(None)):
    operation = CALLABLES.get(name)
    if operation is None:
        raise HttpsError("not-found", f"Unknown function: {name}")
    # Caller identity is resolved by the auth middleware; None when signed out
    uid = _current_user_id.get()
    result = await run_in_threadpool(operation, uid, (body or {}).get("data"))
    return JSONResponse({"result": result})
