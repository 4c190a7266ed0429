import secrets

from fastapi import APIRouter, Form, Request
from fastapi.responses import JSONResponse

from config import SESSION_COOKIE_NAME, _to_utc_storage, _utc_now
from db import get_db
from security import (
    _get_authenticated_user,
    _hash_password,
    _is_login_allowed,
    _set_session_cookie,
    _verify_password,
)

router = APIRouter()

MAX_USERNAME_LEN = 64


def _session_payload(user) -> dict:
    return {"ok": True, "uid": user["uid"], "username": user["username"]}


@router.post("/signup")
def signup_post(
    request: Request,
    username: str = Form(""),
    email: str = Form(""),
    new_password: str = Form(""),
    confirm_password: str = Form(""),
):
    username = username.strip()
    if not username:
        return JSONResponse({"ok": False, "error": "Username is required"}, status_code=400)
    if len(username) > MAX_USERNAME_LEN:
        return JSONResponse(
            {"ok": False, "error": f"Username must be {MAX_USERNAME_LEN} characters or fewer"},
            status_code=400,
        )
    if len(new_password) < 8:
        return JSONResponse({"ok": False, "error": "Password must be at least 8 characters"}, status_code=400)
    if new_password != confirm_password:
        return JSONResponse({"ok": False, "error": "Passwords do not match"}, status_code=400)
    with get_db() as conn:
        existing = conn.execute(
            "SELECT 1 FROM users WHERE username = ?", (username,)
        ).fetchone()
        if existing:
            return JSONResponse({"ok": False, "error": "Username already taken"}, status_code=400)
    pw_hash = _hash_password(new_password)
    uid = secrets.token_hex(14)
    with get_db() as conn:
        conn.execute(
            "INSERT INTO users (uid, username, email, password_hash, created_at) VALUES (?, ?, ?, ?, ?)",
            (uid, username, email.strip().lower(), pw_hash, _to_utc_storage(_utc_now())),
        )
        conn.commit()
    resp = JSONResponse({"ok": True, "uid": uid, "username": username})
    _set_session_cookie(resp, request, username, pw_hash)
    return resp


@router.post("/login")
def login_post(request: Request, username: str = Form(""), password: str = Form("")):
    ip = request.client.host if request.client else "unknown"
    if not _is_login_allowed(ip):
        return JSONResponse(
            {"ok": False, "error": "Too many login attempts. Please try again later."},
            status_code=429,
        )
    with get_db() as conn:
        user = conn.execute(
            "SELECT * FROM users WHERE username = ?", (username.strip(),)
        ).fetchone()
    if not user or not _verify_password(password, user["password_hash"]):
        return JSONResponse({"ok": False, "error": "Invalid username or password"}, status_code=401)
    resp = JSONResponse(_session_payload(user))
    _set_session_cookie(resp, request, user["username"], user["password_hash"])
    return resp


@router.post("/logout")
def logout():
    resp = JSONResponse({"ok": True})
    resp.delete_cookie(SESSION_COOKIE_NAME)
    return resp


@router.get("/api/session")
def api_session(request: Request):
    user = _get_authenticated_user(request)
    if not user:
        return JSONResponse({"uid": None, "username": None})
    return JSONResponse({"uid": user["uid"], "username": user["username"]})
