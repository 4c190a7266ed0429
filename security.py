import hashlib
import hmac
import logging
import secrets
import threading
from collections import defaultdict
from time import time

from fastapi import Request

from config import (
    SESSION_COOKIE_NAME,
    SESSION_TTL_SECONDS,
    CSRF_COOKIE_NAME,
    SECRET_KEY,
)
from db import get_db

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# In-memory rate limiting (per-IP, resets on server restart)
# ---------------------------------------------------------------------------
_rate_lock = threading.Lock()
_login_buckets: dict[str, list[float]] = defaultdict(list)

_LOGIN_WINDOW = 300   # 5 minutes
_LOGIN_MAX = 10       # attempts per window per IP


def _check_rate_limit(bucket: dict, ip: str, window: int, max_attempts: int) -> bool:
    """Return True if the request should be allowed, False if rate limited."""
    now = time()
    with _rate_lock:
        bucket[ip] = [t for t in bucket[ip] if now - t < window]
        if len(bucket[ip]) >= max_attempts:
            return False
        bucket[ip].append(now)
        return True


def _is_login_allowed(ip: str) -> bool:
    return _check_rate_limit(_login_buckets, ip, _LOGIN_WINDOW, _LOGIN_MAX)


def _request_origin_host(request: Request) -> str:
    header = request.headers.get("origin") or request.headers.get("referer") or ""
    if not header or "://" not in header:
        return ""
    return header.split("://", 1)[1].split("/", 1)[0].lower()


def _is_same_origin(request: Request) -> bool:
    origin_host = _request_origin_host(request)
    if not origin_host:
        return False
    return origin_host == request.url.netloc.lower()


def _ensure_csrf_cookie(request: Request, response):
    if request.cookies.get(CSRF_COOKIE_NAME):
        return response
    response.set_cookie(
        CSRF_COOKIE_NAME,
        secrets.token_urlsafe(32),
        httponly=False,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return response


def _csrf_header_valid(request: Request) -> bool:
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME, "")
    header_token = request.headers.get("x-csrf-token", "")
    return bool(cookie_token) and hmac.compare_digest(cookie_token, header_token)


def _hash_password(plaintext: str) -> str:
    salt = secrets.token_bytes(32)
    dk = hashlib.pbkdf2_hmac("sha256", plaintext.encode(), salt, 480_000)
    return salt.hex() + ":" + dk.hex()


def _verify_password(plaintext: str, stored: str) -> bool:
    try:
        salt_hex, dk_hex = stored.split(":")
        dk = hashlib.pbkdf2_hmac("sha256", plaintext.encode(), bytes.fromhex(salt_hex), 480_000)
        return hmac.compare_digest(dk, bytes.fromhex(dk_hex))
    except ValueError:
        return False


def _make_session_token(username: str, password_hash: str) -> str:
    exp = int(time()) + SESSION_TTL_SECONDS
    nonce = secrets.token_urlsafe(16)
    payload = f"{username}:{exp}:{nonce}"
    sig = hmac.new(SECRET_KEY.encode(), f"{payload}:{password_hash}".encode(), "sha256").hexdigest()
    return f"{payload}:{sig}"


def _verify_session_token(token: str, username: str, password_hash: str) -> bool:
    try:
        token_username, exp_s, nonce, sig = token.split(":", 3)
        if token_username != username:
            return False
        exp = int(exp_s)
    except ValueError:
        return False
    if exp < int(time()):
        return False
    payload = f"{token_username}:{exp}:{nonce}"
    expected = hmac.new(
        SECRET_KEY.encode(),
        f"{payload}:{password_hash}".encode(),
        "sha256",
    ).hexdigest()
    return hmac.compare_digest(sig, expected)


def _set_session_cookie(response, request: Request, username: str, password_hash: str):
    response.set_cookie(
        SESSION_COOKIE_NAME,
        _make_session_token(username, password_hash),
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
        max_age=SESSION_TTL_SECONDS,
    )
    return response


def _get_authenticated_user(request: Request):
    """Extract username from session token; look up users by username. Returns Row or None."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME, "")
    if not cookie:
        return None
    parts = cookie.split(":", 3)
    if len(parts) < 4:
        return None
    token_username = parts[0]
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE username = ?", (token_username,)
        ).fetchone()
    if not row or not row["password_hash"]:
        return None
    if not _verify_session_token(cookie, token_username, row["password_hash"]):
        logger.warning("Rejected session token for user %s", token_username)
        return None
    return row
