"""Async HTTP client for the health companion service.

Keeps the session and CSRF cookies, and sends the ``Origin`` and
``x-csrf-token`` headers the service requires on every mutating call.
"""
import logging
from typing import Any, Optional

import httpx

from config import CSRF_COOKIE_NAME

logger = logging.getLogger(__name__)


class HealthApiError(Exception):
    def __init__(self, code: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            return err.get("message") or err.get("status") or f"HTTP {resp.status_code}"
        if err:
            return str(err)
    return f"HTTP {resp.status_code}"


class HealthApiClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.uid: Optional[str] = None
        self.username: Optional[str] = None
        self._http = httpx.AsyncClient(base_url=self.base_url, transport=transport, timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    def _write_headers(self) -> dict:
        headers = {"origin": self.base_url}
        csrf = self._http.cookies.get(CSRF_COOKIE_NAME)
        if csrf:
            headers["x-csrf-token"] = csrf
        return headers

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if method != "GET":
            kwargs["headers"] = {**self._write_headers(), **kwargs.get("headers", {})}
        resp = await self._http.request(method, url, **kwargs)
        if resp.status_code >= 400:
            raise HealthApiError(_code_for(resp.status_code), _error_message(resp), resp.status_code)
        return resp

    # -- session ---------------------------------------------------------

    async def refresh_session(self) -> Optional[str]:
        """Ask the service who we are (also obtains the CSRF cookie)."""
        resp = await self._request("GET", "/api/session")
        body = resp.json()
        self.uid = body.get("uid")
        self.username = body.get("username")
        return self.uid

    async def _ensure_csrf(self) -> None:
        if not self._http.cookies.get(CSRF_COOKIE_NAME):
            await self.refresh_session()

    async def signup(self, username: str, password: str, email: str = "") -> str:
        await self._ensure_csrf()
        resp = await self._request("POST", "/signup", data={
            "username": username,
            "email": email,
            "new_password": password,
            "confirm_password": password,
        })
        body = resp.json()
        self.uid, self.username = body["uid"], body["username"]
        return self.uid

    async def login(self, username: str, password: str) -> str:
        await self._ensure_csrf()
        resp = await self._request("POST", "/login", data={"username": username, "password": password})
        body = resp.json()
        self.uid, self.username = body["uid"], body["username"]
        return self.uid

    async def logout(self) -> None:
        await self._request("POST", "/logout")
        self.uid = None
        self.username = None

    # -- callables -------------------------------------------------------

    async def call(self, name: str, data: Optional[dict] = None) -> Any:
        """Invoke a callable function and return its ``result`` payload."""
        await self._ensure_csrf()
        resp = await self._request("POST", f"/api/callable/{name}", json={"data": data or {}})
        return resp.json()["result"]

    # -- records ---------------------------------------------------------

    async def list_records(self, collection: str, order_by: str = "", descending: bool = False) -> list[dict]:
        params = {"direction": "desc" if descending else "asc"}
        if order_by:
            params["orderBy"] = order_by
        resp = await self._request("GET", f"/api/records/{collection}", params=params)
        return resp.json()["records"]

    async def add_record(self, collection: str, values: dict) -> dict:
        await self._ensure_csrf()
        resp = await self._request("POST", f"/api/records/{collection}", json=values)
        return resp.json()["record"]

    async def update_record(self, collection: str, record_id: str, changes: dict) -> dict:
        await self._ensure_csrf()
        resp = await self._request("POST", f"/api/records/{collection}/{record_id}/edit", json=changes)
        return resp.json()["record"]

    async def delete_record(self, collection: str, record_id: str) -> None:
        await self._ensure_csrf()
        await self._request("POST", f"/api/records/{collection}/{record_id}/delete")

    async def get_report(self, data_type: str) -> str:
        resp = await self._request("GET", f"/api/reports/{data_type}")
        return resp.text


def _code_for(status_code: int) -> str:
    return {
        400: "invalid-argument",
        401: "unauthenticated",
        403: "permission-denied",
        404: "not-found",
        429: "resource-exhausted",
    }.get(status_code, "internal")
