"""HTTP implementation of the SessionApi contract, on httpx."""

from __future__ import annotations

from typing import Any

import httpx

from core.errors import (
    AuthenticationError,
    BadRequestError,
    ConflictError,
    NotFoundError,
    TransientNetworkError,
)
from core.logger import get_logger
from core.sync import SessionApi

log = get_logger(__name__)


def _detail(resp: httpx.Response) -> str:
    try:
        detail = resp.json().get("detail", "")
    except ValueError:
        return resp.text or resp.reason_phrase
    return detail if isinstance(detail, str) else str(detail)


def raise_for_response(resp: httpx.Response) -> None:
    """Translate an HTTP error status into the StudyTrack error taxonomy."""
    if resp.status_code < 400:
        return
    message = _detail(resp)
    if resp.status_code == 409:
        raise ConflictError(message)
    if resp.status_code == 404:
        raise NotFoundError(message)
    if resp.status_code in (400, 422):
        raise BadRequestError(message)
    if resp.status_code in (401, 403):
        raise AuthenticationError(message)
    if resp.status_code >= 500:
        raise TransientNetworkError(f"Server error {resp.status_code}: {message}")
    raise BadRequestError(message)


class SessionApiClient(SessionApi):
    """Talks to the StudyTrack server. Use as an async context manager."""

    def __init__(
        self,
        base_url: str,
        email: str = "",
        password: str = "",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        auth = httpx.BasicAuth(email, password) if email else None
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=auth,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> SessionApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            resp = await self.client.request(method, path, json=json, params=params)
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{method} {path} failed: {e!r}") from e
        raise_for_response(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def start_session(self) -> dict[str, Any]:
        return await self._request("POST", "/api/sessions/start")

    async def update_session(
        self,
        session_id: str,
        status: str | None = None,
        paused_duration_ms: int | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if status is not None:
            body["status"] = status
        if paused_duration_ms is not None:
            body["pausedDurationMs"] = paused_duration_ms
        return await self._request("PATCH", f"/api/sessions/{session_id}", json=body)

    async def end_session(
        self,
        session_id: str,
        title: str | None = None,
        description: str | None = None,
        rating: int | None = None,
        focused_duration_ms: int | None = None,
        paused_duration_ms: int | None = None,
    ) -> dict[str, Any]:
        body = {
            "title": title,
            "description": description,
            "rating": rating,
            "focusedDurationMs": focused_duration_ms,
            "pausedDurationMs": paused_duration_ms,
        }
        body = {k: v for k, v in body.items() if v is not None}
        return await self._request("POST", f"/api/sessions/{session_id}/end", json=body)

    async def get_session(self, session_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/api/sessions/{session_id}")

    async def get_open_session(self) -> dict[str, Any] | None:
        data = await self._request("GET", "/api/sessions/current")
        return data.get("session") if data else None

    async def list_sessions(self, page: int = 1, limit: int = 10) -> dict[str, Any]:
        return await self._request("GET", "/api/sessions", params={"page": page, "limit": limit})

    async def discard_session(self, session_id: str) -> None:
        await self._request("DELETE", f"/api/sessions/{session_id}")

    async def clear_open_session(self) -> dict[str, Any] | None:
        data = await self._request("DELETE", "/api/sessions/current")
        return data.get("session") if data else None

    async def purge_open_sessions(self) -> int:
        data = await self._request("POST", "/api/admin/purge-open-sessions")
        return int(data.get("deletedCount", 0))

    async def ping(self) -> bool:
        try:
            resp = await self.client.get("/healthz")
        except httpx.TransportError as e:
            log.debug("Ping failed: %r", e)
            return False
        return resp.status_code == 200
