"""Client/server sync protocol for StudyTrack.

SessionApi is the contract the timer engine talks to; api_client.py
implements it over HTTP. The protocol rules live here:

- creation conflicts are resolved by one clear-then-retry;
- updates that could not be delivered wait in a FIFO queue and are
  replayed strictly in submission order, never reordered or coalesced;
- an item leaves the queue only once the server acknowledged it (or
  rejected it for good).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from core.errors import (
    AuthenticationError,
    ConflictError,
    SessionError,
    TransientNetworkError,
)
from core.logger import get_logger
from core.models import PendingUpdate

log = get_logger(__name__)


class SessionApi:
    """Client-facing session operations. Payloads are wire-format dicts."""

    async def start_session(self) -> dict[str, Any]:
        raise NotImplementedError

    async def update_session(
        self,
        session_id: str,
        status: str | None = None,
        paused_duration_ms: int | None = None,
    ) -> dict[str, Any]:
        raise NotImplementedError

    async def end_session(
        self,
        session_id: str,
        title: str | None = None,
        description: str | None = None,
        rating: int | None = None,
        focused_duration_ms: int | None = None,
        paused_duration_ms: int | None = None,
    ) -> dict[str, Any]:
        raise NotImplementedError

    async def get_session(self, session_id: str) -> dict[str, Any]:
        raise NotImplementedError

    async def get_open_session(self) -> dict[str, Any] | None:
        raise NotImplementedError

    async def list_sessions(self, page: int = 1, limit: int = 10) -> dict[str, Any]:
        raise NotImplementedError

    async def discard_session(self, session_id: str) -> None:
        raise NotImplementedError

    async def clear_open_session(self) -> dict[str, Any] | None:
        raise NotImplementedError

    async def purge_open_sessions(self) -> int:
        raise NotImplementedError

    async def ping(self) -> bool:
        """True if the server answered. Never raises."""
        raise NotImplementedError


async def create_with_recovery(api: SessionApi) -> dict[str, Any]:
    """Start a server session, clearing one stale open session at most once.

    A session orphaned by a crash or an abandoned tab blocks creation with
    ConflictError. The second ConflictError (or any other error) propagates.
    """
    try:
        return await api.start_session()
    except ConflictError:
        log.info("Server reports an open session already; clearing it and retrying")
    await api.clear_open_session()
    return await api.start_session()


# ── Offline queue ─────────────────────────────────────────────


@dataclass
class ReplayReport:
    sent: list[tuple[PendingUpdate, dict[str, Any]]] = field(default_factory=list)
    dropped: list[tuple[PendingUpdate, Exception]] = field(default_factory=list)
    error: Exception | None = None

    @property
    def complete(self) -> bool:
        return self.error is None

    def response_for(self, item: PendingUpdate) -> dict[str, Any] | None:
        for sent_item, response in self.sent:
            if sent_item is item:
                return response
        return None

    def was_dropped(self, item: PendingUpdate) -> bool:
        return any(dropped is item for dropped, _ in self.dropped)


async def send_pending(api: SessionApi, item: PendingUpdate, now_ms: int) -> dict[str, Any]:
    """Deliver one queued item.

    An end that sat in the queue has its paused hint extended by the time it
    waited: the user stopped studying when they pressed end, so the wait is
    not focused time.
    """
    payload = dict(item.payload)
    if item.kind == "end":
        waited = max(0, now_ms - item.queued_at)
        payload["paused_duration_ms"] = int(payload.get("paused_duration_ms") or 0) + waited
        return await api.end_session(item.session_id, **payload)
    return await api.update_session(item.session_id, **payload)


class UpdateQueue:
    """FIFO buffer of updates waiting for connectivity."""

    def __init__(self) -> None:
        self._items: list[PendingUpdate] = []

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[PendingUpdate]:
        return list(self._items)

    def push(self, item: PendingUpdate) -> None:
        self._items.append(item)

    def bind_session(self, session_id: str) -> None:
        """Give items queued before the server assigned an id their id."""
        for item in self._items:
            if not item.session_id:
                item.session_id = session_id

    def drop_unbound(self) -> int:
        before = len(self._items)
        self._items = [i for i in self._items if i.session_id]
        return before - len(self._items)

    async def replay(self, api: SessionApi, now_ms: int) -> ReplayReport:
        """Send queued items in order.

        Stops at the first TransientNetworkError or AuthenticationError,
        leaving that item and everything behind it queued; the error is
        returned on the report. Items the server rejects outright
        (NotFound, BadRequest, Conflict) are dropped and reported.
        """
        report = ReplayReport()
        while self._items:
            item = self._items[0]
            if not item.session_id:
                break
            try:
                response = await send_pending(api, item, now_ms)
            except TransientNetworkError as e:
                log.debug("Replay stopped, %d item(s) still queued: %s", len(self._items), e)
                report.error = e
                break
            except AuthenticationError as e:
                log.warning("Replay stopped, server rejected credentials: %s", e)
                report.error = e
                break
            except SessionError as e:
                log.warning("Dropping queued %s for session %s: %s", item.kind, item.session_id, e)
                report.dropped.append((item, e))
            else:
                report.sent.append((item, response))
            self._items.pop(0)
        if report.sent:
            log.info("Replayed %d queued update(s)", len(report.sent))
        return report
