"""Client-side study timer for StudyTrack.

The engine keeps its own clock: start, pause, resume and end change local
state immediately, and the server is told afterwards. Network failures
never stop the timer; they flip the engine offline and park the update in
the FIFO queue until a reconnect replays it.

States: idle -> active <-> paused -> completed -> (reset) idle.

All local accounting uses a monotonic millisecond clock, so wall-clock
jumps on the client cannot add or remove focused time.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from core.errors import AuthenticationError, SessionError, TransientNetworkError
from core.logger import get_logger
from core.models import PendingUpdate, StudySession, to_iso
from core.sync import SessionApi, UpdateQueue, create_with_recovery
from core.titles import auto_title

log = get_logger(__name__)

IDLE = "idle"
ACTIVE = "active"
PAUSED = "paused"
COMPLETED = "completed"

OFFLINE_PREFIX = "offline_"

NETWORK_ONLINE = "online"
NETWORK_OFFLINE = "offline"
NETWORK_SYNCING = "syncing"

END_WARNING = (
    "Unable to save session to server. Your session data is being tracked "
    "locally and will sync when the connection returns."
)
LOCAL_ONLY_WARNING = "Server unreachable when this session started; it was recorded locally only."


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def _wall_now() -> datetime:
    return datetime.now().astimezone()


class InvalidTransition(ValueError):
    pass


@dataclass
class TickResult:
    elapsed_ms: int
    heartbeat_due: bool = False
    reconnect_due: bool = False


@dataclass
class EndResult:
    local_duration_ms: int
    local_paused_ms: int
    title: str | None = None
    session: StudySession | None = None
    synced: bool = False
    warning: str | None = None


class TimerEngine:
    """Stopwatch that mirrors one server session optimistically."""

    def __init__(
        self,
        api: SessionApi,
        clock: Callable[[], int] | None = None,
        wall_clock: Callable[[], datetime] | None = None,
        heartbeat_seconds: int = 30,
    ):
        self.api = api
        self._clock = clock or _monotonic_ms
        self._wall = wall_clock or _wall_now
        self.heartbeat_ms = heartbeat_seconds * 1000

        self.status = IDLE
        self.session_id: str | None = None
        self.server_session: StudySession | None = None
        self.online = True
        self.syncing = False
        self.queue = UpdateQueue()
        self.local_records: list[dict[str, Any]] = []
        self.last_error: str | None = None

        self._start_ms: int | None = None
        self._paused_ms = 0
        self._pause_started_ms: int | None = None
        self._final_elapsed_ms = 0
        self._last_heartbeat_ms = 0
        self._last_probe_ms = 0
        self._created: asyncio.Event | None = None

    # ── Derived state ──────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self.status in (ACTIVE, PAUSED)

    @property
    def is_local_only(self) -> bool:
        return bool(self.session_id) and self.session_id.startswith(OFFLINE_PREFIX)

    @property
    def network_status(self) -> str:
        if self.syncing:
            return NETWORK_SYNCING
        return NETWORK_ONLINE if self.online else NETWORK_OFFLINE

    def elapsed_ms(self, now: int | None = None) -> int:
        """Focused time so far. Frozen while paused and once completed."""
        if self.status == IDLE or self._start_ms is None:
            return 0
        if self.status == COMPLETED:
            return self._final_elapsed_ms
        if now is None:
            now = self._clock()
        if self.status == PAUSED and self._pause_started_ms is not None:
            now = self._pause_started_ms
        return max(0, now - self._start_ms - self._paused_ms)

    def paused_ms(self) -> int:
        """Completed pause intervals only: what the server is told."""
        return self._paused_ms

    def display_paused_ms(self, now: int | None = None) -> int:
        """Paused total including the pause in progress, for display."""
        if self.status == PAUSED and self._pause_started_ms is not None:
            if now is None:
                now = self._clock()
            return self._paused_ms + max(0, now - self._pause_started_ms)
        return self._paused_ms

    def _require(self, *states: str, action: str) -> None:
        if self.status not in states:
            raise InvalidTransition(f"Cannot {action} while {self.status}")

    # ── Tick ──────────────────────────────────────────────────

    def tick(self) -> TickResult:
        """Called once per second by the UI. Never touches the network.

        Reports when a heartbeat or a reconnect probe is due; the caller
        runs those as separate tasks so the display never waits on them.
        """
        now = self._clock()
        result = TickResult(elapsed_ms=self.elapsed_ms(now))
        if (
            self.status == ACTIVE
            and self.online
            and self.session_id
            and not self.is_local_only
            and now - self._last_heartbeat_ms >= self.heartbeat_ms
        ):
            self._last_heartbeat_ms = now
            result.heartbeat_due = True
        if not self.online and now - self._last_probe_ms >= self.heartbeat_ms:
            self._last_probe_ms = now
            result.reconnect_due = True
        return result

    # ── Transitions ───────────────────────────────────────────

    async def start(self) -> str:
        """Start timing now, then create the server session.

        Returns the session id: the server's, or a synthetic offline_ id
        when the server could not be reached even after recovery.
        """
        self._require(IDLE, action="start")
        now = self._clock()
        self._start_ms = now
        self._paused_ms = 0
        self._pause_started_ms = None
        self._final_elapsed_ms = 0
        self._last_heartbeat_ms = now
        self.session_id = None
        self.server_session = None
        self.last_error = None
        self.status = ACTIVE
        self._created = asyncio.Event()

        try:
            if len(self.queue):
                await self._flush(force=True)
            data = await create_with_recovery(self.api)
        except (TransientNetworkError, SessionError, AuthenticationError) as e:
            log.warning("Could not create server session, running locally: %s", e)
            if isinstance(e, TransientNetworkError):
                self._go_offline()
            self.session_id = f"{OFFLINE_PREFIX}{int(self._wall().timestamp() * 1000)}"
            dropped = self.queue.drop_unbound()
            if dropped:
                log.debug("Dropped %d update(s) queued for the local-only session", dropped)
        else:
            self._apply_server(data)
            self.session_id = self.server_session.id
            self.queue.bind_session(self.session_id)
            if len(self.queue):
                await self._flush()
        finally:
            self._created.set()

        log.info("Timer started (session %s)", self.session_id)
        return self.session_id

    async def pause(self) -> None:
        self._require(ACTIVE, action="pause")
        self._pause_started_ms = self._clock()
        self.status = PAUSED
        await self._push_update({"status": PAUSED, "paused_duration_ms": self._paused_ms})

    async def resume(self) -> None:
        self._require(PAUSED, action="resume")
        now = self._clock()
        if self._pause_started_ms is not None:
            self._paused_ms += max(0, now - self._pause_started_ms)
        self._pause_started_ms = None
        self._last_heartbeat_ms = now
        self.status = ACTIVE
        await self._push_update({"status": ACTIVE, "paused_duration_ms": self._paused_ms})

    async def toggle_pause(self) -> None:
        if self.status == ACTIVE:
            await self.pause()
        else:
            await self.resume()

    async def end(
        self,
        title: str | None = None,
        description: str | None = None,
        rating: int | None = None,
    ) -> EndResult:
        """Stop timing and ask the server to persist the session.

        The local figures are final for display right away. If the server
        cannot be reached the end stays queued and the result carries a
        warning for the user.
        """
        self._require(ACTIVE, PAUSED, action="end")
        now = self._clock()
        if self.status == PAUSED and self._pause_started_ms is not None:
            self._paused_ms += max(0, now - self._pause_started_ms)
            self._pause_started_ms = None
        self._final_elapsed_ms = max(0, now - (self._start_ms or now) - self._paused_ms)
        self.status = COMPLETED

        result = EndResult(
            local_duration_ms=self._final_elapsed_ms,
            local_paused_ms=self._paused_ms,
            title=title,
        )

        if self._created is not None and not self._created.is_set():
            await self._created.wait()

        if self.is_local_only:
            self._record_locally(result, description, rating)
            result.warning = LOCAL_ONLY_WARNING
            return result

        item = PendingUpdate(
            kind="end",
            session_id=self.session_id or "",
            payload={
                "title": title,
                "description": description,
                "rating": rating,
                "focused_duration_ms": self._final_elapsed_ms,
                "paused_duration_ms": self._paused_ms,
            },
            queued_at=now,
            queued_wall=to_iso(self._wall()) or "",
        )
        self.queue.push(item)
        report = await self._flush(force=True)

        response = report.response_for(item) if report else None
        if response is not None:
            self._apply_server(response)
            result.session = self.server_session
            result.synced = True
        elif report is not None and report.was_dropped(item):
            self._record_locally(result, description, rating)
            result.warning = "The server no longer has this session; it was recorded locally only."
        else:
            result.warning = END_WARNING
            self.last_error = END_WARNING
        log.info(
            "Timer ended (session %s): local duration_ms=%d paused_ms=%d synced=%s",
            self.session_id, result.local_duration_ms, result.local_paused_ms, result.synced,
        )
        return result

    async def auto_end(self) -> EndResult | None:
        """End an open session on exit with a generated title. Never raises."""
        if not self.is_open:
            return None
        title = auto_title(self.elapsed_ms(), self._wall())
        try:
            return await self.end(title=title)
        except Exception:
            log.exception("Automatic end on exit failed")
            return None

    def schedule_auto_end(self) -> asyncio.Task:
        """Fire-and-forget variant of auto_end for unmount/navigation paths."""
        return asyncio.ensure_future(self.auto_end())

    def reset(self) -> None:
        """completed -> idle. Queued items for earlier sessions are kept."""
        self._require(COMPLETED, action="reset")
        self.status = IDLE
        self.session_id = None
        self.server_session = None
        self._start_ms = None
        self._paused_ms = 0
        self._pause_started_ms = None
        self._final_elapsed_ms = 0
        self._created = None
        self.last_error = None

    # ── Network side ──────────────────────────────────────────

    async def heartbeat(self) -> bool:
        """Best-effort status refresh so a crash leaves a fresh record.

        Failures are swallowed; a network failure only marks the engine
        offline.
        """
        if self.status != ACTIVE or not self.session_id or self.is_local_only:
            return False
        if len(self.queue):
            return False
        try:
            data = await self.api.update_session(
                self.session_id, paused_duration_ms=self._paused_ms
            )
        except TransientNetworkError as e:
            log.debug("Heartbeat failed: %s", e)
            self._go_offline()
            return False
        except (SessionError, AuthenticationError) as e:
            log.warning("Heartbeat rejected for session %s: %s", self.session_id, e)
            return False
        self._apply_server(data)
        return True

    async def reconnect(self) -> bool:
        """Probe the server; if it answers, replay the queue before going online."""
        if not await self.api.ping():
            return False
        report = await self._flush(force=True)
        if report is None:
            self._go_online()
            return True
        return report.complete

    async def _push_update(self, payload: dict[str, Any]) -> None:
        if self.is_local_only:
            return
        self.queue.push(PendingUpdate(
            kind="update",
            session_id=self.session_id or "",
            payload=payload,
            queued_at=self._clock(),
            queued_wall=to_iso(self._wall()) or "",
        ))
        if self.session_id and self.online:
            await self._flush()

    async def _flush(self, force: bool = False):
        """Replay the queue. With force, try even while marked offline."""
        if not len(self.queue) or (not self.online and not force):
            return None
        self.syncing = True
        try:
            report = await self.queue.replay(self.api, self._clock())
        finally:
            self.syncing = False
        for item, response in report.sent:
            if item.session_id == self.session_id:
                self._apply_server(response)
        if report.complete:
            self._go_online()
        else:
            self._go_offline()
        return report

    def _go_online(self) -> None:
        if not self.online:
            log.info("Back online")
        self.online = True

    def _go_offline(self) -> None:
        if self.online:
            log.warning("Lost connection to server; queuing updates")
        self.online = False
        self._last_probe_ms = self._clock()

    def _apply_server(self, data: dict[str, Any] | None) -> None:
        if data:
            self.server_session = StudySession.from_dict(data)

    def _record_locally(self, result: EndResult, description: str | None, rating: int | None) -> None:
        self.local_records.append({
            "id": self.session_id,
            "title": result.title or auto_title(result.local_duration_ms, self._wall()),
            "description": description,
            "rating": rating,
            "durationMs": result.local_duration_ms,
            "pausedDurationMs": result.local_paused_ms,
            "endedAt": to_iso(self._wall()),
        })
