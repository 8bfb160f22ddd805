"""Shared test fixtures for StudyTrack tests."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
import yaml

from core import identity, lifecycle
from core.errors import TransientNetworkError
from core.sync import SessionApi

OWNER = "owner-a"
T0 = datetime(2026, 10, 19, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with standard structure."""
    root = tmp_path / "workspace"
    (root / "data").mkdir(parents=True)
    (root / "logs").mkdir(parents=True)

    config = {
        "timezone": "UTC",
        "heartbeat_seconds": 30,
        "drift_tolerance_ms": 5000,
        "default_page_size": 10,
        "max_page_size": 100,
        "stats_window_days": 30,
        "stats_max_sessions": 50,
        "admin_users": ["admin@example.com"],
    }
    (root / "config.yaml").write_text(
        yaml.dump(config, default_flow_style=False), encoding="utf-8"
    )

    # Set env var
    os.environ["STUDYTRACK_ROOT"] = str(root)
    yield root
    # Cleanup
    if "STUDYTRACK_ROOT" in os.environ:
        del os.environ["STUDYTRACK_ROOT"]


@pytest.fixture
def fast_hashing(monkeypatch):
    """PBKDF2 at full strength makes every authenticated request slow."""
    monkeypatch.setattr(identity, "PBKDF2_ITERATIONS", 1000)


class FakeClock:
    """Monotonic milliseconds and a wall clock that advance together."""

    def __init__(self, start: datetime = T0, ms: int = 1_000_000):
        self.ms = ms
        self.wall = start

    def __call__(self) -> int:
        return self.ms

    def wall_now(self) -> datetime:
        return self.wall

    def advance(self, ms: int) -> None:
        self.ms += ms
        self.wall += timedelta(milliseconds=ms)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class FakeSessionApi(SessionApi):
    """In-process SessionApi over core.lifecycle, with an offline switch.

    The server sees the fake clock's wall time, so client and server
    agree on elapsed time exactly.
    """

    def __init__(self, root: Path, clock: FakeClock, owner_id: str = OWNER):
        self.root = root
        self.clock = clock
        self.owner_id = owner_id
        self.offline = False
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def _enter(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))
        if self.offline:
            raise TransientNetworkError(f"{name}: connection refused")

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def start_session(self) -> dict[str, Any]:
        self._enter("start_session")
        return lifecycle.start_session(self.owner_id, self.root, self.clock.wall).to_dict()

    async def update_session(self, session_id, status=None, paused_duration_ms=None):
        self._enter("update_session", status=status, paused_duration_ms=paused_duration_ms)
        return lifecycle.set_status(
            session_id, self.owner_id, status, paused_duration_ms, self.root, self.clock.wall
        ).to_dict()

    async def end_session(
        self,
        session_id,
        title=None,
        description=None,
        rating=None,
        focused_duration_ms=None,
        paused_duration_ms=None,
    ):
        self._enter("end_session", paused_duration_ms=paused_duration_ms)
        return lifecycle.end_session(
            session_id,
            self.owner_id,
            title=title,
            description=description,
            rating=rating,
            focused_duration_hint=focused_duration_ms,
            paused_duration_hint=paused_duration_ms,
            root=self.root,
            now=self.clock.wall,
        ).to_dict()

    async def get_session(self, session_id):
        self._enter("get_session")
        return lifecycle.get_session(session_id, self.owner_id, self.root, self.clock.wall).to_dict()

    async def get_open_session(self):
        self._enter("get_open_session")
        session = lifecycle.get_open_session(self.owner_id, self.root, self.clock.wall)
        return session.to_dict() if session else None

    async def list_sessions(self, page=1, limit=10):
        self._enter("list_sessions")
        return lifecycle.list_sessions(self.owner_id, page, limit, self.root).to_dict()

    async def discard_session(self, session_id):
        self._enter("discard_session")
        lifecycle.discard_session(session_id, self.owner_id, self.root)

    async def clear_open_session(self):
        self._enter("clear_open_session")
        session = lifecycle.clear_open_session(self.owner_id, self.root)
        return session.to_dict() if session else None

    async def purge_open_sessions(self):
        self._enter("purge_open_sessions")
        return lifecycle.purge_open_sessions(self.root)

    async def ping(self):
        self.calls.append(("ping", {}))
        return not self.offline

    async def aclose(self):
        pass


@pytest.fixture
def fake_api(workspace: Path, clock: FakeClock) -> FakeSessionApi:
    return FakeSessionApi(workspace, clock)
