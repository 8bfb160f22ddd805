"""Session record store for StudyTrack.

Open sessions live in data/open_sessions.json keyed by owner id, so the
one-open-session-per-owner invariant is structural: a slot either holds a
record or it doesn't. Completed sessions are appended to data/sessions.json.

Every read-modify-write runs under one process-wide lock; FastAPI serves
sync endpoints from a thread pool, so two requests for the same owner can
otherwise interleave between read and write.
"""

from __future__ import annotations

import math
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from core.errors import ConflictError, NotFoundError
from core.fileio import read_json, write_json_atomic
from core.logger import get_logger
from core.models import STATUS_ACTIVE, STATUS_COMPLETED, SessionPage, StudySession
from core.titles import default_session_title
from core.workspace import open_sessions_path, sessions_path, workspace_root

log = get_logger(__name__)

_LOCK = threading.RLock()

NOT_FOUND_MESSAGE = "Session not found"


@contextmanager
def locked():
    """Hold the store lock across a caller's own read-modify-write."""
    with _LOCK:
        yield


# ── Raw file access ───────────────────────────────────────────


def _load_open(root: Path) -> dict[str, dict[str, Any]]:
    data = read_json(open_sessions_path(root))
    sessions = data.get("sessions") or {}
    return sessions if isinstance(sessions, dict) else {}


def _save_open(open_sessions: dict[str, dict[str, Any]], root: Path) -> None:
    write_json_atomic(open_sessions_path(root), {"sessions": open_sessions})


def _load_completed(root: Path) -> list[dict[str, Any]]:
    data = read_json(sessions_path(root))
    sessions = data.get("sessions") or []
    return sessions if isinstance(sessions, list) else []


def _save_completed(sessions: list[dict[str, Any]], root: Path) -> None:
    write_json_atomic(sessions_path(root), {"sessions": sessions})


# ── Open sessions ─────────────────────────────────────────────


def create_if_absent(owner_id: str, now: datetime, root: Path | None = None) -> StudySession:
    """Occupy the owner's open-session slot. Raises ConflictError if held."""
    if root is None:
        root = workspace_root()
    with _LOCK:
        open_sessions = _load_open(root)
        if owner_id in open_sessions:
            raise ConflictError("User already has an active session")

        session = StudySession(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            title=default_session_title(now),
            start_time=now,
            status=STATUS_ACTIVE,
            created_at=now,
            updated_at=now,
        )
        open_sessions[owner_id] = session.to_dict()
        _save_open(open_sessions, root)
    return session


def find_open(owner_id: str, root: Path | None = None) -> StudySession | None:
    if root is None:
        root = workspace_root()
    with _LOCK:
        data = _load_open(root).get(owner_id)
    return StudySession.from_dict(data) if data else None


def get_open(session_id: str, owner_id: str, root: Path | None = None) -> StudySession:
    """The owner's open session, if its id matches. Raises NotFoundError."""
    session = find_open(owner_id, root)
    if session is None or session.id != session_id:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    return session


def save_open(session: StudySession, root: Path | None = None) -> StudySession:
    """Replace the owner's open record. The slot must still hold this id."""
    if root is None:
        root = workspace_root()
    with _LOCK:
        open_sessions = _load_open(root)
        current = open_sessions.get(session.owner_id)
        if not current or current.get("id") != session.id:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        open_sessions[session.owner_id] = session.to_dict()
        _save_open(open_sessions, root)
    return session


def complete(
    session_id: str,
    owner_id: str,
    final: StudySession,
    root: Path | None = None,
) -> StudySession:
    """Move the open record to the completed list in one locked step."""
    if root is None:
        root = workspace_root()
    with _LOCK:
        open_sessions = _load_open(root)
        current = open_sessions.get(owner_id)
        if not current or current.get("id") != session_id:
            raise NotFoundError(NOT_FOUND_MESSAGE)

        final.status = STATUS_COMPLETED
        final.paused_at = None
        completed = _load_completed(root)
        completed.append(final.to_dict())
        _save_completed(completed, root)

        del open_sessions[owner_id]
        _save_open(open_sessions, root)
    return final


def discard(session_id: str, owner_id: str, root: Path | None = None) -> StudySession:
    """Drop the open record without persisting it. Raises NotFoundError."""
    if root is None:
        root = workspace_root()
    with _LOCK:
        open_sessions = _load_open(root)
        current = open_sessions.get(owner_id)
        if not current or current.get("id") != session_id:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        del open_sessions[owner_id]
        _save_open(open_sessions, root)
    return StudySession.from_dict(current)


def purge_all_open_sessions(root: Path | None = None) -> int:
    """Administrative cleanup: drop every open record. Returns how many."""
    if root is None:
        root = workspace_root()
    with _LOCK:
        count = len(_load_open(root))
        _save_open({}, root)
    log.info("Purged %d open session(s)", count)
    return count


# ── Completed sessions ────────────────────────────────────────


def get_by_id(session_id: str, owner_id: str, root: Path | None = None) -> StudySession:
    """Open or completed session scoped to its owner.

    A foreign id and a missing id produce the same NotFoundError.
    """
    if root is None:
        root = workspace_root()
    with _LOCK:
        current = _load_open(root).get(owner_id)
        if current and current.get("id") == session_id:
            return StudySession.from_dict(current)
        for d in _load_completed(root):
            if d.get("id") == session_id and d.get("ownerId") == owner_id:
                return StudySession.from_dict(d)
    raise NotFoundError(NOT_FOUND_MESSAGE)


def _owner_completed(owner_id: str, root: Path) -> list[StudySession]:
    with _LOCK:
        rows = [d for d in _load_completed(root) if d.get("ownerId") == owner_id]
    sessions = [StudySession.from_dict(d) for d in rows]
    sessions.sort(key=lambda s: s.created_at or s.start_time, reverse=True)
    return sessions


def list_completed(
    owner_id: str,
    page: int = 1,
    page_size: int = 10,
    root: Path | None = None,
) -> SessionPage:
    """Completed sessions, newest first by creation time."""
    if root is None:
        root = workspace_root()
    sessions = _owner_completed(owner_id, root)
    total = len(sessions)
    skip = (page - 1) * page_size
    return SessionPage(
        items=sessions[skip:skip + page_size],
        total=total,
        total_pages=math.ceil(total / page_size) if page_size else 0,
        page=page,
        page_size=page_size,
    )


def completed_since(
    owner_id: str,
    since: datetime,
    limit: int | None = None,
    root: Path | None = None,
) -> list[StudySession]:
    """Completed sessions started at or after `since`, newest first."""
    if root is None:
        root = workspace_root()
    recent = [
        s for s in _owner_completed(owner_id, root)
        if s.start_time is not None and s.start_time >= since
    ]
    return recent[:limit] if limit is not None else recent
