"""Study session lifecycle for StudyTrack.

State machine per session:

    active <-> paused -> completed
    active | paused -> discarded (record deleted, nothing persisted)

The store owns the one-open-session-per-owner slot; this module validates
transitions, does the duration bookkeeping and decides the final numbers
when a session ends.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from core import store
from core.duration import compute_duration, elapsed_ms
from core.errors import BadRequestError
from core.logger import get_logger
from core.models import (
    OPEN_STATUSES,
    STATUS_ACTIVE,
    STATUS_PAUSED,
    SessionPage,
    StudySession,
)
from core.titles import default_session_title
from core.workspace import load_settings, now_local, workspace_root

log = get_logger(__name__)


# ── Validation ────────────────────────────────────────────────


def validate_rating(rating: Any) -> int | None:
    """None or an integer 1-5. Anything else is a BadRequestError."""
    if rating is None:
        return None
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise BadRequestError("Rating must be an integer between 1 and 5")
    if rating < 1 or rating > 5:
        raise BadRequestError("Rating must be between 1 and 5 stars")
    return rating


def _validate_ms(value: Any, name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise BadRequestError(f"{name} must be a number of milliseconds")
    if value < 0:
        raise BadRequestError(f"{name} cannot be negative")
    return int(value)


# ── Snapshots ─────────────────────────────────────────────────


def snapshot(session: StudySession, now: datetime) -> StudySession:
    """Fill in duration_ms for the given instant.

    Active sessions are computed live, paused ones stay frozen at the value
    captured when they were paused, completed ones are never touched.
    """
    if session.status == STATUS_ACTIVE and session.start_time is not None:
        result = compute_duration(session.start_time, now, session.paused_duration_ms)
        session.duration_ms = result.duration_ms
    return session


# ── Operations ────────────────────────────────────────────────


def start_session(
    owner_id: str,
    root: Path | None = None,
    now: datetime | None = None,
) -> StudySession:
    """Open a new active session. Raises ConflictError if one is open."""
    if root is None:
        root = workspace_root()
    if now is None:
        now = now_local(root)

    session = store.create_if_absent(owner_id, now, root)
    log.info("Session %s started for owner %s", session.id, owner_id)
    return snapshot(session, now)


def set_status(
    session_id: str,
    owner_id: str,
    status: str | None = None,
    paused_duration_ms: Any = None,
    root: Path | None = None,
    now: datetime | None = None,
) -> StudySession:
    """Pause, resume or heartbeat an open session.

    Resuming accepts the caller's paused total (which should include the
    pause that just ended); if the caller sends none, the server adds the
    interval since it saw the pause. Either way the total may not decrease.
    """
    if root is None:
        root = workspace_root()
    if now is None:
        now = now_local(root)

    if status is not None and status not in OPEN_STATUSES:
        raise BadRequestError(f"Invalid status: {status}")
    paused_ms = _validate_ms(paused_duration_ms, "pausedDurationMs")

    with store.locked():
        session = store.get_open(session_id, owner_id, root)
        if paused_ms is not None and paused_ms < session.paused_duration_ms:
            raise BadRequestError(
                f"pausedDurationMs cannot decrease ({paused_ms} < {session.paused_duration_ms})"
            )

        new_status = status or session.status
        event = None

        if session.status == STATUS_ACTIVE and new_status == STATUS_PAUSED:
            if paused_ms is not None:
                session.paused_duration_ms = paused_ms
            session.status = STATUS_PAUSED
            session.paused_at = now
            session.duration_ms = compute_duration(
                session.start_time, now, session.paused_duration_ms
            ).duration_ms
            event = "pause"
        elif session.status == STATUS_PAUSED and new_status == STATUS_ACTIVE:
            if paused_ms is None:
                paused_ms = session.paused_duration_ms
                if session.paused_at is not None:
                    paused_ms += max(0, elapsed_ms(session.paused_at, now))
            session.paused_duration_ms = paused_ms
            session.status = STATUS_ACTIVE
            session.paused_at = None
            event = "resume"
        elif paused_ms is not None:
            session.paused_duration_ms = paused_ms

        session.updated_at = now
        store.save_open(session, root)

    if event is not None:
        log.info("Session %s %sd (paused_ms=%d)", session.id, event, session.paused_duration_ms)
    else:
        log.debug("Heartbeat for session %s", session.id)
    return snapshot(session, now)


def final_paused_ms(
    session: StudySession,
    now: datetime,
    paused_duration_hint: int | None = None,
) -> int:
    """Decide the paused total recorded at end.

    server_total is the acknowledged total plus the in-flight pause the
    server itself observed. A client hint can only add time the server has
    not acknowledged yet; it never lowers the server figure. The result
    stays within [acknowledged, elapsed].
    """
    acknowledged = session.paused_duration_ms
    server_total = acknowledged
    if session.status == STATUS_PAUSED and session.paused_at is not None:
        server_total += max(0, elapsed_ms(session.paused_at, now))

    candidate = server_total
    if paused_duration_hint is not None:
        candidate = max(server_total, paused_duration_hint)

    elapsed = max(0, elapsed_ms(session.start_time, now))
    return max(acknowledged, min(candidate, elapsed))


def end_session(
    session_id: str,
    owner_id: str,
    title: str | None = None,
    description: str | None = None,
    rating: Any = None,
    focused_duration_hint: Any = None,
    paused_duration_hint: Any = None,
    root: Path | None = None,
    now: datetime | None = None,
) -> StudySession:
    """Complete an open session and persist it. Returns the stored record.

    NotFoundError if no open session matches (including one that was
    already completed), BadRequestError for a bad rating or hint.
    """
    if root is None:
        root = workspace_root()
    if now is None:
        now = now_local(root)

    with store.locked():
        session = store.get_open(session_id, owner_id, root)
        rating = validate_rating(rating)
        focused_hint = _validate_ms(focused_duration_hint, "focusedDurationMs")
        paused_hint = _validate_ms(paused_duration_hint, "pausedDurationMs")

        paused_ms = final_paused_ms(session, now, paused_hint)
        result = compute_duration(session.start_time, now, paused_ms)

        settings = load_settings(root)
        if focused_hint is not None and abs(focused_hint - result.duration_ms) > settings.drift_tolerance_ms:
            log.warning(
                "Session %s: client focused time %d ms differs from server %d ms",
                session.id, focused_hint, result.duration_ms,
            )

        title = (title or "").strip() or default_session_title(session.start_time)
        description = (description or "").strip() or None

        session.title = title
        session.description = description
        session.rating = rating
        session.end_time = now
        session.paused_duration_ms = paused_ms
        session.duration_ms = result.duration_ms
        session.integrity_anomaly = result.anomaly
        session.updated_at = now

        completed = store.complete(session_id, owner_id, session, root)
    log.info(
        "Session %s completed: duration_ms=%d paused_ms=%d rating=%s",
        completed.id, completed.duration_ms, completed.paused_duration_ms, completed.rating,
    )
    return completed


def discard_session(
    session_id: str,
    owner_id: str,
    root: Path | None = None,
) -> StudySession:
    """Abandon an open session. Nothing is persisted."""
    if root is None:
        root = workspace_root()
    session = store.discard(session_id, owner_id, root)
    log.info("Session %s discarded", session.id)
    return session


def clear_open_session(owner_id: str, root: Path | None = None) -> StudySession | None:
    """Discard whatever session the owner has open, if any."""
    session = store.find_open(owner_id, root)
    if session is None:
        return None
    return discard_session(session.id, owner_id, root)


def get_session(
    session_id: str,
    owner_id: str,
    root: Path | None = None,
    now: datetime | None = None,
) -> StudySession:
    session = store.get_by_id(session_id, owner_id, root)
    return snapshot(session, now or now_local(root))


def get_open_session(
    owner_id: str,
    root: Path | None = None,
    now: datetime | None = None,
) -> StudySession | None:
    session = store.find_open(owner_id, root)
    if session is None:
        return None
    return snapshot(session, now or now_local(root))


def list_sessions(
    owner_id: str,
    page: int = 1,
    page_size: int | None = None,
    root: Path | None = None,
) -> SessionPage:
    """One page of completed sessions, newest first."""
    settings = load_settings(root)
    if page_size is None:
        page_size = settings.default_page_size
    if page < 1:
        raise BadRequestError("page must be >= 1")
    if page_size < 1 or page_size > settings.max_page_size:
        raise BadRequestError(f"limit must be between 1 and {settings.max_page_size}")
    return store.list_completed(owner_id, page, page_size, root)


def purge_open_sessions(root: Path | None = None) -> int:
    """Administrative recovery: drop all open sessions for every owner."""
    if root is None:
        root = workspace_root()
    return store.purge_all_open_sessions(root)
