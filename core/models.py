"""Typed dataclasses for the StudyTrack data model.

All models use from_dict/to_dict for JSON/YAML serialization.
camelCase in JSON is mapped to snake_case in Python.
Unknown keys are ignored; missing keys use defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


STATUS_ACTIVE = "active"
STATUS_PAUSED = "paused"
STATUS_COMPLETED = "completed"

OPEN_STATUSES = {STATUS_ACTIVE, STATUS_PAUSED}


# ── Timestamps ────────────────────────────────────────────────


def to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat(timespec="milliseconds")


def from_iso(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


# ── Settings ──────────────────────────────────────────────────


@dataclass
class Settings:
    timezone: str = "UTC"
    heartbeat_seconds: int = 30
    tick_seconds: int = 1
    drift_tolerance_ms: int = 5000
    default_page_size: int = 10
    max_page_size: int = 100
    server_url: str = "http://127.0.0.1:8000"
    request_timeout_seconds: float = 5.0
    stats_window_days: int = 30
    stats_max_sessions: int = 50
    advice_model: str = "gpt-4o-mini"
    admin_users: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        if not d or not isinstance(d, dict):
            return cls()
        defaults = cls()
        return cls(
            timezone=str(d.get("timezone", defaults.timezone)),
            heartbeat_seconds=int(d.get("heartbeat_seconds", defaults.heartbeat_seconds)),
            tick_seconds=int(d.get("tick_seconds", defaults.tick_seconds)),
            drift_tolerance_ms=int(d.get("drift_tolerance_ms", defaults.drift_tolerance_ms)),
            default_page_size=int(d.get("default_page_size", defaults.default_page_size)),
            max_page_size=int(d.get("max_page_size", defaults.max_page_size)),
            server_url=str(d.get("server_url", defaults.server_url)).rstrip("/"),
            request_timeout_seconds=float(d.get("request_timeout_seconds", defaults.request_timeout_seconds)),
            stats_window_days=int(d.get("stats_window_days", defaults.stats_window_days)),
            stats_max_sessions=int(d.get("stats_max_sessions", defaults.stats_max_sessions)),
            advice_model=str(d.get("advice_model", defaults.advice_model)),
            admin_users=[str(u).lower() for u in (d.get("admin_users") or [])],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timezone": self.timezone,
            "heartbeat_seconds": self.heartbeat_seconds,
            "tick_seconds": self.tick_seconds,
            "drift_tolerance_ms": self.drift_tolerance_ms,
            "default_page_size": self.default_page_size,
            "max_page_size": self.max_page_size,
            "server_url": self.server_url,
            "request_timeout_seconds": self.request_timeout_seconds,
            "stats_window_days": self.stats_window_days,
            "stats_max_sessions": self.stats_max_sessions,
            "advice_model": self.advice_model,
            "admin_users": self.admin_users,
        }


# ── Users ─────────────────────────────────────────────────────


@dataclass
class User:
    id: str = ""
    email: str = ""
    password_hash: str = ""
    salt: str = ""
    created_at: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> User:
        return cls(
            id=str(d.get("id", "")),
            email=str(d.get("email", "")),
            password_hash=str(d.get("passwordHash", "")),
            salt=str(d.get("salt", "")),
            created_at=str(d.get("createdAt", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "passwordHash": self.password_hash,
            "salt": self.salt,
            "createdAt": self.created_at,
        }

    def public_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "createdAt": self.created_at}


# ── Study Session ─────────────────────────────────────────────


@dataclass
class StudySession:
    id: str = ""
    owner_id: str = ""
    title: str = ""
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    paused_duration_ms: int = 0
    status: str = STATUS_ACTIVE
    duration_ms: int = 0
    rating: int | None = None
    paused_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    integrity_anomaly: bool = False

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> StudySession:
        if not d or not isinstance(d, dict):
            return cls()
        rating = d.get("rating")
        return cls(
            id=str(d.get("id", "")),
            owner_id=str(d.get("ownerId", "")),
            title=str(d.get("title", "")),
            description=d.get("description"),
            start_time=from_iso(d.get("startTime")),
            end_time=from_iso(d.get("endTime")),
            paused_duration_ms=int(d.get("pausedDurationMs", 0) or 0),
            status=str(d.get("status", STATUS_ACTIVE)),
            duration_ms=int(d.get("durationMs", 0) or 0),
            rating=int(rating) if rating is not None else None,
            paused_at=from_iso(d.get("pausedAt")),
            created_at=from_iso(d.get("createdAt")),
            updated_at=from_iso(d.get("updatedAt")),
            integrity_anomaly=bool(d.get("integrityAnomaly", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "ownerId": self.owner_id,
            "title": self.title,
            "description": self.description,
            "startTime": to_iso(self.start_time),
            "endTime": to_iso(self.end_time),
            "pausedDurationMs": self.paused_duration_ms,
            "status": self.status,
            "durationMs": self.duration_ms,
            "rating": self.rating,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }
        if self.paused_at is not None:
            d["pausedAt"] = to_iso(self.paused_at)
        if self.integrity_anomaly:
            d["integrityAnomaly"] = True
        return d


@dataclass
class SessionPage:
    items: list[StudySession] = field(default_factory=list)
    total: int = 0
    total_pages: int = 0
    page: int = 1
    page_size: int = 10

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions": [s.to_dict() for s in self.items],
            "total": self.total,
            "totalPages": self.total_pages,
            "page": self.page,
            "limit": self.page_size,
        }


# ── Client queue ──────────────────────────────────────────────


@dataclass
class PendingUpdate:
    kind: str = "update"  # update, end
    session_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    queued_at: int = 0  # monotonic ms
    queued_wall: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "sessionId": self.session_id,
            "payload": dict(self.payload),
            "queuedAt": self.queued_at,
            "queuedWall": self.queued_wall,
        }


# ── Reporting ─────────────────────────────────────────────────


@dataclass
class StudyPatterns:
    by_weekday: dict[str, int] = field(default_factory=dict)
    by_hour: dict[int, int] = field(default_factory=dict)
    most_active_day: str | None = None
    most_active_hour: int | None = None
    total_days_studied: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "byWeekday": self.by_weekday,
            "byHour": {str(h): c for h, c in sorted(self.by_hour.items())},
            "mostActiveDay": self.most_active_day,
            "mostActiveHour": self.most_active_hour,
            "totalDaysStudied": self.total_days_studied,
        }


@dataclass
class StudyStats:
    window_days: int = 30
    total_sessions: int = 0
    total_study_hours: float = 0.0
    total_focused_hours: float = 0.0
    total_paused_hours: float = 0.0
    average_session_minutes: int = 0
    average_paused_minutes: int = 0
    average_rating: float | None = None
    focus_efficiency: float | None = None
    patterns: StudyPatterns = field(default_factory=StudyPatterns)
    recent_sessions: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "windowDays": self.window_days,
            "totalSessions": self.total_sessions,
            "totalStudyHours": self.total_study_hours,
            "totalFocusedHours": self.total_focused_hours,
            "totalPausedHours": self.total_paused_hours,
            "averageSessionMinutes": self.average_session_minutes,
            "averagePausedMinutes": self.average_paused_minutes,
            "averageRating": self.average_rating,
            "focusEfficiency": self.focus_efficiency,
            "patterns": self.patterns.to_dict(),
            "recentSessions": self.recent_sessions,
        }
