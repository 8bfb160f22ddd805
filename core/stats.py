"""Study statistics for StudyTrack.

Aggregates completed sessions from a trailing window into a StudyStats
summary: totals, averages, focus efficiency and when the user tends to
study. The summary feeds GET /api/stats and the advice prompt.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, tzinfo
from pathlib import Path

from core import store
from core.models import StudyPatterns, StudySession, StudyStats
from core.workspace import get_user_timezone, load_settings, now_local, workspace_root

MS_PER_HOUR = 1000 * 60 * 60
MS_PER_MINUTE = 1000 * 60

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

RECENT_LIMIT = 10


def _hours(ms: int) -> float:
    return round(ms / MS_PER_HOUR, 2)


def _minutes(ms: float) -> int:
    return round(ms / MS_PER_MINUTE)


# ── Patterns ──────────────────────────────────────────────────


def analyze_patterns(sessions: list[StudySession], tz: tzinfo | None = None) -> StudyPatterns:
    """Count session starts by weekday and by hour of day."""
    by_weekday: Counter[str] = Counter()
    by_hour: Counter[int] = Counter()
    for s in sessions:
        if s.start_time is None:
            continue
        start = s.start_time.astimezone(tz) if tz is not None else s.start_time
        by_weekday[DAY_NAMES[start.weekday()]] += 1
        by_hour[start.hour] += 1

    patterns = StudyPatterns(
        by_weekday={day: by_weekday[day] for day in DAY_NAMES if by_weekday[day]},
        by_hour=dict(by_hour),
        total_days_studied=len(by_weekday),
    )
    if by_weekday:
        # Ties go to the earliest day / hour.
        patterns.most_active_day = max(DAY_NAMES, key=lambda d: by_weekday[d])
        patterns.most_active_hour = max(range(24), key=lambda h: by_hour[h])
    return patterns


# ── Summary ───────────────────────────────────────────────────


def compute_study_stats(
    sessions: list[StudySession],
    now: datetime,
    window_days: int = 30,
    max_sessions: int = 50,
    tz: tzinfo | None = None,
) -> StudyStats:
    """Summarize completed sessions started within the last window_days.

    duration_ms is focused time, so total study time is focused + paused.
    """
    since = now - timedelta(days=window_days)
    recent = [
        s for s in sessions
        if s.start_time is not None and s.start_time >= since and not s.is_open
    ]
    recent.sort(key=lambda s: s.start_time, reverse=True)
    recent = recent[:max_sessions]

    stats = StudyStats(window_days=window_days, total_sessions=len(recent))
    if not recent:
        return stats

    focused = sum(s.duration_ms for s in recent)
    paused = sum(s.paused_duration_ms for s in recent)
    studied = focused + paused

    stats.total_study_hours = _hours(studied)
    stats.total_focused_hours = _hours(focused)
    stats.total_paused_hours = _hours(paused)
    stats.average_session_minutes = _minutes(studied / len(recent))
    stats.average_paused_minutes = _minutes(paused / len(recent))
    if studied > 0:
        stats.focus_efficiency = round(focused / studied, 3)

    ratings = [s.rating for s in recent if s.rating]
    if ratings:
        stats.average_rating = round(sum(ratings) / len(ratings), 2)

    stats.patterns = analyze_patterns(recent, tz)
    stats.recent_sessions = [
        {
            "title": s.title,
            "durationMinutes": _minutes(s.duration_ms + s.paused_duration_ms),
            "focusedMinutes": _minutes(s.duration_ms),
            "pausedMinutes": _minutes(s.paused_duration_ms),
            "rating": s.rating,
            "date": s.start_time.isoformat(),
        }
        for s in recent[:RECENT_LIMIT]
    ]
    return stats


def load_study_stats(
    owner_id: str,
    root: Path | None = None,
    now: datetime | None = None,
) -> StudyStats:
    """Statistics for one owner from the session store."""
    if root is None:
        root = workspace_root()
    if now is None:
        now = now_local(root)
    settings = load_settings(root)
    since = now - timedelta(days=settings.stats_window_days)
    sessions = store.completed_since(owner_id, since, root=root)
    return compute_study_stats(
        sessions,
        now,
        window_days=settings.stats_window_days,
        max_sessions=settings.stats_max_sessions,
        tz=get_user_timezone(root),
    )
