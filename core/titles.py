"""Default session titles. Pure formatting, no I/O."""

from __future__ import annotations

from datetime import datetime


def default_session_title(start: datetime) -> str:
    """Server-side default: 'Study Session - 10/19/2026'."""
    return f"Study Session - {start.month}/{start.day}/{start.year}"


def auto_title(duration_ms: int, now: datetime) -> str:
    """Client-side title for a session ended without one.

    Short sessions are named by the time of day, longer ones by their length.
    """
    time_str = now.strftime("%H:%M")
    minutes = max(0, int(duration_ms)) // 60_000

    if minutes < 1:
        return f"Quick study session at {time_str}"
    if minutes < 30:
        return f"{minutes}-minute study session"
    if minutes < 60:
        return f"Study session at {time_str}"
    hours, rem = divmod(minutes, 60)
    if rem == 0:
        return f"{hours}-hour study session"
    return f"{hours}h {rem}m study session"
