"""Focused-duration arithmetic for StudyTrack.

Pure functions: no I/O besides a warning log line when the numbers do not
add up. Used when a session is paused (snapshot at the pause instant) and
when it ends (final focused duration).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from core.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class DurationResult:
    duration_ms: int
    raw_ms: int
    anomaly: bool = False


def elapsed_ms(start: datetime, as_of: datetime) -> int:
    """Wall-clock milliseconds between two instants (may be negative)."""
    delta = as_of - start
    return delta.days * 86_400_000 + delta.seconds * 1000 + delta.microseconds // 1000


def compute_duration(start: datetime, as_of: datetime, paused_ms: int) -> DurationResult:
    """max(0, as_of - start - paused_ms), flagging a clamped result.

    A negative raw value means clock skew or an accounting error. It is
    floored at zero and logged as a data-integrity anomaly, never raised.
    """
    raw = elapsed_ms(start, as_of) - int(paused_ms)
    if raw < 0:
        log.warning(
            "DataIntegrityAnomaly: negative focused duration %d ms "
            "(start=%s as_of=%s paused_ms=%d), clamped to 0",
            raw, start.isoformat(), as_of.isoformat(), paused_ms,
        )
        return DurationResult(duration_ms=0, raw_ms=raw, anomaly=True)
    return DurationResult(duration_ms=raw, raw_ms=raw)


def focused_duration_ms(start: datetime, as_of: datetime, paused_ms: int) -> int:
    return compute_duration(start, as_of, paused_ms).duration_ms


def format_hms(milliseconds: int) -> str:
    """Render milliseconds as HH:MM:SS (hours are not capped at 24)."""
    total_seconds = max(0, int(milliseconds)) // 1000
    hours, rem = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
