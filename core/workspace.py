"""Workspace root, settings, timezone and path helpers for StudyTrack."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.fileio import read_yaml, write_yaml_atomic
from core.models import Settings


def workspace_root() -> Path:
    """Get the workspace root directory (contains config.yaml and data/)."""
    return Path(
        os.environ.get("STUDYTRACK_ROOT", str(Path.home() / "studytrack"))
    ).expanduser().resolve()


def load_settings(root: Path | None = None) -> Settings:
    """Load config.yaml into Settings, defaulting every missing key."""
    return Settings.from_dict(read_yaml(config_path(root)))


def ensure_workspace(root: Path | None = None) -> Path:
    """Create the workspace layout and a default config.yaml if absent."""
    if root is None:
        root = workspace_root()
    data_dir(root).mkdir(parents=True, exist_ok=True)
    logs_dir(root).mkdir(parents=True, exist_ok=True)
    if not config_path(root).exists():
        write_yaml_atomic(config_path(root), Settings().to_dict())
    return root


def get_user_timezone(root: Path | None = None) -> ZoneInfo:
    """Timezone from config.yaml, defaulting to UTC."""
    try:
        return ZoneInfo(load_settings(root).timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def now_local(root: Path | None = None) -> datetime:
    """Current datetime in the configured timezone."""
    return datetime.now(get_user_timezone(root))


# ── Path helpers ──────────────────────────────────────────────

def config_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "config.yaml"


def data_dir(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "data"


def sessions_path(root: Path | None = None) -> Path:
    return data_dir(root) / "sessions.json"


def open_sessions_path(root: Path | None = None) -> Path:
    return data_dir(root) / "open_sessions.json"


def users_path(root: Path | None = None) -> Path:
    return data_dir(root) / "users.json"


def logs_dir(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "logs"
