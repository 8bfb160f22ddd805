"""StudyTrack core library: session lifecycle, timing and sync.

Public API re-exports for convenient imports:
    from core import workspace_root, start_session, end_session, TimerEngine, ...
"""

# Workspace & paths
from core.workspace import (
    workspace_root,
    load_settings,
    ensure_workspace,
    get_user_timezone,
    now_local,
    config_path,
    sessions_path,
    open_sessions_path,
    users_path,
    logs_dir,
)

# File I/O
from core.fileio import (
    read_json,
    read_yaml,
    write_json_atomic,
    write_yaml_atomic,
)

# Logging
from core.logger import get_logger, setup_logging

# Errors
from core.errors import (
    SessionError,
    ConflictError,
    NotFoundError,
    BadRequestError,
    AuthenticationError,
    TransientNetworkError,
    AdviceError,
)

# Durations & titles
from core.duration import (
    DurationResult,
    compute_duration,
    elapsed_ms,
    focused_duration_ms,
    format_hms,
)
from core.titles import auto_title, default_session_title

# Lifecycle
from core import lifecycle
from core.lifecycle import (
    start_session,
    set_status,
    end_session,
    discard_session,
    clear_open_session,
    get_session,
    get_open_session,
    list_sessions,
    purge_open_sessions,
    validate_rating,
)

# Client
from core.sync import SessionApi, UpdateQueue, create_with_recovery
from core.api_client import SessionApiClient
from core.timer import TimerEngine, EndResult, InvalidTransition

# Reporting & advice
from core.stats import compute_study_stats, load_study_stats
from core.advice import generate_advice

# Identity
from core import identity

# Models
from core.models import (
    Settings,
    User,
    StudySession,
    SessionPage,
    PendingUpdate,
    StudyPatterns,
    StudyStats,
)
