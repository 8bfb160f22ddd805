"""User accounts for StudyTrack.

Users live in data/users.json. Passwords are stored as PBKDF2-SHA256
hashes with a per-user random salt; plain passwords never touch disk.
"""

from __future__ import annotations

import hashlib
import re
import secrets
import threading
import uuid
from pathlib import Path
from typing import Any

from core.errors import AuthenticationError, BadRequestError, ConflictError
from core.fileio import read_json, write_json_atomic
from core.logger import get_logger
from core.models import User, to_iso
from core.workspace import now_local, users_path, workspace_root

log = get_logger(__name__)

_LOCK = threading.Lock()

PBKDF2_ITERATIONS = 100_000
MIN_PASSWORD_LENGTH = 8
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def hash_password(password: str, salt: str, iterations: int | None = None) -> str:
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        bytes.fromhex(salt),
        iterations or PBKDF2_ITERATIONS,
    )
    return digest.hex()


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _load_users(root: Path) -> list[dict[str, Any]]:
    users = read_json(users_path(root)).get("users") or []
    return users if isinstance(users, list) else []


def _find(users: list[dict[str, Any]], key: str, value: str) -> User | None:
    for d in users:
        if d.get(key) == value:
            return User.from_dict(d)
    return None


# ── Operations ────────────────────────────────────────────────


def register(email: str, password: str, root: Path | None = None) -> User:
    """Create an account. ConflictError if the email is taken."""
    if root is None:
        root = workspace_root()
    email = _normalize_email(email)
    if not EMAIL_RE.match(email):
        raise BadRequestError("Please provide a valid email address")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    with _LOCK:
        users = _load_users(root)
        if _find(users, "email", email) is not None:
            raise ConflictError("User with this email already exists")
        salt = secrets.token_hex(16)
        user = User(
            id=uuid.uuid4().hex,
            email=email,
            password_hash=hash_password(password, salt),
            salt=salt,
            created_at=to_iso(now_local(root)) or "",
        )
        users.append(user.to_dict())
        write_json_atomic(users_path(root), {"users": users})

    log.info("Registered user %s", user.id)
    return user


def verify(email: str, password: str, root: Path | None = None) -> str | None:
    """User id if the credentials match, else None."""
    if root is None:
        root = workspace_root()
    with _LOCK:
        user = _find(_load_users(root), "email", _normalize_email(email))
    if user is None or not password:
        return None
    candidate = hash_password(password, user.salt)
    if not secrets.compare_digest(candidate, user.password_hash):
        return None
    return user.id


def login(email: str, password: str, root: Path | None = None) -> User:
    """The matching user. AuthenticationError on bad credentials."""
    user_id = verify(email, password, root)
    if user_id is None:
        raise AuthenticationError("Invalid credentials")
    return get_user(user_id, root)


def get_user(user_id: str, root: Path | None = None) -> User | None:
    if root is None:
        root = workspace_root()
    with _LOCK:
        return _find(_load_users(root), "id", user_id)
