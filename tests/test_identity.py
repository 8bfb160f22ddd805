"""Tests for core/identity.py: registration and credential checks."""

import pytest

from core import identity
from core.errors import AuthenticationError, BadRequestError, ConflictError
from core.fileio import read_json
from core.workspace import users_path


@pytest.fixture(autouse=True)
def _fast(fast_hashing):
    pass


def test_register_and_login(workspace):
    user = identity.register("Eve@Example.com ", "hunter2hunter2", workspace)
    assert user.email == "eve@example.com"
    assert identity.login("eve@example.com", "hunter2hunter2", workspace).id == user.id
    assert identity.get_user(user.id, workspace).email == "eve@example.com"


def test_password_not_stored_in_plain(workspace):
    identity.register("eve@example.com", "hunter2hunter2", workspace)
    raw = users_path(workspace).read_text(encoding="utf-8")
    assert "hunter2hunter2" not in raw
    stored = read_json(users_path(workspace))["users"][0]
    assert len(stored["salt"]) == 32


def test_same_password_different_hashes(workspace):
    a = identity.register("a@example.com", "same password", workspace)
    b = identity.register("b@example.com", "same password", workspace)
    assert a.password_hash != b.password_hash


def test_register_duplicate(workspace):
    identity.register("eve@example.com", "hunter2hunter2", workspace)
    with pytest.raises(ConflictError, match="already exists"):
        identity.register("EVE@example.com", "another password", workspace)


@pytest.mark.parametrize("email,password", [
    ("no-at-sign", "long enough"),
    ("a@b", "long enough"),
    ("eve@example.com", "short"),
    ("eve@example.com", ""),
])
def test_register_invalid(workspace, email, password):
    with pytest.raises(BadRequestError):
        identity.register(email, password, workspace)


def test_login_wrong_password(workspace):
    identity.register("eve@example.com", "hunter2hunter2", workspace)
    with pytest.raises(AuthenticationError):
        identity.login("eve@example.com", "wrong password", workspace)
    with pytest.raises(AuthenticationError):
        identity.login("nobody@example.com", "hunter2hunter2", workspace)


def test_verify(workspace):
    user = identity.register("eve@example.com", "hunter2hunter2", workspace)
    assert identity.verify("eve@example.com", "hunter2hunter2", workspace) == user.id
    assert identity.verify("eve@example.com", "", workspace) is None
    assert identity.get_user("missing", workspace) is None
