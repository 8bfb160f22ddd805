from __future__ import annotations

import os
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from core import (
    AdviceError,
    AuthenticationError,
    BadRequestError,
    ConflictError,
    NotFoundError,
    SessionError,
    generate_advice,
    get_logger,
    identity,
    lifecycle,
    load_settings,
    load_study_stats,
    workspace_root as _workspace_root,
)

log = get_logger("api")


# ── Auth ──────────────────────────────────────────────────────

app = FastAPI(title="StudyTrack API", version="0.1.0")

security = HTTPBasic(auto_error=False)


def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    """Owner id of the caller. Every session route is scoped to it."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    user_id = identity.verify(credentials.username, credentials.password, _workspace_root())
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return user_id


def require_admin(user_id: str = Depends(get_current_user)) -> str:
    root = _workspace_root()
    user = identity.get_user(user_id, root)
    if user is None or user.email not in load_settings(root).admin_users:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user_id


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, ConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, AuthenticationError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, AdviceError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _int_field(payload: dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# ── Health & auth ─────────────────────────────────────────────

@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true"}


@app.post("/api/auth/register", status_code=201)
def api_register(payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    try:
        user = identity.register(
            str(payload.get("email", "")),
            str(payload.get("password", "")),
            _workspace_root(),
        )
    except SessionError as e:
        raise _http_error(e)
    return user.public_dict()


@app.get("/api/auth/me")
def api_me(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    user = identity.get_user(user_id, _workspace_root())
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user.public_dict()


# ── Sessions ──────────────────────────────────────────────────

@app.post("/api/sessions/start", status_code=201)
def api_start_session(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    try:
        session = lifecycle.start_session(user_id, _workspace_root())
    except SessionError as e:
        log.info("Start rejected for %s: %s", user_id, e)
        raise _http_error(e)
    return session.to_dict()


@app.get("/api/sessions/current")
def api_current_session(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    session = lifecycle.get_open_session(user_id, _workspace_root())
    return {"session": session.to_dict() if session else None}


@app.delete("/api/sessions/current")
def api_clear_current_session(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    try:
        session = lifecycle.clear_open_session(user_id, _workspace_root())
    except SessionError as e:
        raise _http_error(e)
    return {"session": session.to_dict() if session else None}


@app.get("/api/sessions")
def api_list_sessions(
    page: int = 1,
    limit: int | None = None,
    user_id: str = Depends(get_current_user),
) -> dict[str, Any]:
    try:
        result = lifecycle.list_sessions(user_id, page, limit, _workspace_root())
    except SessionError as e:
        raise _http_error(e)
    return result.to_dict()


@app.get("/api/sessions/{session_id}")
def api_get_session(session_id: str, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    try:
        session = lifecycle.get_session(session_id, user_id, _workspace_root())
    except SessionError as e:
        raise _http_error(e)
    return session.to_dict()


@app.patch("/api/sessions/{session_id}")
def api_update_session(
    session_id: str,
    payload: dict[str, Any] = Body(default={}),
    user_id: str = Depends(get_current_user),
) -> dict[str, Any]:
    try:
        session = lifecycle.set_status(
            session_id,
            user_id,
            status=payload.get("status"),
            paused_duration_ms=_int_field(payload, "pausedDurationMs"),
            root=_workspace_root(),
        )
    except SessionError as e:
        raise _http_error(e)
    return session.to_dict()


@app.post("/api/sessions/{session_id}/end")
def api_end_session(
    session_id: str,
    payload: dict[str, Any] = Body(default={}),
    user_id: str = Depends(get_current_user),
) -> dict[str, Any]:
    try:
        session = lifecycle.end_session(
            session_id,
            user_id,
            title=payload.get("title"),
            description=payload.get("description"),
            rating=_int_field(payload, "rating"),
            focused_duration_hint=_int_field(payload, "focusedDurationMs"),
            paused_duration_hint=_int_field(payload, "pausedDurationMs"),
            root=_workspace_root(),
        )
    except SessionError as e:
        log.info("End rejected for session %s: %s", session_id, e)
        raise _http_error(e)
    return session.to_dict()


@app.delete("/api/sessions/{session_id}")
def api_discard_session(session_id: str, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    try:
        session = lifecycle.discard_session(session_id, user_id, _workspace_root())
    except SessionError as e:
        raise _http_error(e)
    return {"ok": True, "id": session.id}


@app.post("/api/admin/purge-open-sessions")
def api_purge_open_sessions(user_id: str = Depends(require_admin)) -> dict[str, Any]:
    count = lifecycle.purge_open_sessions(_workspace_root())
    log.warning("Admin %s purged %d open session(s)", user_id, count)
    return {"deletedCount": count}


# ── Stats & advice ────────────────────────────────────────────

@app.get("/api/stats")
def api_stats(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return load_study_stats(user_id, _workspace_root()).to_dict()


@app.post("/api/chat")
def api_chat(payload: dict[str, Any] = Body(...), user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    history = payload.get("conversationHistory") or []
    if not isinstance(history, list):
        raise HTTPException(status_code=400, detail="conversationHistory must be a list")
    try:
        return generate_advice(
            user_id,
            str(payload.get("message") or ""),
            [h for h in history if isinstance(h, dict)],
            _workspace_root(),
        )
    except (BadRequestError, AdviceError) as e:
        raise _http_error(e)


def main() -> None:
    """Run the API with uvicorn: studytrack-server [--host H] [--port P]."""
    import argparse

    import uvicorn

    from core import ensure_workspace, setup_logging

    parser = argparse.ArgumentParser(description="StudyTrack API server")
    parser.add_argument("--host", default=os.environ.get("STUDYTRACK_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("STUDYTRACK_PORT", "8000")))
    args = parser.parse_args()

    root = ensure_workspace()
    setup_logging(root, console=True)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
