#!/usr/bin/env python3
"""StudyTrack TUI: a study timer that keeps counting when the server doesn't."""

from __future__ import annotations

import os
import sys

from dotenv import load_dotenv
from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Header, Input, Label, Static

from core import (
    AuthenticationError,
    InvalidTransition,
    SessionApiClient,
    SessionError,
    TimerEngine,
    TransientNetworkError,
    ensure_workspace,
    format_hms,
    get_logger,
    load_settings,
    setup_logging,
)
from core.timer import ACTIVE, COMPLETED, IDLE, PAUSED

log = get_logger("tui")


CSS = """
Screen {
    layout: vertical;
}

#timer-pane {
    height: 1fr;
    align: center middle;
}

#timer {
    width: 100%;
    content-align: center middle;
    text-style: bold;
    height: 3;
}

#timer.paused {
    color: $warning;
}

#timer.completed {
    color: $success;
}

#status-line, #paused-line, #sync-line {
    width: 100%;
    content-align: center middle;
    color: $text-muted;
}

#history-table {
    height: 1fr;
    display: none;
}

.dialog {
    width: 60;
    height: auto;
    padding: 1 2;
    border: thick $primary;
    background: $surface;
}

.dialog Input {
    margin-bottom: 1;
}

.dialog-buttons {
    height: auto;
    align: right middle;
}

ModalScreen {
    align: center middle;
}
"""


# ── Dialogs ────────────────────────────────────────────────────


class EndSessionScreen(ModalScreen[dict | None]):
    """Title, notes and a 1-5 rating for the session being ended."""

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def compose(self) -> ComposeResult:
        yield Vertical(
            Label("End session"),
            Input(placeholder="Title (optional)", id="end-title"),
            Input(placeholder="What did you work on? (optional)", id="end-description"),
            Input(placeholder="Rating 1-5 (optional)", id="end-rating", restrict=r"[1-5]?"),
            Horizontal(
                Button("Cancel", id="end-cancel"),
                Button("Save", variant="primary", id="end-save"),
                classes="dialog-buttons",
            ),
            classes="dialog",
        )

    @on(Button.Pressed, "#end-save")
    @on(Input.Submitted)
    def _save(self) -> None:
        rating = self.query_one("#end-rating", Input).value.strip()
        self.dismiss({
            "title": self.query_one("#end-title", Input).value.strip() or None,
            "description": self.query_one("#end-description", Input).value.strip() or None,
            "rating": int(rating) if rating else None,
        })

    @on(Button.Pressed, "#end-cancel")
    def action_cancel(self) -> None:
        self.dismiss(None)


class ConfirmQuitScreen(ModalScreen[bool]):
    """Quitting with a running timer ends the session first."""

    BINDINGS = [Binding("escape", "stay", "Stay")]

    def compose(self) -> ComposeResult:
        yield Vertical(
            Label("A session is in progress. Save it and quit?"),
            Horizontal(
                Button("Stay", id="quit-stay"),
                Button("Save & quit", variant="warning", id="quit-confirm"),
                classes="dialog-buttons",
            ),
            classes="dialog",
        )

    @on(Button.Pressed, "#quit-confirm")
    def _confirm(self) -> None:
        self.dismiss(True)

    @on(Button.Pressed, "#quit-stay")
    def action_stay(self) -> None:
        self.dismiss(False)


# ── Main app ───────────────────────────────────────────────────


class StudyTrackApp(App):
    """StudyTrack: terminal study timer."""

    TITLE = "StudyTrack"
    CSS = CSS
    AUTO_FOCUS = None

    BINDINGS = [
        Binding("s", "start", "Start"),
        Binding("p", "toggle_pause", "Pause/Resume"),
        Binding("e", "end", "End"),
        Binding("n", "reset", "New"),
        Binding("h", "toggle_history", "History"),
        Binding("q", "quit_app", "Quit"),
    ]

    timer_status: reactive[str] = reactive(IDLE)

    def check_action(self, action: str, parameters: tuple[object, ...]) -> bool | None:
        """Only offer the transitions the timer can take right now."""
        if action == "start":
            return True if self.engine.status == IDLE else None
        if action == "toggle_pause":
            return True if self.engine.status in (ACTIVE, PAUSED) else None
        if action == "end":
            return True if self.engine.status in (ACTIVE, PAUSED) else None
        if action == "reset":
            return True if self.engine.status == COMPLETED else None
        return True

    def __init__(self, api: SessionApiClient, heartbeat_seconds: int = 30, tick_seconds: int = 1) -> None:
        super().__init__()
        self.api = api
        self.engine = TimerEngine(api, heartbeat_seconds=heartbeat_seconds)
        self._tick_seconds = tick_seconds

    def compose(self) -> ComposeResult:
        # Held directly: ticks keep landing while a dialog is the active screen.
        self._timer = Static(format_hms(0), id="timer")
        self._status_line = Static(id="status-line")
        self._paused_line = Static(id="paused-line")
        self._sync_line = Static(id="sync-line")
        self._history: DataTable = DataTable(id="history-table")
        yield Header()
        yield Vertical(
            self._timer,
            self._status_line,
            self._paused_line,
            self._sync_line,
            id="timer-pane",
        )
        yield self._history
        yield Footer()

    def on_mount(self) -> None:
        self._history.add_columns("Date", "Title", "Focused", "Paused", "Rating")
        self._refresh_display()
        self.set_interval(self._tick_seconds, self._tick)
        self._check_open_session()

    # ── Display ────────────────────────────────────────────────

    def _tick(self) -> None:
        result = self.engine.tick()
        self._refresh_display(result.elapsed_ms)
        if result.heartbeat_due:
            self._heartbeat()
        if result.reconnect_due:
            self._reconnect()

    def _refresh_display(self, elapsed_ms: int | None = None) -> None:
        engine = self.engine
        if elapsed_ms is None:
            elapsed_ms = engine.elapsed_ms()

        timer = self._timer
        timer.update(format_hms(elapsed_ms))
        timer.set_class(engine.status == PAUSED, "paused")
        timer.set_class(engine.status == COMPLETED, "completed")

        self._status_line.update(engine.status.upper())
        paused = engine.display_paused_ms()
        self._paused_line.update(f"Paused {format_hms(paused)}" if paused else "")

        sync = engine.network_status
        if len(engine.queue):
            sync += f" ({len(engine.queue)} queued)"
        if engine.is_local_only:
            sync += " - local only"
        self._sync_line.update(sync)

        self.sub_title = f"[{engine.status.upper()}]  {engine.network_status}"
        if self.timer_status != engine.status:
            self.timer_status = engine.status
            self.refresh_bindings()

    def _report(self, message: str, severity: str = "information") -> None:
        self.notify(message, severity=severity)
        self._refresh_display()

    # ── Network workers ────────────────────────────────────────

    @work(group="net")
    async def _check_open_session(self) -> None:
        """Warn at launch if the server still holds an open session."""
        try:
            current = await self.api.get_open_session()
        except TransientNetworkError:
            self._report("Server unreachable; the timer will work offline.", "warning")
            return
        except AuthenticationError as e:
            self._report(f"Login failed: {e}", "error")
            return
        except SessionError as e:
            log.warning("Open-session check failed: %s", e)
            self._report(f"Could not check for an open session: {e}", "warning")
            return
        if current:
            self._report(
                "An unfinished session is open on the server; starting a new one will replace it.",
                "warning",
            )

    @work(group="net")
    async def _heartbeat(self) -> None:
        await self.engine.heartbeat()
        self._refresh_display()

    @work(group="net", exclusive=True)
    async def _reconnect(self) -> None:
        if await self.engine.reconnect():
            self._report("Back online.")

    # ── Actions ────────────────────────────────────────────────

    @work(group="transition")
    async def action_start(self) -> None:
        try:
            await self.engine.start()
        except InvalidTransition as e:
            self._report(str(e), "warning")
            return
        if self.engine.is_local_only:
            self._report("Server unreachable. This session is being recorded locally.", "warning")
        self._refresh_display()

    @work(group="transition")
    async def action_toggle_pause(self) -> None:
        try:
            await self.engine.toggle_pause()
        except InvalidTransition as e:
            self._report(str(e), "warning")
            return
        self._refresh_display()

    def action_end(self) -> None:
        if self.engine.status not in (ACTIVE, PAUSED):
            return

        def finish(values: dict | None) -> None:
            if values is not None:
                self._do_end(values)

        self.push_screen(EndSessionScreen(), finish)

    @work(group="transition")
    async def _do_end(self, values: dict) -> None:
        try:
            result = await self.engine.end(**values)
        except InvalidTransition as e:
            self._report(str(e), "warning")
            return
        minutes = result.local_duration_ms // 60_000
        if result.warning:
            self._report(result.warning, "warning")
        else:
            self._report(f"Session saved: {minutes} min focused.")

    def action_reset(self) -> None:
        try:
            self.engine.reset()
        except InvalidTransition as e:
            self._report(str(e), "warning")
            return
        self._refresh_display()

    def action_toggle_history(self) -> None:
        table = self._history
        table.display = not table.display
        if table.display:
            self._load_history()

    @work(group="net", exclusive=True)
    async def _load_history(self) -> None:
        table = self._history
        try:
            data = await self.api.list_sessions(page=1, limit=20)
        except (TransientNetworkError, SessionError, AuthenticationError) as e:
            self._report(f"Could not load history: {e}", "warning")
            return
        table.clear()
        for s in self.engine.local_records:
            table.add_row(
                "(local)", s["title"], format_hms(s["durationMs"]),
                format_hms(s["pausedDurationMs"]), str(s.get("rating") or ""),
            )
        for s in data.get("sessions", []):
            table.add_row(
                str(s.get("startTime", ""))[:16].replace("T", " "),
                str(s.get("title", "")),
                format_hms(int(s.get("durationMs") or 0)),
                format_hms(int(s.get("pausedDurationMs") or 0)),
                str(s.get("rating") or ""),
            )

    async def action_quit(self) -> None:
        """ctrl+q and the command palette quit the same way q does."""
        self.action_quit_app()

    def action_quit_app(self) -> None:
        if not self.engine.is_open:
            self._save_and_exit()
            return

        def decide(confirmed: bool | None) -> None:
            if confirmed:
                self._save_and_exit()

        self.push_screen(ConfirmQuitScreen(), decide)

    @work(group="transition")
    async def _save_and_exit(self) -> None:
        result = await self.engine.auto_end()
        if result is not None and result.warning:
            log.warning("Exited with unsynced session: %s", result.warning)
        await self.api.aclose()
        self.exit()


# ── Entry point ────────────────────────────────────────────────


def main() -> None:
    load_dotenv()
    root = ensure_workspace()
    setup_logging(root)
    settings = load_settings(root)

    email = os.environ.get("STUDYTRACK_EMAIL", "")
    password = os.environ.get("STUDYTRACK_PASSWORD", "")
    if not email or not password:
        print("Set STUDYTRACK_EMAIL and STUDYTRACK_PASSWORD (or put them in .env).")
        sys.exit(1)

    api = SessionApiClient(
        os.environ.get("STUDYTRACK_SERVER_URL") or settings.server_url,
        email=email,
        password=password,
        timeout=settings.request_timeout_seconds,
    )
    app = StudyTrackApp(
        api,
        heartbeat_seconds=settings.heartbeat_seconds,
        tick_seconds=settings.tick_seconds,
    )
    app.run()


if __name__ == "__main__":
    main()
