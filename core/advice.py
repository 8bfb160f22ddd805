"""Study coach chat for StudyTrack.

Builds a system prompt from the user's recent statistics and asks an
OpenAI chat model for advice. Without an API key, or when the configured
model is not available to the key, a keyword-based canned answer is
returned instead so the chat page keeps working.

Requires OPENAI_API_KEY in the environment or in .env.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import openai
from dotenv import load_dotenv
from openai import OpenAI

from core.errors import AdviceError, BadRequestError
from core.logger import get_logger
from core.models import StudyStats
from core.stats import load_study_stats
from core.workspace import load_settings, now_local, workspace_root

log = get_logger(__name__)

load_dotenv()

MAX_TOKENS = 1000
VALID_ROLES = {"user", "assistant"}


BENCHMARKS = """Study Habit Benchmarks for Context:
- Excellent consistency: 1+ study session per day (7+ sessions/week)
- Good consistency: 4-6 study sessions per week
- Developing consistency: 2-3 study sessions per week
- Optimal session length: 25-50 minutes (Pomodoro technique range)
- Good focus efficiency: 85%+ focused time (15% or less paused)
- Excellent focus efficiency: 95%+ focused time (5% or less paused)
- Healthy study schedule: Studying 5-6 days per week with 1-2 rest days
- Effective daily study time: 1-3 hours for most students
- Session rating trends: Consistent 4-5 star ratings indicate good study quality"""

GUIDELINES = """Guidelines for responses:
- Be encouraging and supportive
- Provide specific, actionable study advice
- Reference their actual study data when relevant
- Use the benchmarks above to provide context (e.g., "Your 1 session per day shows excellent consistency!")
- Keep responses concise but helpful
- Focus on study techniques, time management, and motivation
- Celebrate achievements and progress, even small ones
- If they ask about topics unrelated to studying, gently redirect to study-related topics"""


# ── Prompt ────────────────────────────────────────────────────


def _recent_line(index: int, s: dict[str, Any]) -> str:
    line = f'{index}. "{s["title"]}" - {s["durationMinutes"]} min total ({s["focusedMinutes"]} min focused'
    if s.get("pausedMinutes"):
        line += f', {s["pausedMinutes"]} min paused'
    line += ")"
    if s.get("rating"):
        line += f' ({s["rating"]}/5 stars)'
    return line


def build_system_prompt(stats: StudyStats) -> str:
    """Coach persona plus the user's numbers, benchmarks and guidelines."""
    p = stats.patterns
    rating = f"{stats.average_rating:.1f}/5" if stats.average_rating else "No ratings yet"
    efficiency = (
        f"{stats.focus_efficiency * 100:.0f}%" if stats.focus_efficiency is not None else "n/a"
    )
    hour = f"{p.most_active_hour}:00" if p.most_active_hour is not None else "n/a"

    lines = [
        "You are a helpful AI study coach assistant. You have access to the user's study "
        "session data and should provide personalized advice based on their study patterns "
        "and performance.",
        "",
        f"User's Study Statistics (Last {stats.window_days} days):",
        f"- Total study sessions: {stats.total_sessions}",
        f"- Total study time: {stats.total_study_hours} hours",
        f"- Total focused time: {stats.total_focused_hours} hours",
        f"- Total paused time: {stats.total_paused_hours} hours",
        f"- Focus efficiency: {efficiency}",
        f"- Average session length: {stats.average_session_minutes} minutes",
        f"- Average paused time per session: {stats.average_paused_minutes} minutes",
        f"- Average session rating: {rating}",
        f"- Most active study day: {p.most_active_day or 'n/a'}",
        f"- Most active study hour: {hour}",
        f"- Days studied: {p.total_days_studied}/7 days of the week",
        "",
        "Recent Sessions:",
    ]
    if stats.recent_sessions:
        lines.extend(_recent_line(i, s) for i, s in enumerate(stats.recent_sessions, 1))
    else:
        lines.append("(none yet)")
    lines += [
        "",
        BENCHMARKS,
        "",
        GUIDELINES,
        "",
        "Remember: You're here to help them improve their study habits and academic "
        "performance based on their actual study patterns. Use the benchmarks to provide "
        "encouraging, realistic feedback.",
    ]
    return "\n".join(lines)


def build_messages(
    system_prompt: str,
    message: str,
    history: list[dict[str, Any]] | None = None,
) -> list[dict[str, str]]:
    """System prompt, prior turns (user/assistant only), then the new message."""
    messages = [{"role": "system", "content": system_prompt}]
    for turn in history or []:
        role = turn.get("role")
        content = turn.get("content")
        if role in VALID_ROLES and isinstance(content, str) and content:
            messages.append({"role": role, "content": content})
    messages.append({"role": "user", "content": message})
    return messages


# ── Fallback ──────────────────────────────────────────────────


def fallback_response(message: str) -> str:
    """Canned advice picked by keyword, used when no model is reachable."""
    text = message.lower()
    if "study" in text and "habit" in text:
        return (
            "I'd love to analyze your study habits! The AI coach isn't configured right now, "
            "so here are some general tips: try the Pomodoro technique (25 min focused study "
            "+ 5 min break), keep a consistent study schedule, and take regular breaks to "
            "maintain focus."
        )
    if "time" in text or "schedule" in text:
        return (
            "Time management is crucial for effective studying! Block out specific study "
            "times, eliminate distractions during sessions, and use your most productive "
            "hours for challenging subjects."
        )
    if "motivation" in text or "focus" in text:
        return (
            "Staying motivated can be challenging! Set small, achievable goals, reward "
            "yourself for finishing sessions, study with others for accountability, and "
            "keep your long-term goals in view."
        )
    return (
        "Thanks for your question! Personalized advice needs the AI coach, which isn't "
        "configured right now. In the meantime, keep up the great work with your study "
        "sessions!"
    )


def _api_key() -> str:
    key = (os.getenv("OPENAI_API_KEY") or "").strip()
    if key.startswith("your-"):
        return ""
    return key


# ── Entry point ───────────────────────────────────────────────


def generate_advice(
    owner_id: str,
    message: str,
    history: list[dict[str, Any]] | None = None,
    root: Path | None = None,
    client: OpenAI | None = None,
) -> dict[str, Any]:
    """Answer one chat message. Returns {"response", "timestamp"}.

    BadRequestError for an empty message, AdviceError when the model call
    fails for any reason other than the model being unavailable.
    """
    if root is None:
        root = workspace_root()
    message = (message or "").strip()
    if not message:
        raise BadRequestError("Message cannot be empty")

    now = now_local(root)
    settings = load_settings(root)

    if client is None:
        key = _api_key()
        if not key:
            log.info("OPENAI_API_KEY not set; using fallback advice")
            return {"response": fallback_response(message), "timestamp": now.isoformat()}
        client = OpenAI(api_key=key)

    stats = load_study_stats(owner_id, root, now)
    messages = build_messages(build_system_prompt(stats), message, history)
    log.debug(
        "Requesting advice: model=%s messages=%d prompt_chars=%d",
        settings.advice_model, len(messages), len(messages[0]["content"]),
    )

    try:
        resp = client.chat.completions.create(
            model=settings.advice_model,
            messages=messages,
            max_tokens=MAX_TOKENS,
        )
    except (openai.NotFoundError, openai.PermissionDeniedError) as e:
        log.warning("Model %s not available, using fallback advice: %s", settings.advice_model, e)
        return {"response": fallback_response(message), "timestamp": now.isoformat()}
    except openai.OpenAIError as e:
        log.error("Advice request failed: %s", e)
        raise AdviceError(str(e)) from e

    content = (resp.choices[0].message.content or "").strip()
    if not content:
        raise AdviceError("Empty response from model")
    return {"response": content, "timestamp": now.isoformat()}
