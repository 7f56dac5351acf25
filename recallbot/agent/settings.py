"""Per-session settings and history truncation operations."""

from __future__ import annotations

import re
from datetime import date

from recallbot.agent.sanitize import strip_tags
from recallbot.providers.registry import CHAT_PROVIDER_IDS
from recallbot.session.models import Session
from recallbot.session.timestamps import is_on_day

MAX_TOKEN_STEPS: tuple[int, ...] = tuple(range(100, 1001, 100))
TEMPERATURE_STEPS: tuple[float, ...] = tuple(round(i / 10, 1) for i in range(1, 21))
TEMPERATURE_MIN = 0.0
TEMPERATURE_MAX = 2.0

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


class SettingsError(ValueError):
    """Rejected settings input; the session is left unchanged."""


def set_max_output_tokens(session: Session, value: int) -> None:
    if value not in MAX_TOKEN_STEPS:
        raise SettingsError(
            f"Answer length must be one of {', '.join(str(s) for s in MAX_TOKEN_STEPS)} tokens."
        )
    session.generation_params.max_output_tokens = value


def set_temperature(session: Session, value: float) -> None:
    if not TEMPERATURE_MIN <= value <= TEMPERATURE_MAX:
        raise SettingsError("Please choose a temperature between 0 and 2.")
    # Menu steps are 0.1 apart.
    session.generation_params.temperature = round(value, 1)


def _check_provider(provider_id: str) -> None:
    if provider_id not in CHAT_PROVIDER_IDS:
        raise SettingsError(
            f"Unknown model {provider_id!r}. Available: {', '.join(CHAT_PROVIDER_IDS)}."
        )


def set_primary_provider(session: Session, provider_id: str) -> None:
    _check_provider(provider_id)
    if provider_id == session.backup_provider:
        raise SettingsError("The primary and backup models can't be the same.")
    session.primary_provider = provider_id


def set_backup_provider(session: Session, provider_id: str) -> None:
    _check_provider(provider_id)
    if provider_id == session.primary_provider:
        raise SettingsError("The primary and backup models can't be the same.")
    session.backup_provider = provider_id


def parse_deletion_count(text: str) -> int:
    """Parse a positive count from the start of *text*."""
    m = _LEADING_INT_RE.match(text or "")
    if not m or int(m.group(1)) <= 0:
        raise SettingsError("Please enter a valid positive number.")
    return int(m.group(1))


def delete_last(session: Session, count: int) -> int:
    """Drop the last *count* turns (all of them when count exceeds the length)."""
    if count <= 0:
        raise SettingsError("Please enter a valid positive number.")
    removed = min(count, len(session.history))
    if removed:
        del session.history[-removed:]
    return removed


def delete_today(session: Session, today: date) -> int:
    kept = [t for t in session.history if not is_on_day(t.timestamp, today)]
    removed = len(session.history) - len(kept)
    session.history = kept
    return removed


def clear_all(session: Session) -> None:
    """Forget history and memories; settings survive."""
    session.history = []
    session.memories = {}
    session.message_count_since_consolidation = 0


def render_memories(session: Session, header: str = "Here's what I remember about you:") -> str | None:
    if not session.memories:
        return None
    lines = [header]
    for day, memory in session.memories.items():
        lines.append(f"<b>Memories for {day}:</b>\n{memory.text}")
    return "\n".join(lines) + "\n"


def describe_models(session: Session) -> str:
    return (
        f'I\'m using <b>"{strip_tags(session.primary_provider)}"</b> to chat.\n'
        f'Backup model: <b>"{strip_tags(session.backup_provider)}"</b>.'
    )
