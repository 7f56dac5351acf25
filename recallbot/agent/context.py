"""Prompt composition from day memories, today's history and the new turn."""

from __future__ import annotations

from datetime import date

from recallbot.providers.base import TextPart
from recallbot.session.models import Memory, Turn
from recallbot.session.timestamps import day_key, is_on_day, parse_day


def _stamp(timestamp: str) -> str:
    return f"({timestamp})" if timestamp else ""


def format_turn(speaker: str, text: str, timestamp: str) -> str:
    return f"{speaker}{_stamp(timestamp)}: {text}\n"


class ContextComposer:
    """
    Builds the ordered fragments of one generation request.

    Output order: one fragment per memory (mapping order), then at most
    ``window`` of the turns dated on the new turn's day, then the new turn,
    then the persona cue. Nothing is dropped for length here.
    """

    def __init__(self, persona_name: str, window: int = 20):
        self.persona_name = persona_name
        self.window = window

    def today_turns(self, history: list[Turn], today: date | None) -> list[Turn]:
        if today is None:
            return []
        same_day = [t for t in history if is_on_day(t.timestamp, today)]
        return same_day[-self.window:] if self.window > 0 else []

    def build(
        self,
        history: list[Turn],
        memories: dict[str, Memory],
        speaker_label: str,
        text: str,
        timestamp: str,
    ) -> list[TextPart]:
        parts = [TextPart(f"Memories for {day}:\n{memory.text}\n") for day, memory in memories.items()]

        today = parse_day(day_key(timestamp)) if timestamp else None
        parts.extend(
            TextPart(format_turn(t.speaker, t.text, t.timestamp))
            for t in self.today_turns(history, today)
        )

        parts.append(TextPart(format_turn(speaker_label, text, timestamp)))
        parts.append(TextPart(f"{self.persona_name}:"))
        return parts
