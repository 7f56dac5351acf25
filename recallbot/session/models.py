"""Session data model: turns, day memories and per-user generation settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from recallbot.session.timestamps import canonical_day_key

PENDING_DELETE_COUNT = "delete_count"


@dataclass
class Turn:
    """One labeled, timestamped message of a conversation."""

    speaker: str
    text: str
    timestamp: str

    def to_dict(self) -> dict[str, str]:
        return {"speaker": self.speaker, "text": self.text, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Turn":
        # Legacy documents store role/content/date.
        return cls(
            speaker=str(data.get("speaker", data.get("role", ""))),
            text=str(data.get("text", data.get("content", ""))),
            timestamp=str(data.get("timestamp", data.get("date", ""))),
        )


@dataclass
class Memory:
    """Generated summary of one calendar day."""

    text: str
    generated_at: str

    def to_dict(self) -> dict[str, str]:
        return {"text": self.text, "generated_at": self.generated_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Memory":
        return cls(
            text=str(data.get("text") or ""),
            generated_at=str(data.get("generated_at", data.get("date", ""))),
        )


@dataclass
class GenerationParams:
    max_output_tokens: int
    temperature: float


@dataclass(frozen=True)
class SessionDefaults:
    """Values applied to new sessions and to fields missing from stored ones."""

    max_output_tokens: int = 700
    temperature: float = 1.5
    primary_provider: str = "gemini-exp-1206"
    backup_provider: str = "gemini-1.5-pro-002"


@dataclass
class Session:
    """
    Per-user conversational state.

    ``primary_provider != backup_provider`` is enforced by the settings operations only;
    stored data may violate it and every consumer uses both values as given.
    """

    generation_params: GenerationParams
    primary_provider: str
    backup_provider: str
    history: list[Turn] = field(default_factory=list)
    memories: dict[str, Memory] = field(default_factory=dict)
    message_count_since_consolidation: int = 0
    pending_input: str | None = None

    @classmethod
    def new(cls, defaults: SessionDefaults) -> "Session":
        return cls(
            generation_params=GenerationParams(
                max_output_tokens=defaults.max_output_tokens,
                temperature=defaults.temperature,
            ),
            primary_provider=defaults.primary_provider,
            backup_provider=defaults.backup_provider,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "history": [t.to_dict() for t in self.history],
            "memories": {day: m.to_dict() for day, m in self.memories.items()},
            "message_count_since_consolidation": self.message_count_since_consolidation,
            "generation_params": {
                "max_output_tokens": self.generation_params.max_output_tokens,
                "temperature": self.generation_params.temperature,
            },
            "primary_provider": self.primary_provider,
            "backup_provider": self.backup_provider,
            "pending_input": self.pending_input,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], defaults: SessionDefaults) -> "Session":
        """Build a session from the current format or the legacy camelCase document."""
        params = data.get("generation_params") or {}

        def pick(*values: Any, default: Any) -> Any:
            for value in values:
                if value is not None:
                    return value
            return default

        max_tokens = pick(
            params.get("max_output_tokens"), data.get("maxOutputTokens"),
            default=defaults.max_output_tokens,
        )
        temperature = pick(
            params.get("temperature"), data.get("temperature"),
            default=defaults.temperature,
        )

        pending = data.get("pending_input")
        if pending is None and data.get("awaitingMessageDeletionCount"):
            pending = PENDING_DELETE_COUNT

        raw_memories = data.get("memories") or {}
        memories: dict[str, Memory] = {}
        for day, m in raw_memories.items():
            key = canonical_day_key(str(day))
            memory = Memory.from_dict(m if isinstance(m, dict) else {"text": m})
            # One memory per day; on a padded/unpadded clash the first non-blank one wins.
            existing = memories.get(key)
            if existing is None or not existing.text.strip():
                memories[key] = memory

        return cls(
            generation_params=GenerationParams(
                max_output_tokens=int(max_tokens),
                temperature=float(temperature),
            ),
            primary_provider=str(pick(
                data.get("primary_provider"), data.get("mainModel"),
                default=defaults.primary_provider,
            )),
            backup_provider=str(pick(
                data.get("backup_provider"), data.get("backupModel"),
                default=defaults.backup_provider,
            )),
            history=[Turn.from_dict(t) for t in data.get("history") or [] if isinstance(t, dict)],
            memories=memories,
            message_count_since_consolidation=int(pick(
                data.get("message_count_since_consolidation"), data.get("messageCountSinceSummary"),
                default=0,
            )),
            pending_input=pending,
        )
