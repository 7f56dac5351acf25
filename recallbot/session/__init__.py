"""Session state and persistence."""

from recallbot.session.models import GenerationParams, Memory, Session, SessionDefaults, Turn
from recallbot.session.store import JsonSessionStore, SessionStore

__all__ = [
    "GenerationParams",
    "JsonSessionStore",
    "Memory",
    "Session",
    "SessionDefaults",
    "SessionStore",
    "Turn",
]
