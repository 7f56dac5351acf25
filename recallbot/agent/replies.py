"""User-facing reply texts."""

from __future__ import annotations

from recallbot.providers.base import ErrorKind, ProviderError

BACKUP_PREFIX = "<i>backup model:</i>\n\n"

GENERIC_ERROR = "Something went wrong. Please try again a bit later."
CONTENT_BLOCKED = "Sorry, your request contains content I can't respond to."
UNAVAILABLE = "Sorry, the service is temporarily unavailable."
RATE_LIMITED = "Sorry, there are too many requests right now. Please try later."

EMPTY_REPLY = "Sorry, I couldn't put an answer together."
EMPTY_IMAGE_REPLY = "Sorry, I couldn't make sense of this image."
EMPTY_AUDIO_REPLY = "Sorry, I couldn't make sense of this voice message."

UNSUPPORTED_MEDIA = "Sorry, this file type is not supported."
MEDIA_TOO_LARGE = "Sorry, this file is too large."
MEDIA_MISSING = "I couldn't get the file."

GROUP_NOT_ALLOWED = (
    "Sorry, I can't chat in this group, but you can always message me privately."
)

_BY_KIND = {
    ErrorKind.CONTENT_BLOCKED: CONTENT_BLOCKED,
    ErrorKind.UNAVAILABLE: UNAVAILABLE,
    ErrorKind.TIMEOUT: UNAVAILABLE,
    ErrorKind.RATE_LIMITED: RATE_LIMITED,
}


def error_reply(exc: BaseException) -> str:
    """Pick the user-visible message for a failed generation by its error kind."""
    if isinstance(exc, ProviderError):
        return _BY_KIND.get(exc.kind, GENERIC_ERROR)
    return GENERIC_ERROR


def welcome(first_name: str, persona_name: str) -> str:
    return f"<b>Hi, {first_name}!</b> I'm {persona_name}, glad to see you. How can I help?"


MENU = """Here's what I can do for you:
📝 /memories: see what I remember about you.
🤖 /model: which models I'm using right now.
🔄 /refresh: update my memories from our latest history.
🗑️ /clear: forget all memories and the whole conversation history.
❌ /delete: remove messages from the history (<code>/delete today</code> or <code>/delete N</code>).
🧩 /tokens: change the maximum length of my answers.
🔥 /temperature: change how creative my answers are.
⚙️ /primary, /backup: choose the primary and backup models."""
