"""Image and audio turns: validation and prompt/placeholder texts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from recallbot.agent.sanitize import strip_tags
from recallbot.config.schema import MediaConfig

MediaKind = Literal["image", "audio"]

DEFAULT_IMAGE_PROMPT = "Describe the content of this image."
AUDIO_PROMPT = "Sent a voice message."


class MediaUnsupportedError(Exception):
    """Raised before any provider call when an attachment cannot be answered."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


@dataclass
class MediaAttachment:
    kind: MediaKind
    mime_type: str
    data: bytes | None
    caption: str = ""


def validate_media(attachment: MediaAttachment, config: MediaConfig) -> None:
    """Check payload presence, MIME allowlist and size. Raises MediaUnsupportedError."""
    if not attachment.data:
        raise MediaUnsupportedError("missing", "attachment has no payload")

    allowed = config.image_mime_types if attachment.kind == "image" else config.audio_mime_types
    if attachment.mime_type not in allowed:
        raise MediaUnsupportedError(
            "mime_type", f"unsupported {attachment.kind} type: {attachment.mime_type}"
        )
    if len(attachment.data) > config.max_file_bytes:
        raise MediaUnsupportedError(
            "too_large", f"{len(attachment.data)} bytes exceeds {config.max_file_bytes}"
        )


def media_prompt(attachment: MediaAttachment) -> str:
    if attachment.kind == "audio":
        return AUDIO_PROMPT
    caption = attachment.caption.strip()
    return strip_tags(caption) if caption else DEFAULT_IMAGE_PROMPT


def history_placeholder(attachment: MediaAttachment) -> str:
    """Text stored in history in place of the binary payload."""
    if attachment.kind == "audio":
        return AUDIO_PROMPT
    if attachment.caption:
        return f'Sent an image with caption: "{attachment.caption}"'
    return "Sent an image"
