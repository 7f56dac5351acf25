"""Structured logging for recallbot (structlog over the stdlib backend).

Every event passes through a redaction step before rendering: values that look
like provider keys or bot tokens are masked, and so is any exact secret that
was registered at startup with ``register_secret``.
"""

import json
import logging
import re
import sys
from typing import Any

import structlog

_SECRET_PATTERNS = [
    re.compile(r"AIza[0-9A-Za-z_-]{20,}"),              # Google API keys
    re.compile(r"\b\d{8,10}:[A-Za-z0-9_-]{30,}\b"),     # Telegram bot tokens
    re.compile(r"sk-[A-Za-z0-9_-]{10,}"),               # DeepSeek / OpenAI style
    re.compile(r"Bearer\s+[A-Za-z0-9_\-.]{10,}"),       # Authorization headers
]

# Libraries that log every poll or request at INFO.
_NOISY_LOGGERS = ("httpx", "telegram.ext", "LiteLLM")

_registered_secrets: set[str] = set()


def mask_secret(value: str) -> str:
    """Mask a secret value, keeping first 4 and last 4 chars visible.

    >>> mask_secret("sk-abc123456789xyz")
    'sk-a****9xyz'
    """
    if len(value) <= 8:
        return "****"
    return value[:4] + "****" + value[-4:]


def register_secret(value: str | None) -> None:
    """Mask *value* verbatim wherever it shows up in later log events."""
    if value and len(value) >= 8 and not value.startswith("$"):
        _registered_secrets.add(value)


def _redact_text(text: str) -> str:
    for secret in _registered_secrets:
        if secret in text:
            text = text.replace(secret, mask_secret(secret))
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: mask_secret(m.group(0)), text)
    return text


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return _redact_text(value)
    if isinstance(value, dict):
        return {k: _redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v) for v in value)
    return value


def _redact_event(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Processor: redact secrets in every value, nested containers included."""
    return {key: _redact(val) for key, val in event_dict.items()}


def setup_logging(json_output: bool = True, level: str = "INFO") -> None:
    """Route structlog events for the ``recallbot`` hierarchy to stderr.

    JSON lines by default; ``json_output=False`` gives the colored console renderer.
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _redact_event,
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer(serializer=lambda obj, **kw: json.dumps(obj, ensure_ascii=False, **kw))
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    app_logger = logging.getLogger("recallbot")
    app_logger.handlers.clear()
    app_logger.addHandler(handler)
    app_logger.setLevel(level.upper())
    app_logger.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "recallbot") -> structlog.stdlib.BoundLogger:
    """Return a structlog bound logger for the given name."""
    return structlog.get_logger(name)
