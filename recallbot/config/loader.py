"""Configuration loading utilities."""

from __future__ import annotations

import json
import os
from pathlib import Path

from recallbot.config.schema import Config


def get_config_path() -> Path:
    """Get the configuration file path (``RECALLBOT_CONFIG`` overrides the default)."""
    override = os.environ.get("RECALLBOT_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".recallbot" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.

    Raises:
        ValueError: If the file exists but is not valid JSON or fails validation.
    """
    path = config_path or get_config_path()
    if not path.exists():
        return Config()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file {path}: {e}") from e

    return Config.model_validate(data)


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Write *config* as camelCase JSON."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(by_alias=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
