"""Configuration module for recallbot."""

from recallbot.config.loader import get_config_path, load_config
from recallbot.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
