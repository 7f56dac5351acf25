"""Utility functions for recallbot."""

from recallbot.utils.helpers import atomic_write_text, ensure_dir

__all__ = ["ensure_dir", "atomic_write_text"]
