"""Agent core: prompt composition, per-update flow and commands."""
