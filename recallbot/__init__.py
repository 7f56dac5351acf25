"""recallbot - a chat assistant that remembers what you talked about, one day at a time."""

__version__ = "0.3.0"
__logo__ = "🦉"
