"""Generation dispatch: retry policy and primary/backup fallback."""

from recallbot.dispatch.engine import DispatchEngine, DispatchResult
from recallbot.dispatch.retry import RetryPolicy

__all__ = ["DispatchEngine", "DispatchResult", "RetryPolicy"]
