"""Memory consolidation."""

from recallbot.memory.consolidator import ConsolidationReport, MemoryConsolidator

__all__ = ["ConsolidationReport", "MemoryConsolidator"]
