"""Day-bucketed memory consolidation."""

from __future__ import annotations

from dataclasses import dataclass, field

from recallbot.agent.sanitize import sanitize_html
from recallbot.dispatch.engine import DispatchEngine
from recallbot.logging import get_logger
from recallbot.providers.base import TextPart
from recallbot.session.models import GenerationParams, Memory, Session, Turn
from recallbot.session.timestamps import Clock, canonical_day_key, day_key, format_timestamp, parse_day

logger = get_logger(__name__)


@dataclass
class ConsolidationReport:
    summarized: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.summarized)


def group_by_day(history: list[Turn]) -> dict[str, list[Turn]]:
    """Bucket turns by canonical day key, keeping first-seen day order and turn order."""
    groups: dict[str, list[Turn]] = {}
    for turn in history:
        groups.setdefault(canonical_day_key(day_key(turn.timestamp)), []).append(turn)
    return groups


def render_transcript(turns: list[Turn]) -> str:
    return "\n".join(f"{t.speaker} ({t.timestamp}): {t.text}" for t in turns)


class MemoryConsolidator:
    """
    Replaces raw history of past days with one generated memory per day.

    A day is (re)summarized when it has no memory, its memory is blank, or it is
    today. Past days with a memory are never touched again. After the pass,
    history keeps today's turns, turns of days whose summary failed (so the next
    pass retries them) and any turn appended while the pass was running.
    """

    def __init__(
        self,
        dispatch: DispatchEngine,
        *,
        provider_id: str,
        params: GenerationParams,
        prompt_template: str,
        persona_name: str,
        clock: Clock,
    ):
        self.dispatch = dispatch
        self.provider_id = provider_id
        self.params = params
        self.prompt_template = prompt_template
        self.persona_name = persona_name
        self.clock = clock

    def _needs_summary(self, session: Session, day: str, is_today: bool) -> bool:
        existing = session.memories.get(day)
        return existing is None or not existing.text.strip() or is_today

    def _build_contents(self, session: Session, day: str, turns: list[Turn]) -> list[TextPart]:
        previous = "".join(
            f"Memories for {other}:\n{memory.text}\n"
            for other, memory in session.memories.items()
            if other != day
        )
        # Plain substitution: the template may contain other literal braces.
        prompt = self.prompt_template.replace("{persona}", self.persona_name).replace("{day}", day)
        return [
            TextPart(f"Previous memories:\n{previous}"),
            TextPart(f"{prompt}\n{render_transcript(turns)}"),
        ]

    async def consolidate(self, session: Session) -> ConsolidationReport:
        report = ConsolidationReport()
        if not session.history:
            session.message_count_since_consolidation = 0
            return report

        snapshot = list(session.history)
        today = self.clock().date()
        groups = group_by_day(snapshot)

        for day, turns in groups.items():
            is_today = parse_day(day) == today
            if not self._needs_summary(session, day, is_today):
                report.skipped.append(day)
                continue
            try:
                text = await self.dispatch.generate_single(
                    self.provider_id,
                    self._build_contents(session, day, turns),
                    self.params,
                )
            except Exception:
                logger.exception("memory_consolidation_day_failed", day=day, turns=len(turns))
                report.failed.append(day)
                continue
            session.memories[day] = Memory(text=sanitize_html(text), generated_at=format_timestamp(self.clock()))
            report.summarized.append(day)

        kept_days = set(report.failed)
        kept_days.update(day for day in groups if parse_day(day) == today)
        appended = session.history[len(snapshot):]
        session.history = [t for t in snapshot if canonical_day_key(day_key(t.timestamp)) in kept_days] + appended
        session.message_count_since_consolidation = 0

        logger.info(
            "memory_consolidation_done",
            summarized=report.summarized,
            skipped=len(report.skipped),
            failed=report.failed,
            history_kept=len(session.history),
            memories=len(session.memories),
        )
        return report
