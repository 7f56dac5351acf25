"""Durable user -> Session mapping."""

from __future__ import annotations

import asyncio
import json
import os
import time
from pathlib import Path
from typing import Any, Protocol

from recallbot.logging import get_logger
from recallbot.session.models import Session, SessionDefaults
from recallbot.utils.helpers import atomic_write_text

logger = get_logger(__name__)


class SessionStore(Protocol):
    """Storage seam used by the mutator, the consolidator and the CLI."""

    def get(self, key: str) -> Session | None: ...

    def get_or_create(self, key: str) -> Session: ...

    def put(self, key: str, session: Session) -> None: ...

    def snapshot(self) -> dict[str, dict[str, Any]]: ...

    async def save(self) -> None: ...


class JsonSessionStore:
    """
    Keeps every session in memory and persists the whole mapping to one JSON file.

    Each ``save()`` serializes the full snapshot on the event loop, then writes it
    atomically from a worker thread. Writes are serialized by a lock so snapshots
    land on disk in the order they were taken.
    """

    def __init__(self, path: Path, defaults: SessionDefaults | None = None):
        self.path = path
        self.defaults = defaults or SessionDefaults()
        self._sessions: dict[str, Session] = {}
        self._write_lock = asyncio.Lock()
        self._save_writes = 0

    def load(self) -> int:
        """Load the state file; a missing file is an empty mapping. Returns the session count."""
        if not self.path.exists():
            logger.info("session_store_empty", path=str(self.path))
            return 0

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        except (json.JSONDecodeError, ValueError, UnicodeDecodeError) as e:
            aside = self.path.with_name(f"{self.path.name}.corrupt-{int(time.time())}")
            os.replace(self.path, aside)
            logger.error("session_store_corrupt", path=str(self.path), moved_to=str(aside), error=str(e))
            return 0

        for key, raw in data.items():
            if not isinstance(raw, dict):
                logger.warning("session_record_skipped", user_id=key, reason="not an object")
                continue
            self._sessions[str(key)] = Session.from_dict(raw, self.defaults)

        # Rewrite once so legacy records are stored in the current format.
        atomic_write_text(self.path, self._serialize())
        logger.info("session_store_loaded", path=str(self.path), sessions=len(self._sessions))
        return len(self._sessions)

    def get(self, key: str) -> Session | None:
        return self._sessions.get(key)

    def get_or_create(self, key: str) -> Session:
        session = self._sessions.get(key)
        if session is None:
            session = Session.new(self.defaults)
            self._sessions[key] = session
            logger.info("session_created", user_id=key)
        return session

    def put(self, key: str, session: Session) -> None:
        self._sessions[key] = session

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {key: s.to_dict() for key, s in self._sessions.items()}

    def _serialize(self) -> str:
        return json.dumps(self.snapshot(), ensure_ascii=False, indent=2)

    async def save(self) -> None:
        """Persist the full mapping. Raises OSError on write failure."""
        async with self._write_lock:
            started = time.perf_counter()
            text = self._serialize()
            await asyncio.to_thread(atomic_write_text, self.path, text)
            self._save_writes += 1
            logger.debug(
                "session_store_written",
                sessions=len(self._sessions),
                file_bytes=len(text.encode("utf-8")),
                elapsed_ms=round((time.perf_counter() - started) * 1000, 3),
                save_writes=self._save_writes,
            )
