"""
Session Store

Persists the OrchestratorState as one JSON document:

    {"messages": [...], "context": {...}, "plan": {...} | null,
     "pending_approval": {...} | null, "last_error": str | null,
     "saved_at": "<iso timestamp>"}

Saving is best-effort: failures are logged and reported as False, never raised.
"""

import asyncio
import json
import os
from datetime import datetime
from pathlib import Path

import aiofiles
import structlog

from theia.core.domain.models import OrchestratorState


def _to_document(state: OrchestratorState) -> str:
    document = state.to_dict()
    document["saved_at"] = datetime.now().isoformat()
    return json.dumps(document, ensure_ascii=False, indent=2)


class FileSessionStore:
    """
    JSON file store with atomic writes (temp file + rename).

    Args:
        path: Location of the session document
    """

    def __init__(self, path: str | Path = ".theia/session.json"):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self.logger = structlog.get_logger().bind(component="session_store")

    async def save(self, state: OrchestratorState) -> bool:
        async with self._lock:
            try:
                payload = _to_document(state)
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")

                async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                    await f.write(payload)
                os.replace(tmp_path, self.path)

                self.logger.debug("state_saved", path=str(self.path), messages=len(state.messages))
                return True

            except Exception as e:
                self.logger.error("state_save_failed", path=str(self.path), error=str(e))
                return False

    async def load(self) -> OrchestratorState | None:
        if not self.path.exists():
            return None

        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                content = await f.read()
            state = OrchestratorState.from_dict(json.loads(content))
            self.logger.info("state_loaded", path=str(self.path))
            return state

        except Exception as e:
            self.logger.error("state_load_failed", path=str(self.path), error=str(e))
            return None

    async def clear(self) -> None:
        async with self._lock:
            self.path.unlink(missing_ok=True)
        self.logger.info("state_cleared", path=str(self.path))


class InMemorySessionStore:
    """Keeps the serialized document in memory (tests, ephemeral sessions)."""

    def __init__(self) -> None:
        self.document: str | None = None
        self.save_count = 0

    async def save(self, state: OrchestratorState) -> bool:
        self.document = _to_document(state)
        self.save_count += 1
        return True

    async def load(self) -> OrchestratorState | None:
        if self.document is None:
            return None
        return OrchestratorState.from_dict(json.loads(self.document))

    async def clear(self) -> None:
        self.document = None
