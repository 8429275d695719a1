"""
Flight Recorder

Capped FIFO buffer of TraceEntry values (oldest evicted first). Optionally
mirrors its newest entries to a JSON file so a trace survives a restart;
disk writes are best-effort, coalesced and never raise.
"""

import asyncio
import json
import os
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import structlog

from theia.core.domain.trace import TraceEntry


class FlightRecorder:
    """
    In-memory trace buffer with optional disk persistence.

    Args:
        max_entries: Buffer capacity (oldest entries are evicted)
        path: JSON file mirroring the newest entries, or None for memory only
        persisted_entries: How many of the newest entries are written to disk
    """

    MAX_ENTRIES = 500
    PERSISTED_ENTRIES = 100

    def __init__(
        self,
        max_entries: int = MAX_ENTRIES,
        path: str | Path | None = None,
        persisted_entries: int = PERSISTED_ENTRIES,
    ):
        self._entries: deque[TraceEntry] = deque(maxlen=max_entries)
        self.path = Path(path) if path is not None else None
        self.persisted_entries = persisted_entries
        self._lock = asyncio.Lock()
        self._dirty = False
        self._persist_task: asyncio.Task | None = None
        self.logger = structlog.get_logger().bind(component="flight_recorder")

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, entry: TraceEntry) -> None:
        self._entries.append(entry)
        if self.path is not None:
            self._schedule_persist()

    def entries(self) -> list[TraceEntry]:
        """All retained entries, oldest first."""
        return list(self._entries)

    async def clear(self) -> None:
        self._entries.clear()
        self._dirty = False
        if self.path is not None:
            async with self._lock:
                self.path.unlink(missing_ok=True)

    def export(self) -> dict[str, Any]:
        """Flat, JSON-serializable dump of the whole buffer."""
        return {
            "exported_at": datetime.now().isoformat(),
            "entries": [entry.to_dict() for entry in self._entries],
        }

    # ==================== PERSISTENCE ====================

    def _schedule_persist(self) -> None:
        self._dirty = True
        if self._persist_task is not None and not self._persist_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the next flush() writes it
            return
        self._persist_task = loop.create_task(self._persist_pending())

    async def _persist_pending(self) -> None:
        while self._dirty:
            self._dirty = False
            await self.persist()

    async def flush(self) -> None:
        """Wait for outstanding disk writes (no-op without a path)."""
        if self._persist_task is not None:
            await self._persist_task
        if self.path is not None and self._dirty:
            await self._persist_pending()

    async def persist(self) -> bool:
        """Write the newest entries to disk. Returns False on failure."""
        if self.path is None:
            return False

        async with self._lock:
            try:
                tail = list(self._entries)[-self.persisted_entries :]
                payload = json.dumps([entry.to_dict() for entry in tail], ensure_ascii=False)

                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
                async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                    await f.write(payload)
                os.replace(tmp_path, self.path)
                return True

            except Exception as e:
                self.logger.error("trace_persist_failed", path=str(self.path), error=str(e))
                return False

    @classmethod
    async def load_from_disk(
        cls,
        path: str | Path,
        max_entries: int = MAX_ENTRIES,
        persisted_entries: int = PERSISTED_ENTRIES,
    ) -> "FlightRecorder":
        """Create a recorder pre-filled with the entries persisted at ``path``."""
        recorder = cls(max_entries=max_entries, path=path, persisted_entries=persisted_entries)
        file_path = Path(path)
        if not file_path.exists():
            return recorder

        try:
            async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
                content = await f.read()
            for data in json.loads(content):
                recorder._entries.append(TraceEntry.from_dict(data))
            recorder.logger.info("trace_loaded", path=str(file_path), entries=len(recorder))
        except Exception as e:
            recorder.logger.error("trace_load_failed", path=str(file_path), error=str(e))

        return recorder
