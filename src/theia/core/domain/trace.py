"""
Trace Recorder

Wildcard bus subscriber that pairs every event with a snapshot of the
orchestrator state at the moment the event was emitted.

The snapshot is taken synchronously inside the handler, before control is
yielded, so it reflects the state at the event's logical position. Appending
the entry to the sink is deferred to the next loop tick to keep emission
cheap; ``drain()`` waits until every deferred append has landed.
"""

import asyncio
import copy
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from theia.core.domain.event_bus import EventBus, Unsubscribe
from theia.core.domain.events import Event, EventEnvelope
from theia.core.domain.models import OrchestratorState


@dataclass(frozen=True)
class TraceEntry:
    envelope: EventEnvelope
    state_snapshot: OrchestratorState | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "envelope": self.envelope.to_dict(),
            "state_snapshot": self.state_snapshot.to_dict() if self.state_snapshot else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TraceEntry":
        snapshot = data.get("state_snapshot")
        return cls(
            envelope=EventEnvelope.from_dict(data["envelope"]),
            state_snapshot=OrchestratorState.from_dict(snapshot) if snapshot else None,
        )


class TraceSink(Protocol):
    """Destination of trace entries (see FlightRecorder)."""

    def record(self, entry: TraceEntry) -> None:
        ...

    async def flush(self) -> None:
        ...


class TraceRecorder:
    """
    Records one TraceEntry per emitted event.

    Args:
        bus: Bus to observe (wildcard subscription)
        state_provider: Returns the current orchestrator state
        sink: Where entries are appended
    """

    def __init__(
        self,
        bus: EventBus,
        state_provider: Callable[[], OrchestratorState | None],
        sink: TraceSink,
    ):
        self.bus = bus
        self.state_provider = state_provider
        self.sink = sink
        self._unsubscribe: Unsubscribe | None = None
        self._scheduled = 0
        self.logger = structlog.get_logger().bind(component="trace_recorder")

    @property
    def is_recording(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.bus.subscribe(Event, self._on_event)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_event(self, envelope: EventEnvelope) -> None:
        state = self.state_provider()
        entry = TraceEntry(envelope=envelope, state_snapshot=copy.copy(state))

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Emitted outside the event loop (setup code, sync tests)
            self._append(entry)
            return

        self._scheduled += 1
        loop.call_soon(self._append_scheduled, entry)

    def _append_scheduled(self, entry: TraceEntry) -> None:
        self._scheduled -= 1
        self._append(entry)

    def _append(self, entry: TraceEntry) -> None:
        try:
            self.sink.record(entry)
        except Exception as e:
            self.logger.error("trace_record_failed", event_id=entry.envelope.id, error=str(e))

    async def drain(self) -> None:
        """Wait until every deferred append has reached the sink and the sink is flushed."""
        while self._scheduled > 0:
            await asyncio.sleep(0)
        await self.sink.flush()
