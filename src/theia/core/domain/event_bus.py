"""
Event Bus - typed publish/subscribe with bounded history.

The bus is the only channel between the UI, the orchestration core and the
sandboxed runtime. Emission is synchronous: the envelope is appended to the
history, then handed to the handlers registered for its exact variant, then to
the wildcard handlers (those registered for the base ``Event`` class).

A handler that emits while the bus is dispatching does not jump the queue:
nested emissions are delivered after the current one has reached every
subscriber, so all subscribers observe the same order as the history.
"""

import time
from collections import deque
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from theia.core.domain.events import (
    EVENT_CLASSES,
    Event,
    EventEnvelope,
    EventSource,
)

Handler = Callable[[EventEnvelope], Any]
Unsubscribe = Callable[[], None]

_SUBSCRIBABLE: frozenset[type[Event]] = frozenset({Event, *EVENT_CLASSES.values()})


class EventBus:
    """
    Publish/subscribe bus over the closed event union.

    Handlers are plain callables receiving the EventEnvelope. Exceptions raised
    by a handler are logged and never reach the emitter or other handlers.
    """

    DEFAULT_HISTORY_SIZE = 100

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE):
        if history_size < 1:
            raise ValueError("history_size must be >= 1")
        self._handlers: dict[type[Event], list[Handler]] = {}
        self._history: deque[EventEnvelope] = deque(maxlen=history_size)
        self._pending: deque[EventEnvelope] = deque()
        self._dispatching = False
        self._counter = 0
        self.logger = structlog.get_logger().bind(component="event_bus")

    # ==================== SUBSCRIPTION ====================

    def subscribe(
        self,
        event_type: type[Event] | Iterable[type[Event]],
        handler: Handler,
    ) -> Unsubscribe:
        """
        Register a handler for one or more event variants.

        Args:
            event_type: A concrete event class, a list of them, or ``Event``
                        itself to receive every event (wildcard)
            handler: Callable invoked with each matching EventEnvelope

        Returns:
            A callable that removes exactly this registration

        Raises:
            TypeError: If a family base class or a non-event type is given
        """
        types = (event_type,) if isinstance(event_type, type) else tuple(event_type)
        for cls in types:
            if cls not in _SUBSCRIBABLE:
                raise TypeError(
                    f"Cannot subscribe to {cls!r}: use a concrete event class or Event"
                )

        for cls in types:
            self._handlers.setdefault(cls, []).append(handler)

        def unsubscribe() -> None:
            for cls in types:
                handlers = self._handlers.get(cls)
                if handlers and handler in handlers:
                    handlers.remove(handler)
                    if not handlers:
                        del self._handlers[cls]

        return unsubscribe

    # ==================== EMISSION ====================

    def emit(
        self, event: Event, source: EventSource | str = EventSource.SYSTEM
    ) -> EventEnvelope:
        """
        Wrap an event in an envelope, record it and deliver it.

        Returns:
            The envelope that was recorded and delivered
        """
        if type(event) not in EVENT_CLASSES.values():
            raise TypeError(f"Cannot emit {type(event).__name__}: not an event variant")

        envelope = EventEnvelope(
            id=self._next_id(),
            event=event,
            timestamp=time.time(),
            source=EventSource(source),
        )
        self._history.append(envelope)
        self._pending.append(envelope)

        self.logger.debug(
            "event_emitted",
            event_id=envelope.id,
            event_type=event.type.value,
            source=envelope.source.value,
        )

        if not self._dispatching:
            self._drain_pending()
        return envelope

    def _drain_pending(self) -> None:
        self._dispatching = True
        try:
            while self._pending:
                envelope = self._pending.popleft()
                self._deliver(type(envelope.event), envelope)
                self._deliver(Event, envelope)
        finally:
            self._dispatching = False

    def _deliver(self, key: type[Event], envelope: EventEnvelope) -> None:
        # Copy so handlers may unsubscribe while being dispatched
        for handler in list(self._handlers.get(key, ())):
            try:
                handler(envelope)
            except Exception as e:
                self.logger.error(
                    "event_handler_failed",
                    event_id=envelope.id,
                    event_type=envelope.event.type.value,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                )

    def _next_id(self) -> str:
        self._counter += 1
        return f"evt_{int(time.time() * 1000)}_{self._counter}"

    # ==================== HISTORY ====================

    def get_history(self) -> list[EventEnvelope]:
        """All retained envelopes, oldest first."""
        return list(self._history)

    def get_recent(self, count: int) -> list[EventEnvelope]:
        if count <= 0:
            return []
        return list(self._history)[-count:]

    def get_by_type(self, event_type: type[Event]) -> list[EventEnvelope]:
        """Retained envelopes whose event is an instance of ``event_type``."""
        return [e for e in self._history if isinstance(e.event, event_type)]

    # ==================== DEBUGGING ====================

    def subscriber_counts(self) -> dict[str, int]:
        """Number of handlers per subscribed variant (``*`` for the wildcard)."""
        return {
            ("*" if cls is Event else cls.type.value): len(handlers)
            for cls, handlers in self._handlers.items()
        }

    def dump(self, count: int = 20) -> list[dict[str, Any]]:
        """Flatten the most recent envelopes into rows for display."""
        rows = []
        for envelope in self.get_recent(count):
            payload = envelope.event.payload()
            rows.append(
                {
                    "id": envelope.id,
                    "time": time.strftime("%H:%M:%S", time.localtime(envelope.timestamp)),
                    "source": envelope.source.value,
                    "type": envelope.event.type.value,
                    "payload": str(payload)[:100],
                }
            )
        return rows
