"""
Domain Events for the Orchestration Core

Every signal that flows through the EventBus is one variant of a closed union
of frozen dataclasses. Variants are grouped into three families:
- UserIntent: signals coming from the UI (messages, approvals, activity)
- AgentAction: signals the orchestrator sends to the UI and the runtime
- SystemEvent: signals coming from the sandboxed runtime and the host

Each variant carries a class-level ``type`` tag and only the payload fields
relevant to it. ``EVENT_CLASSES`` is the exhaustive registry of variants; all
consumers dispatch through it (or through tables keyed by variant class).
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from theia.core.domain.models import OrchestratorState, Plan


class EventSource(str, Enum):
    """Origin of an emitted event."""

    UI = "ui"
    AGENT = "agent"
    SYSTEM = "system"


class EventType(str, Enum):
    """Wire tag of every event variant."""

    # User intent
    MESSAGE_SUBMITTED = "message_submitted"
    UI_INTERACTION = "ui_interaction"
    CODE_SELECTION_CHANGED = "code_selection_changed"
    APPROVAL_DECISION = "approval_decision"
    ACTIVITY_PING = "activity_ping"

    # Agent actions
    SPEAK = "speak"
    NAVIGATE = "navigate"
    SWITCH_TAB = "switch_tab"
    TOGGLE_MODE = "toggle_mode"
    EXECUTE_COMMAND = "execute_command"
    CANCEL_COMMAND = "cancel_command"
    PLAN_CREATED = "plan_created"
    APPROVAL_REQUESTED = "approval_requested"
    SESSION_RESTORED = "session_restored"
    YIELD = "yield"
    REPAIR_ENTERED = "repair_entered"
    THINKING = "thinking"

    # System
    COMMAND_OUTPUT_CHUNK = "command_output_chunk"
    COMMAND_READY = "command_ready"
    COMMAND_EXITED = "command_exited"
    FILE_SYNCED = "file_synced"
    SESSION_RESET = "session_reset"


def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class Event:
    """Base of the event union. Subscribing to ``Event`` means 'every event'."""

    type: ClassVar[EventType]

    def payload(self) -> dict[str, Any]:
        return {f.name: _jsonable(getattr(self, f.name)) for f in fields(self)}

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "payload": self.payload()}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Event:
        return cls(**payload)


@dataclass(frozen=True)
class UserIntent(Event):
    """Family: UI -> core."""


@dataclass(frozen=True)
class AgentAction(Event):
    """Family: core -> UI / runtime."""


@dataclass(frozen=True)
class SystemEvent(Event):
    """Family: runtime / host -> core."""


# ==================== USER INTENT ====================


@dataclass(frozen=True)
class MessageSubmitted(UserIntent):
    type: ClassVar[EventType] = EventType.MESSAGE_SUBMITTED

    text: str
    ui_context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UIInteraction(UserIntent):
    type: ClassVar[EventType] = EventType.UI_INTERACTION

    action: str
    target: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CodeSelectionChanged(UserIntent):
    type: ClassVar[EventType] = EventType.CODE_SELECTION_CHANGED

    file: str
    line: int
    change_type: str = "selection"
    content: str | None = None


@dataclass(frozen=True)
class ApprovalDecision(UserIntent):
    type: ClassVar[EventType] = EventType.APPROVAL_DECISION

    approved: bool


@dataclass(frozen=True)
class ActivityPing(UserIntent):
    type: ClassVar[EventType] = EventType.ACTIVITY_PING

    timestamp: float


# ==================== AGENT ACTIONS ====================


@dataclass(frozen=True)
class Speak(AgentAction):
    type: ClassVar[EventType] = EventType.SPEAK

    text: str


@dataclass(frozen=True)
class Navigate(AgentAction):
    type: ClassVar[EventType] = EventType.NAVIGATE

    file: str
    line: int = 1
    reason: str = ""


@dataclass(frozen=True)
class SwitchTab(AgentAction):
    type: ClassVar[EventType] = EventType.SWITCH_TAB

    tab: str


@dataclass(frozen=True)
class ToggleMode(AgentAction):
    type: ClassVar[EventType] = EventType.TOGGLE_MODE

    enabled: bool


@dataclass(frozen=True)
class ExecuteCommand(AgentAction):
    type: ClassVar[EventType] = EventType.EXECUTE_COMMAND

    command: str
    args: tuple[str, ...] = ()
    command_id: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ExecuteCommand:
        return cls(
            command=payload["command"],
            args=tuple(payload.get("args") or ()),
            command_id=payload.get("command_id", ""),
        )


@dataclass(frozen=True)
class CancelCommand(AgentAction):
    """Asks the runtime to kill the process started for ``command_id``."""

    type: ClassVar[EventType] = EventType.CANCEL_COMMAND

    command_id: str


@dataclass(frozen=True)
class PlanCreated(AgentAction):
    type: ClassVar[EventType] = EventType.PLAN_CREATED

    plan: Plan

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PlanCreated:
        from theia.core.domain.models import Plan

        return cls(plan=Plan.from_dict(payload["plan"]))


@dataclass(frozen=True)
class ApprovalRequested(AgentAction):
    type: ClassVar[EventType] = EventType.APPROVAL_REQUESTED

    tool: str
    args: dict[str, Any] = field(default_factory=dict)
    preview: str = ""


@dataclass(frozen=True)
class SessionRestored(AgentAction):
    type: ClassVar[EventType] = EventType.SESSION_RESTORED

    state: OrchestratorState

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SessionRestored:
        from theia.core.domain.models import OrchestratorState

        return cls(state=OrchestratorState.from_dict(payload["state"]))


@dataclass(frozen=True)
class Yield(AgentAction):
    type: ClassVar[EventType] = EventType.YIELD

    reason: str


@dataclass(frozen=True)
class RepairEntered(AgentAction):
    type: ClassVar[EventType] = EventType.REPAIR_ENTERED

    failed_step: str
    error: str


@dataclass(frozen=True)
class Thinking(AgentAction):
    type: ClassVar[EventType] = EventType.THINKING

    stage: str
    message: str | None = None


# ==================== SYSTEM ====================


@dataclass(frozen=True)
class CommandOutputChunk(SystemEvent):
    type: ClassVar[EventType] = EventType.COMMAND_OUTPUT_CHUNK

    stream: str
    data: str
    command_id: str = ""


@dataclass(frozen=True)
class CommandReady(SystemEvent):
    type: ClassVar[EventType] = EventType.COMMAND_READY

    url: str | None = None


@dataclass(frozen=True)
class CommandExited(SystemEvent):
    type: ClassVar[EventType] = EventType.COMMAND_EXITED

    exit_code: int
    command_id: str = ""


@dataclass(frozen=True)
class FileSynced(SystemEvent):
    type: ClassVar[EventType] = EventType.FILE_SYNCED

    path: str


@dataclass(frozen=True)
class SessionReset(SystemEvent):
    type: ClassVar[EventType] = EventType.SESSION_RESET


USER_INTENTS: tuple[type[Event], ...] = (
    MessageSubmitted,
    UIInteraction,
    CodeSelectionChanged,
    ApprovalDecision,
    ActivityPing,
)

AGENT_ACTIONS: tuple[type[Event], ...] = (
    Speak,
    Navigate,
    SwitchTab,
    ToggleMode,
    ExecuteCommand,
    CancelCommand,
    PlanCreated,
    ApprovalRequested,
    SessionRestored,
    Yield,
    RepairEntered,
    Thinking,
)

SYSTEM_EVENTS: tuple[type[Event], ...] = (
    CommandOutputChunk,
    CommandReady,
    CommandExited,
    FileSynced,
    SessionReset,
)

EVENT_CLASSES: dict[EventType, type[Event]] = {
    cls.type: cls for cls in (*USER_INTENTS, *AGENT_ACTIONS, *SYSTEM_EVENTS)
}


def event_from_dict(data: dict[str, Any]) -> Event:
    """Rebuild an event from its ``to_dict`` form."""
    event_cls = EVENT_CLASSES[EventType(data["type"])]
    return event_cls.from_payload(dict(data.get("payload") or {}))


@dataclass(frozen=True)
class EventEnvelope:
    """
    Immutable wrapper the bus puts around every emitted event.

    Attributes:
        id: Unique id (``evt_<epoch-ms>_<counter>``)
        event: The event variant
        timestamp: Emission time (seconds since epoch)
        source: Who emitted it (ui, agent, system)
    """

    id: str
    event: Event
    timestamp: float
    source: EventSource

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event": self.event.to_dict(),
            "timestamp": self.timestamp,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventEnvelope:
        return cls(
            id=data["id"],
            event=event_from_dict(data["event"]),
            timestamp=float(data["timestamp"]),
            source=EventSource(data["source"]),
        )
