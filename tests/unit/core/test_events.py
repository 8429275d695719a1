"""Unit Tests for the event union."""

import dataclasses

import pytest

from theia.core.domain.events import (
    AGENT_ACTIONS,
    EVENT_CLASSES,
    SYSTEM_EVENTS,
    USER_INTENTS,
    AgentAction,
    CancelCommand,
    CommandExited,
    EventEnvelope,
    EventSource,
    EventType,
    ExecuteCommand,
    PlanCreated,
    SessionRestored,
    Speak,
    SystemEvent,
    UserIntent,
    event_from_dict,
)
from theia.core.domain.models import OrchestratorState, Plan, PlanStep


class TestEventUnion:
    def test_registry_covers_every_event_type_exactly_once(self):
        """Test that each EventType maps to exactly one variant."""
        assert set(EVENT_CLASSES) == set(EventType)
        assert len(set(EVENT_CLASSES.values())) == len(EventType)

    def test_families(self):
        assert all(issubclass(cls, UserIntent) for cls in USER_INTENTS)
        assert all(issubclass(cls, AgentAction) for cls in AGENT_ACTIONS)
        assert all(issubclass(cls, SystemEvent) for cls in SYSTEM_EVENTS)

    def test_events_are_immutable(self):
        event = Speak(text="x")
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.text = "y"

    def test_to_dict(self):
        assert Speak(text="hello").to_dict() == {"type": "speak", "payload": {"text": "hello"}}

    def test_nested_payloads_rebuild(self):
        plan = Plan(goal="g", steps=(PlanStep(description="s", tool="read_file"),))
        state = OrchestratorState(plan=plan, ui_context={"active_file": "a.py"})

        for event in (
            PlanCreated(plan=plan),
            SessionRestored(state=state),
            ExecuteCommand(command="python", args=("-c", "print(1)"), command_id="cmd_1"),
            CancelCommand(command_id="cmd_1"),
            CommandExited(exit_code=0, command_id="cmd_1"),
        ):
            assert event_from_dict(event.to_dict()) == event

    def test_envelope_round_trip(self):
        envelope = EventEnvelope(
            id="evt_1_1", event=Speak(text="x"), timestamp=12.5, source=EventSource.AGENT
        )
        assert EventEnvelope.from_dict(envelope.to_dict()) == envelope
