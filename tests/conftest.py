"""Shared fixtures for the Theia test suite."""

import json
from unittest.mock import AsyncMock

import pytest

from theia.core.domain.approval import ApprovalGate, ApprovalPolicy
from theia.core.domain.event_bus import EventBus
from theia.core.domain.executor import StepExecutor
from theia.core.domain.gateway import CommandChannel, ToolGateway
from theia.core.domain.orchestrator import Orchestrator
from theia.core.domain.planner import Planner
from theia.infrastructure.persistence.flight_recorder import FlightRecorder
from theia.infrastructure.persistence.session_store import InMemorySessionStore
from theia.infrastructure.tools.runtime_tools import (
    ReadFileTool,
    RunCommandTool,
    SearchTextTool,
    WriteFileTool,
)
from theia.infrastructure.tools.ui_tools import ChangeTabTool, NavigateToCodeTool, ToggleDiffModeTool


class Responses:
    """Builders for reasoning-service result dicts."""

    _counter = 0

    @classmethod
    def tool_call(cls, name: str, **arguments) -> dict:
        cls._counter += 1
        return {
            "success": True,
            "content": None,
            "tool_calls": [
                {
                    "id": f"call_{cls._counter}",
                    "type": "function",
                    "function": {"name": name, "arguments": json.dumps(arguments)},
                }
            ],
        }

    @classmethod
    def plan(cls, *steps: tuple[str, str | None]) -> dict:
        return cls.tool_call(
            "submit_plan",
            steps=[{"description": d, "tool": t} for d, t in steps],
        )

    @staticmethod
    def text(content: str) -> dict:
        return {"success": True, "content": content, "tool_calls": None}

    @staticmethod
    def failure(error: str = "rate limited", error_type: str = "RateLimitError") -> dict:
        return {"success": False, "error": error, "error_type": error_type}


@pytest.fixture
def responses():
    return Responses


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def mock_reasoning():
    """Mock ReasoningServiceProtocol (set side_effect / return_value per test)."""
    return AsyncMock()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def recorder():
    return FlightRecorder()


def build_orchestrator(
    bus: EventBus,
    reasoning,
    store,
    recorder=None,
    policy: ApprovalPolicy = ApprovalPolicy.PROMPT,
    step_ceiling: int = 15,
    command_timeout: float = 5.0,
) -> Orchestrator:
    gate = ApprovalGate(bus, policy=policy)
    channel = CommandChannel(bus, timeout=command_timeout)
    gateway = ToolGateway(
        gate,
        [
            NavigateToCodeTool(bus),
            ChangeTabTool(bus),
            ToggleDiffModeTool(bus),
            SearchTextTool(channel),
            ReadFileTool(channel),
            WriteFileTool(channel),
            RunCommandTool(channel),
        ],
    )
    return Orchestrator(
        bus=bus,
        planner=Planner(reasoning, gateway.tool_names),
        executor=StepExecutor(reasoning, gateway),
        approval_gate=gate,
        session_store=store,
        trace_sink=recorder,
        step_ceiling=step_ceiling,
    )


@pytest.fixture
def orchestrator_builder(bus, mock_reasoning, store, recorder):
    """Build an orchestrator on the shared fixtures; keyword overrides are passed through."""

    def _build(**overrides) -> Orchestrator:
        params = {
            "bus": bus,
            "reasoning": mock_reasoning,
            "store": store,
            "recorder": recorder,
        }
        params.update(overrides)
        return build_orchestrator(**params)

    return _build
