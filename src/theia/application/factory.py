"""
Application Layer - Orchestrator Factory

Wires the orchestration core with its infrastructure adapters based on a
configuration profile:
- loads ``configs/<profile>.yaml`` into TheiaSettings
- creates the session store, flight recorder and reasoning service
- registers the tool catalogue with the gateway
- builds Planner, StepExecutor and Orchestrator on a shared EventBus
"""

from pathlib import Path

import structlog

from theia.application.settings import TheiaSettings
from theia.core.domain.approval import ApprovalGate
from theia.core.domain.event_bus import EventBus
from theia.core.domain.executor import StepExecutor
from theia.core.domain.gateway import CommandChannel, ToolGateway
from theia.core.domain.orchestrator import Orchestrator
from theia.core.domain.planner import Planner
from theia.core.interfaces.llm import ReasoningServiceProtocol
from theia.core.interfaces.state import SessionStoreProtocol
from theia.core.interfaces.tools import ToolProtocol
from theia.infrastructure.persistence.flight_recorder import FlightRecorder
from theia.infrastructure.persistence.session_store import FileSessionStore
from theia.infrastructure.tools.runtime_tools import (
    ReadFileTool,
    RunCommandTool,
    SearchTextTool,
    WriteFileTool,
)
from theia.infrastructure.tools.ui_tools import ChangeTabTool, NavigateToCodeTool, ToggleDiffModeTool


class OrchestratorFactory:
    """
    Factory for creating orchestrators with dependency injection.

    Args:
        config_dir: Directory containing profile YAML files
    """

    def __init__(self, config_dir: str = "configs"):
        self.config_dir = Path(config_dir)
        self.logger = structlog.get_logger().bind(component="orchestrator_factory")

    def load_settings(self, profile: str = "dev") -> TheiaSettings:
        """
        Load a configuration profile.

        Raises:
            FileNotFoundError: If the profile YAML is missing
        """
        profile_path = self.config_dir / f"{profile}.yaml"
        if not profile_path.exists():
            self.logger.error(
                "profile_not_found",
                profile=profile,
                path=str(profile_path),
                hint="Ensure profile YAML exists in configs directory",
            )
            raise FileNotFoundError(f"Profile not found: {profile_path}")

        settings = TheiaSettings.load_from_file(profile_path)
        self.logger.debug("profile_loaded", profile=profile)
        return settings

    def create_tools(self, bus: EventBus, settings: TheiaSettings) -> list[ToolProtocol]:
        """The default tool catalogue (UI tools plus sandbox tools)."""
        channel = CommandChannel(bus, timeout=settings.command_timeout_seconds)
        return [
            NavigateToCodeTool(bus),
            ChangeTabTool(bus),
            ToggleDiffModeTool(bus),
            SearchTextTool(channel),
            ReadFileTool(channel),
            WriteFileTool(channel),
            RunCommandTool(channel),
        ]

    def create_reasoning_service(self, settings: TheiaSettings) -> ReasoningServiceProtocol:
        from theia.infrastructure.llm.llm_service import LLMService

        return LLMService(config_path=settings.llm_config_path)

    async def create_trace_sink(self, settings: TheiaSettings) -> FlightRecorder:
        if not settings.persist_trace:
            return FlightRecorder(max_entries=settings.trace_capacity)
        return await FlightRecorder.load_from_disk(
            settings.trace_path,
            max_entries=settings.trace_capacity,
            persisted_entries=settings.trace_persisted_entries,
        )

    async def create_orchestrator(
        self,
        settings: TheiaSettings | None = None,
        profile: str = "dev",
        bus: EventBus | None = None,
        reasoning: ReasoningServiceProtocol | None = None,
        session_store: SessionStoreProtocol | None = None,
    ) -> Orchestrator:
        """
        Create a fully wired (not yet started) Orchestrator.

        Args:
            settings: Settings to use; loaded from ``profile`` when None
            profile: Configuration profile name
            bus: Shared bus (a new one is created when None)
            reasoning: Reasoning service override (tests, custom providers)
            session_store: Session store override

        Returns:
            Orchestrator instance; call ``await orchestrator.start()`` to run it
        """
        settings = settings or self.load_settings(profile)
        bus = bus or EventBus(history_size=settings.history_size)
        reasoning = reasoning or self.create_reasoning_service(settings)
        session_store = session_store or FileSessionStore(settings.session_path)

        approval_gate = ApprovalGate(bus, policy=settings.approval_policy)
        gateway = ToolGateway(approval_gate, self.create_tools(bus, settings))

        self.logger.info(
            "creating_orchestrator",
            tools=gateway.tool_names,
            approval_policy=settings.approval_policy.value,
            step_ceiling=settings.step_ceiling,
        )

        return Orchestrator(
            bus=bus,
            planner=Planner(reasoning, gateway.tool_names, model_alias=settings.model_alias),
            executor=StepExecutor(reasoning, gateway, model_alias=settings.model_alias),
            approval_gate=approval_gate,
            session_store=session_store,
            trace_sink=await self.create_trace_sink(settings),
            step_ceiling=settings.step_ceiling,
            quiet_window=settings.quiet_window_seconds,
        )
