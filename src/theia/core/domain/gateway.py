"""
Tool Gateway

Single entry point through which the executor invokes tools. The gateway:
- looks tools up by name (registered as sensitive or non-sensitive)
- routes sensitive calls through the ApprovalGate
- turns every failure into result text carrying the ``[Exit Code: N]``
  sentinel, so a failed tool call is an ordinary failed step, never a fault

Exit codes produced by the gateway itself:
    127  unknown tool
    126  approval rejected
    1    tool raised an exception
    -1   sandbox command timed out
"""

import asyncio
import re
import uuid
from collections.abc import Sequence
from typing import Any

import structlog

from theia.core.domain.approval import ApprovalGate
from theia.core.domain.event_bus import EventBus
from theia.core.domain.events import (
    CancelCommand,
    CommandExited,
    CommandOutputChunk,
    EventEnvelope,
    EventSource,
    ExecuteCommand,
)
from theia.core.domain.exceptions import ToolNotFoundError
from theia.core.interfaces.tools import ToolProtocol

EXIT_CODE_PATTERN = re.compile(r"\[Exit Code: (-?\d+)\]")

EXIT_TOOL_FAILED = 1
EXIT_REJECTED = 126
EXIT_TOOL_NOT_FOUND = 127
EXIT_TIMEOUT = -1

DEFAULT_COMMAND_TIMEOUT = 30.0


def format_exit(text: str, exit_code: int) -> str:
    """Append the exit-code sentinel to result text."""
    if text and not text.endswith("\n"):
        text += "\n"
    return f"{text}[Exit Code: {exit_code}]"


def parse_exit_code(text: str | None) -> int | None:
    """Return the last exit-code sentinel in ``text``, or None if there is none."""
    if not text:
        return None
    matches = EXIT_CODE_PATTERN.findall(text)
    return int(matches[-1]) if matches else None


class CommandChannel:
    """
    Runs commands in the sandboxed runtime over the event bus.

    ``run`` emits ExecuteCommand, collects every CommandOutputChunk until the
    matching CommandExited arrives and returns the accumulated output with the
    exit-code sentinel appended. Each run carries its own ``command_id`` and
    only output and exits echoing that id are collected. A timed-out run
    emits CancelCommand so the runtime kills the process. One command is in
    flight at a time.
    """

    def __init__(self, bus: EventBus, timeout: float = DEFAULT_COMMAND_TIMEOUT):
        self.bus = bus
        self.timeout = timeout
        self._lock = asyncio.Lock()
        self.logger = structlog.get_logger().bind(component="command_channel")

    async def run(self, command: str, args: Sequence[str] = ()) -> str:
        async with self._lock:
            return await self._run(command, tuple(args))

    async def _run(self, command: str, args: tuple[str, ...]) -> str:
        command_id = f"cmd_{uuid.uuid4().hex[:12]}"
        exited: asyncio.Future[int] = asyncio.get_running_loop().create_future()
        chunks: list[str] = []

        def on_chunk(envelope: EventEnvelope) -> None:
            if envelope.event.command_id == command_id and not exited.done():
                chunks.append(envelope.event.data)

        def on_exit(envelope: EventEnvelope) -> None:
            if envelope.event.command_id == command_id and not exited.done():
                exited.set_result(envelope.event.exit_code)

        unsubscribers = [
            self.bus.subscribe(CommandOutputChunk, on_chunk),
            self.bus.subscribe(CommandExited, on_exit),
        ]
        try:
            self.bus.emit(
                ExecuteCommand(command=command, args=args, command_id=command_id),
                source=EventSource.AGENT,
            )
            try:
                exit_code = await asyncio.wait_for(exited, timeout=self.timeout)
            except asyncio.TimeoutError:
                self.logger.warning(
                    "command_timeout", command=command, command_id=command_id, timeout=self.timeout
                )
                self.bus.emit(CancelCommand(command_id=command_id), source=EventSource.AGENT)
                chunks.append("\nCommand execution timed out")
                exit_code = EXIT_TIMEOUT
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()

        self.logger.info(
            "command_finished", command=command, command_id=command_id, exit_code=exit_code
        )
        return format_exit("".join(chunks), exit_code)


class ToolGateway:
    """
    Registry and invocation front door for all tools.

    Args:
        approval_gate: Gate consulted before sensitive tools run
        tools: Tools to register up front (sensitivity from ``requires_approval``)
    """

    def __init__(
        self,
        approval_gate: ApprovalGate,
        tools: Sequence[ToolProtocol] = (),
    ):
        self.approval_gate = approval_gate
        self._tools: dict[str, ToolProtocol] = {}
        self._sensitive: set[str] = set()
        self.logger = structlog.get_logger().bind(component="tool_gateway")

        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolProtocol, sensitive: bool | None = None) -> None:
        """
        Register a tool.

        Args:
            tool: Tool to register (replaces a tool with the same name)
            sensitive: Override the tool's own ``requires_approval`` flag
        """
        is_sensitive = tool.requires_approval if sensitive is None else sensitive
        self._tools[tool.name] = tool
        if is_sensitive:
            self._sensitive.add(tool.name)
        else:
            self._sensitive.discard(tool.name)
        self.logger.debug("tool_registered", tool=tool.name, sensitive=is_sensitive)

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    @property
    def tools(self) -> dict[str, ToolProtocol]:
        return dict(self._tools)

    def is_sensitive(self, name: str) -> bool:
        return name in self._sensitive

    def get_tool(self, name: str) -> ToolProtocol:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(name) from None

    async def invoke(self, name: str, args: dict[str, Any] | None = None) -> str:
        """
        Invoke a tool by name.

        Returns:
            Result text. Failures carry a non-zero ``[Exit Code: N]`` sentinel.
        """
        args = dict(args or {})
        try:
            tool = self.get_tool(name)
        except ToolNotFoundError as e:
            self.logger.warning("tool_not_found", tool=name)
            return format_exit(str(e), EXIT_TOOL_NOT_FOUND)

        if name in self._sensitive:
            approved = await self.approval_gate.request(
                name,
                args,
                risk=tool.approval_risk_level,
                preview=tool.get_approval_preview(**args),
            )
            if not approved:
                self.logger.info("tool_rejected", tool=name)
                return format_exit(f"User rejected {name}", EXIT_REJECTED)

        self.logger.info("tool_invoked", tool=name, sensitive=name in self._sensitive)
        try:
            return await tool.execute(**args)
        except Exception as e:
            self.logger.error("tool_failed", tool=name, error=str(e), error_type=type(e).__name__)
            return format_exit(f"Tool {name} failed: {e}", EXIT_TOOL_FAILED)
