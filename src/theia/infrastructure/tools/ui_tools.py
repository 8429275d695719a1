"""
UI Tools

Non-sensitive tools that drive the review UI. Each emits its Agent Action on
the bus and returns a short confirmation. They fail only on invalid arguments.
"""

from typing import Any

from theia.core.domain.event_bus import EventBus
from theia.core.domain.events import EventSource, Navigate, SwitchTab, ToggleMode
from theia.infrastructure.tools.base import Tool

SIDEBAR_TABS = ("files", "annotations", "issue", "diagrams")

TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
FALSE_STRINGS = frozenset({"false", "0", "no", "off"})


def parse_flag(value: Any) -> bool:
    """Read a boolean argument; models sometimes send it as a string."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    raise ValueError(f"Expected a boolean, got {value!r}")


class NavigateToCodeTool(Tool):
    """Moves the code viewer to a file and line."""

    def __init__(self, bus: EventBus):
        self.bus = bus

    @property
    def name(self) -> str:
        return "navigate_to_code"

    @property
    def description(self) -> str:
        return "Navigate to a specific file and line number in the code viewer."

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "filepath": {"type": "string", "description": "The file path to navigate to"},
                "line": {"type": "integer", "description": "The line number to jump to"},
            },
            "required": ["filepath"],
        }

    async def execute(self, filepath: str, line: int = 1, **kwargs) -> str:
        line = int(line or 1)
        self.bus.emit(
            Navigate(file=filepath, line=line, reason="Tool execution"),
            source=EventSource.AGENT,
        )
        return f"Navigated to {filepath}:{line}"


class ChangeTabTool(Tool):
    """Switches the sidebar tab."""

    def __init__(self, bus: EventBus):
        self.bus = bus

    @property
    def name(self) -> str:
        return "change_tab"

    @property
    def description(self) -> str:
        return "Switch the application sidebar tab."

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "tab_name": {"type": "string", "enum": list(SIDEBAR_TABS)},
            },
            "required": ["tab_name"],
        }

    async def execute(self, tab_name: str, **kwargs) -> str:
        if tab_name not in SIDEBAR_TABS:
            raise ValueError(f"Unknown tab '{tab_name}', expected one of {', '.join(SIDEBAR_TABS)}")
        self.bus.emit(SwitchTab(tab=tab_name), source=EventSource.AGENT)
        return f"Switched to {tab_name} tab"


class ToggleDiffModeTool(Tool):
    def __init__(self, bus: EventBus):
        self.bus = bus

    @property
    def name(self) -> str:
        return "toggle_diff_mode"

    @property
    def description(self) -> str:
        return "Enable or disable diff mode to show/hide code changes."

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "enable": {"type": "boolean", "description": "True to show diff, false to hide"},
            },
            "required": ["enable"],
        }

    async def execute(self, enable: bool, **kwargs) -> str:
        enabled = parse_flag(enable)
        self.bus.emit(ToggleMode(enabled=enabled), source=EventSource.AGENT)
        return f"Diff mode {'enabled' if enabled else 'disabled'}"
