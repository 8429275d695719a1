"""
Tool Protocol

Every capability the orchestrator can invoke (UI navigation, view toggles,
sandbox commands, file access) implements this protocol. Tools return plain
result text; failures are reported inside the text with the
``[Exit Code: N]`` sentinel rather than by raising.
"""

from enum import Enum
from typing import Any, Protocol


class ApprovalRiskLevel(str, Enum):
    """Risk classification shown when a tool call needs approval."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ToolProtocol(Protocol):
    @property
    def name(self) -> str:
        ...

    @property
    def description(self) -> str:
        ...

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """JSON Schema of the keyword arguments accepted by ``execute``."""
        ...

    @property
    def requires_approval(self) -> bool:
        """True for sensitive tools (file mutation, command execution)."""
        ...

    @property
    def approval_risk_level(self) -> ApprovalRiskLevel:
        ...

    def get_approval_preview(self, **kwargs: Any) -> str:
        ...

    async def execute(self, **kwargs: Any) -> str:
        ...
