"""Theia exception hierarchy."""


class TheiaError(Exception):
    """Base class for all orchestration errors."""

    pass


class ReasoningServiceError(TheiaError):
    """The reasoning service call failed (transport, provider or quota error)."""

    def __init__(self, message: str, error_type: str | None = None):
        self.error_type = error_type
        super().__init__(message)


class MalformedPlanError(ReasoningServiceError):
    """The reasoning service answered with neither a usable plan nor usable text."""

    pass


class ToolNotFoundError(TheiaError):
    """A tool call named a tool that is not registered with the gateway."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' is not registered")
