"""
Reasoning Service Protocol

The orchestration core treats the language model as an opaque
request/response service. Implementations return the result-dict contract
used throughout the project instead of raising:

    {"success": True, "content": str | None, "tool_calls": list | None, "usage": dict}
    {"success": False, "error": str, "error_type": str}

Structured output arrives as OpenAI-format tool calls:

    {"id": "call_1", "type": "function",
     "function": {"name": "submit_plan", "arguments": "{...json...}"}}
"""

from typing import Any, Protocol


class ReasoningServiceProtocol(Protocol):
    """Protocol for reasoning-service (LLM) completions with native tool calling."""

    async def complete(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Perform a completion.

        Args:
            messages: Chat messages (system directive + conversation turn)
            model: Model alias or None for the default model
            tools: Function tool definitions in OpenAI format
            tool_choice: "auto", "required", "none" or a specific function
            **kwargs: Extra model parameters (temperature, max_tokens, ...)

        Returns:
            Result dict, see module docstring
        """
        ...
