"""
Tool Converter - OpenAI function calling format conversion.

Utilities for converting gateway tools to the format required by native
function calling, and for reading tool calls back out of a completion.
"""

import json
from collections.abc import Iterable
from typing import Any

import structlog

from theia.core.interfaces.tools import ToolProtocol

logger = structlog.get_logger().bind(component="tool_converter")


def tools_to_openai_format(
    tools: dict[str, ToolProtocol] | Iterable[ToolProtocol],
) -> list[dict[str, Any]]:
    """
    Convert tool definitions to OpenAI function calling format.

    Args:
        tools: Mapping of tool names to tools, or an iterable of tools

    Returns:
        List of tool definitions:
        [
            {
                "type": "function",
                "function": {
                    "name": "tool_name",
                    "description": "Tool description",
                    "parameters": { JSON Schema }
                }
            },
            ...
        ]
    """
    values = tools.values() if isinstance(tools, dict) else tools
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema,
            },
        }
        for tool in values
    ]


def parse_tool_call(tool_call: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """
    Extract name and arguments from an OpenAI-format tool call.

    Arguments arrive as a JSON string; invalid JSON yields empty arguments
    (the tool then fails on its own missing parameters).

    Returns:
        (tool_name, arguments)
    """
    function = tool_call.get("function") or {}
    name = function.get("name") or ""
    raw_args = function.get("arguments")

    if isinstance(raw_args, dict):
        return name, raw_args
    if not raw_args:
        return name, {}

    try:
        args = json.loads(raw_args)
    except json.JSONDecodeError as e:
        logger.warning("tool_call_arguments_invalid", tool=name, error=str(e))
        return name, {}
    return name, args if isinstance(args, dict) else {}


def truncate_result(text: str, max_chars: int = 20000) -> str:
    """Cap large tool output so it can be fed back to the reasoning service."""
    if len(text) <= max_chars:
        return text
    overflow = len(text) - max_chars
    return text[:max_chars] + f"\n\n[... TRUNCATED - {overflow} more chars ...]"
