"""
Base Tool

Common base for every gateway tool. Subclasses provide ``name``,
``description`` and an async ``execute`` returning result text; the JSON
parameter schema is generated from the ``execute`` signature unless a tool
overrides ``parameters_schema``.
"""

import inspect
import json
from abc import ABC, abstractmethod
from typing import Any

from theia.core.interfaces.tools import ApprovalRiskLevel

_JSON_TYPES: dict[Any, str] = {
    int: "integer",
    bool: "boolean",
    float: "number",
    dict: "object",
    list: "array",
}


class Tool(ABC):
    """Base class for all tools"""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @property
    def requires_approval(self) -> bool:
        return False

    @property
    def approval_risk_level(self) -> ApprovalRiskLevel:
        return ApprovalRiskLevel.LOW

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """Override to provide a custom parameter schema for function calling"""
        return self._generate_schema_from_signature()

    def _generate_schema_from_signature(self) -> dict[str, Any]:
        """Auto-generate parameter schema from the execute method signature"""
        sig = inspect.signature(self.execute)
        properties = {}
        required = []

        for param_name, param in sig.parameters.items():
            if param.kind in (param.VAR_KEYWORD, param.VAR_POSITIONAL):
                continue

            param_type = _JSON_TYPES.get(param.annotation, "string")
            properties[param_name] = {
                "type": param_type,
                "description": f"Parameter {param_name}",
            }
            if param.default is inspect.Parameter.empty:
                required.append(param_name)

        return {"type": "object", "properties": properties, "required": required}

    def get_approval_preview(self, **kwargs: Any) -> str:
        """Human readable summary of a pending call, shown with approval requests."""
        args = json.dumps(kwargs, ensure_ascii=False, default=str)
        if len(args) > 500:
            args = args[:500] + "..."
        return f"Tool: {self.name}\nOperation: {self.description}\nParameters: {args}"

    @abstractmethod
    async def execute(self, **kwargs: Any) -> str:
        pass
