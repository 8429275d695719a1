"""
Planner - turns a goal into a Plan through the reasoning service.

The reasoning service is restricted to structured step emission: it must call
the ``submit_plan`` function. A plain text answer is a legitimate outcome (the
goal needed no tools) and is returned as ``PlanningOutcome.response``.

In repair mode the directive also carries the failed step and its raw error
text, and requires the first step of the new plan to be diagnostic or
corrective. The error text is passed through whole.

The request carries the recent conversation ahead of the goal, and the goal
itself is suffixed with what the user is currently looking at.
"""

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from theia.core.domain.exceptions import MalformedPlanError, ReasoningServiceError
from theia.core.domain.models import ChatMessage, Plan, PlanStatus, PlanStep
from theia.core.interfaces.llm import ReasoningServiceProtocol
from theia.core.prompts.orchestrator_prompts import (
    SUBMIT_PLAN_SCHEMA,
    SUBMIT_PLAN_TOOL,
    build_planner_directive,
)
from theia.infrastructure.tools.tool_converter import parse_tool_call, truncate_result

MAX_HISTORY_MESSAGES = 10
MAX_HISTORY_MESSAGE_CHARS = 2000


def format_ui_context(ui_context: Mapping[str, Any] | None) -> str:
    """Render the user's current view as a suffix for the goal message."""
    context = ui_context or {}
    active_file = context.get("active_file")
    if active_file and context.get("active_line"):
        active_file = f"{active_file}:{context['active_line']}"
    return (
        "\n\n[Current View]\n"
        f"User View: {active_file or 'None'}\n"
        f"Tab: {context.get('active_tab') or 'files'}\n"
        f"Selection: {context.get('selection') or 'None'}"
    )


@dataclass(frozen=True)
class RepairContext:
    """What went wrong in the previous plan."""

    failed_step: str
    error: str

    @classmethod
    def from_plan(cls, plan: Plan, last_error: str | None) -> "RepairContext":
        step = plan.active_step
        description = step.description if step else plan.goal
        error = last_error or (step.result if step else None) or "unknown error"
        return cls(failed_step=description, error=error)


@dataclass(frozen=True)
class PlanningOutcome:
    """Either a Plan to execute or a direct text response (never both)."""

    plan: Plan | None = None
    response: str | None = None


class Planner:
    """
    Generates Plans for goals.

    Args:
        reasoning: Reasoning service used to generate plans
        tool_names: Tools the plan may reference
        model_alias: Model alias for reasoning calls
    """

    def __init__(
        self,
        reasoning: ReasoningServiceProtocol,
        tool_names: list[str],
        model_alias: str = "main",
    ):
        self.reasoning = reasoning
        self.tool_names = list(tool_names)
        self.model_alias = model_alias
        self.logger = structlog.get_logger().bind(component="planner")

    async def plan(
        self,
        goal: str,
        repair_context: RepairContext | None = None,
        history: Sequence[ChatMessage] = (),
        ui_context: Mapping[str, Any] | None = None,
    ) -> PlanningOutcome:
        """
        Produce a plan (or a direct answer) for ``goal``.

        Args:
            goal: The user request
            repair_context: Failure of the previous plan, switches to repair mode
            history: Earlier conversation turns, oldest first (the last
                     ``MAX_HISTORY_MESSAGES`` are sent)
            ui_context: What the user is looking at (active file, tab, selection)

        Raises:
            ReasoningServiceError: The reasoning service call failed
            MalformedPlanError: The response was neither a plan nor usable text
        """
        if repair_context is not None:
            directive = build_planner_directive(
                self.tool_names,
                failed_step=repair_context.failed_step,
                error=repair_context.error,
            )
        else:
            directive = build_planner_directive(self.tool_names)

        messages = [{"role": "system", "content": directive}]
        for message in list(history)[-MAX_HISTORY_MESSAGES:]:
            messages.append(
                {
                    "role": message.role,
                    "content": truncate_result(message.content, MAX_HISTORY_MESSAGE_CHARS),
                }
            )
        messages.append({"role": "user", "content": goal + format_ui_context(ui_context)})

        self.logger.info("planning_started", goal=goal[:100], repair=repair_context is not None)
        result = await self.reasoning.complete(
            messages=messages,
            model=self.model_alias,
            tools=[SUBMIT_PLAN_SCHEMA],
            tool_choice="auto",
            temperature=0,
        )

        if not result.get("success"):
            error = result.get("error") or "unknown error"
            self.logger.error("planning_failed", error=error)
            raise ReasoningServiceError(error, error_type=result.get("error_type"))

        for tool_call in result.get("tool_calls") or []:
            name, args = parse_tool_call(tool_call)
            if name == SUBMIT_PLAN_TOOL:
                return PlanningOutcome(plan=self._build_plan(goal, args))

        content = (result.get("content") or "").strip()
        if not content:
            raise MalformedPlanError("Reasoning service returned neither a plan nor text")

        structured = self._parse_json_plan(content)
        if structured is not None:
            return PlanningOutcome(plan=self._build_plan(goal, structured))

        self.logger.info("planning_direct_response", length=len(content))
        return PlanningOutcome(response=content)

    def _build_plan(self, goal: str, payload: dict[str, Any]) -> Plan:
        raw_steps = payload.get("steps")
        if not isinstance(raw_steps, list):
            raise MalformedPlanError("submit_plan arguments must contain a 'steps' list")

        steps = []
        for raw in raw_steps:
            if isinstance(raw, str):
                raw = {"description": raw}
            if not isinstance(raw, dict):
                continue
            description = str(raw.get("description") or "").strip()
            if not description:
                continue
            tool = raw.get("tool") or None
            if tool is not None and tool not in self.tool_names:
                self.logger.warning("plan_step_unknown_tool", tool=tool)
            steps.append(PlanStep(description=description, tool=tool))

        if not steps:
            raise MalformedPlanError("Plan contains no usable steps")

        plan = Plan(goal=goal, steps=tuple(steps), status=PlanStatus.EXECUTING)
        self.logger.info("plan_generated", plan_id=plan.id, steps=len(steps))
        return plan

    @staticmethod
    def _parse_json_plan(content: str) -> dict[str, Any] | None:
        """Accept a bare JSON ``{"steps": [...]}`` object for models without function calling."""
        text = content.strip()
        if text.startswith("```"):
            text = text.strip("`")
            if text.startswith("json"):
                text = text[4:]
        text = text.strip()
        if not text.startswith("{"):
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return None
        if isinstance(data, dict) and isinstance(data.get("steps"), list):
            return data
        return None
