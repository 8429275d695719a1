"""
Executor - runs the active step of a Plan.

Per step the executor asks the reasoning service which tool to invoke (under a
directive that forces exactly one tool call), invokes it through the gateway,
reads the ``[Exit Code: N]`` sentinel from the result and writes the outcome
into a new Plan value. The input Plan is never modified.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from theia.core.domain.exceptions import ReasoningServiceError
from theia.core.domain.gateway import EXIT_TOOL_FAILED, ToolGateway, format_exit, parse_exit_code
from theia.core.domain.models import Plan
from theia.core.interfaces.llm import ReasoningServiceProtocol
from theia.core.prompts.orchestrator_prompts import build_executor_directive
from theia.infrastructure.tools.tool_converter import parse_tool_call, tools_to_openai_format


@dataclass(frozen=True)
class StepOutcome:
    """
    Result of executing one step.

    Attributes:
        plan: New Plan with the step's status and result written
        last_error: Raw result text when the step failed, else None
        tool: Tool that was invoked (None if no tool was selected)
    """

    plan: Plan
    last_error: str | None = None
    tool: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.last_error is None


class StepExecutor:
    def __init__(
        self,
        reasoning: ReasoningServiceProtocol,
        gateway: ToolGateway,
        model_alias: str = "main",
    ):
        self.reasoning = reasoning
        self.gateway = gateway
        self.model_alias = model_alias
        self.logger = structlog.get_logger().bind(component="executor")

    async def execute_step(
        self, plan: Plan, ui_context: dict[str, Any] | None = None
    ) -> StepOutcome:
        """
        Execute ``plan.steps[plan.active_step_index]``.

        Raises:
            ValueError: The plan has no active step
            ReasoningServiceError: The reasoning service call failed
        """
        step = plan.active_step
        if step is None:
            raise ValueError(f"Plan {plan.id} has no step to execute")

        directive = build_executor_directive(
            goal=plan.goal,
            step=step.description,
            position=plan.active_step_index + 1,
            total=len(plan.steps),
            tool_hint=step.tool,
            ui_context=ui_context,
        )
        messages = [
            {"role": "system", "content": directive},
            {"role": "user", "content": step.description},
        ]

        result = await self.reasoning.complete(
            messages=messages,
            model=self.model_alias,
            tools=tools_to_openai_format(self.gateway.tools),
            tool_choice="required",
            temperature=0,
        )
        if not result.get("success"):
            error = result.get("error") or "unknown error"
            self.logger.error("step_reasoning_failed", step_id=step.id, error=error)
            raise ReasoningServiceError(error, error_type=result.get("error_type"))

        tool_calls = result.get("tool_calls") or []
        if not tool_calls:
            content = (result.get("content") or "").strip()
            result_text = format_exit(f"No tool selected for step. {content}".strip(), EXIT_TOOL_FAILED)
            self.logger.warning("step_no_tool_selected", step_id=step.id)
            return StepOutcome(plan=plan.record_step_result(False, result_text), last_error=result_text)

        if len(tool_calls) > 1:
            self.logger.warning("step_multiple_tool_calls", step_id=step.id, count=len(tool_calls))

        tool_name, args = parse_tool_call(tool_calls[0])
        self.logger.info("step_tool_selected", step_id=step.id, tool=tool_name)
        result_text = await self.gateway.invoke(tool_name, args)

        exit_code = parse_exit_code(result_text)
        succeeded = exit_code is None or exit_code == 0
        new_plan = plan.record_step_result(succeeded, result_text)

        if succeeded:
            self.logger.info("step_completed", step_id=step.id, tool=tool_name)
            return StepOutcome(plan=new_plan, tool=tool_name)

        self.logger.info("step_failed", step_id=step.id, tool=tool_name, exit_code=exit_code)
        return StepOutcome(plan=new_plan, last_error=result_text, tool=tool_name)
