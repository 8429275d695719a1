"""Unit Tests for StepExecutor."""

from unittest.mock import AsyncMock

import pytest

from theia.core.domain.approval import ApprovalGate, ApprovalPolicy
from theia.core.domain.events import Navigate
from theia.core.domain.exceptions import ReasoningServiceError
from theia.core.domain.executor import StepExecutor
from theia.core.domain.gateway import ToolGateway
from theia.core.domain.models import Plan, PlanStatus, PlanStep, StepStatus
from theia.infrastructure.tools.ui_tools import ChangeTabTool, NavigateToCodeTool


@pytest.fixture
def gateway(bus):
    gate = ApprovalGate(bus, policy=ApprovalPolicy.AUTO_DENY)
    return ToolGateway(gate, [NavigateToCodeTool(bus), ChangeTabTool(bus)])


@pytest.fixture
def executor(mock_reasoning, gateway):
    return StepExecutor(mock_reasoning, gateway)


@pytest.fixture
def plan():
    return Plan(
        goal="Show client",
        steps=(
            PlanStep(description="Open client.py", tool="navigate_to_code"),
            PlanStep(description="Show diagrams", tool="change_tab"),
        ),
    )


class TestStepExecutor:
    @pytest.mark.asyncio
    async def test_successful_step_advances_plan(self, executor, mock_reasoning, responses, plan, bus):
        mock_reasoning.complete.return_value = responses.tool_call(
            "navigate_to_code", filepath="src/client.py", line=42
        )

        outcome = await executor.execute_step(plan)

        assert outcome.succeeded
        assert outcome.tool == "navigate_to_code"
        assert outcome.plan.active_step_index == 1
        assert outcome.plan.steps[0].result == "Navigated to src/client.py:42"
        assert bus.get_by_type(Navigate)[0].event.line == 42
        # input plan untouched
        assert plan.active_step_index == 0

    @pytest.mark.asyncio
    async def test_tool_choice_is_required(self, executor, mock_reasoning, responses, plan):
        mock_reasoning.complete.return_value = responses.tool_call("navigate_to_code", filepath="a")

        await executor.execute_step(plan, {"active_file": "b.py"})

        kwargs = mock_reasoning.complete.call_args.kwargs
        assert kwargs["tool_choice"] == "required"
        names = {t["function"]["name"] for t in kwargs["tools"]}
        assert names == {"navigate_to_code", "change_tab"}
        assert "b.py" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_tool_exception_fails_step(self, executor, mock_reasoning, responses, plan):
        """Test that a raising tool becomes a failed step with exit code 1."""
        mock_reasoning.complete.return_value = responses.tool_call("change_tab", tab_name="nope")

        outcome = await executor.execute_step(plan)

        assert not outcome.succeeded
        assert outcome.last_error.endswith("[Exit Code: 1]")
        assert outcome.plan.status is PlanStatus.FAILED
        assert outcome.plan.steps[0].status is StepStatus.FAILED
        assert outcome.plan.active_step_index == 0

    @pytest.mark.asyncio
    async def test_unknown_tool_fails_step(self, executor, mock_reasoning, responses, plan):
        mock_reasoning.complete.return_value = responses.tool_call("delete_everything")

        outcome = await executor.execute_step(plan)

        assert "[Exit Code: 127]" in outcome.last_error

    @pytest.mark.asyncio
    async def test_no_tool_selected_fails_step(self, executor, mock_reasoning, responses, plan):
        mock_reasoning.complete.return_value = responses.text("I think we're done")

        outcome = await executor.execute_step(plan)

        assert not outcome.succeeded
        assert outcome.tool is None
        assert outcome.last_error.startswith("No tool selected for step.")
        assert outcome.last_error.endswith("[Exit Code: 1]")

    @pytest.mark.asyncio
    async def test_nonzero_exit_code_in_result_fails_step(self, mock_reasoning, responses, plan):
        gateway = AsyncMock()
        gateway.tools = {}
        gateway.invoke.return_value = "ModuleNotFoundError\n[Exit Code: 2]"
        executor = StepExecutor(mock_reasoning, gateway)
        mock_reasoning.complete.return_value = responses.tool_call("run_command", command="pytest")

        outcome = await executor.execute_step(plan)

        assert not outcome.succeeded
        gateway.invoke.assert_awaited_once_with("run_command", {"command": "pytest"})

    @pytest.mark.asyncio
    async def test_zero_exit_code_succeeds(self, mock_reasoning, responses, plan):
        gateway = AsyncMock()
        gateway.tools = {}
        gateway.invoke.return_value = "3 passed\n[Exit Code: 0]"
        executor = StepExecutor(mock_reasoning, gateway)
        mock_reasoning.complete.return_value = responses.tool_call("run_command", command="pytest")

        outcome = await executor.execute_step(plan)

        assert outcome.succeeded

    @pytest.mark.asyncio
    async def test_reasoning_failure_raises(self, executor, mock_reasoning, responses, plan):
        mock_reasoning.complete.return_value = responses.failure()

        with pytest.raises(ReasoningServiceError):
            await executor.execute_step(plan)

    @pytest.mark.asyncio
    async def test_plan_without_active_step_is_rejected(self, executor):
        done = Plan(goal="g", steps=(PlanStep(description="x"),)).record_step_result(True, "ok")

        with pytest.raises(ValueError):
            await executor.execute_step(done)
