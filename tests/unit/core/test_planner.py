"""
Unit Tests for Planner

The reasoning service is mocked; tests verify how responses are turned into
Plans, direct answers or errors.
"""

import json

import pytest

from theia.core.domain.exceptions import MalformedPlanError, ReasoningServiceError
from theia.core.domain.models import ChatMessage, PlanStatus, StepStatus
from theia.core.domain.planner import MAX_HISTORY_MESSAGES, Planner, RepairContext
from theia.core.prompts.orchestrator_prompts import SUBMIT_PLAN_TOOL

TOOL_NAMES = ["navigate_to_code", "change_tab", "search_text"]


@pytest.fixture
def planner(mock_reasoning):
    return Planner(mock_reasoning, TOOL_NAMES)


class TestPlanner:
    @pytest.mark.asyncio
    async def test_submit_plan_call_becomes_plan(self, planner, mock_reasoning, responses):
        """Test that a submit_plan function call produces an executing plan."""
        mock_reasoning.complete.return_value = responses.plan(
            ("Search for the retry loop", "search_text"),
            ("Open the match", "navigate_to_code"),
        )

        outcome = await planner.plan("Show me the retry logic")

        assert outcome.response is None
        plan = outcome.plan
        assert plan.goal == "Show me the retry logic"
        assert plan.status is PlanStatus.EXECUTING
        assert plan.active_step_index == 0
        assert [s.tool for s in plan.steps] == ["search_text", "navigate_to_code"]
        assert all(s.status is StepStatus.PENDING for s in plan.steps)

    @pytest.mark.asyncio
    async def test_call_is_restricted_to_submit_plan(self, planner, mock_reasoning, responses):
        mock_reasoning.complete.return_value = responses.plan(("x", None))

        await planner.plan("goal")

        kwargs = mock_reasoning.complete.call_args.kwargs
        assert [t["function"]["name"] for t in kwargs["tools"]] == [SUBMIT_PLAN_TOOL]
        assert kwargs["messages"][-1]["role"] == "user"
        assert kwargs["messages"][-1]["content"].startswith("goal")
        assert "navigate_to_code" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_plain_text_is_direct_response(self, planner, mock_reasoning, responses):
        mock_reasoning.complete.return_value = responses.text("Hello! How can I help?")

        outcome = await planner.plan("hi")

        assert outcome.plan is None
        assert outcome.response == "Hello! How can I help?"

    @pytest.mark.asyncio
    async def test_json_content_is_accepted_as_plan(self, planner, mock_reasoning, responses):
        payload = {"steps": [{"description": "Open README", "tool": "navigate_to_code"}]}
        mock_reasoning.complete.return_value = responses.text(
            "```json\n" + json.dumps(payload) + "\n```"
        )

        outcome = await planner.plan("open readme")

        assert outcome.plan is not None
        assert outcome.plan.steps[0].description == "Open README"

    @pytest.mark.asyncio
    async def test_string_steps_are_accepted(self, planner, mock_reasoning, responses):
        mock_reasoning.complete.return_value = responses.tool_call(
            SUBMIT_PLAN_TOOL, steps=["first", "second"]
        )

        outcome = await planner.plan("goal")

        assert [s.description for s in outcome.plan.steps] == ["first", "second"]
        assert outcome.plan.steps[0].tool is None

    @pytest.mark.asyncio
    async def test_empty_plan_is_malformed(self, planner, mock_reasoning, responses):
        mock_reasoning.complete.return_value = responses.tool_call(SUBMIT_PLAN_TOOL, steps=[])

        with pytest.raises(MalformedPlanError):
            await planner.plan("goal")

    @pytest.mark.asyncio
    async def test_empty_response_is_malformed(self, planner, mock_reasoning, responses):
        mock_reasoning.complete.return_value = responses.text("")

        with pytest.raises(MalformedPlanError):
            await planner.plan("goal")

    @pytest.mark.asyncio
    async def test_service_failure_raises(self, planner, mock_reasoning, responses):
        mock_reasoning.complete.return_value = responses.failure("quota exceeded", "RateLimitError")

        with pytest.raises(ReasoningServiceError) as exc_info:
            await planner.plan("goal")

        assert exc_info.value.error_type == "RateLimitError"
        assert "quota exceeded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_repair_directive_carries_failure(self, planner, mock_reasoning, responses):
        """Test that repair mode passes the failed step and raw error to the model."""
        mock_reasoning.complete.return_value = responses.plan(("Inspect the error", "search_text"))
        repair = RepairContext(failed_step="Run tests", error="ImportError: foo\n[Exit Code: 2]")

        await planner.plan("fix tests", repair_context=repair)

        directive = mock_reasoning.complete.call_args.kwargs["messages"][0]["content"]
        assert "Run tests" in directive
        assert "ImportError: foo" in directive

    @pytest.mark.asyncio
    async def test_repair_directive_keeps_tail_of_long_error(self, planner, mock_reasoning, responses):
        mock_reasoning.complete.return_value = responses.plan(("Fix the assertion", None))
        error = "collecting ...\n" + "x" * 5000 + "\nAssertionError: real cause\n[Exit Code: 2]"

        await planner.plan("fix tests", repair_context=RepairContext(failed_step="Run tests", error=error))

        directive = mock_reasoning.complete.call_args.kwargs["messages"][0]["content"]
        assert error in directive
        assert "AssertionError: real cause" in directive
        assert "[Exit Code: 2]" in directive

    @pytest.mark.asyncio
    async def test_history_precedes_goal(self, planner, mock_reasoning, responses):
        """Test that earlier turns are sent so follow-ups can be resolved."""
        mock_reasoning.complete.return_value = responses.plan(("Open it", "navigate_to_code"))
        history = [
            ChatMessage("user", "Where is the retry logic?"),
            ChatMessage("assistant", "It is in client.py, line 42."),
        ]

        await planner.plan("open it", history=history)

        messages = mock_reasoning.complete.call_args.kwargs["messages"]
        assert messages[0]["role"] == "system"
        assert messages[1:3] == [
            {"role": "user", "content": "Where is the retry logic?"},
            {"role": "assistant", "content": "It is in client.py, line 42."},
        ]
        assert messages[3]["content"].startswith("open it")

    @pytest.mark.asyncio
    async def test_history_is_limited_to_recent_turns(self, planner, mock_reasoning, responses):
        mock_reasoning.complete.return_value = responses.text("ok")
        history = [ChatMessage("user", f"turn {i}") for i in range(MAX_HISTORY_MESSAGES + 5)]

        await planner.plan("next", history=history)

        messages = mock_reasoning.complete.call_args.kwargs["messages"]
        assert len(messages) == MAX_HISTORY_MESSAGES + 2
        assert messages[1]["content"] == "turn 5"

    @pytest.mark.asyncio
    async def test_goal_carries_current_view(self, planner, mock_reasoning, responses):
        mock_reasoning.complete.return_value = responses.text("ok")
        ui_context = {
            "active_file": "src/client.py",
            "active_line": 42,
            "active_tab": "annotations",
            "selection": "def retry():",
        }

        await planner.plan("explain this", ui_context=ui_context)

        goal = mock_reasoning.complete.call_args.kwargs["messages"][-1]["content"]
        assert goal.startswith("explain this")
        assert "User View: src/client.py:42" in goal
        assert "Tab: annotations" in goal
        assert "Selection: def retry():" in goal

    @pytest.mark.asyncio
    async def test_goal_without_context_uses_defaults(self, planner, mock_reasoning, responses):
        mock_reasoning.complete.return_value = responses.text("ok")

        await planner.plan("hi")

        goal = mock_reasoning.complete.call_args.kwargs["messages"][-1]["content"]
        assert "User View: None" in goal
        assert "Tab: files" in goal
        assert "Selection: None" in goal


class TestRepairContext:
    def test_from_plan_uses_active_step_and_last_error(self, responses):
        from theia.core.domain.models import Plan, PlanStep

        plan = Plan(
            goal="g", steps=(PlanStep(description="Run tests"),)
        ).record_step_result(False, "boom\n[Exit Code: 1]")

        repair = RepairContext.from_plan(plan, "boom\n[Exit Code: 1]")

        assert repair.failed_step == "Run tests"
        assert repair.error == "boom\n[Exit Code: 1]"

    def test_from_plan_falls_back_to_step_result(self):
        from theia.core.domain.models import Plan, PlanStep

        plan = Plan(goal="g", steps=(PlanStep(description="x"),)).record_step_result(False, "err")

        assert RepairContext.from_plan(plan, None).error == "err"
