"""Unit Tests for the governor route function."""

import pytest

from theia.core.domain.governor import DEFAULT_STEP_CEILING, Route, route
from theia.core.domain.models import OrchestratorState, Plan, PlanStatus, PlanStep


def _plan(status=PlanStatus.EXECUTING, steps=2, index=0):
    return Plan(
        goal="g",
        steps=tuple(PlanStep(description=f"s{i}") for i in range(steps)),
        active_step_index=index,
        status=status,
    )


class TestRoute:
    def test_no_plan_ends(self):
        assert route(OrchestratorState()) is Route.END

    def test_executing_plan_with_steps_executes(self):
        assert route(OrchestratorState(plan=_plan())) is Route.EXECUTE

    def test_failed_plan_repairs(self):
        assert route(OrchestratorState(plan=_plan(PlanStatus.FAILED))) is Route.REPAIR

    def test_completed_plan_ends(self):
        plan = _plan(PlanStatus.COMPLETED, steps=2, index=2)
        assert route(OrchestratorState(plan=plan)) is Route.END

    def test_executing_plan_without_remaining_steps_ends(self):
        plan = _plan(PlanStatus.EXECUTING, steps=1, index=1)
        assert route(OrchestratorState(plan=plan)) is Route.END

    @pytest.mark.parametrize("status", [PlanStatus.EXECUTING, PlanStatus.FAILED])
    def test_ceiling_halts_pending_work(self, status):
        state = OrchestratorState(plan=_plan(status))
        assert route(state, steps_taken=DEFAULT_STEP_CEILING) is Route.HALT
        assert route(state, steps_taken=DEFAULT_STEP_CEILING - 1) is not Route.HALT

    def test_ceiling_applies_to_active_index(self):
        plan = _plan(steps=5, index=3)
        assert route(OrchestratorState(plan=plan), ceiling=3) is Route.HALT

    def test_route_is_pure(self):
        state = OrchestratorState(plan=_plan(PlanStatus.FAILED))
        assert route(state, 3) is route(state, 3)
        assert state.plan.status is PlanStatus.FAILED
