"""
Governor / Router

Pure decision function that picks the next move of the orchestration loop.
It reads the state and the number of steps already executed for the current
goal; it never mutates anything.

The ceiling is inclusive: with a ceiling of N at most N steps run for a goal,
counted across repairs, and the next one is refused with HALT
(``steps_taken >= ceiling``). A failed Nth step halts instead of repairing.
"""

from enum import Enum

from theia.core.domain.models import OrchestratorState, PlanStatus

DEFAULT_STEP_CEILING = 15


class Route(str, Enum):
    EXECUTE = "execute"  # run the active step
    REPAIR = "repair"  # plan failed, replan with the failure attached
    END = "end"  # nothing left to do
    HALT = "halt"  # step ceiling reached (fatal governor stop)


def route(
    state: OrchestratorState,
    steps_taken: int = 0,
    ceiling: int = DEFAULT_STEP_CEILING,
) -> Route:
    """
    Decide the next move.

    Args:
        state: Current orchestrator state
        steps_taken: Steps executed so far for the current goal (across repairs)
        ceiling: Maximum steps per goal

    Returns:
        END without a plan or once the plan is done, HALT when more work is
        due but the ceiling is reached, otherwise REPAIR for a failed plan and
        EXECUTE while an executing plan has steps left
    """
    plan = state.plan
    if plan is None:
        return Route.END

    if plan.status is PlanStatus.FAILED:
        next_route = Route.REPAIR
    elif plan.status is PlanStatus.EXECUTING and plan.has_remaining_steps:
        next_route = Route.EXECUTE
    else:
        return Route.END

    if steps_taken >= ceiling or plan.active_step_index >= ceiling:
        return Route.HALT
    return next_route
