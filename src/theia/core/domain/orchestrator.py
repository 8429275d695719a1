"""
Orchestrator - lifecycle owner and cycle loop of the orchestration core.

The orchestrator owns the bus subscriptions, the session store, the trace
recorder and a single worker task. User intents that start or change work
(MessageSubmitted, CodeSelectionChanged, UIInteraction, SessionReset) are put
on a FIFO queue; the worker handles them one at a time, so at most one
Plan/Executor cycle is ever active and a message sent mid-cycle waits its turn.

One cycle:
1. record the user turn and UI context
2. plan (a plain text answer is spoken and the cycle yields)
3. loop on the governor: EXECUTE runs the active step, REPAIR replans with the
   failure attached, HALT stops at the step ceiling, END finishes
4. always emit Yield

Every state change goes through ``_commit`` which swaps in a new immutable
state and saves it.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from theia.core.domain.approval import ApprovalGate
from theia.core.domain.event_bus import EventBus, Unsubscribe
from theia.core.domain.events import (
    ActivityPing,
    CodeSelectionChanged,
    Event,
    EventEnvelope,
    EventSource,
    MessageSubmitted,
    PlanCreated,
    RepairEntered,
    SessionReset,
    SessionRestored,
    Speak,
    Thinking,
    UIInteraction,
    Yield,
)
from theia.core.domain.exceptions import ReasoningServiceError
from theia.core.domain.executor import StepExecutor
from theia.core.domain.governor import DEFAULT_STEP_CEILING, Route, route
from theia.core.domain.models import OrchestratorState, PendingApproval, Plan, PlanStatus
from theia.core.domain.planner import Planner, RepairContext
from theia.core.domain.trace import TraceRecorder, TraceSink
from theia.core.interfaces.state import SessionStoreProtocol

DEFAULT_QUIET_WINDOW = 3.0

QUEUED_INTENTS: tuple[type[Event], ...] = (
    MessageSubmitted,
    CodeSelectionChanged,
    UIInteraction,
    SessionReset,
)


class Orchestrator:
    """
    Drives goals from user message to terminal plan.

    Args:
        bus: Event bus shared with the UI and the runtime
        planner: Produces plans (and repair plans)
        executor: Executes the active step of a plan
        approval_gate: Gate used by the tool gateway; its pending approval is
                       mirrored into the orchestrator state
        session_store: Where state is saved after every mutation
        trace_sink: Optional sink (FlightRecorder) for the trace recorder
        step_ceiling: Maximum executed steps per goal
        quiet_window: Seconds after user activity during which forced
                      navigation should be suppressed by the UI
    """

    def __init__(
        self,
        bus: EventBus,
        planner: Planner,
        executor: StepExecutor,
        approval_gate: ApprovalGate,
        session_store: SessionStoreProtocol,
        trace_sink: TraceSink | None = None,
        step_ceiling: int = DEFAULT_STEP_CEILING,
        quiet_window: float = DEFAULT_QUIET_WINDOW,
    ):
        self.bus = bus
        self.planner = planner
        self.executor = executor
        self.approval_gate = approval_gate
        self.session_store = session_store
        self.step_ceiling = step_ceiling
        self.quiet_window = quiet_window
        self.logger = structlog.get_logger().bind(component="orchestrator")

        self._state = OrchestratorState()
        self.trace = TraceRecorder(bus, lambda: self._state, trace_sink) if trace_sink else None
        self.approval_gate.on_pending_change = self._on_pending_change

        self._queue: asyncio.Queue[EventEnvelope] | None = None
        self._worker: asyncio.Task | None = None
        self._subscriptions: list[Unsubscribe] = []
        self._busy = False
        self._last_activity: float | None = None

        self._intent_handlers: dict[type[Event], Callable[[Any], Awaitable[None]]] = {
            MessageSubmitted: self._handle_message,
            CodeSelectionChanged: self._handle_selection,
            UIInteraction: self._handle_interaction,
            SessionReset: self._handle_reset,
        }

    # ==================== LIFECYCLE ====================

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def is_busy(self) -> bool:
        return self._busy

    async def start(self) -> None:
        """Restore the session, subscribe to user intents and start the worker."""
        if self._worker is not None:
            raise RuntimeError("Orchestrator already started")

        if self.trace is not None:
            self.trace.start()

        restored = await self.session_store.load()
        if restored is not None:
            interrupted = False
            if restored.pending_approval is not None:
                # The suspended call that owned it did not survive the restart
                self.logger.info("stale_approval_dropped", tool=restored.pending_approval.tool)
                restored = restored.evolve(pending_approval=None)
                interrupted = True
            if restored.plan is not None and not restored.plan.is_terminal:
                # Its cycle died with the previous process; nothing will resume it
                self.logger.info("interrupted_plan_abandoned", plan_id=restored.plan.id)
                restored = restored.evolve(plan=restored.plan.abandon())
                interrupted = True
            self._state = restored
            if interrupted:
                await self.session_store.save(restored)
            self.logger.info(
                "session_restored",
                messages=len(restored.messages),
                plan_id=restored.plan.id if restored.plan else None,
            )
            self._emit(SessionRestored(state=restored))

        self._queue = asyncio.Queue()
        self._subscriptions = [
            self.bus.subscribe(QUEUED_INTENTS, self._enqueue),
            self.bus.subscribe(ActivityPing, self._on_activity),
        ]
        self._worker = asyncio.create_task(self._run_worker(), name="theia-orchestrator")
        self.logger.info("orchestrator_started", step_ceiling=self.step_ceiling)

    async def stop(self) -> None:
        """Unsubscribe, cancel the worker and flush the trace."""
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if self.trace is not None:
            self.trace.stop()
            await self.trace.drain()
        self.logger.info("orchestrator_stopped")

    async def wait_idle(self) -> None:
        """Wait until every queued intent has been fully handled."""
        if self._queue is not None:
            await self._queue.join()

    def submit(self, text: str, ui_context: dict[str, Any] | None = None) -> EventEnvelope:
        """Convenience for emitting a MessageSubmitted from the UI side."""
        return self.bus.emit(
            MessageSubmitted(text=text, ui_context=dict(ui_context or {})),
            source=EventSource.UI,
        )

    def in_quiet_window(self, now: float | None = None) -> bool:
        """True while the user was active within the last ``quiet_window`` seconds."""
        if self._last_activity is None:
            return False
        now = time.time() if now is None else now
        return now - self._last_activity < self.quiet_window

    # ==================== EVENT INTAKE ====================

    def _enqueue(self, envelope: EventEnvelope) -> None:
        if self._queue is not None:
            self._queue.put_nowait(envelope)

    def _on_activity(self, envelope: EventEnvelope) -> None:
        self._last_activity = envelope.event.timestamp or envelope.timestamp

    async def _run_worker(self) -> None:
        assert self._queue is not None
        while True:
            envelope = await self._queue.get()
            self._busy = True
            try:
                handler = self._intent_handlers[type(envelope.event)]
                await handler(envelope.event)
            except Exception as e:
                self.logger.exception("intent_handling_failed", event_id=envelope.id, error=str(e))
                await self._close_plan()
                await self._say(f"System Error: {e}")
                self._emit(Yield(reason="error"))
            finally:
                self._busy = False
                self._queue.task_done()

    # ==================== STATE ====================

    async def _commit(self, **changes: Any) -> OrchestratorState:
        self._state = self._state.evolve(**changes)
        await self.session_store.save(self._state)
        return self._state

    async def _on_pending_change(self, pending: PendingApproval | None) -> None:
        await self._commit(pending_approval=pending)

    def _emit(self, event: Event) -> EventEnvelope:
        return self.bus.emit(event, source=EventSource.AGENT)

    async def _say(self, text: str) -> None:
        self._state = self._state.with_message("assistant", text)
        await self.session_store.save(self._state)
        self._emit(Speak(text=text))

    # ==================== INTENT HANDLERS ====================

    async def _handle_selection(self, event: CodeSelectionChanged) -> None:
        context = {
            **self._state.ui_context,
            "active_file": event.file,
            "active_line": event.line,
            "selection": event.content,
        }
        await self._commit(ui_context=context)

    async def _handle_interaction(self, event: UIInteraction) -> None:
        context = dict(self._state.ui_context)
        if event.action == "tab_change":
            context["active_tab"] = event.target
        context["last_interaction"] = {
            "action": event.action,
            "target": event.target,
            "metadata": dict(event.metadata),
        }
        await self._commit(ui_context=context)

    async def _handle_reset(self, event: SessionReset) -> None:
        await self.session_store.clear()
        self._state = OrchestratorState()
        self.logger.info("session_reset")

    async def _handle_message(self, event: MessageSubmitted) -> None:
        goal = event.text.strip()
        if not goal:
            return

        context = {**self._state.ui_context, **event.ui_context}
        await self._commit(
            messages=self._state.with_message("user", goal).messages,
            ui_context=context,
        )
        self._emit(Thinking(stage="started", message="Planning..."))

        try:
            reason = await self._run_goal(goal)
        except ReasoningServiceError as e:
            self.logger.error("cycle_aborted", error=str(e), error_type=type(e).__name__)
            await self._close_plan()
            await self._say(f"I couldn't complete that: {e}")
            reason = "error"

        self._emit(Thinking(stage="completed"))
        self._emit(Yield(reason=reason))

    # ==================== CYCLE ====================

    async def _run_goal(self, goal: str) -> str:
        # The goal itself is the last recorded message
        history = self._state.messages[:-1]
        outcome = await self.planner.plan(goal, history=history, ui_context=self._state.ui_context)
        if outcome.plan is None:
            await self._say(outcome.response or "")
            return "direct_response"
        await self._accept_plan(outcome.plan)

        steps_taken = 0
        while True:
            next_route = route(self._state, steps_taken, self.step_ceiling)
            self.logger.debug("route_decided", route=next_route.value, steps_taken=steps_taken)

            if next_route is Route.EXECUTE:
                await self._execute_active_step()
                steps_taken += 1

            elif next_route is Route.REPAIR:
                failed_plan = self._state.plan
                assert failed_plan is not None
                repair = RepairContext.from_plan(failed_plan, self._state.last_error)
                self._emit(RepairEntered(failed_step=repair.failed_step, error=repair.error))

                outcome = await self.planner.plan(
                    goal,
                    repair_context=repair,
                    history=history,
                    ui_context=self._state.ui_context,
                )
                if outcome.plan is None:
                    await self._say(outcome.response or "")
                    return "direct_response"
                await self._accept_plan(outcome.plan, from_repair=True)
                first = outcome.plan.steps[0].description
                await self._say(f"That didn't work, so I made a new plan. First: {first}")

            elif next_route is Route.HALT:
                self.logger.warning("governor_halt", steps_taken=steps_taken, ceiling=self.step_ceiling)
                await self._close_plan()
                await self._say(
                    f"I stopped after {steps_taken} steps: the limit of "
                    f"{self.step_ceiling} steps per request was reached."
                )
                return "governor_limit"

            else:
                return await self._finish()

    async def _accept_plan(self, plan: Plan, from_repair: bool = False) -> None:
        if from_repair:
            await self._commit(plan=plan, last_error=None)
        else:
            await self._commit(plan=plan)
        self.logger.info("plan_accepted", plan_id=plan.id, steps=len(plan.steps), repair=from_repair)
        self._emit(PlanCreated(plan=plan))

    async def _execute_active_step(self) -> None:
        plan = self._state.plan
        assert plan is not None and plan.active_step is not None
        plan = plan.activate_step()
        await self._commit(plan=plan)

        step = plan.active_step
        self._emit(
            Thinking(
                stage="processing",
                message=f"Step {plan.active_step_index + 1}/{len(plan.steps)}: {step.description}",
            )
        )

        outcome = await self.executor.execute_step(plan, self._state.ui_context)
        if outcome.succeeded:
            await self._commit(plan=outcome.plan)
        else:
            await self._commit(plan=outcome.plan, last_error=outcome.last_error)
            self._emit(Thinking(stage="tool_error", message=f"{outcome.tool or 'step'} failed"))

    async def _close_plan(self) -> None:
        plan = self._state.plan
        if plan is not None and not plan.is_terminal:
            await self._commit(plan=plan.abandon())

    async def _finish(self) -> str:
        plan = self._state.plan
        if plan is None or plan.status is not PlanStatus.COMPLETED:
            return "idle"

        last_result = plan.steps[-1].result or ""
        summary = f"Done: {plan.goal} ({len(plan.steps)} step{'s' if len(plan.steps) != 1 else ''})."
        if last_result:
            summary += f"\n{last_result[:500]}"
        await self._say(summary)
        return "completed"
