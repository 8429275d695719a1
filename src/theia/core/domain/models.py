"""
Core Domain Models

Immutable value types shared by the orchestration components:
- PlanStep / Plan: the ordered, supervised work for one goal
- ChatMessage: one conversation turn
- PendingApproval: the sensitive tool call awaiting a human decision
- OrchestratorState: the unit of persistence and trace snapshotting

Every transition returns a new value (copy-on-write); nothing is mutated in
place, so a snapshot taken at any point stays valid forever.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class PlanStatus(str, Enum):
    """Lifecycle status of a Plan."""

    PLANNING = "planning"
    EXECUTING = "executing"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    """Lifecycle status of a PlanStep."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class PlanStep:
    """
    One unit of work inside a Plan.

    Attributes:
        description: What the step should accomplish
        tool: Suggested tool name (a hint for the executor, may be None)
        status: Current step status
        result: Raw tool result text, set once after execution
        id: Unique step identifier
    """

    description: str
    tool: str | None = None
    status: StepStatus = StepStatus.PENDING
    result: str | None = None
    id: str = field(default_factory=lambda: _new_id("step"))

    def activate(self) -> PlanStep:
        return replace(self, status=StepStatus.ACTIVE)

    def finish(self, status: StepStatus, result: str) -> PlanStep:
        """Record the execution result. A step's result is written exactly once."""
        if self.result is not None:
            raise ValueError(f"Step {self.id} already has a result")
        return replace(self, status=status, result=result)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "tool": self.tool,
            "status": self.status.value,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanStep:
        return cls(
            id=data["id"],
            description=data["description"],
            tool=data.get("tool"),
            status=StepStatus(data.get("status", StepStatus.PENDING.value)),
            result=data.get("result"),
        )


@dataclass(frozen=True)
class Plan:
    """
    Ordered list of steps generated for one goal.

    Invariants:
    - 0 <= active_step_index <= len(steps)
    - once FAILED, active_step_index points at the failed step and is never
      advanced; retries always go through a new Plan
    """

    goal: str
    steps: tuple[PlanStep, ...]
    active_step_index: int = 0
    status: PlanStatus = PlanStatus.EXECUTING
    id: str = field(default_factory=lambda: _new_id("plan"))
    generated_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not isinstance(self.steps, tuple):
            object.__setattr__(self, "steps", tuple(self.steps))
        if not 0 <= self.active_step_index <= len(self.steps):
            raise ValueError(
                f"active_step_index {self.active_step_index} out of range "
                f"for {len(self.steps)} steps"
            )

    @property
    def active_step(self) -> PlanStep | None:
        if self.active_step_index < len(self.steps):
            return self.steps[self.active_step_index]
        return None

    @property
    def has_remaining_steps(self) -> bool:
        return self.active_step_index < len(self.steps)

    @property
    def is_terminal(self) -> bool:
        return self.status in (PlanStatus.COMPLETED, PlanStatus.FAILED)

    def _with_step(self, index: int, step: PlanStep, **changes: Any) -> Plan:
        steps = self.steps[:index] + (step,) + self.steps[index + 1 :]
        return replace(self, steps=steps, **changes)

    def activate_step(self) -> Plan:
        """Mark the step at the active index as running."""
        step = self.active_step
        if step is None or step.status is StepStatus.ACTIVE:
            return self
        return self._with_step(self.active_step_index, step.activate())

    def record_step_result(self, succeeded: bool, result: str) -> Plan:
        """
        Write the outcome of the active step into a new Plan.

        Success advances the index (completing the plan after the last step);
        failure marks both step and plan as failed and leaves the index.
        """
        step = self.active_step
        if step is None:
            raise ValueError(f"Plan {self.id} has no active step")
        index = self.active_step_index

        if not succeeded:
            return self._with_step(
                index,
                step.finish(StepStatus.FAILED, result),
                status=PlanStatus.FAILED,
            )

        next_index = index + 1
        status = PlanStatus.COMPLETED if next_index == len(self.steps) else PlanStatus.EXECUTING
        return self._with_step(
            index,
            step.finish(StepStatus.COMPLETED, result),
            active_step_index=next_index,
            status=status,
        )

    def abandon(self) -> Plan:
        """Close an unfinished plan as failed; steps that never ran become skipped."""
        if self.is_terminal:
            return self
        steps = tuple(
            replace(s, status=StepStatus.SKIPPED)
            if s.status in (StepStatus.PENDING, StepStatus.ACTIVE) and s.result is None
            else s
            for s in self.steps
        )
        return replace(self, steps=steps, status=PlanStatus.FAILED)

    def to_markdown(self) -> str:
        lines = [f"# Plan: {self.goal}", ""]
        for i, step in enumerate(self.steps, 1):
            marker = "x" if step.status is StepStatus.COMPLETED else " "
            tool = f" `{step.tool}`" if step.tool else ""
            lines.append(f"{i}. [{marker}] {step.description}{tool} ({step.status.value})")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "goal": self.goal,
            "steps": [s.to_dict() for s in self.steps],
            "active_step_index": self.active_step_index,
            "status": self.status.value,
            "generated_at": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Plan:
        return cls(
            id=data["id"],
            goal=data["goal"],
            steps=tuple(PlanStep.from_dict(s) for s in data.get("steps", [])),
            active_step_index=int(data.get("active_step_index", 0)),
            status=PlanStatus(data.get("status", PlanStatus.EXECUTING.value)),
            generated_at=float(data.get("generated_at", time.time())),
        )


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        return cls(role=data["role"], content=data["content"])


@dataclass(frozen=True)
class PendingApproval:
    """Sensitive tool call waiting for an ApprovalDecision."""

    tool: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"tool": self.tool, "arguments": dict(self.arguments)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingApproval:
        return cls(tool=data["tool"], arguments=dict(data.get("arguments") or {}))


@dataclass(frozen=True)
class OrchestratorState:
    """
    Everything the orchestrator knows about the current session.

    Persisted as ``{messages, context, plan, pending_approval, last_error}``
    (the store adds ``saved_at``).
    """

    messages: tuple[ChatMessage, ...] = ()
    ui_context: dict[str, Any] = field(default_factory=dict)
    plan: Plan | None = None
    pending_approval: PendingApproval | None = None
    last_error: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.messages, tuple):
            object.__setattr__(self, "messages", tuple(self.messages))

    def evolve(self, **changes: Any) -> OrchestratorState:
        return replace(self, **changes)

    def with_message(self, role: str, content: str) -> OrchestratorState:
        return replace(self, messages=self.messages + (ChatMessage(role, content),))

    def to_dict(self) -> dict[str, Any]:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "context": dict(self.ui_context),
            "plan": self.plan.to_dict() if self.plan else None,
            "pending_approval": (
                self.pending_approval.to_dict() if self.pending_approval else None
            ),
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OrchestratorState:
        plan = data.get("plan")
        pending = data.get("pending_approval")
        return cls(
            messages=tuple(ChatMessage.from_dict(m) for m in data.get("messages", [])),
            ui_context=dict(data.get("context") or {}),
            plan=Plan.from_dict(plan) if plan else None,
            pending_approval=PendingApproval.from_dict(pending) if pending else None,
            last_error=data.get("last_error"),
        )
