"""
Approval Gate - human-in-the-loop suspension for sensitive tool calls.

A sensitive call records a PendingApproval, emits ApprovalRequested and then
suspends on a future that only an ApprovalDecision event can resolve. Requests
are serialized: a second sensitive call waits behind the outstanding one and
never overwrites it. Decisions that arrive while nothing is pending (repeats,
late clicks) are ignored.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from theia.core.domain.event_bus import EventBus
from theia.core.domain.events import (
    ApprovalDecision,
    ApprovalRequested,
    EventEnvelope,
    EventSource,
)
from theia.core.domain.models import PendingApproval
from theia.core.interfaces.tools import ApprovalRiskLevel

PendingHook = Callable[[PendingApproval | None], Awaitable[None]]


class ApprovalPolicy(str, Enum):
    """Policy for handling approval requests for sensitive operations."""

    PROMPT = "prompt"  # Suspend until the user decides (default)
    AUTO_APPROVE = "auto_approve"  # Approve all automatically (logs warning)
    AUTO_DENY = "auto_deny"  # Deny all automatically (logs error)


class ApprovalGate:
    """
    Suspends sensitive tool calls until the user approves or rejects them.

    Args:
        bus: Event bus used to request and receive decisions
        policy: How requests are answered (see ApprovalPolicy)
        on_pending_change: Optional coroutine called with the PendingApproval
                           when a request starts and with None when it ends,
                           so the owner can persist it as part of its state
    """

    def __init__(
        self,
        bus: EventBus,
        policy: ApprovalPolicy = ApprovalPolicy.PROMPT,
        on_pending_change: PendingHook | None = None,
    ):
        self.bus = bus
        self.policy = ApprovalPolicy(policy)
        self.on_pending_change = on_pending_change
        self.history: list[dict[str, Any]] = []
        self.logger = structlog.get_logger().bind(component="approval_gate")

        self._lock = asyncio.Lock()
        self._decision: asyncio.Future[bool] | None = None
        self._pending: PendingApproval | None = None
        self._unsubscribe = bus.subscribe(ApprovalDecision, self._on_decision)

    @property
    def pending(self) -> PendingApproval | None:
        return self._pending

    async def request(
        self,
        tool: str,
        arguments: dict[str, Any],
        risk: ApprovalRiskLevel = ApprovalRiskLevel.MEDIUM,
        preview: str = "",
    ) -> bool:
        """
        Ask for permission to run a sensitive tool call.

        ``preview`` is the human-readable summary shown with the request.

        Returns:
            True if approved, False if rejected
        """
        if self.policy == ApprovalPolicy.AUTO_APPROVE:
            self.logger.warning("auto_approve_policy", tool=tool, parameters=arguments, risk=risk.value)
            self._record(tool, risk, "auto_approved")
            return True

        if self.policy == ApprovalPolicy.AUTO_DENY:
            self.logger.error("auto_deny_policy", tool=tool, parameters=arguments, risk=risk.value)
            self._record(tool, risk, "auto_denied")
            return False

        async with self._lock:
            decision: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
            self._decision = decision
            self._pending = PendingApproval(tool=tool, arguments=dict(arguments))
            try:
                await self._notify(self._pending)
                self.logger.info("approval_requested", tool=tool, risk=risk.value)
                self.bus.emit(
                    ApprovalRequested(tool=tool, args=dict(arguments), preview=preview),
                    source=EventSource.AGENT,
                )
                approved = await decision
            finally:
                if self._decision is decision:
                    self._decision = None
                self._pending = None
                await self._notify(None)

        self._record(tool, risk, "approved" if approved else "denied")
        self.logger.info("approval_resolved", tool=tool, approved=approved)
        return approved

    def _on_decision(self, envelope: EventEnvelope) -> None:
        decision = self._decision
        if decision is None or decision.done():
            self.logger.info("approval_decision_ignored", event_id=envelope.id)
            return
        self._decision = None
        decision.set_result(bool(envelope.event.approved))

    async def _notify(self, pending: PendingApproval | None) -> None:
        if self.on_pending_change is not None:
            await self.on_pending_change(pending)

    def _record(self, tool: str, risk: ApprovalRiskLevel, decision: str) -> None:
        self.history.append(
            {
                "timestamp": datetime.now().isoformat(),
                "tool": tool,
                "risk": risk.value,
                "decision": decision,
                "policy": self.policy.value,
            }
        )

    def close(self) -> None:
        """Stop listening for decisions and fail any outstanding request as rejected."""
        self._unsubscribe()
        if self._decision is not None and not self._decision.done():
            self._decision.set_result(False)
        self._decision = None
