"""Unit Tests for ApprovalGate."""

import asyncio

import pytest

from theia.core.domain.approval import ApprovalGate, ApprovalPolicy
from theia.core.domain.events import ApprovalDecision, ApprovalRequested, EventSource


async def _wait_for_requests(bus, count=1):
    for _ in range(200):
        if len(bus.get_by_type(ApprovalRequested)) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError("approval was never requested")


def _decide(bus, approved):
    bus.emit(ApprovalDecision(approved=approved), source=EventSource.UI)


class TestPromptPolicy:
    @pytest.mark.asyncio
    async def test_request_suspends_until_approved(self, bus):
        gate = ApprovalGate(bus)
        task = asyncio.create_task(gate.request("run_command", {"command": "ls"}))

        await _wait_for_requests(bus)
        assert not task.done()
        assert gate.pending.tool == "run_command"
        assert bus.get_by_type(ApprovalRequested)[0].event.args == {"command": "ls"}

        _decide(bus, True)

        assert await task is True
        assert gate.pending is None
        assert gate.history[-1]["decision"] == "approved"

    @pytest.mark.asyncio
    async def test_rejection(self, bus):
        gate = ApprovalGate(bus)
        task = asyncio.create_task(gate.request("write_file", {"path": "a"}))
        await _wait_for_requests(bus)

        _decide(bus, False)

        assert await task is False

    @pytest.mark.asyncio
    async def test_request_carries_preview(self, bus):
        gate = ApprovalGate(bus)
        task = asyncio.create_task(
            gate.request("run_command", {"command": "make"}, preview="Tool: run_command\nCommand: make")
        )
        await _wait_for_requests(bus)

        assert bus.get_by_type(ApprovalRequested)[0].event.preview == "Tool: run_command\nCommand: make"
        _decide(bus, True)
        await task

    @pytest.mark.asyncio
    async def test_decision_without_pending_request_is_ignored(self, bus):
        """Test that a late or repeated decision does not leak into the next request."""
        gate = ApprovalGate(bus)
        _decide(bus, True)

        task = asyncio.create_task(gate.request("run_command", {}))
        await _wait_for_requests(bus)
        assert not task.done()

        _decide(bus, False)
        _decide(bus, True)

        assert await task is False

    @pytest.mark.asyncio
    async def test_second_request_queues_behind_first(self, bus):
        gate = ApprovalGate(bus)
        first = asyncio.create_task(gate.request("run_command", {"command": "a"}))
        second = asyncio.create_task(gate.request("run_command", {"command": "b"}))

        await _wait_for_requests(bus)
        await asyncio.sleep(0)
        assert len(bus.get_by_type(ApprovalRequested)) == 1
        assert gate.pending.arguments == {"command": "a"}

        _decide(bus, True)
        await _wait_for_requests(bus, count=2)
        assert gate.pending.arguments == {"command": "b"}
        _decide(bus, False)

        assert await first is True
        assert await second is False

    @pytest.mark.asyncio
    async def test_pending_hook_is_notified(self, bus):
        changes = []

        async def hook(pending):
            changes.append(pending)

        gate = ApprovalGate(bus, on_pending_change=hook)
        task = asyncio.create_task(gate.request("run_command", {"command": "ls"}))
        await _wait_for_requests(bus)
        _decide(bus, True)
        await task

        assert changes[0].tool == "run_command"
        assert changes[-1] is None

    @pytest.mark.asyncio
    async def test_close_rejects_outstanding_request(self, bus):
        gate = ApprovalGate(bus)
        task = asyncio.create_task(gate.request("run_command", {}))
        await _wait_for_requests(bus)

        gate.close()

        assert await task is False


class TestAutomaticPolicies:
    @pytest.mark.asyncio
    async def test_auto_approve(self, bus):
        gate = ApprovalGate(bus, policy=ApprovalPolicy.AUTO_APPROVE)

        assert await gate.request("run_command", {"command": "ls"}) is True
        assert bus.get_history() == []
        assert gate.history[0]["decision"] == "auto_approved"

    @pytest.mark.asyncio
    async def test_auto_deny(self, bus):
        gate = ApprovalGate(bus, policy="auto_deny")

        assert await gate.request("run_command", {"command": "ls"}) is False
        assert gate.history[0]["policy"] == "auto_deny"
