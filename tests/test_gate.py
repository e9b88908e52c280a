"""Tests for the tool gate: lookup, confirmation and execution outcomes."""

import asyncio

import pytest

from agent_engine.cancellation import CancellationToken
from agent_engine.config import ToolConfirmationConfig
from agent_engine.events import EventBus, EventType
from agent_engine.exceptions import ConfigurationError
from agent_engine.execution import ExecutionContext, PlannedAction, StepStatus
from agent_engine.gate import CANCELLED_BY_OPERATOR, ToolGate, serialize_result
from agent_engine.tools import Tool, ToolInput, Toolkit


# --- Test fixtures ---


class TextInput(ToolInput):
    text: str


class EchoTool(Tool):
    name = "echo"
    description = "Echoes input"
    input_model = TextInput

    def __init__(self):
        self.calls = 0

    async def execute(self, text: str) -> dict:
        self.calls += 1
        return {"result": text}


class DiskTool(Tool):
    name = "write_file"
    description = "Always fails"
    input_model = TextInput

    async def execute(self, text: str) -> str:
        raise OSError("disk full")


class SlowTool(Tool):
    name = "slow"
    description = "Takes forever"
    input_model = TextInput

    async def execute(self, text: str) -> str:
        await asyncio.sleep(10)
        return "done"


def make_gate(confirmation=None, confirm=None, events=None):
    echo = EchoTool()
    toolkit = Toolkit([echo, DiskTool(), SlowTool()])
    gate = ToolGate(toolkit, events or EventBus(), confirmation, confirm)
    return gate, echo


def action(tool="echo", **params):
    return PlannedAction(tool=tool, params=params or {"text": "hi"})


# --- Execution outcomes ---


class TestToolGateExecution:
    @pytest.mark.asyncio
    async def test_unknown_tool_fails_step(self):
        gate, _ = make_gate()

        step = await gate.invoke(action("nope"), ExecutionContext.create())

        assert step.status == StepStatus.FAILED
        assert step.error == "tool not found: nope"
        assert step.observation == "tool not found: nope"

    @pytest.mark.asyncio
    async def test_completed_step_serializes_result(self):
        gate, echo = make_gate()

        step = await gate.invoke(action(text="hi"), ExecutionContext.create())

        assert step.status == StepStatus.COMPLETED
        assert step.observation == '{"result": "hi"}'
        assert step.error is None
        assert step.ended_at >= step.started_at
        assert echo.calls == 1

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_failed_step(self):
        gate, _ = make_gate()

        step = await gate.invoke(action("write_file"), ExecutionContext.create())

        assert step.status == StepStatus.FAILED
        assert step.error == "disk full"
        assert step.observation == "Tool error: disk full"

    @pytest.mark.asyncio
    async def test_invalid_params_fail_step(self):
        gate, echo = make_gate()

        step = await gate.invoke(
            PlannedAction(tool="echo", params={"txt": 1}), ExecutionContext.create()
        )

        assert step.status == StepStatus.FAILED
        assert "Invalid parameters for tool 'echo'" in step.error
        assert echo.calls == 0

    @pytest.mark.asyncio
    async def test_cancel_during_tool_returns_cancelled_step(self):
        gate, _ = make_gate()
        token = CancellationToken()

        async def stop_soon():
            await asyncio.sleep(0.01)
            token.cancel("stop")

        stopper = asyncio.create_task(stop_soon())
        step = await gate.invoke(action("slow"), ExecutionContext.create(), token)
        await stopper

        assert step.status == StepStatus.FAILED
        assert step.metadata["cancelled"] is True
        assert step.observation == CANCELLED_BY_OPERATOR


# --- Confirmation ---


class TestToolGateConfirmation:
    def test_enabled_without_handler_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            make_gate(ToolConfirmationConfig(enabled=True))

    @pytest.mark.asyncio
    async def test_disabled_confirmation_never_asks(self):
        asked = []
        gate, echo = make_gate(confirm=lambda a, c: asked.append(a) or False)

        step = await gate.invoke(action(), ExecutionContext.create())

        assert step.status == StepStatus.COMPLETED
        assert asked == []

    @pytest.mark.asyncio
    async def test_denied_tool_never_runs(self):
        gate, echo = make_gate(ToolConfirmationConfig(enabled=True), confirm=lambda a, c: False)

        step = await gate.invoke(action(), ExecutionContext.create())

        assert step.status == StepStatus.FAILED
        assert step.observation == CANCELLED_BY_OPERATOR
        assert step.error == CANCELLED_BY_OPERATOR
        assert echo.calls == 0

    @pytest.mark.asyncio
    async def test_denied_step_times_exclude_confirmation_wait(self):
        async def slow_denial(a, c):
            await asyncio.sleep(0.05)
            return False

        gate, _ = make_gate(ToolConfirmationConfig(enabled=True), confirm=slow_denial)

        step = await gate.invoke(action(), ExecutionContext.create())

        assert step.status == StepStatus.FAILED
        assert step.duration_ms < 40

    @pytest.mark.asyncio
    async def test_approved_step_times_exclude_confirmation_wait(self):
        async def slow_approval(a, c):
            await asyncio.sleep(0.05)
            return True

        gate, _ = make_gate(ToolConfirmationConfig(enabled=True), confirm=slow_approval)

        step = await gate.invoke(action(), ExecutionContext.create())

        assert step.status == StepStatus.COMPLETED
        assert step.duration_ms < 40

    @pytest.mark.asyncio
    async def test_async_approval_runs_tool(self):
        async def approve(a, c):
            return True

        gate, echo = make_gate(ToolConfirmationConfig(enabled=True), confirm=approve)

        step = await gate.invoke(action(), ExecutionContext.create())

        assert step.status == StepStatus.COMPLETED
        assert echo.calls == 1

    @pytest.mark.asyncio
    async def test_confirmation_event_carries_action_and_context(self):
        events = EventBus()
        seen = []
        events.add_listener(EventType.TOOL_CONFIRMATION, seen.append)
        gate, _ = make_gate(
            ToolConfirmationConfig(enabled=True), confirm=lambda a, c: True, events=events
        )
        ctx = ExecutionContext.create()
        planned = action()

        await gate.invoke(planned, ctx)

        assert len(seen) == 1
        assert seen[0].execution_id == ctx.execution_id
        assert seen[0].data["action"] is planned
        assert seen[0].data["context"] is ctx

    @pytest.mark.asyncio
    async def test_auto_approve_skips_handler(self):
        asked = []
        gate, echo = make_gate(
            ToolConfirmationConfig(enabled=True, auto_approve=["echo"]),
            confirm=lambda a, c: asked.append(a) or False,
        )

        step = await gate.invoke(action(), ExecutionContext.create())

        assert step.status == StepStatus.COMPLETED
        assert asked == []

    @pytest.mark.asyncio
    async def test_auto_reject_skips_handler(self):
        asked = []
        gate, echo = make_gate(
            ToolConfirmationConfig(enabled=True, auto_reject=["echo"]),
            confirm=lambda a, c: asked.append(a) or True,
        )

        step = await gate.invoke(action(), ExecutionContext.create())

        assert step.status == StepStatus.FAILED
        assert step.observation == CANCELLED_BY_OPERATOR
        assert asked == []
        assert echo.calls == 0

    @pytest.mark.asyncio
    async def test_confirmation_timeout_denies(self):
        async def never_answers(a, c):
            await asyncio.sleep(10)
            return True

        gate, echo = make_gate(
            ToolConfirmationConfig(enabled=True, timeout_ms=20), confirm=never_answers
        )

        step = await gate.invoke(action(), ExecutionContext.create())

        assert step.status == StepStatus.FAILED
        assert step.observation == f"{CANCELLED_BY_OPERATOR} (confirmation timed out)"
        assert echo.calls == 0

    @pytest.mark.asyncio
    async def test_failing_handler_denies(self):
        def broken(a, c):
            raise RuntimeError("no operator")

        gate, echo = make_gate(ToolConfirmationConfig(enabled=True), confirm=broken)

        step = await gate.invoke(action(), ExecutionContext.create())

        assert step.status == StepStatus.FAILED
        assert step.observation.startswith(CANCELLED_BY_OPERATOR)
        assert "no operator" in step.observation
        assert echo.calls == 0


class TestSerializeResult:
    def test_string_passes_through(self):
        assert serialize_result("plain") == "plain"

    def test_model_dumps_json(self):
        assert serialize_result(TextInput(text="a")) == '{"text":"a"}'

    def test_unserializable_values_fall_back_to_str(self):
        assert serialize_result({"n": 1, "obj": object}) == '{"n": 1, "obj": "<class \'object\'>"}'
