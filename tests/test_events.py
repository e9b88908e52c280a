"""Tests for the event bus and bus-driven plugins."""

import logging

import pytest

from agent_engine.events import ALL_EVENTS, AgentEvent, EventBus, EventType
from agent_engine.exceptions import AgentEngineError
from agent_engine.execution import ExecutionContext, Finish, FinishReason
from agent_engine.plugins import AgentPlugin, PluginManager


class TestEventType:
    def test_event_values(self):
        assert EventType.EXECUTION_START.value == "execution_start"
        assert EventType.TOOL_CONFIRMATION.value == "tool_confirmation"
        assert EventType.ERROR.value == "error"
        assert len(EventType) == 8


class TestEventBus:
    def test_on_decorator_registers(self):
        bus = EventBus()

        @bus.on("thought_end")
        def listener(event):
            pass

        assert bus.has_listeners(EventType.THOUGHT_END)
        assert not bus.has_listeners("thought_start")

    def test_invalid_event_raises(self):
        bus = EventBus()
        with pytest.raises(ValueError, match="Invalid event type"):
            bus.add_listener("not_an_event", lambda e: None)

    @pytest.mark.asyncio
    async def test_emit_builds_event(self):
        bus = EventBus()
        seen = []
        bus.add_listener(EventType.ACTION_START, seen.append)

        event = await bus.emit(EventType.ACTION_START, "exec-1", {"tool": "echo"})

        assert seen == [event]
        assert isinstance(event, AgentEvent)
        assert event.execution_id == "exec-1"
        assert event.data == {"tool": "echo"}
        assert event.timestamp > 0

    @pytest.mark.asyncio
    async def test_listeners_run_in_registration_order(self):
        bus = EventBus()
        order = []

        async def first(event):
            order.append("first")

        def second(event):
            order.append("second")

        bus.add_listener("execution_end", first)
        bus.add_listener("execution_end", second)
        await bus.emit(EventType.EXECUTION_END, "e")

        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_others(self):
        bus = EventBus()
        called = []

        def broken(event):
            raise RuntimeError("listener bug")

        bus.add_listener("error", broken)
        bus.add_listener("error", lambda e: called.append(e.type))

        await bus.emit(EventType.ERROR, "e")

        assert called == [EventType.ERROR]

    @pytest.mark.asyncio
    async def test_failure_logged_as_warning_in_debug(self, caplog):
        bus = EventBus(debug=True)

        async def broken(event):
            raise RuntimeError("listener bug")

        bus.add_listener("thought_start", broken)
        with caplog.at_level(logging.WARNING, logger="agent_engine.events"):
            await bus.emit(EventType.THOUGHT_START, "e")

        assert "listener bug" in caplog.text

    @pytest.mark.asyncio
    async def test_wildcard_listener_sees_everything(self):
        bus = EventBus()
        seen = []
        bus.add_listener(ALL_EVENTS, lambda e: seen.append(e.type))

        await bus.emit(EventType.THOUGHT_START, "e")
        await bus.emit(EventType.ACTION_END, "e")

        assert seen == [EventType.THOUGHT_START, EventType.ACTION_END]

    @pytest.mark.asyncio
    async def test_remove_listener(self):
        bus = EventBus()
        seen = []
        listener = seen.append
        bus.add_listener("action_end", listener)

        assert bus.remove_listener("action_end", listener) is True
        assert bus.remove_listener("action_end", listener) is False
        await bus.emit(EventType.ACTION_END, "e")

        assert seen == []

    @pytest.mark.asyncio
    async def test_listener_added_during_emit_waits_for_next_event(self):
        bus = EventBus()
        late = []

        def adder(event):
            bus.add_listener("thought_end", late.append)

        bus.add_listener("thought_end", adder)
        await bus.emit(EventType.THOUGHT_END, "e")
        assert late == []

        await bus.emit(EventType.THOUGHT_END, "e")
        assert len(late) == 1

    def test_clear(self):
        bus = EventBus()
        bus.add_listener("error", lambda e: None)
        bus.clear()
        assert not bus.has_listeners("error")


class RecordingPlugin(AgentPlugin):
    def __init__(self, name, calls):
        self.name = name
        self.calls = calls

    async def before_execution(self, context):
        self.calls.append((self.name, "before", context.execution_id))

    async def after_execution(self, context, finish):
        self.calls.append((self.name, "after", finish.reason))

    async def on_error(self, context, error):
        self.calls.append((self.name, "error", str(error)))


class TestPluginManager:
    @pytest.mark.asyncio
    async def test_hooks_follow_bus_events(self):
        bus = EventBus()
        manager = PluginManager(bus)
        calls = []
        manager.add(RecordingPlugin("a", calls))
        ctx = ExecutionContext.create()
        finish = Finish(output="done", reason=FinishReason.SUCCESS)

        await bus.emit(EventType.EXECUTION_START, ctx.execution_id, {"context": ctx})
        await bus.emit(EventType.EXECUTION_END, ctx.execution_id, {"context": ctx, "finish": finish})

        assert calls == [
            ("a", "before", ctx.execution_id),
            ("a", "after", FinishReason.SUCCESS),
        ]

    @pytest.mark.asyncio
    async def test_on_error_receives_exception(self):
        bus = EventBus()
        manager = PluginManager(bus)
        calls = []
        manager.add(RecordingPlugin("a", calls))
        ctx = ExecutionContext.create()

        await bus.emit(
            EventType.ERROR,
            ctx.execution_id,
            {"context": ctx, "error": "boom", "exception": AgentEngineError("boom")},
        )
        await bus.emit(EventType.ERROR, ctx.execution_id, {"context": ctx, "error": "plain"})

        assert calls == [("a", "error", "boom"), ("a", "error", "plain")]

    @pytest.mark.asyncio
    async def test_failing_plugin_does_not_block_others(self):
        class BrokenPlugin(AgentPlugin):
            name = "broken"

            async def before_execution(self, context):
                raise RuntimeError("plugin bug")

        bus = EventBus()
        manager = PluginManager(bus)
        calls = []
        manager.add(BrokenPlugin())
        manager.add(RecordingPlugin("ok", calls))
        ctx = ExecutionContext.create()

        await bus.emit(EventType.EXECUTION_START, ctx.execution_id, {"context": ctx})

        assert calls == [("ok", "before", ctx.execution_id)]

    def test_add_and_remove(self):
        manager = PluginManager(EventBus())
        manager.add(RecordingPlugin("a", []))
        manager.add(RecordingPlugin("b", []))

        assert [p.name for p in manager.plugins] == ["a", "b"]
        assert manager.remove("a") is True
        assert manager.remove("a") is False
        assert [p.name for p in manager.plugins] == ["b"]

    @pytest.mark.asyncio
    async def test_default_hooks_are_no_ops(self):
        plugin = AgentPlugin()
        ctx = ExecutionContext.create()
        await plugin.before_execution(ctx)
        await plugin.after_execution(ctx, Finish(output="", reason=FinishReason.ERROR))
        await plugin.on_error(ctx, RuntimeError("x"))
