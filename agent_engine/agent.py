import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Mapping, Optional, Union

from agent_engine.cancellation import CancellationToken
from agent_engine.config import AgentConfig
from agent_engine.events import EventBus, EventType
from agent_engine.exceptions import ExecutionCancelled, GatewayError, MissingModelClient
from agent_engine.execution import (
    AgentResponse,
    AgentStatus,
    ExecutionContext,
    ExecutionHistory,
    Finish,
    FinishReason,
    Message,
    StepStatus,
)
from agent_engine.gate import ConfirmHandler, ToolGate
from agent_engine.model import ChatRequest, ChunkHandler, ModelClient, ModelGateway
from agent_engine.parser import ActionParser
from agent_engine.plugins import AgentPlugin, PluginManager
from agent_engine.prompts import build_system_prompt, tool_result_message
from agent_engine.recorder import ExecutionRecorder, Stats, StatsAggregator
from agent_engine.tools import Tool, Toolkit

logger = logging.getLogger(__name__)


def unwrap_result(observation: str) -> str:
    """Pull a ``result`` field out of a JSON-object observation, if there is one."""
    try:
        data = json.loads(observation)
    except ValueError:
        return observation
    if isinstance(data, dict) and "result" in data:
        result = data["result"]
        return result if isinstance(result, str) else json.dumps(result, default=str)
    return observation


class Agent:
    """Reasoning-action-observation loop over a model client and a toolkit.

    Each iteration asks the model for a thought, parses an optional tool
    action out of it and, if there is one, runs it through the tool gate.
    With the default ``single_shot`` termination the invocation resolves
    after the first tool call; ``react`` keeps looping until the model
    answers without an action.

    Args:
        client: Model client used through a retrying gateway.
        toolkit: A Toolkit, or a list of Tools to build one from.
        config: Limits, retry policy, confirmation and prompt settings.
        events: Event bus to emit on. A private one is created if omitted.
        plugins: Plugins to register up front.
        confirm: Confirmation callback, required when confirmation is enabled.
        on_chunk: Receives streamed text when ``streaming_enabled`` is set.
        name: Agent name, for logs.
        sleep: Awaitable sleep used between model retries.
    """

    def __init__(
        self,
        client: Optional[ModelClient],
        toolkit: Union[Toolkit, Iterable[Tool], None] = None,
        config: Optional[AgentConfig] = None,
        events: Optional[EventBus] = None,
        plugins: Optional[list[AgentPlugin]] = None,
        confirm: Optional[ConfirmHandler] = None,
        on_chunk: Optional[ChunkHandler] = None,
        name: str = "Agent",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if client is None:
            raise MissingModelClient(f"{name}: a model client is required")

        self.config = config or AgentConfig()
        self.name = name
        if toolkit is None or not hasattr(toolkit, "has_tool"):
            toolkit = Toolkit(toolkit or [])
        self.toolkit = toolkit

        self.events = events or EventBus(debug=self.config.debug_enabled)
        self.plugins = PluginManager(self.events)
        for plugin in plugins or []:
            self.plugins.add(plugin)

        self.gateway = ModelGateway(client, self.config.retry, sleep=sleep)
        self.gate = ToolGate(
            self.toolkit, self.events, self.config.tool_confirmation, confirm
        )
        self.parser = ActionParser()
        self.on_chunk = on_chunk
        self._stats = StatsAggregator()

        self.status = AgentStatus.IDLE
        self.execution_history: Optional[ExecutionHistory] = None
        self._active_token: Optional[CancellationToken] = None

    def on(self, event_type):
        """Decorator for registering listeners directly on the agent.

        Usage:
            @agent.on('action_end')
            async def log_step(event):
                print(event.data["step"].observation)
        """
        return self.events.on(event_type)

    def add_plugin(self, plugin: AgentPlugin) -> None:
        self.plugins.add(plugin)

    def remove_plugin(self, name: str) -> bool:
        return self.plugins.remove(name)

    def get_stats(self) -> Stats:
        return self._stats.snapshot()

    def cancel(self, reason: str = "cancelled by caller") -> bool:
        """Cancel the in-flight invocation. Returns False if none is running."""
        if self._active_token is None:
            return False
        self._active_token.cancel(reason)
        return True

    def run(self, input: str, context: Optional[Mapping[str, Any]] = None) -> AgentResponse:
        """Run agent synchronously."""
        return asyncio.run(self.invoke(input, context))

    async def invoke(
        self,
        input: str,
        context: Optional[Mapping[str, Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AgentResponse:
        """Run one invocation to completion and return the terminal response."""
        response = None
        async for response in self._execute(input, context, cancel_token):
            pass
        return response

    async def stream(
        self,
        input: str,
        context: Optional[Mapping[str, Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[AgentResponse]:
        """Yield thought, action and observation responses, then the terminal one.

        Closing the stream early (``aclose()``, or ``contextlib.aclosing``
        around a loop that breaks) finishes the invocation as ``user_stop``:
        the ``error`` event fires and stats are recorded.
        """
        execution = self._execute(input, context, cancel_token)
        try:
            async for response in execution:
                yield response
        finally:
            await execution.aclose()

    async def _execute(
        self,
        input: str,
        context: Optional[Mapping[str, Any]],
        cancel_token: Optional[CancellationToken],
    ) -> AsyncIterator[AgentResponse]:
        config = self.config
        ctx = ExecutionContext.create(context)
        token = cancel_token or CancellationToken()
        self._active_token = token

        self.status = AgentStatus.THINKING
        await self.events.emit(
            EventType.EXECUTION_START,
            ctx.execution_id,
            {"input": input, "context": ctx},
        )

        history = ExecutionHistory(execution_id=ctx.execution_id, started_at=ctx.started_at)
        history.messages.append(
            Message(
                role="system",
                content=build_system_prompt(self.toolkit.list_tools(), config.system_prompt),
            )
        )
        history.messages.append(Message(role="user", content=input))
        self.execution_history = history
        recorder = ExecutionRecorder(history)

        started = time.monotonic()
        finish: Optional[Finish] = None
        failure: Optional[BaseException] = None

        try:
            for iteration in range(1, config.max_iterations + 1):
                token.raise_if_cancelled()
                self._log(f"{self.name}: iteration {iteration}")

                # THINK
                self.status = AgentStatus.THINKING
                await self.events.emit(
                    EventType.THOUGHT_START, ctx.execution_id, {"iteration": iteration}
                )
                thought_start = time.monotonic()
                try:
                    reply = await self.gateway.chat(
                        self._request(history), token, self._chunk_handler()
                    )
                except GatewayError as e:
                    failure = e
                    finish = Finish(output=str(e), reason=FinishReason.ERROR, log=_finish_log(history))
                    break

                recorder.record_usage(reply.usage)
                thought = self.parser.parse(
                    reply.content, (time.monotonic() - thought_start) * 1000
                )
                recorder.record_thought(thought)
                await self.events.emit(
                    EventType.THOUGHT_END,
                    ctx.execution_id,
                    {"thought": thought, "iteration": iteration},
                )
                yield self._response(ctx, "thought", thought.content, thought=thought)

                action = thought.planned_action
                if action is None:
                    finish = Finish(
                        output=thought.content,
                        reason=FinishReason.SUCCESS,
                        log=_finish_log(history),
                    )
                    break

                # ACT
                self.status = AgentStatus.ACTING
                await self.events.emit(
                    EventType.ACTION_START,
                    ctx.execution_id,
                    {"action": action, "iteration": iteration},
                )
                yield self._response(ctx, "action", f"Using tool: {action.tool}", thought=thought)

                step = await self.gate.invoke(action, ctx, token)
                recorder.record_step(step)
                history.messages.append(Message(role="assistant", content=thought.content))
                history.messages.append(
                    Message(role="user", content=tool_result_message(step.observation))
                )
                await self.events.emit(
                    EventType.ACTION_END,
                    ctx.execution_id,
                    {"step": step, "iteration": iteration},
                )
                yield self._response(ctx, "observation", step.observation, step=step)

                if step.metadata.get("cancelled"):
                    raise ExecutionCancelled(token.reason or "cancelled")

                if config.termination == "single_shot":
                    if step.status == StepStatus.COMPLETED:
                        finish = Finish(
                            output=unwrap_result(step.observation),
                            reason=FinishReason.SUCCESS,
                            log=_finish_log(history),
                        )
                    else:
                        finish = Finish(
                            output=step.error or step.observation,
                            reason=FinishReason.ERROR,
                            log=_finish_log(history),
                        )
                    break

                elapsed_ms = (time.monotonic() - started) * 1000
                if elapsed_ms > config.max_execution_time_ms:
                    finish = Finish(
                        output=f"Execution timed out after {elapsed_ms:.0f}ms",
                        reason=FinishReason.TIMEOUT,
                        log=_finish_log(history),
                    )
                    break
            else:
                finish = Finish(
                    output=(
                        f"Reached max iterations ({config.max_iterations}) "
                        "without a final answer"
                    ),
                    reason=FinishReason.MAX_ITERATIONS,
                    log=_finish_log(history),
                )
        except ExecutionCancelled as e:
            failure = e
            finish = Finish(
                output=f"Execution cancelled: {e}",
                reason=FinishReason.USER_STOP,
                log=_finish_log(history),
            )
        except Exception as e:
            logger.exception(f"{self.name}: invocation {ctx.execution_id} failed")
            failure = e
            finish = Finish(output=str(e), reason=FinishReason.ERROR, log=_finish_log(history))
        except GeneratorExit:
            # Consumer closed the stream mid-run; finalize without yielding.
            finish = Finish(
                output="Execution stopped: stream closed by consumer",
                reason=FinishReason.USER_STOP,
                log=_finish_log(history),
            )
            await self._finish(ctx, recorder, finish, None)
            raise
        finally:
            self._active_token = None

        yield await self._finish(ctx, recorder, finish, failure)

    async def _finish(
        self,
        ctx: ExecutionContext,
        recorder: ExecutionRecorder,
        finish: Finish,
        failure: Optional[BaseException],
    ) -> AgentResponse:
        failed = finish.reason in (FinishReason.ERROR, FinishReason.USER_STOP)
        self.status = AgentStatus.ERROR if failed else AgentStatus.FINISHED
        history = recorder.finalize(finish, self.status)
        self._stats.record(history)
        self._log(f"{self.name}: finished with {finish.reason.value}")

        data = {"context": ctx, "finish": finish, "execution": history}
        if failed:
            data.update(error=finish.output, exception=failure)
            await self.events.emit(EventType.ERROR, ctx.execution_id, data)
        else:
            await self.events.emit(EventType.EXECUTION_END, ctx.execution_id, data)

        perf = history.performance
        return self._response(
            ctx,
            "final" if finish.reason == FinishReason.SUCCESS else "error",
            finish.output,
            finish=finish,
            metadata={
                "reason": finish.reason.value,
                "total_steps": len(history.steps),
                "total_time_ms": perf.total_time_ms,
                "llm_calls": perf.llm_calls,
                "tool_calls": perf.tool_calls,
                "total_tokens": perf.total_tokens,
            },
        )

    def _request(self, history: ExecutionHistory) -> ChatRequest:
        return ChatRequest(
            messages=list(history.messages),
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )

    def _chunk_handler(self) -> Optional[ChunkHandler]:
        if self.config.streaming_enabled and self.on_chunk is not None:
            return self.on_chunk
        return None

    def _response(self, ctx: ExecutionContext, type: str, content: str, **kwargs) -> AgentResponse:
        return AgentResponse(
            execution_id=ctx.execution_id,
            content=content,
            type=type,
            status=self.status,
            **kwargs,
        )

    def _log(self, message: str) -> None:
        if self.config.debug_enabled:
            logger.info(message)
        else:
            logger.debug(message)


def _finish_log(history: ExecutionHistory) -> str:
    """Thought/Action/Observation transcript of an execution so far."""
    lines = []
    steps = iter(history.steps)
    for thought in history.thoughts:
        lines.append(f"Thought: {thought.reasoning}")
        if thought.planned_action is not None:
            action = thought.planned_action
            lines.append(f"Action: {action.tool} {json.dumps(action.params, default=str)}")
            step = next(steps, None)
            if step is not None:
                lines.append(f"Observation: {step.observation}")
    return "\n".join(lines)
