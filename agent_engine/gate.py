import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel

from agent_engine.cancellation import CancellationToken, guarded
from agent_engine.config import ToolConfirmationConfig
from agent_engine.events import EventBus, EventType
from agent_engine.exceptions import ConfigurationError, ExecutionCancelled
from agent_engine.execution import AgentStep, ExecutionContext, PlannedAction

logger = logging.getLogger(__name__)

CANCELLED_BY_OPERATOR = "execution cancelled by operator"

ConfirmHandler = Callable[
    [PlannedAction, ExecutionContext], Union[bool, Awaitable[bool]]
]


def serialize_result(result: Any) -> str:
    """Render a tool's return value as observation text."""
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    return json.dumps(result, default=str, ensure_ascii=False)


class ToolGate:
    """Checked boundary between the loop and the toolkit.

    Every outcome comes back as an AgentStep, cancellation included (marked
    with ``metadata["cancelled"]``); the gate never raises.

    Args:
        toolkit: Anything with has_tool(name) and async execute_tool(name, params).
        events: Bus used to announce confirmation requests.
        confirmation: When and how to ask before a tool runs.
        confirm: Decision callback, sync or async, returning True to allow.
            Required when confirmation is enabled.
    """

    def __init__(
        self,
        toolkit,
        events: EventBus,
        confirmation: Optional[ToolConfirmationConfig] = None,
        confirm: Optional[ConfirmHandler] = None,
    ):
        self.toolkit = toolkit
        self.events = events
        self.confirmation = confirmation or ToolConfirmationConfig()
        self.confirm = confirm
        if self.confirmation.enabled and confirm is None:
            raise ConfigurationError(
                "Tool confirmation is enabled but no confirm handler was given"
            )

    async def invoke(
        self,
        action: PlannedAction,
        ctx: ExecutionContext,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AgentStep:
        if not self.toolkit.has_tool(action.tool):
            message = f"tool not found: {action.tool}"
            logger.info(message)
            step = AgentStep(action=action)
            step.fail(message)
            return step

        try:
            denial = await self._check_confirmation(action, ctx, cancel_token)
        except ExecutionCancelled:
            step = AgentStep(action=action, metadata={"cancelled": True})
            step.fail(CANCELLED_BY_OPERATOR)
            return step

        # Step times cover the toolkit call only, never the confirmation wait.
        step = AgentStep(action=action)
        if denial is not None:
            step.fail(denial)
            return step

        step.start()
        try:
            result = await guarded(
                self.toolkit.execute_tool(action.tool, action.params), cancel_token
            )
        except ExecutionCancelled:
            step.metadata["cancelled"] = True
            step.fail(CANCELLED_BY_OPERATOR)
            return step
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.info(f"Tool '{action.tool}' failed: {error}")
            step.fail(error, observation=f"Tool error: {error}")
            return step

        step.complete(serialize_result(result))
        return step

    async def _check_confirmation(
        self,
        action: PlannedAction,
        ctx: ExecutionContext,
        cancel_token: Optional[CancellationToken],
    ) -> Optional[str]:
        """Return None when the tool may run, else the denial message."""
        config = self.confirmation
        if not config.enabled or action.tool in config.auto_approve:
            return None
        if action.tool in config.auto_reject:
            return CANCELLED_BY_OPERATOR

        await self.events.emit(
            EventType.TOOL_CONFIRMATION,
            ctx.execution_id,
            {"action": action, "context": ctx},
        )

        async def decide() -> bool:
            decision = self.confirm(action, ctx)
            if inspect.isawaitable(decision):
                decision = await decision
            return bool(decision)

        timeout = config.timeout_ms / 1000 if config.timeout_ms else None
        try:
            approved = await guarded(asyncio.wait_for(decide(), timeout), cancel_token)
        except ExecutionCancelled:
            raise
        except asyncio.TimeoutError:
            logger.info(f"Confirmation for '{action.tool}' timed out")
            return f"{CANCELLED_BY_OPERATOR} (confirmation timed out)"
        except Exception as e:
            logger.warning(f"Confirmation handler failed for '{action.tool}': {e}")
            return f"{CANCELLED_BY_OPERATOR} (confirmation failed: {e})"

        return None if approved else CANCELLED_BY_OPERATOR
