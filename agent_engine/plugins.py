"""Plugin hooks driven by the event bus.

A plugin is a stateful listener with named hooks. The PluginManager
subscribes once to the bus and fans each lifecycle event out to the
plugins, in the order they were added.
"""

import logging
import threading
from typing import Optional

from agent_engine.events import AgentEvent, EventBus, EventType
from agent_engine.exceptions import AgentEngineError
from agent_engine.execution import ExecutionContext, Finish

logger = logging.getLogger(__name__)


class AgentPlugin:
    """Base class for plugins. Override the hooks you need.

    Usage:
        class AuditPlugin(AgentPlugin):
            name = "audit"

            async def after_execution(self, context, finish):
                print(context.execution_id, finish.reason)

        agent.add_plugin(AuditPlugin())
    """

    name: str = "plugin"
    version: str = "0.0.0"
    description: Optional[str] = None

    async def before_execution(self, context: ExecutionContext) -> None:
        pass

    async def after_execution(self, context: ExecutionContext, finish: Finish) -> None:
        pass

    async def on_error(self, context: ExecutionContext, error: BaseException) -> None:
        pass


class PluginManager:
    def __init__(self, events: EventBus):
        self.events = events
        self._plugins: list[AgentPlugin] = []
        self._lock = threading.Lock()
        events.add_listener(EventType.EXECUTION_START, self._before_execution)
        events.add_listener(EventType.EXECUTION_END, self._after_execution)
        events.add_listener(EventType.ERROR, self._on_error)

    @property
    def plugins(self) -> list[AgentPlugin]:
        with self._lock:
            return list(self._plugins)

    def add(self, plugin: AgentPlugin) -> None:
        with self._lock:
            self._plugins.append(plugin)

    def remove(self, name: str) -> bool:
        """Remove the first plugin called ``name``. Returns False if absent."""
        with self._lock:
            for index, plugin in enumerate(self._plugins):
                if plugin.name == name:
                    del self._plugins[index]
                    return True
        return False

    async def _dispatch(self, hook_name: str, *args) -> None:
        for plugin in self.plugins:
            try:
                await getattr(plugin, hook_name)(*args)
            except Exception as e:
                log = logger.warning if self.events.debug else logger.debug
                log(f"Plugin '{plugin.name}' {hook_name} raised exception: {e}")

    async def _before_execution(self, event: AgentEvent) -> None:
        await self._dispatch("before_execution", event.data["context"])

    async def _after_execution(self, event: AgentEvent) -> None:
        await self._dispatch("after_execution", event.data["context"], event.data["finish"])

    async def _on_error(self, event: AgentEvent) -> None:
        error = event.data.get("exception") or AgentEngineError(event.data.get("error", ""))
        await self._dispatch("on_error", event.data["context"], error)
