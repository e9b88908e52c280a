"""Lifecycle events for agent-engine.

Listeners observe an invocation without steering it: they are called in
registration order, a failing listener is logged and skipped, and nothing a
listener returns changes the loop's outcome.

Architecture:
- EventBus is owned by the agent and passed in at construction
- Decorator (@bus.on, @agent.on) is a convenience wrapper over add_listener
- Plugins subscribe through the same bus
"""

import inspect
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"


class EventType(str, Enum):
    """Events emitted during one invocation, in emission order."""

    EXECUTION_START = "execution_start"

    THOUGHT_START = "thought_start"
    THOUGHT_END = "thought_end"

    ACTION_START = "action_start"
    TOOL_CONFIRMATION = "tool_confirmation"
    ACTION_END = "action_end"

    EXECUTION_END = "execution_end"
    ERROR = "error"


@dataclass
class AgentEvent:
    type: EventType
    execution_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


Listener = Callable[[AgentEvent], Any]


class EventBus:
    """Explicit listener registry.

    Usage:
        bus = EventBus()

        @bus.on('action_end')
        def log_step(event):
            print(event.data["step"].observation)

        # Or direct registration, for one event or all of them
        bus.add_listener('error', my_listener)
        bus.add_listener('*', audit_listener)

    Args:
        debug: Log listener failures at warning level instead of debug.
    """

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._lock = threading.Lock()
        self._listeners: Dict[str, List[Listener]] = {
            event.value: [] for event in EventType
        }
        self._listeners[ALL_EVENTS] = []

    def _key(self, event_type: Any) -> str:
        key = event_type.value if isinstance(event_type, EventType) else event_type
        if key not in self._listeners:
            valid = [e.value for e in EventType] + [ALL_EVENTS]
            raise ValueError(f"Invalid event type '{event_type}'. Valid events: {valid}")
        return key

    def on(self, event_type: Any):
        """Decorator for registering listeners.

        Args:
            event_type: EventType, its value (e.g. 'action_end') or '*'.
        """

        def decorator(func: Listener) -> Listener:
            self.add_listener(event_type, func)
            return func

        return decorator

    def add_listener(self, event_type: Any, listener: Listener) -> None:
        """Register a sync or async listener.

        Raises:
            ValueError: If event_type is not valid
        """
        key = self._key(event_type)
        with self._lock:
            self._listeners[key].append(listener)

    def remove_listener(self, event_type: Any, listener: Listener) -> bool:
        key = self._key(event_type)
        with self._lock:
            try:
                self._listeners[key].remove(listener)
            except ValueError:
                return False
        return True

    def _snapshot(self, key: str) -> List[Listener]:
        with self._lock:
            return list(self._listeners[key]) + list(self._listeners[ALL_EVENTS])

    async def emit(
        self,
        event_type: EventType,
        execution_id: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> AgentEvent:
        """Deliver one event to a snapshot of current listeners.

        Returns:
            The emitted AgentEvent.
        """
        event = AgentEvent(type=event_type, execution_id=execution_id, data=data or {})

        for listener in self._snapshot(self._key(event_type)):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # Log but don't fail execution
                log = logger.warning if self.debug else logger.debug
                log(f"Listener for '{event.type.value}' raised exception: {e}")

        return event

    def has_listeners(self, event_type: Any) -> bool:
        """Check if an event has any registered listeners."""
        return len(self._snapshot(self._key(event_type))) > 0

    def clear(self) -> None:
        """Remove all listeners (useful for testing)."""
        with self._lock:
            for key in self._listeners:
                self._listeners[key] = []
