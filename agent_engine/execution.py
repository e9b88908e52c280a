import os
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from agent_engine.exceptions import InvalidStepTransition


@dataclass
class Message:
    role: str  # "system" | "user" | "assistant"
    content: str


@dataclass(frozen=True)
class ExecutionContext:
    execution_id: str
    started_at: float
    working_directory: str
    environment: Mapping[str, str] = field(default_factory=dict)
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, overrides: Optional[Mapping[str, Any]] = None) -> "ExecutionContext":
        """Build a fresh context, letting the caller pin any field but the id."""
        overrides = dict(overrides or {})
        overrides.pop("execution_id", None)
        return cls(
            execution_id=str(uuid.uuid4()),
            started_at=overrides.pop("started_at", time.time()),
            working_directory=overrides.pop("working_directory", os.getcwd()),
            environment=dict(overrides.pop("environment", {})),
            session_id=overrides.pop("session_id", None) or str(uuid.uuid4()),
            user_id=overrides.pop("user_id", None) or "anonymous",
            metadata=dict(overrides.pop("metadata", {}), **overrides),
        )


@dataclass(frozen=True)
class PlannedAction:
    tool: str
    params: dict
    reason: str = "unspecified"


@dataclass(frozen=True)
class AgentThought:
    content: str
    reasoning: str
    confidence: float
    thinking_time_ms: float = 0.0
    planned_action: Optional[PlannedAction] = None


class StepStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.EXECUTING, StepStatus.FAILED},
    StepStatus.EXECUTING: {StepStatus.COMPLETED, StepStatus.FAILED},
    StepStatus.COMPLETED: set(),
    StepStatus.FAILED: set(),
}


@dataclass
class AgentStep:
    """One tool invocation attempt.

    Status only moves forward: pending -> executing -> completed|failed.
    A step that never reaches the toolkit (unknown tool, denied) goes
    straight from pending to failed. Once ``ended_at`` is set the step is
    sealed.
    """

    action: PlannedAction
    observation: str = ""
    status: StepStatus = StepStatus.PENDING
    started_at: float = field(default_factory=time.time)
    ended_at: Optional[float] = None
    error: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    def _move(self, target: StepStatus) -> None:
        if self.ended_at is not None:
            raise InvalidStepTransition(
                f"Step for '{self.action.tool}' already ended as {self.status.value}"
            )
        if target not in _TRANSITIONS[self.status]:
            raise InvalidStepTransition(
                f"Cannot move step from {self.status.value} to {target.value}"
            )
        self.status = target

    def start(self) -> None:
        self._move(StepStatus.EXECUTING)
        self.started_at = time.time()

    def complete(self, observation: str) -> None:
        self._move(StepStatus.COMPLETED)
        self.observation = observation
        self.ended_at = time.time()

    def fail(self, error: str, observation: Optional[str] = None) -> None:
        self._move(StepStatus.FAILED)
        self.error = error
        self.observation = observation if observation is not None else error
        self.ended_at = time.time()

    @property
    def duration_ms(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at) * 1000


class AgentStatus(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    ACTING = "acting"
    FINISHED = "finished"
    ERROR = "error"


class FinishReason(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    MAX_ITERATIONS = "max_iterations"
    USER_STOP = "user_stop"


@dataclass(frozen=True)
class Finish:
    output: str
    reason: FinishReason
    log: str = ""


@dataclass
class Performance:
    total_time_ms: float = 0.0
    thinking_time_ms: float = 0.0
    action_time_ms: float = 0.0
    llm_calls: int = 0
    tool_calls: int = 0
    total_tokens: int = 0


@dataclass
class ExecutionHistory:
    execution_id: str
    started_at: float = field(default_factory=time.time)
    thoughts: list[AgentThought] = field(default_factory=list)
    steps: list[AgentStep] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    ended_at: Optional[float] = None
    status: AgentStatus = AgentStatus.THINKING
    result: Optional[Finish] = None
    performance: Performance = field(default_factory=Performance)


@dataclass
class AgentResponse:
    execution_id: str
    content: str
    type: str  # "final" | "action" | "error" | "thought" | "observation"
    status: AgentStatus
    timestamp: float = field(default_factory=time.time)
    thought: Optional[AgentThought] = None
    step: Optional[AgentStep] = None
    finish: Optional[Finish] = None
    metadata: dict = field(default_factory=dict)
