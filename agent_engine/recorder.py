import copy
import time
from dataclasses import dataclass, field
from typing import Optional

from agent_engine.execution import (
    AgentStatus,
    AgentStep,
    AgentThought,
    ExecutionHistory,
    Finish,
    FinishReason,
)
from agent_engine.model import Usage


class ExecutionRecorder:
    """Append-only bookkeeping for one ExecutionHistory."""

    def __init__(self, history: ExecutionHistory):
        self.history = history

    def record_thought(self, thought: AgentThought) -> None:
        self.history.thoughts.append(thought)
        self.history.performance.thinking_time_ms += thought.thinking_time_ms

    def record_step(self, step: AgentStep) -> None:
        self.history.steps.append(step)
        self.history.performance.action_time_ms += step.duration_ms

    def record_usage(self, usage: Optional[Usage]) -> None:
        if usage is not None:
            self.history.performance.total_tokens += usage.total_tokens

    def finalize(self, finish: Finish, status: AgentStatus) -> ExecutionHistory:
        history = self.history
        history.ended_at = time.time()
        history.result = finish
        history.status = status
        perf = history.performance
        perf.total_time_ms = (history.ended_at - history.started_at) * 1000
        perf.llm_calls = len(history.thoughts)
        perf.tool_calls = len(history.steps)
        return history


@dataclass
class Stats:
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    average_execution_time_ms: float = 0.0
    tool_usage: dict[str, int] = field(default_factory=dict)
    llm_calls: int = 0
    total_tokens: int = 0


class StatsAggregator:
    """Running counters across finished executions of one agent."""

    def __init__(self):
        self._stats = Stats()

    def record(self, history: ExecutionHistory) -> None:
        """Fold one finalized history into the counters. Call once per finish."""
        stats = self._stats
        stats.total_executions += 1
        if history.result is not None and history.result.reason == FinishReason.SUCCESS:
            stats.successful_executions += 1
        else:
            stats.failed_executions += 1

        n = stats.total_executions
        stats.average_execution_time_ms = (
            stats.average_execution_time_ms * (n - 1) + history.performance.total_time_ms
        ) / n

        for step in history.steps:
            tool = step.action.tool
            stats.tool_usage[tool] = stats.tool_usage.get(tool, 0) + 1

        stats.llm_calls += len(history.thoughts)
        stats.total_tokens += history.performance.total_tokens

    def snapshot(self) -> Stats:
        return copy.deepcopy(self._stats)
