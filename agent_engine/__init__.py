from agent_engine.adaptors.openai import OpenAIClient

# Conditional import for the optional SDK-based client
try:
    from agent_engine.adaptors.anthropic import AnthropicClient
except ImportError:
    pass

from agent_engine.agent import Agent
from agent_engine.cancellation import CancellationToken
from agent_engine.config import AgentConfig, RetryPolicy, ToolConfirmationConfig
from agent_engine.events import AgentEvent, EventBus, EventType
from agent_engine.exceptions import (
    AgentEngineError,
    ConfigurationError,
    ExecutionCancelled,
    GatewayError,
    InvalidStepTransition,
    MissingModelClient,
    ModelAPIError,
    RequestValidationError,
    ToolExecutionError,
    ToolNotFound,
    ToolValidationError,
)
from agent_engine.execution import (
    AgentResponse,
    AgentStatus,
    AgentStep,
    AgentThought,
    ExecutionContext,
    ExecutionHistory,
    Finish,
    FinishReason,
    Message,
    PlannedAction,
    StepStatus,
)
from agent_engine.gate import ToolGate
from agent_engine.model import ChatRequest, ChatResponse, ModelClient, ModelGateway, Usage
from agent_engine.parser import ActionParser, extract_json
from agent_engine.plugins import AgentPlugin
from agent_engine.recorder import Stats
from agent_engine.retry import BackoffExecutor, compute_delay, is_retryable
from agent_engine.tools import Tool, ToolInput, Toolkit

__all__ = [
    # Core
    "Agent",
    "AgentConfig",
    "RetryPolicy",
    "ToolConfirmationConfig",
    "CancellationToken",
    # Model
    "ModelClient",
    "ModelGateway",
    "ChatRequest",
    "ChatResponse",
    "Usage",
    "OpenAIClient",
    "AnthropicClient",
    "BackoffExecutor",
    "compute_delay",
    "is_retryable",
    # Parsing and tools
    "ActionParser",
    "extract_json",
    "Tool",
    "ToolInput",
    "Toolkit",
    "ToolGate",
    # Records
    "AgentResponse",
    "AgentStatus",
    "AgentStep",
    "AgentThought",
    "ExecutionContext",
    "ExecutionHistory",
    "Finish",
    "FinishReason",
    "Message",
    "PlannedAction",
    "StepStatus",
    "Stats",
    # Events and plugins
    "AgentEvent",
    "EventBus",
    "EventType",
    "AgentPlugin",
    # Exceptions
    "AgentEngineError",
    "ConfigurationError",
    "ExecutionCancelled",
    "GatewayError",
    "InvalidStepTransition",
    "MissingModelClient",
    "ModelAPIError",
    "RequestValidationError",
    "ToolExecutionError",
    "ToolNotFound",
    "ToolValidationError",
]
