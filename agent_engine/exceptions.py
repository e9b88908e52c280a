from typing import Optional


class AgentEngineError(Exception):
    """Base exception for agent-engine errors."""


class ConfigurationError(AgentEngineError):
    """Raised when an agent is assembled with an unusable configuration."""


class MissingModelClient(ConfigurationError):
    """Raised when an agent or gateway is built without a model client."""


class RequestValidationError(AgentEngineError):
    """Raised when a chat request is malformed. Never retried."""


class ModelAPIError(AgentEngineError):
    """Raised by model clients when the provider answers with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GatewayError(AgentEngineError):
    """Raised when a model call fails for good, after any retries."""

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        last_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class ToolNotFound(AgentEngineError):
    """Raised when a tool name is not registered in the toolkit."""


class ToolValidationError(AgentEngineError):
    """Raised when tool params fail the tool's input schema."""


class ToolExecutionError(AgentEngineError):
    """Raised by tools to signal a failure they detected themselves."""


class InvalidStepTransition(AgentEngineError):
    """Raised when an AgentStep is moved backwards or touched after it ended."""


class ExecutionCancelled(AgentEngineError):
    """Raised when a cancellation token fires during an awaited call."""
