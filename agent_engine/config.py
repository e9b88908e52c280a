"""Configuration surface consumed by the agent.

Models accept both snake_case field names and the camelCase keys used by
stored configuration files, so ``AgentConfig.model_validate({"maxIterations": 3})``
and ``AgentConfig(max_iterations=3)`` are equivalent.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class RetryPolicy(_ConfigModel):
    """Bounded exponential backoff for model calls."""

    max_retries: int = Field(3, ge=0)
    base_delay_ms: float = Field(1000, ge=0)
    max_delay_ms: float = Field(30000, ge=0)
    backoff_factor: float = Field(2.0, ge=1.0)

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryPolicy":
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        return self


class ToolConfirmationConfig(_ConfigModel):
    """Human-in-the-loop approval before tools run.

    ``timeout_ms`` bounds the wait for a decision; when it elapses the tool
    is denied.
    """

    enabled: bool = False
    auto_approve: list[str] = Field(default_factory=list)
    auto_reject: list[str] = Field(default_factory=list)
    timeout_ms: Optional[float] = Field(None, gt=0)


class AgentConfig(_ConfigModel):
    max_iterations: int = Field(10, ge=1)
    max_execution_time_ms: float = Field(300000, gt=0)
    streaming_enabled: bool = False
    debug_enabled: bool = False
    tool_confirmation: ToolConfirmationConfig = Field(
        default_factory=ToolConfirmationConfig
    )
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    # "single_shot" resolves after the first tool call; "react" keeps
    # looping until the model answers without an action.
    termination: Literal["single_shot", "react"] = "single_shot"
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = Field(None, ge=0)
    max_tokens: Optional[int] = Field(None, gt=0)
