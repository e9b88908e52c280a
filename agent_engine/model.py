import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from agent_engine.cancellation import CancellationToken
from agent_engine.config import RetryPolicy
from agent_engine.exceptions import (
    ExecutionCancelled,
    GatewayError,
    MissingModelClient,
    RequestValidationError,
)
from agent_engine.execution import Message
from agent_engine.retry import BackoffExecutor

logger = logging.getLogger(__name__)

ChunkHandler = Callable[[str], Any]


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatRequest:
    messages: list[Message] = field(default_factory=list)
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class ChatResponse:
    content: str
    usage: Optional[Usage] = None
    model: Optional[str] = None


class ModelClient:
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send one chat request and return the full response."""
        raise NotImplementedError

    async def stream_chat(
        self, request: ChatRequest, on_chunk: ChunkHandler
    ) -> ChatResponse:
        """Stream a chat response, calling ``on_chunk`` for each text delta.

        Clients without native streaming deliver the whole content as a
        single chunk.
        """
        response = await self.chat(request)
        result = on_chunk(response.content)
        if inspect.isawaitable(result):
            await result
        return response


def validate_request(request: ChatRequest) -> None:
    """Reject requests that no provider could answer.

    Raises:
        RequestValidationError: On an empty message list or a message
            without role or content.
    """
    if not request.messages:
        raise RequestValidationError("Chat request has no messages")
    for index, message in enumerate(request.messages):
        if not getattr(message, "role", None):
            raise RequestValidationError(f"Message {index} is missing a role")
        if not getattr(message, "content", None):
            raise RequestValidationError(f"Message {index} is missing content")


class ModelGateway:
    """Single ``chat`` entry point over a model client, with retries.

    Args:
        client: Any ModelClient implementation.
        retry_policy: Backoff bounds. Defaults to RetryPolicy().
        sleep: Awaitable sleep used between attempts.
    """

    def __init__(
        self,
        client: Optional[ModelClient],
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if client is None:
            raise MissingModelClient("A model client is required")
        self.client = client
        self.executor = BackoffExecutor(retry_policy, sleep=sleep)

    async def chat(
        self,
        request: ChatRequest,
        cancel_token: Optional[CancellationToken] = None,
        on_chunk: Optional[ChunkHandler] = None,
    ) -> ChatResponse:
        """Validate and dispatch ``request``.

        Raises:
            RequestValidationError: Before any attempt, on a malformed request.
            GatewayError: Once the call failed for good; chained from the
                last underlying error.
            ExecutionCancelled: If ``cancel_token`` fires mid-call.
        """
        validate_request(request)

        classifier = None
        if on_chunk is not None:
            delivered = False

            def forward(chunk: str) -> Any:
                nonlocal delivered
                delivered = True
                return on_chunk(chunk)

            # A stream that already delivered a chunk is never retried.
            def classifier(error: BaseException) -> bool:
                return not delivered and self.executor.classifier(error)

            operation = lambda: self.client.stream_chat(request, forward)  # noqa: E731
        else:
            operation = lambda: self.client.chat(request)  # noqa: E731

        try:
            return await self.executor.run(operation, cancel_token, classifier)
        except ExecutionCancelled:
            raise
        except Exception as e:
            attempts = self.executor.last_attempts
            raise GatewayError(
                f"Model call failed after {attempts} attempt(s): {e}",
                attempts=attempts,
                last_error=e,
            ) from e
