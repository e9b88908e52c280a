"""Anthropic chat client for agent-engine."""

import os
from typing import Optional

from anthropic import AsyncAnthropic

from agent_engine.model import ChatRequest, ChatResponse, ModelClient, Usage


class AnthropicClient(ModelClient):
    """Anthropic model client using the official SDK.

    Args:
        api_key: Anthropic API key. Falls back to ANTHROPIC_API_KEY environment variable.
        model: Model name (default: claude-sonnet-4-5-20250929).
        max_tokens: Maximum tokens in the response when the request sets none.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 1024,
    ):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Anthropic API key not provided. "
                "Pass api_key argument or set ANTHROPIC_API_KEY environment variable."
            )

        self.model = model
        self.max_tokens = max_tokens
        self.client = AsyncAnthropic(api_key=self.api_key)

    async def chat(self, request: ChatRequest) -> ChatResponse:
        system, messages = self._convert_messages(request)

        create_kwargs = {
            "model": request.model or self.model,
            "max_tokens": request.max_tokens or self.max_tokens,
            "messages": messages,
        }
        if system:
            create_kwargs["system"] = system
        if request.temperature is not None:
            create_kwargs["temperature"] = request.temperature

        # SDK errors carry status_code, which the retry classifier reads.
        response = await self.client.messages.create(**create_kwargs)
        return self._parse_response(response)

    def _convert_messages(self, request: ChatRequest) -> tuple[str, list[dict]]:
        system_parts = []
        messages = []
        for msg in request.messages:
            if msg.role == "system":
                system_parts.append(msg.content)
            else:
                messages.append({"role": msg.role, "content": msg.content})
        return "\n\n".join(system_parts), messages

    def _parse_response(self, response) -> ChatResponse:
        text = "".join(
            block.text for block in response.content if block.type == "text"
        )

        usage = None
        if getattr(response, "usage", None) is not None:
            prompt = response.usage.input_tokens or 0
            completion = response.usage.output_tokens or 0
            usage = Usage(
                prompt_tokens=prompt,
                completion_tokens=completion,
                total_tokens=prompt + completion,
            )

        return ChatResponse(content=text, usage=usage, model=getattr(response, "model", None))
