"""OpenAI-compatible chat client for agent-engine."""

import inspect
import json
import os
from typing import Optional

import httpx

from agent_engine.exceptions import ModelAPIError
from agent_engine.model import ChatRequest, ChatResponse, ChunkHandler, ModelClient, Usage


class OpenAIClient(ModelClient):
    """OpenAI-compatible model client.

    Supports the OpenAI API and compatible endpoints (local models, proxies, etc.).

    Args:
        api_key: API key. Falls back to OPENAI_API_KEY environment variable.
        model: Default model name, used when a request names none.
        base_url: Base URL for the API (default: https://api.openai.com/v1).
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        timeout: float = 60.0,
    ):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError(
                "OpenAI API key not provided. "
                "Pass api_key argument or set OPENAI_API_KEY environment variable."
            )

        self.model = model
        self.base_url = base_url or "https://api.openai.com/v1"
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        """Chat completions URL derived from ``base_url``."""
        base = self.base_url.rstrip("/")
        if base.endswith("/chat/completions"):
            return base
        if base.endswith("/v1"):
            return f"{base}/chat/completions"
        return f"{base}/v1/chat/completions"

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Call the chat completions endpoint.

        Raises:
            ModelAPIError: If the API answers with a non-200 status or a
                body that carries no content.
            httpx.HTTPError: If the request itself fails.
        """
        payload = self._build_payload(request)

        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.endpoint,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )

        if response.status_code != 200:
            raise ModelAPIError(
                f"OpenAI API error ({response.status_code}): {self._error_message(response)}",
                status_code=response.status_code,
            )

        return self._parse_response(response.json(), payload["model"])

    async def stream_chat(
        self, request: ChatRequest, on_chunk: ChunkHandler
    ) -> ChatResponse:
        """Stream server-sent events, forwarding each content delta."""
        payload = self._build_payload(request)
        payload["stream"] = True
        parts: list[str] = []
        model = payload["model"]

        async with httpx.AsyncClient() as client:
            async with client.stream(
                "POST",
                self.endpoint,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            ) as response:
                if response.status_code != 200:
                    await response.aread()
                    raise ModelAPIError(
                        f"OpenAI API error ({response.status_code}): "
                        f"{self._error_message(response)}",
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    chunk = json.loads(data)
                    model = chunk.get("model") or model
                    for choice in chunk.get("choices", []):
                        delta = (choice.get("delta") or {}).get("content")
                        if delta:
                            parts.append(delta)
                            result = on_chunk(delta)
                            if inspect.isawaitable(result):
                                await result

        return ChatResponse(content="".join(parts), model=model)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, request: ChatRequest) -> dict:
        payload = {
            "model": request.model or self.model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        return payload

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or "Unknown error"
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            return error.get("message", "Unknown error")
        return str(error or data)

    def _parse_response(self, data: dict, requested_model: str) -> ChatResponse:
        """Parse a chat completions body into a ChatResponse.

        Besides the standard ``choices`` shape, some compatible servers put
        the text under ``content``, ``text`` or ``response``.

        Raises:
            ModelAPIError: If the body carries an error or no known field.
        """
        if data.get("choices"):
            message = data["choices"][0].get("message") or {}
            content = message.get("content") or ""
        elif "content" in data:
            content = data["content"]
        elif "text" in data:
            content = data["text"]
        elif "response" in data:
            content = data["response"]
        elif "error" in data:
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise ModelAPIError(f"OpenAI API error: {message}")
        else:
            raise ModelAPIError(f"Unrecognized response format: {json.dumps(data)}")

        usage = None
        if data.get("usage"):
            raw = data["usage"]
            usage = Usage(
                prompt_tokens=raw.get("prompt_tokens", 0),
                completion_tokens=raw.get("completion_tokens", 0),
                total_tokens=raw.get("total_tokens", 0),
            )

        return ChatResponse(
            content=content,
            usage=usage,
            model=data.get("model") or requested_model,
        )
