#!/usr/bin/env python3
"""Working example of agent-engine with scripted model replies.

This example runs WITHOUT an API key. A scripted ModelClient replays a
fixed conversation so you can see the thought/action/observation stream,
the lifecycle events and the final statistics.

Run:
    python examples/mock_agent.py
"""

import asyncio
import os
import sys

# Ensure the project root is in the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from agent_engine import Agent, AgentConfig, ChatResponse, ModelClient, Usage
from tools import CalculatorTool, WebSearchTool


class ScriptedModelClient(ModelClient):
    """Model client that replays predefined replies without calling an API."""

    def __init__(self):
        self.call_count = 0
        self.replies = [
            'I will add the numbers first. '
            '{"tool": "calculator", "params": {"expression": "25 + 17"}, "reason": "arithmetic"}',
            'Now the weather. '
            '{"tool": "web_search", "params": {"query": "weather in São Paulo"}, "reason": "lookup"}',
            'And the product. '
            '{"tool": "calculator", "params": {"expression": "100 * 2"}}',
            "25 + 17 = 42, São Paulo is partly cloudy at 28°C, and 100 * 2 = 200.",
        ]

    async def chat(self, request):
        if self.call_count >= len(self.replies):
            return ChatResponse(content="(Scripted client ran out of replies)")
        reply = self.replies[self.call_count]
        self.call_count += 1
        return ChatResponse(content=reply, usage=Usage(total_tokens=len(reply.split())))


def print_header(text: str, width: int = 70) -> None:
    print(f"\n{'=' * width}")
    print(f"  {text}")
    print(f"{'=' * width}\n")


async def run_example() -> int:
    agent = Agent(
        ScriptedModelClient(),
        [CalculatorTool(), WebSearchTool()],
        config=AgentConfig(termination="react", max_iterations=10),
    )

    @agent.on("*")
    def trace(event):
        print(f"  [{event.type.value}]")

    query = "What is 25 + 17? And what's the weather in São Paulo? Then calculate 100 * 2."
    print_header("Running Agent")
    print(f"Query: {query}\n")

    final = None
    async for response in agent.stream(query):
        if response.type in ("final", "error"):
            final = response
        else:
            print(f"{response.type.upper():>12}: {response.content}")

    print_header("Result")
    print(f"Reason: {final.finish.reason.value}")
    print(f"Answer: {final.content}\n")
    print(final.finish.log)

    stats = agent.get_stats()
    print_header("Stats")
    print(f"  Executions: {stats.total_executions}")
    print(f"  Tool usage: {stats.tool_usage}")
    print(f"  LLM calls:  {stats.llm_calls}")
    print(f"  Tokens:     {stats.total_tokens}")

    return 0 if final.type == "final" else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(run_example()))
