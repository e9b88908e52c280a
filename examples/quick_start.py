"""Minimal agent-engine example with a listener. Requires OPENAI_API_KEY."""

import os
from pydantic import Field
from agent_engine import Agent, AgentConfig, OpenAIClient, Tool, ToolInput


class CityInput(ToolInput):
    city: str = Field(description="City name")


class GetPopulation(Tool):
    name = "get_population"
    description = "Returns the approximate population of a city"
    input_model = CityInput

    async def execute(self, city: str) -> dict:
        populations = {"tokyo": "14M", "paris": "2.1M", "new york": "8.3M"}
        return {"result": populations.get(city.lower(), "unknown")}


agent = Agent(
    OpenAIClient(api_key=os.environ["OPENAI_API_KEY"], model="gpt-4.1-mini"),
    [GetPopulation()],
    config=AgentConfig(termination="react", max_iterations=5),
)


@agent.on("action_end")
async def on_tool_call(event):
    step = event.data["step"]
    print(f"[event] {step.action.tool}({step.action.params}) -> {step.observation}")


if __name__ == "__main__":
    result = agent.run("What's the population of Tokyo and Paris?")
    print(result.content)
