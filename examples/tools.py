"""Shared tool definitions for the examples."""

from agent_engine import Tool, ToolExecutionError, ToolInput
from pydantic import Field


class CalculatorInput(ToolInput):
    """Input model for the calculator tool."""

    expression: str = Field(
        ...,
        description="A mathematical expression to evaluate (e.g., '2 + 2', '10 * 5')",
    )


class CalculatorTool(Tool):
    """Simple calculator tool that evaluates math expressions."""

    name = "calculator"
    description = (
        "Evaluates mathematical expressions and returns the result. "
        "Supports basic operations: +, -, *, /, **, //, %"
    )
    input_model = CalculatorInput

    async def execute(self, expression: str) -> dict:
        """Evaluate a math expression with no builtins in scope.

        Raises:
            ToolExecutionError: If the expression can't be evaluated.
        """
        safe_dict = {
            "__builtins__": {},
            "abs": abs,
            "round": round,
            "max": max,
            "min": min,
        }
        try:
            result = eval(expression, safe_dict)
        except SyntaxError as e:
            raise ToolExecutionError(f"Syntax error: {e}") from e
        except ZeroDivisionError as e:
            raise ToolExecutionError("Division by zero") from e
        return {"expression": expression, "result": result}


class WebSearchInput(ToolInput):
    """Input model for the web search tool."""

    query: str = Field(
        ...,
        description="Search query to find information about (e.g., 'weather in São Paulo')",
    )


class WebSearchTool(Tool):
    """Simulated web search tool for demonstration.

    In a real implementation, this would call an actual search API.
    """

    name = "web_search"
    description = (
        "Performs a web search and returns simulated results. "
        "For demonstration purposes, returns mock results."
    )
    input_model = WebSearchInput

    async def execute(self, query: str) -> dict:
        mock_results = {
            "weather": [
                {
                    "title": "Weather in São Paulo",
                    "url": "https://weather.example.com/sp",
                    "snippet": "São Paulo weather: Partly cloudy, 28°C, humid",
                }
            ],
            "python": [
                {
                    "title": "Python Programming Language",
                    "url": "https://python.org",
                    "snippet": "Python is a high-level programming language known for its simplicity.",
                }
            ],
        }

        query_lower = query.lower()
        if "weather" in query_lower:
            results = mock_results["weather"]
        elif "python" in query_lower:
            results = mock_results["python"]
        else:
            results = [
                {
                    "title": f"Search results for: {query}",
                    "url": "https://search.example.com",
                    "snippet": f"Mock search result for query: {query}",
                }
            ]

        return {"query": query, "results": results, "count": len(results)}
